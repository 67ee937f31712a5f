"""Declarative base and shared column helpers."""

import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def enum_values(enum_cls) -> list[str]:
    """Persist enum members by value rather than by name."""
    return [member.value for member in enum_cls]
