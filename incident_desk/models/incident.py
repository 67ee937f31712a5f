"""Incident model — the tracked unit of work and its lifecycle fields."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, enum_values, new_id, utcnow


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Status(str, Enum):
    NEW = "new"
    TRIAGED = "triaged"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class Incident(Base):
    __tablename__ = "incidents"
    __table_args__ = (
        Index("ix_incidents_status_created", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    reporter_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[Severity] = mapped_column(
        SAEnum(Severity, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=Severity.MEDIUM,
        index=True,
    )
    status: Mapped[Status] = mapped_column(
        SAEnum(Status, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=Status.NEW,
        index=True,
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    assigned_to: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=True, index=True
    )
    team: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
