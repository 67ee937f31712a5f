"""Audit Recorder — appends one immutable entry per accepted mutation.

Recording happens after the business mutation has committed, in a session
of its own. A failed audit write is logged and swallowed: it never rolls
back or fails the mutation it describes.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..auth.rbac import Capability, capabilities
from ..errors import Rejected, StoreUnavailable
from ..models.audit_log import AuditAction, AuditLog
from ..models.profile import Profile
from ..utils.logging import get_logger

logger = get_logger("engine.audit_recorder")

ENTITY_INCIDENT = "Incident"
ENTITY_PROFILE = "Profile"
ENTITY_COMMENT = "Comment"


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def snapshot(entity, fields: tuple[str, ...]) -> dict:
    """Column values of ``entity`` for INSERT/DELETE entries."""
    return {name: getattr(entity, name) for name in fields}


def diff(before: dict, after: dict) -> dict:
    """Old/new pairs for UPDATE entries, keyed by field."""
    return {key: {"old": before.get(key), "new": after[key]} for key in after}


class AuditRecorder:
    """Writes and reads the audit trail."""

    def __init__(self, db_session_factory, max_entries: int = 100):
        self._db_session_factory = db_session_factory
        self._max_entries = max_entries

    async def record(
        self,
        actor_id: Optional[str],
        action: AuditAction,
        entity_type: str,
        entity_id: Optional[str],
        changes: Optional[dict] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[AuditLog]:
        """Append an entry; returns None when the write failed."""
        try:
            changes_json = json.dumps(changes, default=_json_default) if changes is not None else None
            async with self._db_session_factory() as session:
                entry = AuditLog(
                    user_id=actor_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=entity_id,
                    changes_json=changes_json,
                    ip_address=ip_address,
                )
                session.add(entry)
                await session.commit()
        except Exception as e:
            logger.error(
                "audit_record_failed",
                action=getattr(action, "value", action),
                entity_type=entity_type,
                entity_id=entity_id,
                error=str(e),
            )
            return None
        return entry

    async def list_entries(
        self, actor: Profile, entity_type: Optional[str] = None
    ) -> list[AuditLog] | Rejected:
        """Newest entries first, optionally narrowed to one entity type."""
        if Capability.VIEW_AUDIT not in capabilities(actor):
            return Rejected.forbidden("Capability required: view_audit")

        query = select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        if entity_type:
            query = query.where(AuditLog.entity_type == entity_type)
        query = query.limit(self._max_entries)

        try:
            async with self._db_session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreUnavailable("audit log unavailable") from e

    @staticmethod
    def decode_changes(entry: AuditLog) -> Any:
        return json.loads(entry.changes_json) if entry.changes_json else None
