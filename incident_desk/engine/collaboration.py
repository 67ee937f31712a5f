"""Collaboration Surface — comments and attachments on incidents.

Both are append-only and gated by the COMMENT capability on the parent
incident. Reading them requires VIEW on the parent, with the same
not-found rule as reading the incident itself.
"""

from typing import Optional

from ..auth.rbac import Capability, capabilities
from ..errors import Rejected
from ..models.attachment import Attachment
from ..models.audit_log import AuditAction
from ..models.comment import Comment
from ..models.profile import Profile
from ..utils.logging import get_logger
from .audit_recorder import ENTITY_COMMENT, AuditRecorder, snapshot
from .incident_store import IncidentStore

logger = get_logger("engine.collaboration")

COMMENT_FIELDS = ("id", "incident_id", "author_id", "message", "created_at")
DEFAULT_MIME_TYPE = "application/octet-stream"


class CollaborationSurface:
    """Append and read comments and attachment metadata."""

    def __init__(self, store: IncidentStore, recorder: AuditRecorder):
        self._store = store
        self._recorder = recorder

    async def _commentable(self, actor: Profile, incident_id: str) -> Optional[Rejected]:
        incident = await self._store.fetch(incident_id)
        if incident is None:
            return Rejected.not_found("Incident not found")
        if Capability.COMMENT not in capabilities(actor, incident):
            return Rejected.forbidden("Capability required: comment")
        return None

    async def add_comment(
        self,
        actor: Profile,
        incident_id: str,
        message: str,
        ip_address: Optional[str] = None,
    ) -> Comment | Rejected:
        refused = await self._commentable(actor, incident_id)
        if refused is not None:
            return refused

        message = (message or "").strip()
        if not message:
            return Rejected.invalid_value("Comment message must not be empty")

        comment = await self._store.add_comment(incident_id, actor.id, message)
        if comment is None:
            return Rejected.not_found("Incident not found")

        logger.info("comment_added", id=comment.id, incident_id=incident_id, author=actor.id)
        await self._recorder.record(
            actor.id, AuditAction.INSERT, ENTITY_COMMENT, comment.id,
            snapshot(comment, COMMENT_FIELDS), ip_address,
        )
        return comment

    async def add_attachment(
        self,
        actor: Profile,
        incident_id: str,
        blob_ref: str,
        filename: str,
        size: int,
        mime_type: Optional[str] = None,
    ) -> Attachment | Rejected:
        """Record metadata for a blob already placed in the blob store."""
        refused = await self._commentable(actor, incident_id)
        if refused is not None:
            return refused

        filename = (filename or "").strip()
        blob_ref = (blob_ref or "").strip()
        if not filename:
            return Rejected.invalid_value("filename must not be empty")
        if not blob_ref:
            return Rejected.invalid_value("storage reference must not be empty")
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            return Rejected.invalid_value("file size must be a non-negative integer")

        attachment = await self._store.add_attachment(Attachment(
            incident_id=incident_id,
            uploader_id=actor.id,
            filename=filename,
            storage_path=blob_ref,
            file_size=size,
            mime_type=(mime_type or "").strip() or DEFAULT_MIME_TYPE,
        ))
        if attachment is None:
            return Rejected.not_found("Incident not found")

        logger.info("attachment_added", id=attachment.id, incident_id=incident_id, size=size)
        return attachment

    async def list_comments(self, actor: Profile, incident_id: str) -> list[Comment] | Rejected:
        if await self._store.get(actor, incident_id) is None:
            return Rejected.not_found("Incident not found")
        return await self._store.list_comments(incident_id)

    async def list_attachments(self, actor: Profile, incident_id: str) -> list[Attachment] | Rejected:
        if await self._store.get(actor, incident_id) is None:
            return Rejected.not_found("Incident not found")
        return await self._store.list_attachments(incident_id)
