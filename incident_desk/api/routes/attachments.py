"""Attachment routes — metadata for blobs already uploaded to the blob store."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ...dependencies import get_current_actor, get_incident_manager
from ...engine.incident_manager import IncidentManager
from ...models.profile import Profile
from ..rejections import unwrap

router = APIRouter(prefix="/incidents/{incident_id}/attachments", tags=["attachments"])


class AttachmentRequest(BaseModel):
    filename: str = Field(max_length=255)
    storage_path: str = Field(max_length=1024)
    file_size: int
    mime_type: Optional[str] = Field(default=None, max_length=255)


@router.get("/")
async def list_attachments(
    incident_id: str,
    actor: Profile = Depends(get_current_actor),
    manager: IncidentManager = Depends(get_incident_manager),
):
    return unwrap(await manager.list_attachments(actor, incident_id))


@router.post("/", status_code=201)
async def add_attachment(
    incident_id: str,
    body: AttachmentRequest,
    actor: Profile = Depends(get_current_actor),
    manager: IncidentManager = Depends(get_incident_manager),
):
    """Record an attachment's metadata against the incident."""
    return unwrap(await manager.add_attachment(
        actor,
        incident_id,
        storage_path=body.storage_path,
        filename=body.filename,
        file_size=body.file_size,
        mime_type=body.mime_type,
    ))
