"""Comment routes — append-only discussion nested under an incident."""

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from ...dependencies import get_client_ip, get_current_actor, get_incident_manager
from ...engine.incident_manager import IncidentManager
from ...models.profile import Profile
from ..rejections import unwrap

router = APIRouter(prefix="/incidents/{incident_id}/comments", tags=["comments"])


class CommentRequest(BaseModel):
    message: str = Field(max_length=5000)


@router.get("/")
async def list_comments(
    incident_id: str,
    actor: Profile = Depends(get_current_actor),
    manager: IncidentManager = Depends(get_incident_manager),
):
    return unwrap(await manager.list_comments(actor, incident_id))


@router.post("/", status_code=201)
async def add_comment(
    incident_id: str,
    body: CommentRequest,
    request: Request,
    actor: Profile = Depends(get_current_actor),
    manager: IncidentManager = Depends(get_incident_manager),
):
    return unwrap(await manager.add_comment(
        actor, incident_id, body.message, ip_address=get_client_ip(request),
    ))
