"""Incident routes — visibility-scoped reads and workflow-checked writes."""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Request, Response
from pydantic import BaseModel, Field

from ...dependencies import get_client_ip, get_current_actor, get_incident_manager
from ...engine.incident_manager import IncidentManager
from ...models.profile import Profile
from ..rejections import unwrap

router = APIRouter(prefix="/incidents", tags=["incidents"])


class CreateIncidentRequest(BaseModel):
    title: str = Field(max_length=255)
    description: str = Field(max_length=5000)
    category: str = Field(max_length=100)
    severity: Optional[str] = None


@router.get("/")
async def list_incidents(
    status: Optional[str] = None,
    severity: Optional[str] = None,
    actor: Profile = Depends(get_current_actor),
    manager: IncidentManager = Depends(get_incident_manager),
):
    """List incidents visible to the caller, newest first."""
    return unwrap(await manager.list_incidents(actor, status=status, severity=severity))


@router.post("/", status_code=201)
async def create_incident(
    body: CreateIncidentRequest,
    request: Request,
    actor: Profile = Depends(get_current_actor),
    manager: IncidentManager = Depends(get_incident_manager),
):
    return unwrap(await manager.create_incident(
        actor,
        title=body.title,
        description=body.description,
        category=body.category,
        severity=body.severity,
        ip_address=get_client_ip(request),
    ))


@router.get("/stats")
async def get_incident_stats(
    actor: Profile = Depends(get_current_actor),
    manager: IncidentManager = Depends(get_incident_manager),
):
    """Counts by status and severity over the caller's visible incidents."""
    return await manager.get_stats(actor)


@router.get("/{incident_id}")
async def get_incident(
    incident_id: str,
    actor: Profile = Depends(get_current_actor),
    manager: IncidentManager = Depends(get_incident_manager),
):
    return unwrap(await manager.get_incident(actor, incident_id))


@router.get("/{incident_id}/detail")
async def get_incident_detail(
    incident_id: str,
    actor: Profile = Depends(get_current_actor),
    manager: IncidentManager = Depends(get_incident_manager),
):
    """Incident with reporter, assignee, comments and attachments."""
    return unwrap(await manager.get_incident_detail(actor, incident_id))


@router.patch("/{incident_id}")
async def update_incident(
    incident_id: str,
    request: Request,
    patch: dict[str, Any] = Body(...),
    actor: Profile = Depends(get_current_actor),
    manager: IncidentManager = Depends(get_incident_manager),
):
    """Apply a status/severity/assignment patch."""
    return unwrap(await manager.update_incident(
        actor, incident_id, patch, ip_address=get_client_ip(request),
    ))


@router.delete("/{incident_id}", status_code=204)
async def delete_incident(
    incident_id: str,
    request: Request,
    actor: Profile = Depends(get_current_actor),
    manager: IncidentManager = Depends(get_incident_manager),
):
    unwrap(await manager.delete_incident(actor, incident_id, ip_address=get_client_ip(request)))
    return Response(status_code=204)
