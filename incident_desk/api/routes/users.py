"""User management routes — admin-only profile administration."""

from typing import Any

from fastapi import APIRouter, Body, Depends, Request, Response

from ...auth.rbac import Capability
from ...dependencies import get_client_ip, get_current_actor, get_incident_manager, require_capability
from ...engine.incident_manager import IncidentManager
from ...models.profile import Profile
from ..rejections import unwrap

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/")
async def list_users(
    actor: Profile = Depends(require_capability(Capability.MANAGE_USERS)),
    manager: IncidentManager = Depends(get_incident_manager),
):
    """List all users (admin only)."""
    return unwrap(await manager.list_users(actor))


@router.get("/assignable")
async def list_assignable(
    actor: Profile = Depends(get_current_actor),
    manager: IncidentManager = Depends(get_incident_manager),
):
    """Users an incident can be assigned to (managers and admins)."""
    return unwrap(await manager.list_assignable(actor))


@router.patch("/{user_id}")
async def update_user(
    user_id: str,
    request: Request,
    patch: dict[str, Any] = Body(...),
    actor: Profile = Depends(require_capability(Capability.MANAGE_USERS)),
    manager: IncidentManager = Depends(get_incident_manager),
):
    """Change a user's username, role or team (admin only)."""
    return unwrap(await manager.update_user(actor, user_id, patch, ip_address=get_client_ip(request)))


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: str,
    request: Request,
    actor: Profile = Depends(require_capability(Capability.MANAGE_USERS)),
    manager: IncidentManager = Depends(get_incident_manager),
):
    """Delete a user (admin only, cannot delete self)."""
    unwrap(await manager.delete_user(actor, user_id, ip_address=get_client_ip(request)))
    return Response(status_code=204)
