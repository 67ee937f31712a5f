"""Audit log routes — read-only view of the audit trail."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ...auth.rbac import Capability
from ...dependencies import get_incident_manager, require_capability
from ...engine.incident_manager import IncidentManager
from ...models.profile import Profile
from ..rejections import unwrap

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/logs")
async def get_audit_logs(
    entity_type: Optional[str] = Query(None, max_length=50),
    actor: Profile = Depends(require_capability(Capability.VIEW_AUDIT)),
    manager: IncidentManager = Depends(get_incident_manager),
):
    """Most recent audit entries, optionally for one entity type."""
    return unwrap(await manager.list_audit(actor, entity_type))
