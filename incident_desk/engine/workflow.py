"""Workflow Engine — validates and applies incident mutations.

Every accepted create, update and delete goes through here: the actor's
capabilities are checked against the incident as currently stored, the
patch is validated, the store persists it, and only then is the change
handed to the audit recorder.
"""

from typing import Optional

from ..auth.rbac import Capability, capabilities, is_assignable
from ..errors import Rejected, RejectionReason
from ..models.audit_log import AuditAction
from ..models.base import utcnow
from ..models.incident import Incident, Severity, Status
from ..models.profile import Profile, Role
from ..utils.logging import get_logger
from .audit_recorder import ENTITY_INCIDENT, AuditRecorder, diff, snapshot
from .incident_store import INCIDENT_FIELDS, IncidentDraft, IncidentStore
from .transitions import TransitionPolicy, UnrestrictedTransitions

logger = get_logger("engine.workflow")

# Patchable field -> capability required to change it
PATCH_CAPABILITIES = {
    "status": Capability.EDIT_STATUS,
    "severity": Capability.EDIT_SEVERITY,
    "assigned_to": Capability.EDIT_ASSIGNMENT,
}


class WorkflowEngine:
    """Applies approved state changes to incidents."""

    def __init__(
        self,
        store: IncidentStore,
        recorder: AuditRecorder,
        transition_policy: Optional[TransitionPolicy] = None,
    ):
        self._store = store
        self._recorder = recorder
        self._transitions = transition_policy or UnrestrictedTransitions()

    @property
    def transition_policy(self) -> TransitionPolicy:
        return self._transitions

    async def create_incident(
        self, actor: Profile, draft: IncidentDraft, ip_address: Optional[str] = None
    ) -> Incident | Rejected:
        result = await self._store.create(actor, draft)
        if isinstance(result, Rejected):
            logger.info("incident_create_rejected", actor=actor.id, reason=result.reason.value)
            return result

        logger.info(
            "incident_created",
            id=result.id,
            reporter=actor.id,
            severity=result.severity.value,
            category=result.category,
        )
        await self._recorder.record(
            actor.id, AuditAction.INSERT, ENTITY_INCIDENT, result.id,
            snapshot(result, INCIDENT_FIELDS), ip_address,
        )
        return result

    async def apply_update(
        self,
        actor: Profile,
        incident: Incident,
        patch: dict,
        ip_address: Optional[str] = None,
    ) -> Incident | Rejected:
        """Validate ``patch`` against ``incident`` and apply it all at once.

        Checks run in a fixed order and the first failure wins: unknown
        fields, missing capability, bad values (including refused status
        transitions), then assignee validity. Nothing is written unless
        every check passes.
        """
        outcome = await self._validate(actor, incident, patch)
        if isinstance(outcome, Rejected):
            logger.info(
                "incident_update_rejected",
                id=incident.id,
                actor=actor.id,
                reason=outcome.reason.value,
                detail=outcome.detail,
            )
            return outcome
        changes = outcome

        # Guard only the written columns, plus the assignment a responder's rights hinge on
        expected = {field: getattr(incident, field) for field in changes}
        if actor.role == Role.RESPONDER:
            expected["assigned_to"] = actor.id

        updated = await self._store.update(incident.id, changes, expected, utcnow())
        if updated is None:
            if await self._store.fetch(incident.id) is None:
                return Rejected.not_found("Incident not found")
            logger.warning("incident_update_conflict", id=incident.id, actor=actor.id, fields=sorted(changes))
            return Rejected.conflict("Incident was modified concurrently; reload and retry")

        before = {field: getattr(incident, field) for field in changes}
        logger.info("incident_updated", id=incident.id, actor=actor.id, fields=sorted(changes))
        await self._recorder.record(
            actor.id, AuditAction.UPDATE, ENTITY_INCIDENT, incident.id,
            diff(before, changes), ip_address,
        )
        return updated

    async def _validate(self, actor: Profile, incident: Incident, patch: dict) -> dict | Rejected:
        if not patch:
            return Rejected(RejectionReason.INVALID_FIELD, "Patch has no fields")
        unknown = sorted(set(patch) - set(PATCH_CAPABILITIES))
        if unknown:
            return Rejected(RejectionReason.INVALID_FIELD, f"Unknown fields: {', '.join(unknown)}")

        held = capabilities(actor, incident)
        for field in patch:
            required = PATCH_CAPABILITIES[field]
            if required not in held:
                return Rejected.forbidden(f"Capability required: {required.value}")

        changes = {}
        if "status" in patch:
            try:
                target = Status(patch["status"])
            except ValueError:
                return Rejected.invalid_value(f"Unknown status: {patch['status']}")
            if not self._transitions.allows(incident.status, target):
                allowed = [s.value for s in self._transitions.allowed_targets(incident.status)]
                return Rejected.invalid_value(
                    f"Cannot transition from {incident.status.value} to {target.value}. Allowed: {allowed}"
                )
            changes["status"] = target

        if "severity" in patch:
            try:
                changes["severity"] = Severity(patch["severity"])
            except ValueError:
                return Rejected.invalid_value(f"Unknown severity: {patch['severity']}")

        if "assigned_to" in patch:
            assignee_id = patch["assigned_to"]
            if assignee_id == "":
                assignee_id = None
            if assignee_id is not None:
                if not isinstance(assignee_id, str):
                    return Rejected(RejectionReason.INVALID_ASSIGNEE, "Assignee must be a profile id")
                assignee = await self._store.get_profile(assignee_id)
                if not is_assignable(assignee):
                    return Rejected(
                        RejectionReason.INVALID_ASSIGNEE,
                        "Assignee must be an existing responder, manager or admin",
                    )
            changes["assigned_to"] = assignee_id

        return changes

    async def delete_incident(
        self, actor: Profile, incident_id: str, ip_address: Optional[str] = None
    ) -> Incident | Rejected:
        """Hard-delete an incident with its comments and attachments."""
        if Capability.DELETE not in capabilities(actor):
            logger.info("incident_delete_rejected", id=incident_id, actor=actor.id)
            return Rejected.forbidden("Capability required: delete")

        removed = await self._store.delete(incident_id)
        if removed is None:
            return Rejected.not_found("Incident not found")

        logger.info("incident_deleted", id=incident_id, actor=actor.id)
        await self._recorder.record(
            actor.id, AuditAction.DELETE, ENTITY_INCIDENT, incident_id,
            snapshot(removed, INCIDENT_FIELDS), ip_address,
        )
        return removed
