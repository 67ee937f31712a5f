"""User administration — admin-mediated changes to profiles."""

from typing import Optional

from ..auth.rbac import ASSIGNABLE_ROLES, Capability, can_assign, capabilities
from ..errors import Rejected, RejectionReason
from ..models.audit_log import AuditAction
from ..models.profile import Profile, Role
from ..utils.logging import get_logger
from .audit_recorder import ENTITY_PROFILE, AuditRecorder, diff, snapshot
from .incident_store import PROFILE_FIELDS, IncidentStore

logger = get_logger("engine.user_admin")

EDITABLE_PROFILE_FIELDS = ("username", "role", "team")


class UserAdministration:
    """Lists, edits and removes profiles on behalf of admins."""

    def __init__(self, store: IncidentStore, recorder: AuditRecorder):
        self._store = store
        self._recorder = recorder

    @staticmethod
    def _require_manage(actor: Profile) -> Optional[Rejected]:
        if Capability.MANAGE_USERS not in capabilities(actor):
            return Rejected.forbidden("Capability required: manage_users")
        return None

    async def list_users(self, actor: Profile) -> list[Profile] | Rejected:
        refused = self._require_manage(actor)
        if refused is not None:
            return refused
        return await self._store.list_profiles()

    async def list_assignable(self, actor: Profile) -> list[Profile] | Rejected:
        """Profiles an incident may be assigned to, by username."""
        if not can_assign(actor):
            return Rejected.forbidden("Capability required: edit_assignment")
        return await self._store.list_profiles(roles=ASSIGNABLE_ROLES, order_by_username=True)

    async def update_user(
        self,
        actor: Profile,
        profile_id: str,
        patch: dict,
        ip_address: Optional[str] = None,
    ) -> Profile | Rejected:
        refused = self._require_manage(actor)
        if refused is not None:
            return refused

        if not patch:
            return Rejected(RejectionReason.INVALID_FIELD, "Patch has no fields")
        unknown = sorted(set(patch) - set(EDITABLE_PROFILE_FIELDS))
        if unknown:
            return Rejected(RejectionReason.INVALID_FIELD, f"Unknown fields: {', '.join(unknown)}")

        target = await self._store.get_profile(profile_id)
        if target is None:
            return Rejected.not_found("User not found")

        changes = {}
        if "username" in patch:
            username = patch["username"]
            if username is not None and not isinstance(username, str):
                return Rejected.invalid_value("username must be a string")
            username = (username or "").strip()
            if not username:
                return Rejected.invalid_value("username must not be empty")
            if await self._store.username_taken(username, exclude_id=profile_id):
                return Rejected.conflict(f"username already taken: {username}")
            changes["username"] = username

        if "role" in patch:
            try:
                role = Role(patch["role"])
            except ValueError:
                return Rejected.invalid_value(f"Unknown role: {patch['role']}")
            if role is Role.REPORTER and target.role is not Role.REPORTER:
                if await self._store.count_assigned(profile_id):
                    return Rejected.conflict("Cannot demote a user who still has assigned incidents")
            changes["role"] = role

        if "team" in patch:
            team = patch["team"]
            if team is not None and not isinstance(team, str):
                return Rejected.invalid_value("team must be a string")
            changes["team"] = (team or "").strip() or None

        before = {field: getattr(target, field) for field in changes}
        updated = await self._store.update_profile(profile_id, changes)
        if updated is None:
            if await self._store.get_profile(profile_id) is None:
                return Rejected.not_found("User not found")
            return Rejected.conflict("username already taken")

        logger.info("user_updated", id=profile_id, actor=actor.id, fields=sorted(changes))
        await self._recorder.record(
            actor.id, AuditAction.UPDATE, ENTITY_PROFILE, profile_id,
            diff(before, changes), ip_address,
        )
        return updated

    async def delete_user(
        self, actor: Profile, profile_id: str, ip_address: Optional[str] = None
    ) -> Profile | Rejected:
        refused = self._require_manage(actor)
        if refused is not None:
            return refused
        if profile_id == actor.id:
            return Rejected.invalid_value("Cannot delete your own account")

        target = await self._store.get_profile(profile_id)
        if target is None:
            return Rejected.not_found("User not found")
        if await self._store.is_referenced(profile_id):
            return Rejected.conflict("User is still referenced by incidents, comments or attachments")

        removed = await self._store.delete_profile(profile_id)
        if removed is None:
            if await self._store.get_profile(profile_id) is None:
                return Rejected.not_found("User not found")
            return Rejected.conflict("User is still referenced by incidents, comments or attachments")

        logger.info("user_deleted", id=profile_id, username=removed.username, actor=actor.id)
        await self._recorder.record(
            actor.id, AuditAction.DELETE, ENTITY_PROFILE, profile_id,
            snapshot(removed, PROFILE_FIELDS), ip_address,
        )
        return removed
