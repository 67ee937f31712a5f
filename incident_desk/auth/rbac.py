"""Role policy — maps (actor, incident) to the capabilities the actor holds.

``capabilities`` is pure and total: it reads only its arguments, never
touches storage and returns an empty set instead of failing. Every role is
handled explicitly; adding a role without a branch is a type error.
"""

from enum import Enum
from typing import Optional, assert_never

from ..models.incident import Incident
from ..models.profile import Profile, Role


class Capability(str, Enum):
    VIEW = "view"
    CREATE = "create"
    COMMENT = "comment"
    EDIT_STATUS = "edit_status"
    EDIT_SEVERITY = "edit_severity"
    EDIT_ASSIGNMENT = "edit_assignment"
    DELETE = "delete"
    MANAGE_USERS = "manage_users"
    VIEW_AUDIT = "view_audit"


ALL_CAPABILITIES = frozenset(Capability)
NO_CAPABILITIES: frozenset[Capability] = frozenset()

# Roles an incident may be assigned to
ASSIGNABLE_ROLES = frozenset({Role.RESPONDER, Role.MANAGER, Role.ADMIN})

_MANAGER_ON_INCIDENT = frozenset({
    Capability.VIEW, Capability.CREATE, Capability.COMMENT,
    Capability.EDIT_STATUS, Capability.EDIT_SEVERITY, Capability.EDIT_ASSIGNMENT,
})
_RESPONDER_ON_ASSIGNED = frozenset({
    Capability.VIEW, Capability.COMMENT,
    Capability.EDIT_STATUS, Capability.EDIT_SEVERITY,
})
_REPORTER_ON_OWN = frozenset({Capability.VIEW, Capability.COMMENT, Capability.CREATE})
_CREATE_ONLY = frozenset({Capability.CREATE})


def _coerce_role(value) -> Optional[Role]:
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def capabilities(actor: Profile, incident: Optional[Incident] = None) -> frozenset[Capability]:
    """Capabilities ``actor`` holds on ``incident``, or globally when it is None."""
    role = _coerce_role(getattr(actor, "role", None))
    if role is None:
        return NO_CAPABILITIES

    if role is Role.ADMIN:
        return ALL_CAPABILITIES
    elif role is Role.MANAGER:
        return _CREATE_ONLY if incident is None else _MANAGER_ON_INCIDENT
    elif role is Role.RESPONDER:
        if incident is not None and incident.assigned_to == actor.id:
            return _RESPONDER_ON_ASSIGNED
        return NO_CAPABILITIES
    elif role is Role.REPORTER:
        if incident is not None and incident.reporter_id == actor.id:
            return _REPORTER_ON_OWN
        return _CREATE_ONLY
    else:
        assert_never(role)


def can_view(actor: Profile, incident: Incident) -> bool:
    """The visibility predicate used to scope list and get."""
    return Capability.VIEW in capabilities(actor, incident)


def can_assign(actor: Profile) -> bool:
    """Whether the actor may set ``assigned_to`` on incidents at all."""
    return _coerce_role(getattr(actor, "role", None)) in (Role.MANAGER, Role.ADMIN)


def is_assignable(profile: Optional[Profile]) -> bool:
    return profile is not None and _coerce_role(profile.role) in ASSIGNABLE_ROLES
