"""Status transition policies for the workflow engine."""

from ..models.incident import Status

# Linear lifecycle: each status may only advance to the next one
LINEAR_TRANSITIONS = {
    Status.NEW: [Status.TRIAGED],
    Status.TRIAGED: [Status.IN_PROGRESS],
    Status.IN_PROGRESS: [Status.RESOLVED],
    Status.RESOLVED: [Status.CLOSED],
    Status.CLOSED: [],
}


class TransitionPolicy:
    """Decides whether an incident may move from one status to another."""

    name = "base"

    def allows(self, current: Status, target: Status) -> bool:
        raise NotImplementedError

    def allowed_targets(self, current: Status) -> list[Status]:
        return [status for status in Status if self.allows(current, status)]


class UnrestrictedTransitions(TransitionPolicy):
    """Any status may move to any other status."""

    name = "unrestricted"

    def allows(self, current: Status, target: Status) -> bool:
        return True


class LinearTransitions(TransitionPolicy):
    """new -> triaged -> in_progress -> resolved -> closed, no skipping or reopening."""

    name = "linear"

    def allows(self, current: Status, target: Status) -> bool:
        if current == target:
            return True
        return target in LINEAR_TRANSITIONS.get(current, [])


_POLICIES = {
    UnrestrictedTransitions.name: UnrestrictedTransitions,
    LinearTransitions.name: LinearTransitions,
}


def transition_policy_for(name: str) -> TransitionPolicy:
    """Build the policy registered under ``name``."""
    try:
        return _POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown status transition policy: {name}") from None
