"""Rejections and execution failures raised or returned by the core.

Policy and validation outcomes are returned as ``Rejected`` values and
never thrown past the engine. Persistence failures are exceptions, since
they mean the operation did not execute rather than that it was refused.
"""

from dataclasses import dataclass
from enum import Enum


class RejectionReason(str, Enum):
    INVALID_FIELD = "invalid_field"
    INVALID_VALUE = "invalid_value"
    INVALID_ASSIGNEE = "invalid_assignee"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class Rejected:
    """A typed refusal: the request was understood and declined."""
    reason: RejectionReason
    detail: str = ""

    @classmethod
    def forbidden(cls, detail: str = "Forbidden") -> "Rejected":
        return cls(RejectionReason.FORBIDDEN, detail)

    @classmethod
    def not_found(cls, detail: str = "Not found") -> "Rejected":
        return cls(RejectionReason.NOT_FOUND, detail)

    @classmethod
    def invalid_value(cls, detail: str) -> "Rejected":
        return cls(RejectionReason.INVALID_VALUE, detail)

    @classmethod
    def conflict(cls, detail: str) -> "Rejected":
        return cls(RejectionReason.CONFLICT, detail)


class IncidentDeskError(Exception):
    """Base error for the incident desk."""


class StoreUnavailable(IncidentDeskError):
    """The persistence layer failed; the operation did not commit."""


class Unauthenticated(IncidentDeskError):
    """No valid actor could be resolved from the presented credential."""
