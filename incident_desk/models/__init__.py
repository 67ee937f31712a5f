"""SQLAlchemy models package."""

from .base import Base
from .profile import Profile, Role
from .incident import Incident, Severity, Status
from .comment import Comment
from .attachment import Attachment
from .audit_log import AuditAction, AuditLog, AuditLogImmutableError

__all__ = [
    "Base",
    "Profile",
    "Role",
    "Incident",
    "Severity",
    "Status",
    "Comment",
    "Attachment",
    "AuditAction",
    "AuditLog",
    "AuditLogImmutableError",
]
