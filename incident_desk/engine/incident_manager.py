"""Incident Manager — the request/response surface of the incident core.

Composes the store, workflow engine, collaboration surface, user
administration and audit recorder, and turns their results into plain
dicts. Every method returns either a result or a ``Rejected`` value;
persistence failures propagate as ``StoreUnavailable``.
"""

from typing import Optional

from ..config import IncidentDeskConfig
from ..errors import Rejected
from ..models.incident import Severity, Status
from ..models.profile import Profile
from ..utils.logging import get_logger
from .audit_recorder import AuditRecorder
from .collaboration import CollaborationSurface
from .incident_store import IncidentDraft, IncidentFilters, IncidentStore
from .transitions import transition_policy_for
from .user_admin import UserAdministration
from .workflow import WorkflowEngine

logger = get_logger("engine.incident_manager")


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _value(member) -> Optional[str]:
    return member.value if member is not None else None


class IncidentManager:
    """Manages the full incident lifecycle."""

    def __init__(
        self,
        store: IncidentStore,
        workflow: WorkflowEngine,
        collaboration: CollaborationSurface,
        users: UserAdministration,
        recorder: AuditRecorder,
    ):
        self.store = store
        self.workflow = workflow
        self.collaboration = collaboration
        self.users = users
        self.recorder = recorder

    @classmethod
    def build(cls, db_session_factory, config: IncidentDeskConfig) -> "IncidentManager":
        """Wire every component onto one session factory."""
        store = IncidentStore(db_session_factory, list_limit=config.incident_list_limit)
        recorder = AuditRecorder(db_session_factory, max_entries=config.audit_log_limit)
        return cls(
            store=store,
            workflow=WorkflowEngine(store, recorder, transition_policy_for(config.status_transitions)),
            collaboration=CollaborationSurface(store, recorder),
            users=UserAdministration(store, recorder),
            recorder=recorder,
        )

    # --- Incidents ---

    async def list_incidents(
        self,
        actor: Profile,
        status: Optional[str] = None,
        severity: Optional[str] = None,
    ) -> list[dict] | Rejected:
        """Incidents visible to the actor, newest first."""
        try:
            filters = IncidentFilters(
                status=Status(status) if status else None,
                severity=Severity(severity) if severity else None,
            )
        except ValueError as e:
            return Rejected.invalid_value(str(e))
        return [self._to_dict(i) async for i in self.store.list(actor, filters)]

    async def get_incident(self, actor: Profile, incident_id: str) -> dict | Rejected:
        incident = await self.store.get(actor, incident_id)
        if incident is None:
            return Rejected.not_found("Incident not found")
        return self._to_dict(incident)

    async def get_incident_detail(self, actor: Profile, incident_id: str) -> dict | Rejected:
        """Incident with its people, comments and attachments."""
        incident = await self.store.get(actor, incident_id)
        if incident is None:
            return Rejected.not_found("Incident not found")

        comments = await self.store.list_comments(incident_id)
        attachments = await self.store.list_attachments(incident_id)
        people = await self.store.get_profiles(
            [incident.reporter_id, incident.assigned_to]
            + [c.author_id for c in comments]
            + [a.uploader_id for a in attachments]
        )

        result = self._to_dict(incident)
        result["reporter"] = self._summary(people.get(incident.reporter_id))
        result["assignee"] = self._summary(people.get(incident.assigned_to))
        result["comments"] = [self._comment_to_dict(c, people.get(c.author_id)) for c in comments]
        result["attachments"] = [self._attachment_to_dict(a, people.get(a.uploader_id)) for a in attachments]
        return result

    async def create_incident(
        self,
        actor: Profile,
        title: str,
        description: str,
        category: str,
        severity: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> dict | Rejected:
        result = await self.workflow.create_incident(
            actor, IncidentDraft(title, description, category, severity), ip_address
        )
        return result if isinstance(result, Rejected) else self._to_dict(result)

    async def update_incident(
        self,
        actor: Profile,
        incident_id: str,
        patch: dict,
        ip_address: Optional[str] = None,
    ) -> dict | Rejected:
        incident = await self.store.fetch(incident_id)
        if incident is None:
            return Rejected.not_found("Incident not found")
        result = await self.workflow.apply_update(actor, incident, patch, ip_address)
        return result if isinstance(result, Rejected) else self._to_dict(result)

    async def delete_incident(
        self, actor: Profile, incident_id: str, ip_address: Optional[str] = None
    ) -> Optional[Rejected]:
        result = await self.workflow.delete_incident(actor, incident_id, ip_address)
        return result if isinstance(result, Rejected) else None

    async def get_stats(self, actor: Profile) -> dict:
        """Dashboard counts over the actor's visible incidents."""
        stats = await self.store.stats(actor)
        return {**stats["counts"], "recent": [self._to_dict(i) for i in stats["recent"]]}

    # --- Comments and attachments ---

    async def add_comment(
        self, actor: Profile, incident_id: str, message: str, ip_address: Optional[str] = None
    ) -> dict | Rejected:
        result = await self.collaboration.add_comment(actor, incident_id, message, ip_address)
        return result if isinstance(result, Rejected) else self._comment_to_dict(result, actor)

    async def list_comments(self, actor: Profile, incident_id: str) -> list[dict] | Rejected:
        result = await self.collaboration.list_comments(actor, incident_id)
        if isinstance(result, Rejected):
            return result
        people = await self.store.get_profiles(c.author_id for c in result)
        return [self._comment_to_dict(c, people.get(c.author_id)) for c in result]

    async def add_attachment(
        self,
        actor: Profile,
        incident_id: str,
        storage_path: str,
        filename: str,
        file_size: int,
        mime_type: Optional[str] = None,
    ) -> dict | Rejected:
        result = await self.collaboration.add_attachment(
            actor, incident_id, storage_path, filename, file_size, mime_type
        )
        return result if isinstance(result, Rejected) else self._attachment_to_dict(result, actor)

    async def list_attachments(self, actor: Profile, incident_id: str) -> list[dict] | Rejected:
        result = await self.collaboration.list_attachments(actor, incident_id)
        if isinstance(result, Rejected):
            return result
        people = await self.store.get_profiles(a.uploader_id for a in result)
        return [self._attachment_to_dict(a, people.get(a.uploader_id)) for a in result]

    # --- Audit ---

    async def list_audit(self, actor: Profile, entity_type: Optional[str] = None) -> list[dict] | Rejected:
        result = await self.recorder.list_entries(actor, entity_type)
        if isinstance(result, Rejected):
            return result
        people = await self.store.get_profiles(e.user_id for e in result)
        return [self._audit_to_dict(e, people.get(e.user_id)) for e in result]

    # --- Users ---

    async def list_users(self, actor: Profile) -> list[dict] | Rejected:
        result = await self.users.list_users(actor)
        return result if isinstance(result, Rejected) else [self.profile_to_dict(p) for p in result]

    async def list_assignable(self, actor: Profile) -> list[dict] | Rejected:
        result = await self.users.list_assignable(actor)
        return result if isinstance(result, Rejected) else [self._summary(p) for p in result]

    async def update_user(
        self, actor: Profile, profile_id: str, patch: dict, ip_address: Optional[str] = None
    ) -> dict | Rejected:
        result = await self.users.update_user(actor, profile_id, patch, ip_address)
        return result if isinstance(result, Rejected) else self.profile_to_dict(result)

    async def delete_user(
        self, actor: Profile, profile_id: str, ip_address: Optional[str] = None
    ) -> Optional[Rejected]:
        result = await self.users.delete_user(actor, profile_id, ip_address)
        return result if isinstance(result, Rejected) else None

    # --- Serialization ---

    @staticmethod
    def _to_dict(incident) -> dict:
        return {
            "id": incident.id,
            "reporter_id": incident.reporter_id,
            "title": incident.title,
            "description": incident.description,
            "severity": _value(incident.severity),
            "status": _value(incident.status),
            "category": incident.category,
            "assigned_to": incident.assigned_to,
            "team": incident.team,
            "created_at": _iso(incident.created_at),
            "updated_at": _iso(incident.updated_at),
        }

    @staticmethod
    def profile_to_dict(profile) -> dict:
        return {
            "id": profile.id,
            "username": profile.username,
            "role": _value(profile.role),
            "team": profile.team,
            "created_at": _iso(profile.created_at),
            "last_login": _iso(profile.last_login),
        }

    @staticmethod
    def _summary(profile) -> Optional[dict]:
        if profile is None:
            return None
        return {"id": profile.id, "username": profile.username, "role": _value(profile.role)}

    @staticmethod
    def _comment_to_dict(comment, author=None) -> dict:
        return {
            "id": comment.id,
            "incident_id": comment.incident_id,
            "author_id": comment.author_id,
            "author": author.username if author else None,
            "message": comment.message,
            "created_at": _iso(comment.created_at),
        }

    @staticmethod
    def _attachment_to_dict(attachment, uploader=None) -> dict:
        return {
            "id": attachment.id,
            "incident_id": attachment.incident_id,
            "uploader_id": attachment.uploader_id,
            "uploader": uploader.username if uploader else None,
            "filename": attachment.filename,
            "storage_path": attachment.storage_path,
            "file_size": attachment.file_size,
            "mime_type": attachment.mime_type,
            "created_at": _iso(attachment.created_at),
        }

    def _audit_to_dict(self, entry, user=None) -> dict:
        return {
            "id": entry.id,
            "user_id": entry.user_id,
            "username": user.username if user else None,
            "action": _value(entry.action),
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
            "changes": self.recorder.decode_changes(entry),
            "ip_address": entry.ip_address,
            "created_at": _iso(entry.created_at),
        }
