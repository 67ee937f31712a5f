"""Incident Store Adapter — persistence for incidents and their satellites.

Reads are scoped server-side: ``list``/``get``/``stats`` add the actor's
visibility predicate to the SQL itself, so rows an actor may not see are
never loaded. Writes trust that the Workflow Engine has already approved
them; the only check performed here is the compare-and-set that guards
against concurrent writers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Optional, assert_never

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..auth.rbac import Capability, capabilities
from ..errors import Rejected, StoreUnavailable
from ..models.attachment import Attachment
from ..models.base import utcnow
from ..models.comment import Comment
from ..models.incident import Incident, Severity, Status
from ..models.profile import Profile, Role
from ..utils.logging import get_logger

logger = get_logger("engine.incident_store")

INCIDENT_FIELDS = (
    "id", "reporter_id", "title", "description", "severity", "status",
    "category", "assigned_to", "team", "created_at", "updated_at",
)
PROFILE_FIELDS = ("id", "username", "role", "team", "created_at", "last_login")

RECENT_LIMIT = 5


@dataclass(frozen=True)
class IncidentFilters:
    """Caller-supplied narrowing applied on top of visibility."""
    status: Optional[Status] = None
    severity: Optional[Severity] = None


@dataclass(frozen=True)
class IncidentDraft:
    title: str
    description: str
    category: str
    severity: Optional[str] = None


def _visible_to(actor: Profile, query):
    """Add the actor's visibility predicate to an incident query."""
    role = actor.role if isinstance(actor.role, Role) else Role(actor.role)
    if role is Role.ADMIN or role is Role.MANAGER:
        return query
    elif role is Role.RESPONDER:
        return query.where(Incident.assigned_to == actor.id)
    elif role is Role.REPORTER:
        return query.where(Incident.reporter_id == actor.id)
    else:
        assert_never(role)


class IncidentStore:
    """CRUD access to incidents, comments, attachments and profiles."""

    def __init__(self, db_session_factory, list_limit: int = 500):
        self._db_session_factory = db_session_factory
        self._list_limit = list_limit

    # --- Incidents: reads ---

    async def list(
        self, actor: Profile, filters: IncidentFilters | None = None
    ) -> AsyncIterator[Incident]:
        """Yield the actor's visible incidents, newest first, in one pass."""
        filters = filters or IncidentFilters()
        query = _visible_to(actor, select(Incident))
        if filters.status is not None:
            query = query.where(Incident.status == filters.status)
        if filters.severity is not None:
            query = query.where(Incident.severity == filters.severity)
        query = query.order_by(Incident.created_at.desc(), Incident.id.desc()).limit(self._list_limit)

        try:
            async with self._db_session_factory() as session:
                result = await session.execute(query)
                for incident in result.scalars():
                    yield incident
        except SQLAlchemyError as e:
            raise StoreUnavailable("incident store unavailable") from e

    async def get(self, actor: Profile, incident_id: str) -> Optional[Incident]:
        """The incident if it exists and the actor may view it, else None."""
        query = _visible_to(actor, select(Incident).where(Incident.id == incident_id))
        try:
            async with self._db_session_factory() as session:
                return (await session.execute(query)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreUnavailable("incident store unavailable") from e

    async def fetch(self, incident_id: str) -> Optional[Incident]:
        """Unscoped lookup, for callers that authorize the result themselves."""
        try:
            async with self._db_session_factory() as session:
                return await session.get(Incident, incident_id)
        except SQLAlchemyError as e:
            raise StoreUnavailable("incident store unavailable") from e

    async def stats(self, actor: Profile) -> dict:
        """Counts and most recent incidents over the actor's visible set."""
        counted = {
            "new": Incident.status == Status.NEW,
            "in_progress": Incident.status == Status.IN_PROGRESS,
            "resolved": Incident.status == Status.RESOLVED,
            "critical": Incident.severity == Severity.CRITICAL,
        }
        try:
            async with self._db_session_factory() as session:
                total = (await session.execute(
                    _visible_to(actor, select(func.count(Incident.id)))
                )).scalar() or 0
                counts = {"total": total}
                for name, clause in counted.items():
                    counts[name] = (await session.execute(
                        _visible_to(actor, select(func.count(Incident.id)).where(clause))
                    )).scalar() or 0
                recent = (await session.execute(
                    _visible_to(actor, select(Incident))
                    .order_by(Incident.created_at.desc(), Incident.id.desc())
                    .limit(RECENT_LIMIT)
                )).scalars().all()
        except SQLAlchemyError as e:
            raise StoreUnavailable("incident store unavailable") from e
        return {"counts": counts, "recent": list(recent)}

    # --- Incidents: writes ---

    async def create(self, actor: Profile, draft: IncidentDraft) -> Incident | Rejected:
        """Insert a new incident owned by ``actor``."""
        if Capability.CREATE not in capabilities(actor):
            return Rejected.forbidden("Capability required: create")

        title = (draft.title or "").strip()
        description = (draft.description or "").strip()
        category = (draft.category or "").strip()
        for name, value in (("title", title), ("description", description), ("category", category)):
            if not value:
                return Rejected.invalid_value(f"{name} must not be empty")

        if draft.severity is None:
            severity = Severity.MEDIUM
        else:
            try:
                severity = Severity(draft.severity)
            except ValueError:
                return Rejected.invalid_value(f"unknown severity: {draft.severity}")

        now = utcnow()
        incident = Incident(
            reporter_id=actor.id,
            title=title,
            description=description,
            category=category,
            severity=severity,
            status=Status.NEW,
            team=actor.team,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._db_session_factory() as session:
                session.add(incident)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreUnavailable("incident store unavailable") from e
        return incident

    async def update(
        self,
        incident_id: str,
        changes: dict,
        expected: dict,
        updated_at: datetime,
    ) -> Optional[Incident]:
        """Apply ``changes`` only if every ``expected`` column still holds its value.

        All columns are written by a single UPDATE statement, so either the
        whole patch lands or none of it does. Returns None when nothing
        matched (the row changed underneath us or no longer exists).
        """
        guards = [getattr(Incident, column) == value for column, value in expected.items()]
        stmt = (
            update(Incident)
            .where(Incident.id == incident_id, *guards)
            .values(**changes, updated_at=updated_at)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._db_session_factory() as session:
                result = await session.execute(stmt)
                if result.rowcount != 1:
                    await session.rollback()
                    return None
                await session.commit()
                return await session.get(Incident, incident_id, populate_existing=True)
        except SQLAlchemyError as e:
            raise StoreUnavailable("incident store unavailable") from e

    async def delete(self, incident_id: str) -> Optional[Incident]:
        """Remove an incident with its comments and attachments; returns the removed row."""
        try:
            async with self._db_session_factory() as session:
                incident = await session.get(Incident, incident_id)
                if incident is None:
                    return None
                await session.execute(delete(Comment).where(Comment.incident_id == incident_id))
                await session.execute(delete(Attachment).where(Attachment.incident_id == incident_id))
                await session.delete(incident)
                await session.commit()
                return incident
        except SQLAlchemyError as e:
            raise StoreUnavailable("incident store unavailable") from e

    # --- Comments and attachments ---

    async def add_comment(self, incident_id: str, author_id: str, message: str) -> Optional[Comment]:
        """Append a comment; None if the incident vanished before commit."""
        return await self._append(Comment(incident_id=incident_id, author_id=author_id, message=message))

    async def add_attachment(self, attachment: Attachment) -> Optional[Attachment]:
        return await self._append(attachment)

    async def _append(self, row):
        try:
            async with self._db_session_factory() as session:
                session.add(row)
                await session.commit()
                return row
        except IntegrityError:
            logger.info("append_rejected_missing_parent", incident_id=row.incident_id)
            return None
        except SQLAlchemyError as e:
            raise StoreUnavailable("incident store unavailable") from e

    async def list_comments(self, incident_id: str) -> list[Comment]:
        return await self._list_children(Comment, incident_id)

    async def list_attachments(self, incident_id: str) -> list[Attachment]:
        return await self._list_children(Attachment, incident_id)

    async def _list_children(self, model, incident_id: str):
        query = (
            select(model)
            .where(model.incident_id == incident_id)
            .order_by(model.created_at.asc(), model.id.asc())
        )
        try:
            async with self._db_session_factory() as session:
                return [row for row in (await session.execute(query)).scalars()]
        except SQLAlchemyError as e:
            raise StoreUnavailable("incident store unavailable") from e

    # --- Profiles ---

    async def get_profile(self, profile_id: str) -> Optional[Profile]:
        try:
            async with self._db_session_factory() as session:
                return await session.get(Profile, profile_id)
        except SQLAlchemyError as e:
            raise StoreUnavailable("profile store unavailable") from e

    async def get_profiles(self, profile_ids) -> dict[str, Profile]:
        ids = {pid for pid in profile_ids if pid}
        if not ids:
            return {}
        try:
            async with self._db_session_factory() as session:
                rows = (await session.execute(select(Profile).where(Profile.id.in_(ids)))).scalars()
                return {p.id: p for p in rows}
        except SQLAlchemyError as e:
            raise StoreUnavailable("profile store unavailable") from e

    async def list_profiles(self, roles=None, order_by_username: bool = False) -> list[Profile]:
        query = select(Profile)
        if roles is not None:
            query = query.where(Profile.role.in_(list(roles)))
        if order_by_username:
            query = query.order_by(Profile.username.asc())
        else:
            query = query.order_by(Profile.created_at.desc(), Profile.id.desc())
        try:
            async with self._db_session_factory() as session:
                return [p for p in (await session.execute(query)).scalars()]
        except SQLAlchemyError as e:
            raise StoreUnavailable("profile store unavailable") from e

    async def username_taken(self, username: str, exclude_id: Optional[str] = None) -> bool:
        query = select(Profile.id).where(Profile.username == username)
        if exclude_id is not None:
            query = query.where(Profile.id != exclude_id)
        try:
            async with self._db_session_factory() as session:
                return (await session.execute(query.limit(1))).first() is not None
        except SQLAlchemyError as e:
            raise StoreUnavailable("profile store unavailable") from e

    async def count_assigned(self, profile_id: str) -> int:
        try:
            async with self._db_session_factory() as session:
                return (await session.execute(
                    select(func.count(Incident.id)).where(Incident.assigned_to == profile_id)
                )).scalar() or 0
        except SQLAlchemyError as e:
            raise StoreUnavailable("incident store unavailable") from e

    async def is_referenced(self, profile_id: str) -> bool:
        """Whether any incident, comment or attachment still points at the profile."""
        probes = (
            select(Incident.id).where(
                or_(Incident.reporter_id == profile_id, Incident.assigned_to == profile_id)
            ),
            select(Comment.id).where(Comment.author_id == profile_id),
            select(Attachment.id).where(Attachment.uploader_id == profile_id),
        )
        try:
            async with self._db_session_factory() as session:
                for probe in probes:
                    if (await session.execute(probe.limit(1))).first() is not None:
                        return True
                return False
        except SQLAlchemyError as e:
            raise StoreUnavailable("profile store unavailable") from e

    async def update_profile(self, profile_id: str, changes: dict) -> Optional[Profile]:
        try:
            async with self._db_session_factory() as session:
                profile = await session.get(Profile, profile_id)
                if profile is None:
                    return None
                for column, value in changes.items():
                    setattr(profile, column, value)
                await session.commit()
                return profile
        except IntegrityError:
            # Lost a race on the unique username
            return None
        except SQLAlchemyError as e:
            raise StoreUnavailable("profile store unavailable") from e

    async def delete_profile(self, profile_id: str) -> Optional[Profile]:
        try:
            async with self._db_session_factory() as session:
                profile = await session.get(Profile, profile_id)
                if profile is None:
                    return None
                await session.delete(profile)
                await session.commit()
                return profile
        except IntegrityError:
            return None
        except SQLAlchemyError as e:
            raise StoreUnavailable("profile store unavailable") from e
