"""Tests for the IncidentStore — scoped reads, creation rules and guarded writes."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from incident_desk.auth.rbac import can_view
from incident_desk.engine.incident_store import IncidentDraft, IncidentFilters, IncidentStore
from incident_desk.errors import Rejected, RejectionReason, StoreUnavailable
from incident_desk.models.attachment import Attachment
from incident_desk.models.comment import Comment
from incident_desk.models.incident import Incident, Severity, Status
from incident_desk.models.profile import Role


async def _collect(store, actor, filters=None):
    return [i async for i in store.list(actor, filters)]


def _draft(**overrides):
    values = dict(title="Phishing mail", description="Clicked a link", category="Security")
    values.update(overrides)
    return IncidentDraft(**values)


class TestCreate:
    @pytest.mark.asyncio
    async def test_forces_reporter_team_and_defaults(self, store, people):
        incident = await store.create(people.reporter, _draft(title="  Phishing mail  "))

        assert incident.reporter_id == people.reporter.id
        assert incident.team == "blue"
        assert incident.status == Status.NEW
        assert incident.severity == Severity.MEDIUM
        assert incident.title == "Phishing mail"
        assert incident.assigned_to is None

    @pytest.mark.asyncio
    async def test_keeps_supplied_severity(self, store, people):
        incident = await store.create(people.reporter, _draft(severity="high"))
        assert incident.severity == Severity.HIGH

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["title", "description", "category"])
    async def test_rejects_blank_required_field(self, store, people, field):
        result = await store.create(people.reporter, _draft(**{field: "   "}))
        assert isinstance(result, Rejected)
        assert result.reason == RejectionReason.INVALID_VALUE
        assert field in result.detail

    @pytest.mark.asyncio
    async def test_rejects_unknown_severity(self, store, people):
        result = await store.create(people.reporter, _draft(severity="catastrophic"))
        assert result.reason == RejectionReason.INVALID_VALUE

    @pytest.mark.asyncio
    async def test_responder_cannot_create(self, store, people):
        result = await store.create(people.responder, _draft())
        assert result == Rejected.forbidden("Capability required: create")


class TestScopedReads:
    @pytest.mark.asyncio
    async def test_visibility_matches_policy_for_every_actor(self, store, people, session_factory):
        own = await store.create(people.reporter, _draft(title="Own"))
        other = await store.create(people.other_reporter, _draft(title="Other"))
        async with session_factory() as session:
            row = await session.get(Incident, other.id)
            row.assigned_to = people.responder.id
            await session.commit()

        async with session_factory() as session:
            everything = list((await session.execute(select(Incident))).scalars())

        for actor in vars(people).values():
            listed = {i.id for i in await _collect(store, actor)}
            expected = {i.id for i in everything if can_view(actor, i)}
            assert listed == expected, actor.username

        assert {i.id for i in await _collect(store, people.reporter)} == {own.id}
        assert {i.id for i in await _collect(store, people.responder)} == {other.id}
        assert await _collect(store, people.other_responder) == []

    @pytest.mark.asyncio
    async def test_newest_first(self, store, people):
        first = await store.create(people.reporter, _draft(title="First"))
        second = await store.create(people.reporter, _draft(title="Second"))
        listed = await _collect(store, people.manager)
        assert [i.id for i in listed] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_filters_narrow_unscoped_set(self, store, people):
        await store.create(people.reporter, _draft(severity="low"))
        critical = await store.create(people.other_reporter, _draft(severity="critical"))

        listed = await _collect(store, people.admin, IncidentFilters(severity=Severity.CRITICAL))
        assert [i.id for i in listed] == [critical.id]
        assert await _collect(store, people.admin, IncidentFilters(status=Status.CLOSED)) == []

    @pytest.mark.asyncio
    async def test_list_respects_limit(self, session_factory, people):
        limited = IncidentStore(session_factory, list_limit=2)
        for n in range(3):
            await limited.create(people.reporter, _draft(title=f"n{n}"))
        assert len(await _collect(limited, people.admin)) == 2

    @pytest.mark.asyncio
    async def test_get_hides_out_of_scope(self, store, people):
        incident = await store.create(people.reporter, _draft())
        assert (await store.get(people.reporter, incident.id)).id == incident.id
        assert await store.get(people.other_reporter, incident.id) is None
        assert await store.get(people.responder, incident.id) is None
        assert await store.get(people.manager, "missing") is None

    @pytest.mark.asyncio
    async def test_stats_counts_visible_only(self, store, people):
        await store.create(people.reporter, _draft(severity="critical"))
        await store.create(people.other_reporter, _draft())

        mine = await store.stats(people.reporter)
        assert mine["counts"] == {"total": 1, "new": 1, "in_progress": 0, "resolved": 0, "critical": 1}
        everyone = await store.stats(people.admin)
        assert everyone["counts"]["total"] == 2
        assert len(everyone["recent"]) == 2


class TestGuardedUpdate:
    @pytest.mark.asyncio
    async def test_applies_when_expected_values_hold(self, store, people):
        incident = await store.create(people.reporter, _draft())
        updated = await store.update(
            incident.id,
            {"status": Status.TRIAGED, "severity": Severity.HIGH},
            {"status": Status.NEW, "severity": Severity.MEDIUM},
            incident.updated_at,
        )
        assert updated.status == Status.TRIAGED
        assert updated.severity == Severity.HIGH

    @pytest.mark.asyncio
    async def test_no_match_writes_nothing(self, store, people):
        incident = await store.create(people.reporter, _draft())
        result = await store.update(
            incident.id,
            {"status": Status.CLOSED, "severity": Severity.LOW},
            {"status": Status.NEW, "severity": Severity.CRITICAL},
            incident.updated_at,
        )
        assert result is None
        current = await store.fetch(incident.id)
        assert current.status == Status.NEW
        assert current.severity == Severity.MEDIUM

    @pytest.mark.asyncio
    async def test_null_guard_matches_unassigned(self, store, people):
        incident = await store.create(people.reporter, _draft())
        updated = await store.update(
            incident.id, {"assigned_to": people.responder.id}, {"assigned_to": None}, incident.updated_at
        )
        assert updated.assigned_to == people.responder.id


class TestDelete:
    @pytest.mark.asyncio
    async def test_cascades_comments_and_attachments(self, store, people, session_factory):
        incident = await store.create(people.reporter, _draft())
        await store.add_comment(incident.id, people.reporter.id, "hello")
        await store.add_attachment(Attachment(
            incident_id=incident.id, uploader_id=people.reporter.id,
            filename="a.txt", storage_path="blobs/a.txt", file_size=3, mime_type="text/plain",
        ))

        removed = await store.delete(incident.id)
        assert removed.id == incident.id
        async with session_factory() as session:
            assert (await session.execute(select(Comment))).first() is None
            assert (await session.execute(select(Attachment))).first() is None
        assert await store.delete(incident.id) is None

    @pytest.mark.asyncio
    async def test_comment_on_missing_incident_returns_none(self, store, people):
        assert await store.add_comment("missing", people.reporter.id, "hi") is None


class TestProfiles:
    @pytest.mark.asyncio
    async def test_list_profiles_by_role(self, store, people):
        assignable = await store.list_profiles(
            roles=[Role.RESPONDER, Role.MANAGER, Role.ADMIN], order_by_username=True
        )
        assert [p.username for p in assignable] == ["ada", "mona", "xavier", "yara"]

    @pytest.mark.asyncio
    async def test_is_referenced(self, store, people):
        await store.create(people.reporter, _draft())
        assert await store.is_referenced(people.reporter.id)
        assert not await store.is_referenced(people.other_reporter.id)

    @pytest.mark.asyncio
    async def test_username_taken(self, store, people):
        assert await store.username_taken("rita")
        assert not await store.username_taken("rita", exclude_id=people.reporter.id)


class TestStoreUnavailable:
    @pytest.mark.asyncio
    async def test_get_wraps_database_errors(self, people):
        broken = IncidentStore(MagicMock(side_effect=OperationalError("SELECT", {}, Exception("down"))))
        with pytest.raises(StoreUnavailable):
            await broken.get(people.admin, "any")

    @pytest.mark.asyncio
    async def test_list_wraps_database_errors(self, people):
        broken = IncidentStore(MagicMock(side_effect=OperationalError("SELECT", {}, Exception("down"))))
        with pytest.raises(StoreUnavailable):
            await _collect(broken, people.admin)
