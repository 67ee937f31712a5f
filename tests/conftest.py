"""Shared test fixtures — in-memory database, seeded profiles, wired components."""

from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from incident_desk.config import IncidentDeskConfig
from incident_desk.database import Database
from incident_desk.engine.audit_recorder import AuditRecorder
from incident_desk.engine.incident_manager import IncidentManager
from incident_desk.engine.incident_store import IncidentDraft, IncidentStore
from incident_desk.engine.workflow import WorkflowEngine
from incident_desk.errors import Rejected
from incident_desk.models.profile import Profile, Role


async def _make_profile(session_factory, username: str, role: Role, team: str | None = None) -> Profile:
    async with session_factory() as session:
        profile = Profile(username=username, role=role, team=team)
        session.add(profile)
        await session.commit()
    return profile


@pytest_asyncio.fixture
async def database():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    db = Database(engine)
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def session_factory(database):
    return database.session_factory


@pytest_asyncio.fixture
async def people(session_factory):
    """One profile per role, plus a second reporter and a second responder."""
    return SimpleNamespace(
        reporter=await _make_profile(session_factory, "rita", Role.REPORTER, team="blue"),
        other_reporter=await _make_profile(session_factory, "rob", Role.REPORTER),
        responder=await _make_profile(session_factory, "xavier", Role.RESPONDER, team="blue"),
        other_responder=await _make_profile(session_factory, "yara", Role.RESPONDER),
        manager=await _make_profile(session_factory, "mona", Role.MANAGER),
        admin=await _make_profile(session_factory, "ada", Role.ADMIN),
    )


@pytest.fixture
def store(session_factory):
    return IncidentStore(session_factory)


@pytest.fixture
def recorder(session_factory):
    return AuditRecorder(session_factory)


@pytest.fixture
def workflow(store, recorder):
    return WorkflowEngine(store, recorder)


@pytest.fixture
def manager(session_factory):
    return IncidentManager.build(session_factory, IncidentDeskConfig(_env_file=None))


@pytest.fixture
def profile_factory(session_factory):
    async def _create(username: str, role: Role, team: str | None = None) -> Profile:
        return await _make_profile(session_factory, username, role, team)
    return _create


@pytest.fixture
def new_incident(workflow):
    """Create an incident through the workflow engine, so it is audited."""
    async def _create(actor: Profile, severity=None, title="Suspicious login",
                      description="Repeated failures from one IP", category="Security"):
        result = await workflow.create_incident(
            actor, IncidentDraft(title=title, description=description, category=category, severity=severity)
        )
        assert not isinstance(result, Rejected), result
        return result
    return _create
