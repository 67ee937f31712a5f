"""Database engine, session factory, and table creation.

A ``Database`` is built once at application startup and handed to every
component that needs storage; nothing in the core reaches for a
process-wide session.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import IncidentDeskConfig
from .models.base import Base
from .utils.logging import get_logger

logger = get_logger("incident_desk.database")


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class Database:
    """Owns one async engine and the session factory bound to it."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            engine, expire_on_commit=False
        )
        if engine.dialect.name == "sqlite":
            _enable_sqlite_foreign_keys(engine)

    @classmethod
    def from_config(cls, config: IncidentDeskConfig) -> "Database":
        engine = create_async_engine(
            config.database_url,
            echo=config.debug,
            pool_pre_ping=True,
        )
        return cls(engine)

    async def create_tables(self) -> None:
        """Create all tables that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_tables_ready", dialect=self.engine.dialect.name)

    async def close(self) -> None:
        await self.engine.dispose()
