"""Incident Desk — incident tracking with role-scoped workflow and audit.

FastAPI entry point with lifespan management and CORS.
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.router import api_router
from .auth.identity import IdentityReader
from .config import IncidentDeskConfig, get_config
from .database import Database
from .engine.incident_manager import IncidentManager
from .middleware.error_handler import register_error_handlers
from .middleware.request_id import RequestIDMiddleware
from .utils.logging import get_logger, setup_logging
from .utils.rate_limiter import RateLimiter

logger = get_logger("incident_desk.main")


async def bootstrap(app: FastAPI, database: Database) -> None:
    """Create tables and attach the core components to ``app.state``."""
    config: IncidentDeskConfig = app.state.config
    await database.create_tables()

    manager = IncidentManager.build(database.session_factory, config)
    identity = IdentityReader(
        database.session_factory,
        secret_key=config.secret_key,
        algorithm=config.jwt_algorithm,
        expiry_minutes=config.jwt_expiry_minutes,
        recorder=manager.recorder,
    )

    app.state.database = database
    app.state.incident_manager = manager
    app.state.identity = identity
    app.state.login_limiter = RateLimiter(
        max_attempts=config.login_max_attempts,
        window_seconds=config.login_window_seconds,
    )

    if config.admin_username and config.admin_password:
        await identity.ensure_admin(config.admin_username, config.admin_password)

    logger.info(
        "incident_desk_ready",
        transitions=manager.workflow.transition_policy.name,
        audit_log_limit=config.audit_log_limit,
    )


def create_app(config: Optional[IncidentDeskConfig] = None, database: Optional[Database] = None) -> FastAPI:
    """Build the application. ``database`` overrides the configured one (tests)."""
    config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: startup and shutdown."""
        db = database or Database.from_config(config)
        await bootstrap(app, db)
        logger.info("incident_desk_started", host=config.host, port=config.port)
        yield
        await db.close()
        logger.info("incident_desk_stopped")

    app = FastAPI(
        title=config.app_name,
        description="Incident tracking with role-scoped workflow and audit",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in config.cors_origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app)
    app.include_router(api_router)
    return app


config = get_config()
setup_logging(
    debug=config.debug,
    log_dir=config.log_dir,
    log_max_bytes=config.log_max_bytes,
    log_backup_count=config.log_backup_count,
)
app = create_app(config)


def main():
    """Run the Incident Desk server."""
    uvicorn.run(
        "incident_desk.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
