"""FastAPI dependency injection providers.

Components are built once at startup and kept on ``app.state``; the
providers here only hand them out.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .auth.identity import IdentityReader
from .auth.rbac import Capability, capabilities
from .config import IncidentDeskConfig
from .engine.incident_manager import IncidentManager
from .errors import Unauthenticated
from .models.profile import Profile
from .utils.rate_limiter import RateLimiter

security_scheme = HTTPBearer(auto_error=False)


def get_app_config(request: Request) -> IncidentDeskConfig:
    return request.app.state.config


def get_incident_manager(request: Request) -> IncidentManager:
    return request.app.state.incident_manager


def get_identity(request: Request) -> IdentityReader:
    return request.app.state.identity


def get_login_limiter(request: Request) -> RateLimiter:
    return request.app.state.login_limiter


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
    identity: IdentityReader = Depends(get_identity),
) -> Profile:
    """Resolve the bearer token to the acting profile."""
    try:
        return await identity.resolve(credentials.credentials if credentials else None)
    except Unauthenticated as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def require_capability(*required: Capability):
    """Dependency factory for capabilities that do not depend on an incident."""
    async def _check(actor: Profile = Depends(get_current_actor)) -> Profile:
        held = capabilities(actor)
        for cap in required:
            if cap not in held:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Capability required: {cap.value}",
                )
        return actor

    return _check
