"""Authentication routes — login, self-registration and the current profile."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from ...auth.identity import IdentityReader
from ...dependencies import get_client_ip, get_current_actor, get_identity, get_login_limiter
from ...engine.incident_manager import IncidentManager
from ...models.profile import Profile
from ...utils.rate_limiter import RateLimiter
from ..rejections import unwrap

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    password: str
    team: Optional[str] = Field(default=None, max_length=100)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    profile: dict


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    identity: IdentityReader = Depends(get_identity),
    limiter: RateLimiter = Depends(get_login_limiter),
):
    """Exchange a username and password for a bearer token."""
    client_ip = get_client_ip(request) or "unknown"
    if limiter.is_rate_limited(client_ip):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please try again later.",
        )

    profile = await identity.authenticate(body.username, body.password)
    if profile is None:
        limiter.record_attempt(client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )
    limiter.reset(client_ip)

    return {
        "access_token": identity.issue_token(profile),
        "token_type": "bearer",
        "profile": IncidentManager.profile_to_dict(profile),
    }


@router.post("/register", response_model=TokenResponse, status_code=201)
async def register(
    body: RegisterRequest,
    request: Request,
    identity: IdentityReader = Depends(get_identity),
):
    """Create a reporter account and sign it in."""
    profile = unwrap(await identity.register(
        body.username, body.password, team=body.team, ip_address=get_client_ip(request),
    ))
    return {
        "access_token": identity.issue_token(profile),
        "token_type": "bearer",
        "profile": IncidentManager.profile_to_dict(profile),
    }


@router.get("/me")
async def me(actor: Profile = Depends(get_current_actor)):
    return IncidentManager.profile_to_dict(actor)
