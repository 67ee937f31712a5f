"""Identity reader — turns credentials and tokens into actor profiles."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..engine.audit_recorder import ENTITY_PROFILE, snapshot
from ..engine.incident_store import PROFILE_FIELDS
from ..errors import Rejected, StoreUnavailable, Unauthenticated
from ..models.audit_log import AuditAction
from ..models.base import utcnow
from ..models.profile import Profile, Role
from ..utils.logging import get_logger
from ..utils.security import (
    create_access_token,
    decode_access_token,
    hash_password,
    validate_password_strength,
    verify_password,
)

logger = get_logger("auth.identity")


class IdentityReader:
    """Authenticates users and resolves bearer tokens to profiles."""

    def __init__(
        self,
        db_session_factory,
        secret_key: str,
        algorithm: str = "HS256",
        expiry_minutes: int = 60,
        recorder=None,
    ):
        self._db_session_factory = db_session_factory
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expiry_minutes = expiry_minutes
        self._recorder = recorder

    def issue_token(self, profile: Profile) -> str:
        return create_access_token(
            profile.id, self._secret_key, self._algorithm, self._expiry_minutes
        )

    async def resolve(self, token: Optional[str]) -> Profile:
        """The profile a token was issued to. Raises Unauthenticated."""
        if not token:
            raise Unauthenticated("Not authenticated")
        payload = decode_access_token(token, self._secret_key, self._algorithm)
        if payload is None:
            raise Unauthenticated("Invalid or expired token")

        try:
            async with self._db_session_factory() as session:
                profile = await session.get(Profile, payload["sub"])
        except SQLAlchemyError as e:
            raise StoreUnavailable("profile store unavailable") from e
        if profile is None:
            raise Unauthenticated("User no longer exists")
        return profile

    async def authenticate(self, username: str, password: str) -> Optional[Profile]:
        """Check a username/password pair; bumps ``last_login`` on success."""
        try:
            async with self._db_session_factory() as session:
                result = await session.execute(select(Profile).where(Profile.username == username))
                profile = result.scalar_one_or_none()
                if profile is None or not verify_password(password, profile.password_hash):
                    logger.warning("login_failed", username=username)
                    return None
                profile.last_login = utcnow()
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreUnavailable("profile store unavailable") from e

        logger.info("login_success", id=profile.id, username=profile.username)
        return profile

    async def register(
        self,
        username: str,
        password: str,
        team: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Profile | Rejected:
        """Create a reporter profile. Self-registration never grants a higher role."""
        username = (username or "").strip()
        if not username:
            return Rejected.invalid_value("username must not be empty")
        try:
            validate_password_strength(password)
        except ValueError as e:
            return Rejected.invalid_value(str(e))

        profile = Profile(
            username=username,
            password_hash=hash_password(password),
            role=Role.REPORTER,
            team=(team or "").strip() or None,
        )
        try:
            async with self._db_session_factory() as session:
                session.add(profile)
                await session.commit()
        except IntegrityError:
            return Rejected.conflict(f"username already taken: {username}")
        except SQLAlchemyError as e:
            raise StoreUnavailable("profile store unavailable") from e

        logger.info("user_registered", id=profile.id, username=username)
        if self._recorder is not None:
            await self._recorder.record(
                None, AuditAction.INSERT, ENTITY_PROFILE, profile.id,
                snapshot(profile, PROFILE_FIELDS), ip_address,
            )
        return profile

    async def ensure_admin(self, username: str, password: str) -> Optional[Profile]:
        """Create an admin profile unless ``username`` is already taken."""
        try:
            async with self._db_session_factory() as session:
                result = await session.execute(select(Profile).where(Profile.username == username))
                if result.scalar_one_or_none() is not None:
                    return None
                profile = Profile(
                    username=username,
                    password_hash=hash_password(password),
                    role=Role.ADMIN,
                )
                session.add(profile)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreUnavailable("profile store unavailable") from e

        logger.info("admin_bootstrapped", id=profile.id, username=username)
        if self._recorder is not None:
            await self._recorder.record(
                None, AuditAction.INSERT, ENTITY_PROFILE, profile.id,
                snapshot(profile, PROFILE_FIELDS),
            )
        return profile
