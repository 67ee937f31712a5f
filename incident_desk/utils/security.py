"""Password hashing and access tokens for the identity layer."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from jwt.exceptions import PyJWTError


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against a bcrypt hash; profiles without one never match."""
    if not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(
    profile_id: str,
    secret_key: str,
    algorithm: str = "HS256",
    expires_minutes: int = 60,
) -> str:
    """Issue a JWT whose subject is the profile id."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": profile_id,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def decode_access_token(
    token: str,
    secret_key: str,
    algorithm: str = "HS256",
) -> dict | None:
    """Decode and validate a JWT token. Returns None on failure."""
    try:
        return jwt.decode(token, secret_key, algorithms=[algorithm], options={"require": ["sub", "exp"]})
    except PyJWTError:
        return None


def validate_password_strength(password: str, min_length: int = 8) -> None:
    """Raise ValueError unless the password is long enough and mixes letters and digits."""
    errors = []
    if len(password) < min_length:
        errors.append(f"at least {min_length} characters")
    if not any(c.isalpha() for c in password):
        errors.append("a letter")
    if not any(c.isdigit() for c in password):
        errors.append("a digit")

    if errors:
        raise ValueError(f"Password must contain {', '.join(errors)}")
