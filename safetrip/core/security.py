"""Password hashing and bearer tokens.

Tokens are HS256 JWTs whose ``sub`` is the account email; ``uid`` carries the
numeric user id for clients.
"""

from datetime import timedelta
from typing import Any

import bcrypt
from jose import JWTError, jwt

from safetrip.core.config import settings
from safetrip.core.timeutil import utcnow


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("ascii")


def verify_password(plain: str, hashed: str) -> bool:
    """False for a wrong password and for a stored hash bcrypt cannot parse."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("ascii"))
    except ValueError:
        return False


def create_access_token(email: str, user_id: int | None = None) -> str:
    issued = utcnow()
    claims: dict[str, Any] = {
        "sub": email,
        "iat": issued,
        "exp": issued + timedelta(minutes=settings.jwt_expire_minutes),
    }
    if user_id is not None:
        claims["uid"] = user_id
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Verified claims, or None when the token is malformed, forged or expired."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def token_subject(token: str) -> str | None:
    """Account email carried by a valid token."""
    claims = decode_access_token(token)
    if not claims:
        return None
    subject = claims.get("sub")
    return subject if isinstance(subject, str) and subject else None
