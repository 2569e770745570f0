import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

import bcrypt
from jose import JWTError, jwt

from upnext.core.config import settings
from upnext.models.user import AuthSession, Role, User

logger = logging.getLogger("upnext.security")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def issue_session(
    user: User,
    now: Optional[datetime] = None,
    ttl: Optional[timedelta] = None,
) -> Tuple[str, AuthSession]:
    """
    Mint a signed session token for a user.

    Args:
        user: The authenticated user
        now: Issue time, defaults to the current UTC time
        ttl: Optional lifetime, defaults to SESSION_TTL_HOURS

    Returns:
        Tuple of (encoded token, the session it carries)
    """
    issued_at = (now or _utcnow()).replace(microsecond=0)
    expires_at = issued_at + (ttl or timedelta(hours=settings.SESSION_TTL_HOURS))

    session = AuthSession(
        user_id=user.id,
        username=user.username,
        role=user.role,
        name=user.name,
        issued_at=issued_at,
        expires_at=expires_at,
    )
    claims = {
        "sub": user.id,
        "username": user.username,
        "role": user.role.value,
        "name": user.name,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    token = jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return token, session


def verify_session(
    token: Optional[str],
    now: Optional[Callable[[], datetime]] = None,
) -> Optional[AuthSession]:
    """
    Decode a session token.

    Any problem (bad signature, expiry, malformed claims) yields None so the
    caller treats the request as anonymous.
    """
    if not token:
        return None

    try:
        # Expiry is checked below against the injectable clock
        claims = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            options={"verify_exp": False},
        )
        expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
        session = AuthSession(
            user_id=str(claims["sub"]),
            username=claims["username"],
            role=Role(claims["role"]),
            name=claims.get("name", claims["username"]),
            issued_at=datetime.fromtimestamp(int(claims["iat"]), tz=timezone.utc),
            expires_at=expires_at,
        )
    except (JWTError, KeyError, TypeError, ValueError) as e:
        logger.debug(f"Rejected session token: {e}")
        return None

    current = now() if now else _utcnow()
    if expires_at <= current:
        return None
    return session


def _prepare_password(password: str) -> bytes:
    """Encode and truncate to the 72-byte bcrypt limit."""
    return password.encode("utf-8")[:72]


def is_password_hash(value: str) -> bool:
    return value.startswith(("$2a$", "$2b$", "$2y$"))


def verify_password(plain_password: str, stored_password: str) -> bool:
    """
    Check a password against the stored value.

    Stored bcrypt hashes are checked with bcrypt; anything else is compared
    verbatim in constant time.
    """
    if is_password_hash(stored_password):
        try:
            return bcrypt.checkpw(
                _prepare_password(plain_password),
                stored_password.encode("utf-8"),
            )
        except ValueError:
            return False
    return secrets.compare_digest(
        plain_password.encode("utf-8"),
        stored_password.encode("utf-8"),
    )


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(_prepare_password(password), salt)
    return hashed.decode("utf-8")


def prepare_password_for_storage(password: str) -> str:
    """Apply the configured storage format to a new password."""
    if settings.PASSWORD_HASHING:
        return get_password_hash(password)
    return password
