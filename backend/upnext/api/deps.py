import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from upnext.core.audit import AuditLog
from upnext.core.config import settings
from upnext.core.errors import AuthenticationError, AuthorizationError
from upnext.core.security import verify_session
from upnext.core.store import KeyValueStore, get_store
from upnext.models.user import AuthSession, Role
from upnext.services.coordinator import SystemCoordinator
from upnext.services.lead_assignments import LeadAssignmentLog
from upnext.services.notifications import NotificationDispatcher, NotificationSettingsService
from upnext.services.rotation import RotationService
from upnext.services.user_directory import UserDirectory

logger = logging.getLogger("upnext.deps")

Clock = Callable[[], datetime]

# Missing Authorization header is not an error here so we can fall back to the cookie
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login", auto_error=False)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_clock() -> Clock:
    return _utcnow


def build_coordinator(store: KeyValueStore, now: Optional[Clock] = None) -> SystemCoordinator:
    """Wire the services around one store."""
    now = now or _utcnow
    rotation = RotationService(store, now=now)
    return SystemCoordinator(
        rotation=rotation,
        audit=AuditLog(store, now=now),
        leads=LeadAssignmentLog(store, now=now),
        users=UserDirectory(store, rotation=rotation, now=now),
        notifications=NotificationDispatcher(NotificationSettingsService(store)),
        now=now,
    )


async def get_coordinator(
    store: KeyValueStore = Depends(get_store),
    now: Clock = Depends(get_clock),
) -> SystemCoordinator:
    return build_coordinator(store, now)


async def get_rotation(coordinator: SystemCoordinator = Depends(get_coordinator)) -> RotationService:
    return coordinator.rotation


async def get_notification_settings(store: KeyValueStore = Depends(get_store)) -> NotificationSettingsService:
    return NotificationSettingsService(store)


async def get_session(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    now: Clock = Depends(get_clock),
) -> Optional[AuthSession]:
    """
    The caller's session, or None when anonymous.

    The Authorization header wins; the session cookie is the fallback.
    """
    session = verify_session(token, now=now) if token else None
    if session is None:
        cookie_token = request.cookies.get(settings.SESSION_COOKIE_NAME)
        if cookie_token:
            session = verify_session(cookie_token, now=now)
    return session


async def require_session(session: Optional[AuthSession] = Depends(get_session)) -> AuthSession:
    if session is None:
        raise AuthenticationError()
    return session


def require_role(minimum: Role) -> Callable:
    """
    Dependency factory enforcing a minimum role.

    Usage:
        @router.post("/endpoint")
        async def endpoint(session: AuthSession = Depends(require_role(Role.BDC))):
            ...
    """
    async def role_checker(session: AuthSession = Depends(require_session)) -> AuthSession:
        if not session.role.at_least(minimum):
            logger.info(f"{session.username} ({session.role.value}) denied, needs {minimum.value}")
            raise AuthorizationError()
        return session

    return role_checker


async def get_display_session(session: Optional[AuthSession] = Depends(get_session)) -> Optional[AuthSession]:
    """Session for the main display, which may be public."""
    if session is None and not settings.PUBLIC_DISPLAY:
        raise AuthenticationError()
    return session
