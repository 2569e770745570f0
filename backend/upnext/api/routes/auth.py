import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from upnext.api.deps import Clock, get_clock, get_coordinator, get_session, require_session
from upnext.core.config import settings
from upnext.core.errors import AuthenticationError
from upnext.core.rate_limiter import limiter
from upnext.core.security import verify_session
from upnext.models.user import AuthSession
from upnext.schemas.requests import LoginRequest
from upnext.services.coordinator import SystemCoordinator

logger = logging.getLogger("upnext.auth")

router = APIRouter()


@router.post("/login")
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    response: Response,
    login_data: LoginRequest,
    coordinator: SystemCoordinator = Depends(get_coordinator),
) -> dict:
    """
    Exchange credentials for a session token.

    The token is returned in the body and set as an httpOnly cookie.
    """
    token, session, user = await coordinator.login(login_data.username, login_data.password)

    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.SESSION_TTL_HOURS * 3600,
        path="/",
    )
    logger.info(f"User {user.username} logged in")
    return {"success": True, "user": user.public(), "token": token}


@router.post("/logout")
async def logout(
    response: Response,
    coordinator: SystemCoordinator = Depends(get_coordinator),
    session: Optional[AuthSession] = Depends(get_session),
) -> dict:
    await coordinator.logout(session)
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return {"success": True}


@router.get("/check")
async def check_session(session: AuthSession = Depends(require_session)) -> dict:
    return {"authenticated": True, "user": session.user_summary()}


@router.get("/session")
async def read_cookie_session(request: Request, now: Clock = Depends(get_clock)) -> dict:
    """Session carried by the cookie only, for server-rendered pages."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        raise AuthenticationError("No token found")
    session = verify_session(token, now=now)
    if session is None:
        raise AuthenticationError("Invalid session")
    return {"user": session.user_summary()}
