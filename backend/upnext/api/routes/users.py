from fastapi import APIRouter, Depends, status

from upnext.api.deps import get_coordinator, require_role, require_session
from upnext.core.config import settings
from upnext.core.errors import AuthorizationError, NotFoundError, ValidationError
from upnext.models.user import AuthSession, Role
from upnext.schemas.requests import TemporaryInactiveRequest, UserCreate, UserUpdate
from upnext.services.coordinator import SystemCoordinator

router = APIRouter()


@router.get("")
async def list_users(
    coordinator: SystemCoordinator = Depends(get_coordinator),
    _: AuthSession = Depends(require_role(Role.MANAGER)),
) -> dict:
    users = await coordinator.users.list()
    return {"users": [u.public() for u in users]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    body: UserCreate,
    coordinator: SystemCoordinator = Depends(get_coordinator),
    session: AuthSession = Depends(require_role(Role.MANAGER)),
) -> dict:
    if not (body.username and body.password and body.name and body.role):
        raise ValidationError("Missing required fields")

    user = await coordinator.create_user(
        session,
        username=body.username,
        password=body.password,
        name=body.name,
        role=body.role,
        email=body.email,
        is_active=body.is_active,
    )
    return {"user": user.public()}


@router.get("/{user_id}")
async def read_user(
    user_id: str,
    coordinator: SystemCoordinator = Depends(get_coordinator),
    session: AuthSession = Depends(require_session),
) -> dict:
    if session.role != Role.MANAGER and session.user_id != user_id:
        raise AuthorizationError()
    user = await coordinator.users.get(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return {"user": user.public()}


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    body: UserUpdate,
    coordinator: SystemCoordinator = Depends(get_coordinator),
    session: AuthSession = Depends(require_session),
) -> dict:
    """Managers may change anything; other users only their own password and email."""
    changes = body.model_dump(exclude_unset=True)
    user = await coordinator.update_user(session, user_id, changes)
    return {"user": user.public()}


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    coordinator: SystemCoordinator = Depends(get_coordinator),
    session: AuthSession = Depends(require_role(Role.MANAGER)),
) -> dict:
    await coordinator.delete_user(session, user_id)
    return {"success": True}


@router.post("/{user_id}/temporary-inactive")
async def set_temporary_inactive(
    user_id: str,
    body: TemporaryInactiveRequest,
    coordinator: SystemCoordinator = Depends(get_coordinator),
    session: AuthSession = Depends(require_session),
) -> dict:
    allowed = settings.TEMPORARY_INACTIVE_MINUTES
    if body.minutes not in allowed:
        raise ValidationError(
            f"Invalid minutes value. Must be {', '.join(str(m) for m in allowed)}."
        )

    user = await coordinator.set_temporary_inactive(session, user_id, body.minutes)
    data = user.public()
    return {
        "success": True,
        "user": {key: data[key] for key in ("id", "name", "isActive", "temporaryInactiveUntil")},
    }
