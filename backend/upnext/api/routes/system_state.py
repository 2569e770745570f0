from typing import Optional

from fastapi import APIRouter, Depends, Request

from upnext.api.deps import get_coordinator, get_display_session, get_rotation, require_role
from upnext.api.streaming import stream_state
from upnext.core.config import settings
from upnext.models.user import AuthSession, Role
from upnext.schemas.requests import SystemStateAction
from upnext.services.coordinator import SystemCoordinator
from upnext.services.rotation import RotationService

router = APIRouter()


@router.get("")
async def read_system_state(
    rotation: RotationService = Depends(get_rotation),
    _: Optional[AuthSession] = Depends(get_display_session),
) -> dict:
    """Current rotation, with expired temporary inactivity already cleared."""
    state = await rotation.get_state()
    return state.to_json()


@router.post("")
async def update_system_state(
    body: SystemStateAction,
    coordinator: SystemCoordinator = Depends(get_coordinator),
    session: AuthSession = Depends(require_role(Role.BDC)),
) -> dict:
    """
    Apply one rotation action: add, remove, cycle, reorder or toggle.
    """
    state = await coordinator.apply_action(
        body.action,
        actor=session.username,
        source=body.source,
        name=body.name,
        employee_id=body.id,
        employees=body.employees,
        details=body.details,
    )
    return state.to_json()


@router.get("/stream")
async def stream_system_state(
    request: Request,
    rotation: RotationService = Depends(get_rotation),
    _: Optional[AuthSession] = Depends(get_display_session),
):
    return stream_state(
        rotation,
        request,
        poll_seconds=settings.STREAM_POLL_SECONDS,
        heartbeat_seconds=settings.STREAM_HEARTBEAT_SECONDS,
    )
