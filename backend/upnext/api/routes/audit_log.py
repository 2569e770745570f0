from fastapi import APIRouter, Depends

from upnext.api.deps import get_coordinator, require_role
from upnext.models.user import AuthSession, Role
from upnext.services.coordinator import SystemCoordinator

router = APIRouter()


@router.get("")
async def read_audit_log(
    coordinator: SystemCoordinator = Depends(get_coordinator),
    _: AuthSession = Depends(require_role(Role.BDC)),
) -> dict:
    """All audit entries, newest first."""
    entries = await coordinator.audit.list()
    return {"entries": [entry.to_json() for entry in entries]}
