from fastapi import APIRouter, Depends

from upnext.api.deps import get_coordinator, require_role, require_session
from upnext.core.errors import ValidationError
from upnext.models.user import AuthSession, Role
from upnext.schemas.requests import LeadAssignRequest
from upnext.services.coordinator import SystemCoordinator

router = APIRouter()


@router.get("/assign")
async def list_lead_assignments(
    coordinator: SystemCoordinator = Depends(get_coordinator),
    _: AuthSession = Depends(require_session),
) -> dict:
    leads = await coordinator.leads.list()
    return {"leads": [lead.to_json() for lead in leads]}


@router.post("/assign")
async def assign_lead(
    body: LeadAssignRequest,
    coordinator: SystemCoordinator = Depends(get_coordinator),
    session: AuthSession = Depends(require_role(Role.BDC)),
) -> dict:
    if not (body.lead_name and body.employee_id and body.employee_name and body.source):
        raise ValidationError("Missing required fields")

    assignment = await coordinator.assign_lead(
        lead_name=body.lead_name,
        employee_id=body.employee_id,
        employee_name=body.employee_name,
        source=body.source,
        actor=session.username,
    )
    return {
        "success": True,
        "assignment": assignment.to_json(),
        "message": f'Lead "{assignment.lead_name}" successfully assigned to {assignment.employee_name}',
    }
