from fastapi import APIRouter, Depends

from upnext.api.deps import get_coordinator, get_notification_settings, require_role
from upnext.models.user import AuthSession, Role
from upnext.schemas.requests import NotificationSendRequest, NotificationSettingsUpdate
from upnext.services.coordinator import SystemCoordinator
from upnext.services.notifications import NotificationDispatcher, NotificationSettingsService

router = APIRouter()


@router.get("/settings")
async def read_notification_settings(
    service: NotificationSettingsService = Depends(get_notification_settings),
    _: AuthSession = Depends(require_role(Role.BDC)),
) -> dict:
    config = await service.get()
    return config.masked()


@router.post("/settings")
async def save_notification_settings(
    body: NotificationSettingsUpdate,
    service: NotificationSettingsService = Depends(get_notification_settings),
    _: AuthSession = Depends(require_role(Role.BDC)),
) -> dict:
    """Merge the given fields. An omitted or masked smtpPassword keeps the stored one."""
    config = await service.save(body.model_dump(exclude_unset=True, by_alias=True))
    return {"success": True, "settings": config.masked()}


@router.post("/test")
async def send_test_notification(
    coordinator: SystemCoordinator = Depends(get_coordinator),
    _: AuthSession = Depends(require_role(Role.BDC)),
) -> dict:
    config = await coordinator.notifications.send_test()
    return {
        "success": True,
        "message": "Test email sent",
        "config": {
            "host": config.smtp_host,
            "port": config.smtp_port,
            "recipient": config.admin_email,
        },
    }


@router.post("/send")
async def send_notification(
    body: NotificationSendRequest,
    coordinator: SystemCoordinator = Depends(get_coordinator),
    _: AuthSession = Depends(require_role(Role.BDC)),
) -> dict:
    outcome = await coordinator.notifications.dispatch(
        body.action, body.details, body.user, timestamp=body.timestamp,
    )
    messages = {
        NotificationDispatcher.SENT: "Notification sent",
        NotificationDispatcher.DISABLED: "Email notifications disabled",
        NotificationDispatcher.NOT_CONFIGURED_FOR_ACTION: "Notification not configured for this action",
    }
    return {"success": outcome == NotificationDispatcher.SENT, "outcome": outcome, "message": messages[outcome]}
