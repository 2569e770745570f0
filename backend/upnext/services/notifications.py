"""
Notification settings and dispatch.

The dispatcher decides whether an audited action should produce an email to
the admin address and hands the message to a sender. Senders either log what
would be sent or deliver it over SMTP.
"""

import asyncio
import logging
import smtplib
from datetime import datetime, timezone
from email.message import EmailMessage
from typing import Any, Dict, Optional

from upnext.core.config import settings
from upnext.core.errors import IncompleteNotificationConfigError, NotificationError
from upnext.core.records import NOTIFICATION_SETTINGS_KEY, decode, encode
from upnext.core.store import KeyValueStore
from upnext.models.audit import AuditAction
from upnext.models.notification import NotificationSettings

logger = logging.getLogger("upnext.notifications")

MASKED_PASSWORD = "********"


def should_notify(action: str, config: NotificationSettings) -> bool:
    """Whether `action` is covered by the enabled notification toggles."""
    if action in (AuditAction.LOGIN.value, AuditAction.LOGIN_FAILED.value):
        return config.notify_on_login
    if action == AuditAction.REMOVE.value:
        return config.notify_on_employee_removal
    if action in (
        AuditAction.ADD.value,
        AuditAction.REORDER.value,
        AuditAction.TOGGLE.value,
        AuditAction.LEAD_ASSIGNMENT.value,
    ):
        return config.notify_on_system_changes
    return False


class NotificationSettingsService:
    """Reads and writes the notification settings record."""

    def __init__(self, store: KeyValueStore):
        self._store = store

    async def get(self) -> NotificationSettings:
        data = decode(await self._store.get(NOTIFICATION_SETTINGS_KEY))
        if data is None:
            return NotificationSettings()
        return NotificationSettings.model_validate(data)

    async def save(self, changes: Dict[str, Any]) -> NotificationSettings:
        """
        Merge changes into the stored settings.

        An omitted or masked smtpPassword keeps the stored one.
        """
        saved: Optional[NotificationSettings] = None

        def mutate(raw: Optional[str]) -> str:
            nonlocal saved
            data = decode(raw) or NotificationSettings().to_json()
            incoming = dict(changes)
            if incoming.get("smtpPassword") in (None, MASKED_PASSWORD):
                incoming.pop("smtpPassword", None)
            saved = NotificationSettings.model_validate({**data, **incoming})
            return encode(saved.to_json())

        await self._store.update(NOTIFICATION_SETTINGS_KEY, mutate)
        return saved


class NotificationSender:
    async def send(self, config: NotificationSettings, subject: str, body: str) -> None:
        raise NotImplementedError


class LogNotificationSender(NotificationSender):
    """Writes the message to the log instead of delivering it."""

    async def send(self, config: NotificationSettings, subject: str, body: str) -> None:
        logger.info(f"Notification to {config.admin_email}: {subject} | {body}")


class SmtpNotificationSender(NotificationSender):
    """Delivers over SMTP with STARTTLS. The blocking client runs in a worker thread."""

    def __init__(self, timeout: float = 10.0):
        self._timeout = timeout

    def _deliver(self, config: NotificationSettings, message: EmailMessage) -> None:
        with smtplib.SMTP(config.smtp_host, config.smtp_port, timeout=self._timeout) as client:
            client.starttls()
            client.login(config.smtp_user, config.smtp_password)
            client.send_message(message)

    async def send(self, config: NotificationSettings, subject: str, body: str) -> None:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = config.smtp_user
        message["To"] = config.admin_email
        message.set_content(body)
        try:
            await asyncio.to_thread(self._deliver, config, message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"SMTP delivery failed: {e}") from e


def build_sender() -> NotificationSender:
    if settings.NOTIFICATION_DELIVERY == "smtp":
        return SmtpNotificationSender(timeout=settings.SMTP_TIMEOUT_SECONDS)
    return LogNotificationSender()


class NotificationDispatcher:
    """Applies the notification policy and hands messages to a sender."""

    SENT = "sent"
    DISABLED = "disabled"
    NOT_CONFIGURED_FOR_ACTION = "not_configured_for_action"

    def __init__(self, settings_service: NotificationSettingsService, sender: Optional[NotificationSender] = None):
        self._settings = settings_service
        self._sender = sender or build_sender()

    async def dispatch(
        self,
        action: str,
        details: str,
        user: str,
        timestamp: Optional[datetime] = None,
    ) -> str:
        """
        Notify the admin about an action if the settings ask for it.

        Returns:
            One of SENT, DISABLED or NOT_CONFIGURED_FOR_ACTION

        Raises:
            NotificationError: If the SMTP configuration is incomplete or delivery fails
        """
        config = await self._settings.get()
        if not config.email_enabled:
            return self.DISABLED
        if not should_notify(action, config):
            return self.NOT_CONFIGURED_FOR_ACTION
        if not config.smtp_configured:
            raise IncompleteNotificationConfigError()

        when = (timestamp or datetime.now(timezone.utc)).isoformat()
        subject = f"[UpNext] {action.replace('_', ' ').title()}"
        body = f"{details}\n\nUser: {user}\nTime: {when}"
        await self._sender.send(config, subject, body)
        return self.SENT

    async def send_test(self) -> NotificationSettings:
        """Send a test message regardless of the enabled toggles."""
        config = await self._settings.get()
        if not config.smtp_configured:
            raise IncompleteNotificationConfigError()
        await self._sender.send(
            config,
            "[UpNext] Test notification",
            "Email notifications are configured correctly.",
        )
        return config
