"""
Audit log for UpNext.

Append-only, newest-first and capped. Every state-changing action writes one
entry; callers on the request path use `record`, which never raises.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from upnext.core.config import settings
from upnext.core.records import AUDIT_LOG_KEY, decode, new_id, prepend_capped
from upnext.core.store import KeyValueStore
from upnext.models.audit import AuditAction, AuditLogEntry

logger = logging.getLogger("upnext.audit")


class AuditLog:
    """Service for creating and reading audit log entries."""

    def __init__(
        self,
        store: KeyValueStore,
        limit: Optional[int] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._limit = limit or settings.AUDIT_LOG_LIMIT
        self._now = now or (lambda: datetime.now(timezone.utc))

    async def append(
        self,
        action: AuditAction,
        user: str,
        source: str,
        details: str,
        before_state: Optional[Dict[str, Any]] = None,
        after_state: Optional[Dict[str, Any]] = None,
    ) -> AuditLogEntry:
        """
        Create an audit log entry.

        Args:
            action: What happened
            user: Username of the actor, or "system"/"anonymous"
            source: Where the action came from (e.g. "admin-dashboard", "login")
            details: Human-readable description
            before_state: Summary of the relevant state before the action
            after_state: Summary of the relevant state after the action

        Returns:
            The stored entry

        Raises:
            StorageError: If the entry could not be persisted
        """
        entry = AuditLogEntry(
            id=new_id(),
            timestamp=self._now(),
            action=action,
            user=user,
            source=source,
            details=details,
            before_state=before_state,
            after_state=after_state,
        )
        payload = entry.to_json()
        await self._store.update(
            AUDIT_LOG_KEY,
            lambda raw: prepend_capped(raw, payload, self._limit),
        )
        return entry

    async def record(self, action: AuditAction, user: str, source: str, details: str, **states) -> Optional[AuditLogEntry]:
        """Like `append`, but a failed write is logged and skipped."""
        try:
            return await self.append(action, user, source, details, **states)
        except Exception as exc:
            # Audit writes must not break the operation that triggered them
            logger.warning(f"Audit log write skipped for {action.value}: {exc}", exc_info=True)
            return None

    async def list(self) -> List[AuditLogEntry]:
        """All entries, newest first."""
        raw = await self._store.get(AUDIT_LOG_KEY)
        return [AuditLogEntry.model_validate(item) for item in decode(raw, default=[])]
