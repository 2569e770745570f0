from datetime import datetime, timezone
from typing import Callable, List, Optional

from upnext.core.config import settings
from upnext.core.records import LEAD_ASSIGNMENTS_KEY, decode, new_id, prepend_capped
from upnext.core.store import KeyValueStore
from upnext.models.lead import LeadAssignment


class LeadAssignmentLog:
    """Append-only, newest-first record of leads handed to employees."""

    def __init__(
        self,
        store: KeyValueStore,
        limit: Optional[int] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._limit = limit or settings.LEAD_ASSIGNMENT_LIMIT
        self._now = now or (lambda: datetime.now(timezone.utc))

    async def assign(
        self,
        lead_name: str,
        employee_id: str,
        employee_name: str,
        source: str,
        assigned_by: str = "system",
    ) -> LeadAssignment:
        assignment = LeadAssignment(
            id=new_id(),
            lead_name=lead_name,
            employee_id=employee_id,
            employee_name=employee_name,
            assigned_at=self._now(),
            assigned_by=assigned_by,
            source=source,
        )
        payload = assignment.to_json()
        await self._store.update(
            LEAD_ASSIGNMENTS_KEY,
            lambda raw: prepend_capped(raw, payload, self._limit),
        )
        return assignment

    async def list(self) -> List[LeadAssignment]:
        raw = await self._store.get(LEAD_ASSIGNMENTS_KEY)
        return [LeadAssignment.model_validate(item) for item in decode(raw, default=[])]
