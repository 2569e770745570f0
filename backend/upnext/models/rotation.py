from datetime import datetime, timezone
from typing import List, Optional

from pydantic import Field

from upnext.models.base import CamelModel, UTCDateTime


class Employee(CamelModel):
    id: str
    name: str
    is_active: bool = True
    # Set only while a scheduled inactivity is pending; implies is_active=False
    temporary_inactive_until: Optional[UTCDateTime] = None


class RotationState(CamelModel):
    employees: List[Employee] = Field(default_factory=list)
    current_up_index: int = 0
    last_updated: UTCDateTime = Field(default_factory=lambda: datetime.now(timezone.utc))
    # Incremented on every persisted change
    version: int = 0

    @property
    def current_employee(self) -> Optional[Employee]:
        if not self.employees:
            return None
        return self.employees[self.current_up_index]

    def find(self, employee_id: str) -> Optional[Employee]:
        return next((e for e in self.employees if e.id == employee_id), None)
