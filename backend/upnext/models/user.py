from enum import Enum
from typing import Optional

from upnext.models.base import CamelModel, UTCDateTime


class Role(str, Enum):
    SALESPERSON = "salesperson"
    BDC = "bdc"
    MANAGER = "manager"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def at_least(self, other: "Role") -> bool:
        return self.rank >= other.rank


_ROLE_RANK = {
    Role.SALESPERSON: 1,
    Role.BDC: 2,
    Role.MANAGER: 3,
}


class User(CamelModel):
    id: str
    username: str
    password: str
    name: str
    role: Role
    email: Optional[str] = None
    is_active: bool = True
    temporary_inactive_until: Optional[UTCDateTime] = None
    created_at: UTCDateTime
    last_login: Optional[UTCDateTime] = None

    @property
    def is_available(self) -> bool:
        """Account enabled and not inside a pending temporary inactivity."""
        return self.is_active and self.temporary_inactive_until is None

    def public(self) -> dict:
        """Serialized form without the password. `isActive` reports availability."""
        data = self.to_json()
        data.pop("password", None)
        data["isActive"] = self.is_available
        return data


class AuthSession(CamelModel):
    user_id: str
    username: str
    role: Role
    name: str
    issued_at: UTCDateTime
    expires_at: UTCDateTime

    def user_summary(self) -> dict:
        return {
            "id": self.user_id,
            "username": self.username,
            "name": self.name,
            "role": self.role.value,
        }
