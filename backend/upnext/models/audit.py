from enum import Enum
from typing import Any, Dict, Optional

from upnext.models.base import CamelModel, UTCDateTime


class AuditAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    CYCLE = "cycle"
    REORDER = "reorder"
    TOGGLE = "toggle"
    LOGIN = "login"
    LOGIN_FAILED = "login_failed"
    LOGOUT = "logout"
    LEAD_ASSIGNMENT = "lead_assignment"
    CREATE_USER = "create_user"
    UPDATE_USER = "update_user"
    DELETE_USER = "delete_user"
    TEMPORARY_INACTIVE = "temporary_inactive"


class AuditLogEntry(CamelModel):
    id: str
    timestamp: UTCDateTime
    action: AuditAction
    user: str
    source: str
    details: str
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None
