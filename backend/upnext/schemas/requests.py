from typing import List, Optional

from upnext.models.base import CamelModel, UTCDateTime
from upnext.models.rotation import Employee


class SystemStateAction(CamelModel):
    action: str
    source: str = "unknown"
    name: Optional[str] = None
    id: Optional[str] = None
    employees: Optional[List[Employee]] = None
    details: Optional[str] = None


class LeadAssignRequest(CamelModel):
    # Optional so missing fields get the same 400 message as empty ones
    lead_name: Optional[str] = None
    employee_id: Optional[str] = None
    employee_name: Optional[str] = None
    source: Optional[str] = None


class LoginRequest(CamelModel):
    username: str
    password: str


class UserCreate(CamelModel):
    username: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None
    is_active: bool = True


class UserUpdate(CamelModel):
    username: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    email: Optional[str] = None
    is_active: Optional[bool] = None


class TemporaryInactiveRequest(CamelModel):
    minutes: Optional[int] = None


class NotificationSettingsUpdate(CamelModel):
    email_enabled: Optional[bool] = None
    admin_email: Optional[str] = None
    notify_on_login: Optional[bool] = None
    notify_on_employee_removal: Optional[bool] = None
    notify_on_system_changes: Optional[bool] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None


class NotificationSendRequest(CamelModel):
    action: str
    details: str = ""
    user: str = "system"
    timestamp: Optional[UTCDateTime] = None
