from upnext.models.base import CamelModel


class NotificationSettings(CamelModel):
    email_enabled: bool = False
    admin_email: str = ""
    notify_on_login: bool = True
    notify_on_employee_removal: bool = True
    notify_on_system_changes: bool = True
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""

    @property
    def smtp_configured(self) -> bool:
        return bool(self.admin_email and self.smtp_host and self.smtp_user and self.smtp_password)

    def masked(self) -> dict:
        data = self.to_json()
        if data.get("smtpPassword"):
            data["smtpPassword"] = "********"
        return data
