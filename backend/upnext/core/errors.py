"""
Error taxonomy for UpNext.

Every error raised by the core carries the HTTP status the API layer renders it
with. Notification errors raised while handling another action are caught and
logged; only the notification endpoints surface them.
"""

from typing import Optional


class UpNextError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class ValidationError(UpNextError):
    status_code = 400
    public_message = "Invalid request"


class InvalidRoleError(ValidationError):
    public_message = "Invalid role"


class AuthenticationError(UpNextError):
    status_code = 401
    public_message = "Unauthorized"


class InvalidCredentialsError(AuthenticationError):
    public_message = "Invalid credentials"


class AuthorizationError(UpNextError):
    status_code = 403
    public_message = "Forbidden"


class NotFoundError(UpNextError):
    status_code = 404
    public_message = "Not found"


class ConflictError(UpNextError):
    status_code = 409
    public_message = "Conflict"


class DuplicateUsernameError(ConflictError):
    public_message = "Username already exists"


class ConcurrentUpdateError(ConflictError):
    public_message = "The record was modified concurrently, please retry"


class StorageError(UpNextError):
    status_code = 500
    public_message = "Storage unavailable"


class NotificationError(UpNextError):
    status_code = 500
    public_message = "Notification could not be delivered"


class IncompleteNotificationConfigError(NotificationError):
    status_code = 400
    public_message = "Email configuration incomplete"
