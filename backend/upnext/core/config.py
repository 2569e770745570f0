from typing import List, Optional

from pydantic import AliasChoices, Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Known insecure default values that must be changed in production
_INSECURE_SECRET_KEYS = {
    "your-secret-key-change-this-in-production-min-32-chars",
    "changeme",
    "secret",
    "development-secret",
}
_INSECURE_ADMIN_PASSWORDS = {
    "admin",
    "admin123",
    "password",
    "changeme",
}

_INSECURE_ALLOWED_ORIGINS_DEFAULTS = {
    "http://localhost:3000",
    "http://127.0.0.1:3000",
}


class Settings(BaseSettings):
    # Allow comma-separated env vars for list fields like ALLOWED_ORIGINS
    model_config = SettingsConfigDict(env_file=".env", env_parse_delimiter=",", extra="ignore")
    PROJECT_NAME: str = "UpNext"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # CORS
    # Accept either a JSON array or a comma-separated string, normalized below.
    ALLOWED_ORIGINS: List[str] | str = Field(
        default_factory=lambda: ["http://localhost:3000"],
        validation_alias=AliasChoices("ALLOWED_ORIGINS", "BACKEND_CORS_ORIGINS"),
    )

    # Session tokens
    SECRET_KEY: str = Field(
        default="your-secret-key-change-this-in-production-min-32-chars",
        validation_alias=AliasChoices("JWT_SECRET_KEY", "SECRET_KEY"),
    )
    ALGORITHM: str = "HS256"
    SESSION_TTL_HOURS: int = 24
    SESSION_COOKIE_NAME: str = "auth-token"

    # Passwords are compared verbatim unless hashing is switched on
    PASSWORD_HASHING: bool = False

    # Key-value store. Use rediss:// for TLS connections.
    REDIS_URL: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("REDIS_URL", "KV_URL"),
    )
    STORE_KEY_PREFIX: str = ""
    STORE_UPDATE_RETRIES: int = 5
    STORE_TIMEOUT_SECONDS: float = 5.0

    # Record caps
    AUDIT_LOG_LIMIT: int = 1000
    LEAD_ASSIGNMENT_LIMIT: int = 1000

    # Rotation
    TEMPORARY_INACTIVE_MINUTES: List[int] | str = Field(default_factory=lambda: [30, 60, 90])
    PUBLIC_DISPLAY: bool = True

    # Seeded manager account (created when the user directory is empty)
    DEFAULT_ADMIN_USERNAME: str = "admin"
    DEFAULT_ADMIN_PASSWORD: str = "admin123"
    DEFAULT_ADMIN_NAME: str = "Administrator"

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    LOGIN_RATE_LIMIT: str = "10/minute"

    # Logging: defaults to DEBUG when DEBUG is on, INFO otherwise
    LOG_LEVEL: Optional[str] = None

    # Server-sent events
    STREAM_POLL_SECONDS: float = 1.0
    STREAM_HEARTBEAT_SECONDS: float = 30.0

    # Notifications: "log" only records what would be sent, "smtp" delivers it
    NOTIFICATION_DELIVERY: str = "log"
    SMTP_TIMEOUT_SECONDS: float = 10.0

    @computed_field
    @property
    def COOKIE_SECURE(self) -> bool:
        """Only set secure cookies in production."""
        return self.ENVIRONMENT.lower() == "production"

    def model_post_init(self, __context):
        """
        Validate configuration on startup. In production, fail hard if insecure defaults are detected.
        """
        is_prod = self.ENVIRONMENT.lower() == "production"
        errors = []

        if self.SECRET_KEY in _INSECURE_SECRET_KEYS or len(self.SECRET_KEY) < 32:
            if is_prod:
                errors.append(
                    "SECRET_KEY is insecure. Generate a new key with: "
                    "python -c \"import secrets; print(secrets.token_urlsafe(32))\""
                )

        if is_prod and self.DEFAULT_ADMIN_PASSWORD in _INSECURE_ADMIN_PASSWORDS:
            errors.append("DEFAULT_ADMIN_PASSWORD must be changed in production.")

        if is_prod and (not self.ALLOWED_ORIGINS or set(self.ALLOWED_ORIGINS).issubset(_INSECURE_ALLOWED_ORIGINS_DEFAULTS)):
            errors.append(
                "ALLOWED_ORIGINS must be set to your domain(s) in production (not localhost defaults)."
            )

        if self.NOTIFICATION_DELIVERY not in {"log", "smtp"}:
            errors.append("NOTIFICATION_DELIVERY must be 'log' or 'smtp'.")

        if self.STORE_UPDATE_RETRIES < 1:
            errors.append("STORE_UPDATE_RETRIES must be at least 1.")

        if is_prod and self.DEBUG:
            errors.append("DEBUG must be False in production.")

        if errors:
            error_msg = "Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            raise ValueError(error_msg)

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def _split_origins(cls, value):
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value

    @field_validator("TEMPORARY_INACTIVE_MINUTES", mode="before")
    @classmethod
    def _split_minutes(cls, value):
        if isinstance(value, str):
            return [int(v) for v in value.split(",") if v.strip()]
        if isinstance(value, int):
            return [value]
        return value


settings = Settings()
