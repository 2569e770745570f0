"""
Logging for UpNext.

JSON lines in production, coloured single lines in development. Every record
emitted while a request is being handled carries that request's id.
"""

import contextvars
import json
import logging
import sys
import traceback
import uuid
from datetime import datetime, timezone
from typing import Optional

from upnext.core.config import settings

request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)

# Attributes every LogRecord has; anything else was passed through `extra=`
_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

_SKIPPED_PATHS = ("/health", "/metrics")


class RequestIdFilter(logging.Filter):
    """Stamp records with the id of the request being handled, if any."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    def __init__(self, service_name: str = "upnext-backend"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "service": self.service_name,
            "env": settings.ENVIRONMENT,
            "at": f"{record.module}:{record.lineno}",
        }

        fields = {k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS and v is not None}
        entry.update(fields)

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            entry["error"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "stack": "".join(traceback.format_exception(exc_type, exc, tb)),
            }

        return json.dumps(entry, default=str)


class ColoredFormatter(logging.Formatter):
    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        when = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        request_id = getattr(record, "request_id", None)
        prefix = f"[{request_id}] " if request_id else ""

        line = f"{when} {color}{record.levelname:<8}{self.RESET} {record.name}: {prefix}{record.getMessage()}"
        if record.exc_info and record.exc_info[0] is not None:
            # Last frame only; the JSON format keeps the full stack
            line += f"\n  {color}{traceback.format_exception_only(*record.exc_info[:2])[-1].strip()}{self.RESET}"
        return line


def setup_logging(
    service_name: str = "upnext-backend",
    log_level: Optional[str] = None,
    json_logs: Optional[bool] = None,
) -> None:
    """
    Install one stdout handler on the root logger.

    Args:
        service_name: Reported in every JSON line
        log_level: Overrides LOG_LEVEL / the DEBUG-based default
        json_logs: Overrides the production-only JSON default
    """
    level_name = (log_level or settings.LOG_LEVEL or ("DEBUG" if settings.DEBUG else "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {level_name}")
    use_json = settings.ENVIRONMENT.lower() == "production" if json_logs is None else json_logs

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdFilter())
    handler.setFormatter(JSONFormatter(service_name) if use_json else ColoredFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("uvicorn", "uvicorn.access", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger("upnext.logging").info(
        f"Logging at {level_name} ({'json' if use_json else 'console'}), environment={settings.ENVIRONMENT}"
    )


def generate_request_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestLoggingMiddleware:
    """
    Pure ASGI middleware: one access line per request, with timing.

    The request id is exposed to handlers as `request.state.request_id` and
    returned to the client in the X-Request-ID header.
    """

    def __init__(self, app):
        self.app = app
        self.logger = logging.getLogger("upnext.http")

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = generate_request_id()
        scope.setdefault("state", {})["request_id"] = request_id
        token = request_id_var.set(request_id)
        started = datetime.now(timezone.utc)
        status = 500

        async def send_with_id(message):
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
                message["headers"] = [*message.get("headers", []), (b"x-request-id", request_id.encode())]
            await send(message)

        try:
            await self.app(scope, receive, send_with_id)
        finally:
            path = scope.get("path", "/")
            if path not in _SKIPPED_PATHS:
                duration_ms = (datetime.now(timezone.utc) - started).total_seconds() * 1000
                method = scope.get("method", "-")
                self.logger.log(
                    logging.WARNING if status >= 400 else logging.INFO,
                    f"{method} {path} {status} {duration_ms:.1f}ms",
                    extra={"method": method, "path": path, "status": status, "duration_ms": round(duration_ms, 1)},
                )
            request_id_var.reset(token)
