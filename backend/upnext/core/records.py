"""
Record keys and JSON helpers shared by everything that persists to the store.
"""

import json
import secrets
import time
from typing import Any, Optional

from upnext.core.errors import StorageError

SYSTEM_STATE_KEY = "system-state"
AUDIT_LOG_KEY = "audit-log"
LEAD_ASSIGNMENTS_KEY = "lead-assignments"
USERS_KEY = "users"
NOTIFICATION_SETTINGS_KEY = "notification-settings"


def new_id() -> str:
    """Nanosecond timestamp plus a random suffix, unique for practical purposes."""
    return f"{time.time_ns()}-{secrets.token_hex(3)}"


def decode(raw: Optional[str], default: Any = None) -> Any:
    if raw is None:
        return default
    try:
        return json.loads(raw)
    except ValueError as e:
        raise StorageError("Stored record is not valid JSON") from e


def encode(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def prepend_capped(raw: Optional[str], item: dict, limit: int) -> str:
    """Insert at the head of a stored list, keeping the newest `limit` items."""
    items = decode(raw, default=[])
    if not isinstance(items, list):
        raise StorageError("Stored record is not a list")
    return encode([item] + items[: max(limit - 1, 0)])
