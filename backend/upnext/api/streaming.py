"""
Server-sent events feed of the rotation state.

The stream polls the store, pushes the state whenever its version changes and
sends a heartbeat on a fixed interval. It ends when the client disconnects.
"""

import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import Request
from fastapi.responses import StreamingResponse

from upnext.core.errors import UpNextError
from upnext.services.rotation import RotationService

logger = logging.getLogger("upnext.stream")

STATE_UPDATE = "system-state-update"
HEARTBEAT = "heartbeat"


def _sse_message(event_type: str, **payload) -> str:
    body = {
        "type": event_type,
        **payload,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    return f"data: {json.dumps(body, default=str)}\n\n"


async def state_events(
    rotation: RotationService,
    is_disconnected: Callable[[], Awaitable[bool]],
    poll_seconds: float,
    heartbeat_seconds: float,
) -> AsyncGenerator[str, None]:
    last_version = None
    last_heartbeat = time.monotonic()

    while True:
        if await is_disconnected():
            logger.debug("SSE client disconnected")
            return

        try:
            state = await rotation.get_state()
        except UpNextError as e:
            logger.error(f"SSE could not read system state: {e.message}")
        else:
            if state.version != last_version:
                last_version = state.version
                yield _sse_message(STATE_UPDATE, data=state.to_json())

        if time.monotonic() - last_heartbeat >= heartbeat_seconds:
            last_heartbeat = time.monotonic()
            yield _sse_message(HEARTBEAT)

        await asyncio.sleep(poll_seconds)


def stream_state(
    rotation: RotationService,
    request: Request,
    poll_seconds: float,
    heartbeat_seconds: float,
) -> StreamingResponse:
    return StreamingResponse(
        state_events(rotation, request.is_disconnected, poll_seconds, heartbeat_seconds),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
