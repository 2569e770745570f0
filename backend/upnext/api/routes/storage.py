import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from upnext.core.errors import StorageError
from upnext.core.records import new_id
from upnext.core.store import KeyValueStore, get_store

logger = logging.getLogger("upnext.storage")

router = APIRouter()


@router.get("/health")
async def storage_health(store: KeyValueStore = Depends(get_store)):
    """Write, read back and delete a throwaway key."""
    key = f"health-check:{new_id()}"
    value = datetime.now(timezone.utc).isoformat()
    info = {"type": store.kind, "location": store.location}

    try:
        ping = await store.ping()
        await store.set(key, value, ttl=60)
        read_back = await store.get(key)
        await store.delete(key)
    except StorageError as e:
        logger.error(f"Storage health check failed: {e.message}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": "Storage unavailable", "storage": info},
        )

    healthy = ping and read_back == value
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "ping": ping,
            "readWrite": read_back == value,
            "storage": info,
            "timestamp": value,
        },
    )
