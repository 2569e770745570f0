from fastapi import APIRouter

from upnext.api.routes import audit_log, auth, leads, notifications, storage, system_state, users

api_router = APIRouter()
api_router.include_router(system_state.router, prefix="/system-state", tags=["system-state"])
api_router.include_router(leads.router, prefix="/leads", tags=["leads"])
api_router.include_router(audit_log.router, prefix="/audit-log", tags=["audit-log"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(storage.router, prefix="/storage", tags=["storage"])
