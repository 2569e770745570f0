import logging
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from pydantic import BaseModel
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from upnext.api.deps import build_coordinator
from upnext.api.routes import api_router
from upnext.core.config import settings
from upnext.core.errors import StorageError, UpNextError
from upnext.core.logging_config import RequestLoggingMiddleware, setup_logging
from upnext.core.rate_limiter import limiter, rate_limit_exceeded_handler
from upnext.core.store import close_store, get_store

setup_logging()
logger = logging.getLogger("upnext")

VERSION = "1.0.0"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds SECURITY_HEADERS everywhere and disables caching of API responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        if request.url.path.startswith(settings.API_PREFIX):
            response.headers.setdefault("Cache-Control", "no-store")
        return response


class ErrorResponse(BaseModel):
    error: str
    detail: str | None = None
    timestamp: str
    path: str | None = None


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str
    environment: str
    checks: dict[str, bool]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed the store on startup and release it on shutdown."""
    store = await get_store()
    try:
        await build_coordinator(store).users.ensure_default_admin()
    except StorageError as e:
        logger.error(f"Could not seed default users: {e.message}")
    logger.info(f"{settings.PROJECT_NAME} {VERSION} up ({settings.ENVIRONMENT}, store={store.kind})")
    yield
    await close_store()
    logger.info(f"{settings.PROJECT_NAME} stopped")


app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    description="Sales rotation, lead assignment and audit API",
    version=VERSION,
    # Interactive docs only while debugging
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def _error_response(request: Request, status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    """
    Render an error body.

    Exception handlers run outside CORSMiddleware's response path, so the
    CORS headers for an allowed origin are added here.
    """
    body = ErrorResponse(
        error=error,
        detail=detail,
        timestamp=datetime.now(timezone.utc).isoformat(),
        path=request.url.path,
    )
    headers = {}
    origin = request.headers.get("origin")
    if origin and origin in settings.ALLOWED_ORIGINS:
        headers = {"Access-Control-Allow-Origin": origin, "Access-Control-Allow-Credentials": "true"}
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.exception_handler(UpNextError)
async def domain_exception_handler(request: Request, exc: UpNextError) -> JSONResponse:
    if exc.status_code >= 500:
        # Internal detail stays in the log
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
        return _error_response(request, exc.status_code, exc.public_message)
    return _error_response(request, exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'][1:]) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )
    return _error_response(request, status.HTTP_400_BAD_REQUEST, "Invalid request", problems)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. Production responses only carry a reference id."""
    reference = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    logger.error(
        f"Unhandled {type(exc).__name__} [{reference}] on {request.method} {request.url.path}: {exc}\n"
        f"{traceback.format_exc()}"
    )

    if settings.ENVIRONMENT.lower() == "production":
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Internal server error",
            f"An unexpected error occurred. Reference ID: {reference}",
        )
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, type(exc).__name__, str(exc))


# Credentials require explicit origins, never "*"
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router, prefix=settings.API_PREFIX)

# Prometheus scrape endpoint; the SSE stream would only inflate latency histograms
Instrumentator(
    should_group_status_codes=False,
    should_ignore_untemplated=True,
    should_respect_env_var=True,
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/health", "/metrics", f"{settings.API_PREFIX}/system-state/stream"],
    inprogress_name="upnext_inprogress_requests",
    inprogress_labels=True,
).instrument(app).expose(app, include_in_schema=False)


class _CachedProbe:
    """Remembers a store ping for `ttl` seconds so frequent probes stay cheap."""

    def __init__(self, ttl: float = 15.0):
        self.ttl = ttl
        self.healthy: bool | None = None
        self.checked_at = 0.0

    async def __call__(self) -> bool:
        now = time.monotonic()
        if self.healthy is not None and now - self.checked_at < self.ttl:
            return self.healthy
        try:
            store = await get_store()
            self.healthy = await store.ping()
        except StorageError as e:
            logger.warning(f"Store health check failed: {e.message}")
            self.healthy = False
        self.checked_at = now
        return self.healthy


store_probe = _CachedProbe()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Service health. 503 while the store is unreachable."""
    checks = {"store": await store_probe()}
    healthy = all(checks.values())
    response = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        service="upnext-backend",
        version=VERSION,
        environment=settings.ENVIRONMENT,
        checks=checks,
    )
    if not healthy:
        logger.warning(f"Health check failed: {checks}")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=response.model_dump())
    return response


@app.get("/")
async def root():
    return {"message": f"Welcome to the {settings.PROJECT_NAME} API", "version": VERSION}
