"""FastAPI application entry point."""
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from api.routers import admin, auth, clipboard, folders, health, snippets
from api.routers import settings as settings_routes
from core.config import Settings, get_settings
from core.exceptions import (
    AuthError,
    ConflictError,
    NotFoundError,
    ReservedError,
    SnipClipError,
    StorageUnavailableError,
    ValidationError,
)
from core.identity import ServerSecret
from core.logging import configure_logging
from core.redis import RedisClient, set_redis_client
from core.sessions import SessionSweeper, build_session_store
from services.storage import create_storage

logger = logging.getLogger(__name__)

STATUS_CODES: list[tuple[type[SnipClipError], int]] = [
    (ValidationError, 400),
    (ReservedError, 400),
    (AuthError, 401),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StorageUnavailableError, 500),
]


class RequestTooLargeError(HTTPException):
    """Request body exceeds the configured limit."""

    def __init__(self) -> None:
        super().__init__(status_code=413, detail="Request body too large")


class BodySizeLimitMiddleware:
    """
    Reject request bodies larger than `max_bytes` with 413.

    Declared Content-Length is checked up front; chunked bodies are counted as
    they are received.
    """

    def __init__(self, app: ASGIApp, max_bytes: int) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers") or [])
        declared = headers.get(b"content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_bytes:
            response = JSONResponse(status_code=413, content={"detail": "Request body too large"})
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    raise RequestTooLargeError
            return message

        await self.app(scope, limited_receive, send)


def status_for(exc: SnipClipError) -> int:
    """HTTP status code for an application error."""
    for error_type, status_code in STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


async def snipclip_error_handler(request: Request, exc: SnipClipError) -> JSONResponse:
    """Translate application errors into JSON responses."""
    status_code = status_for(exc)
    detail = exc.message
    if isinstance(exc, StorageUnavailableError):
        logger.error(
            "storage_error",
            extra={"path": request.url.path, "error": exc.message},
        )
        if not request.app.state.settings.dev_mode:
            detail = "Internal server error"
    return JSONResponse(status_code=status_code, content={"detail": detail})


async def request_validation_handler(
    request: Request,  # noqa: ARG001
    exc: RequestValidationError,
) -> JSONResponse:
    """Malformed bodies are client errors (400), with the first problem as the message."""
    errors = exc.errors()
    message = "Validation error"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
    return JSONResponse(
        status_code=400,
        content={"detail": message, "errors": jsonable_errors(errors)},
    )


def jsonable_errors(errors: list[dict]) -> list[dict]:
    """Strip non-serializable context (exception instances) from pydantic errors."""
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in errors
    ]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build shared services on startup and release them on shutdown."""
    settings: Settings = app.state.settings
    configure_logging(settings.log_level)

    app.state.server_secret = ServerSecret(settings.session_secret)

    redis_client = None
    if settings.session_store == "redis" or settings.redis_enabled:
        redis_client = RedisClient(settings.redis_url, enabled=True)
        await redis_client.connect()
    set_redis_client(redis_client)

    storage = create_storage(settings)
    await storage.initialize()
    app.state.storage = storage

    store = build_session_store(settings, redis_client)
    app.state.session_store = store
    sweeper = SessionSweeper(store, settings.session_sweep_interval_seconds)
    sweeper.start()
    logger.info(
        "startup_complete",
        extra={"storage": storage.name, "session_store": type(store).__name__},
    )
    try:
        yield
    finally:
        await sweeper.stop()
        await store.close()
        await storage.close()
        if redis_client is not None:
            await redis_client.close()
        set_redis_client(None)
        logger.info("shutdown_complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory; tests pass their own settings."""
    settings = settings or get_settings()
    app = FastAPI(
        title="SnipClip Sync API",
        description="Snippet and clipboard synchronization keyed by PIN and passphrase.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=settings.max_request_bytes)

    app.add_exception_handler(SnipClipError, snipclip_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(folders.router)
    app.include_router(snippets.router)
    app.include_router(clipboard.router)
    app.include_router(settings_routes.router)
    app.include_router(admin.router)
    return app


app = create_app()
