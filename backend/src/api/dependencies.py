"""FastAPI dependencies for injection."""
import logging

from fastapi import Depends, Header, Request

from core.config import Settings
from core.exceptions import AuthError
from core.identity import ServerSecret
from core.logging import redact
from core.sessions import Session, SessionStore
from services.storage import StorageBackend

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_storage(request: Request) -> StorageBackend:
    """The storage backend selected at startup."""
    return request.app.state.storage


def get_session_store(request: Request) -> SessionStore:
    """The session store selected at startup."""
    return request.app.state.session_store


def get_server_secret(request: Request) -> ServerSecret:
    """The server secret loaded at startup."""
    return request.app.state.server_secret


async def get_current_session(
    session_token: str | None = Header(default=None),
    store: SessionStore = Depends(get_session_store),
) -> Session | None:
    """Session for the `session-token` header, or None."""
    if session_token is None:
        return None
    return await store.get_session(session_token)


async def get_current_user_id(
    session: Session | None = Depends(get_current_session),
    user_id: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Resolve the caller's user id.

    A valid `session-token` header always wins. The raw `user-id` header is a
    development shortcut and is ignored unless dev_mode is enabled.
    """
    if session is not None:
        return session.user_id
    if user_id and settings.dev_mode:
        logger.warning("dev_user_id_header_used", extra={"user_id": redact(user_id)})
        return user_id
    raise AuthError


__all__ = [
    "get_current_session",
    "get_current_user_id",
    "get_server_secret",
    "get_session_store",
    "get_settings",
    "get_storage",
]
