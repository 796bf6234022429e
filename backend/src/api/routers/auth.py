"""Login, logout, and session verification endpoints."""
import logging

from fastapi import APIRouter, Depends

from api.dependencies import (
    get_current_session,
    get_current_user_id,
    get_server_secret,
    get_session_store,
)
from core.exceptions import AuthError, StorageUnavailableError, ValidationError
from core.identity import ServerSecret, validate_passphrase, validate_pin
from core.logging import redact
from core.sessions import Session, SessionStore
from schemas.auth import (
    LoginRequest,
    LoginResponse,
    LogoutRequest,
    MessageResponse,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
async def login(
    data: LoginRequest,
    secret: ServerSecret = Depends(get_server_secret),
    store: SessionStore = Depends(get_session_store),
) -> LoginResponse:
    """
    Exchange a PIN and passphrase for a session.

    There is no registration step: any well-formed pair logs in, and the same
    pair always maps to the same user id.
    """
    if not validate_pin(data.pin):
        raise ValidationError("PIN must be 4-6 digits")
    if not validate_passphrase(data.passphrase):
        raise ValidationError("Passphrase must be 8-256 characters of letters, digits, or symbols")
    user_id = secret.derive(data.pin, data.passphrase)
    token = await store.create_session(user_id)
    if token is None:
        raise StorageUnavailableError("Session store unavailable")
    logger.info("login", extra={"user_id": redact(user_id)})
    return LoginResponse(user_id=user_id, session_token=token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    data: LogoutRequest,
    store: SessionStore = Depends(get_session_store),
) -> MessageResponse:
    """Revoke a session token. Always succeeds."""
    if data.session_token:
        await store.remove_session(data.session_token)
    return MessageResponse(message="Logged out")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    user_id: str = Depends(get_current_user_id),
    store: SessionStore = Depends(get_session_store),
) -> MessageResponse:
    """Revoke every session of the calling user."""
    await store.remove_all_sessions(user_id)
    logger.info("logout_all", extra={"user_id": redact(user_id)})
    return MessageResponse(message="Logged out from all sessions")


@router.get("/verify", response_model=VerifyResponse)
async def verify(session: Session | None = Depends(get_current_session)) -> VerifyResponse:
    """Check a `session-token` header. The dev user-id header is not accepted here."""
    if session is None:
        raise AuthError
    return VerifyResponse(user_id=session.user_id)
