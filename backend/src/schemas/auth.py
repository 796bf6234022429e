"""Pydantic schemas for login, logout, and session verification."""
from pydantic import BaseModel


class LoginRequest(BaseModel):
    """PIN + passphrase credentials. Format is checked by core.identity."""

    pin: str
    passphrase: str


class LoginResponse(BaseModel):
    """Derived user id and a fresh session token."""

    user_id: str
    session_token: str


class LogoutRequest(BaseModel):
    """Token to revoke. Unknown or missing tokens are accepted."""

    session_token: str | None = None


class VerifyResponse(BaseModel):
    """The user id bound to the presented session."""

    user_id: str


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str
