"""
PIN + passphrase identity derivation and credential format checks.

There is no account table: a returning user is recognised because the same
(PIN, passphrase, server secret) triple always hashes to the same id.
"""
import hashlib
import logging
import re

logger = logging.getLogger(__name__)

# Used when SESSION_SECRET is not configured. Ids derived with it are only
# stable as long as every deployment keeps using the fallback.
FALLBACK_SECRET = "SnipClip_Sync_v1_default_DO_NOT_USE_IN_PRODUCTION"

USER_ID_LENGTH = 32

_PIN_PATTERN = re.compile(r"^\d{4,6}$", re.ASCII)
_PASSPHRASE_PATTERN = re.compile(r"^[a-zA-Z0-9!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]+$")
_SESSION_TOKEN_PATTERN = re.compile(r"^[a-f0-9]{64}$")


def derive_user_id(pin: str, passphrase: str, secret: str) -> str:
    """Return the first 32 hex chars of sha256("pin:passphrase:secret")."""
    combined = f"{pin}:{passphrase}:{secret}"
    digest = hashlib.sha256(combined.encode("utf-8")).hexdigest()
    return digest[:USER_ID_LENGTH]


def validate_pin(pin: str) -> bool:
    """PIN must be 4-6 decimal digits."""
    return isinstance(pin, str) and _PIN_PATTERN.fullmatch(pin) is not None


def validate_passphrase(passphrase: str) -> bool:
    """Passphrase must be 8-256 ASCII letters, digits, or allowed punctuation."""
    if not isinstance(passphrase, str):
        return False
    if not 8 <= len(passphrase) <= 256:
        return False
    return _PASSPHRASE_PATTERN.fullmatch(passphrase) is not None


def is_valid_session_token(token: str | None) -> bool:
    """Session tokens are 64 lowercase hex characters."""
    return isinstance(token, str) and _SESSION_TOKEN_PATTERN.fullmatch(token) is not None


class ServerSecret:
    """
    The process-wide secret mixed into every derived user id.

    Loaded once at startup and never regenerated. Rotating it changes every
    user id; use the explicit user remapping (StorageBackend.remap_user) to
    move data between the old and new ids.
    """

    def __init__(self, secret: str | None) -> None:
        if secret:
            self._value = secret
            self.is_fallback = False
        else:
            logger.warning(
                "session_secret_missing",
                extra={"detail": "using built-in fallback; user ids will change if a secret is set later"},
            )
            self._value = FALLBACK_SECRET
            self.is_fallback = True

    def derive(self, pin: str, passphrase: str) -> str:
        """Derive the user id for a credential pair under this secret."""
        return derive_user_id(pin, passphrase, self._value)

    def __repr__(self) -> str:
        return f"ServerSecret(is_fallback={self.is_fallback})"
