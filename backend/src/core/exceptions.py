"""
Error taxonomy shared by the storage backends, session layer, and HTTP boundary.

Every error carries a human-readable `message` that is safe to show to the
client; the API layer maps each class to a status code (see api.main).
"""


class SnipClipError(Exception):
    """Base class for all expected application errors."""

    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(SnipClipError):
    """Malformed credentials or entity fields."""

    default_message = "Validation error"


class AuthError(SnipClipError):
    """Missing, invalid, or expired session."""

    default_message = "Authentication required"


class NotFoundError(SnipClipError):
    """Entity is absent or owned by another user (indistinguishable on purpose)."""

    default_message = "Not found"


class ConflictError(SnipClipError):
    """Write collides with an existing per-user unique value."""


class DuplicateNameError(ConflictError):
    default_message = "Folder name already exists"


class DuplicateTriggerError(ConflictError):
    default_message = "Trigger already exists"


class ReservedError(SnipClipError):
    """Operation touches the reserved 'General' folder."""


class ReservedNameError(ReservedError):
    default_message = "Cannot use 'General' as folder name - it's reserved"


class ReservedFolderError(ReservedError):
    default_message = "Cannot delete the 'General' folder"


class StorageUnavailableError(SnipClipError):
    """The configured backend cannot be reached."""

    default_message = "Storage unavailable"
