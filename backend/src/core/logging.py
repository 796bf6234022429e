"""Logging setup and helpers for keeping identifiers out of log lines."""
import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once; repeated calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    root.setLevel(level.upper())


def redact(value: str | None, keep: int = 8) -> str:
    """Shorten a user id or token to a prefix that is safe to log."""
    if not value:
        return "<none>"
    if len(value) <= keep:
        return value
    return value[:keep] + "..."
