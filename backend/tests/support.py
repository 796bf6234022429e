"""Test doubles shared by fixtures and tests."""
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta

# Signature of the `login` fixture: (pin, passphrase) -> login response body
LoginFn = Callable[..., Awaitable[dict]]


class FakeClock:
    """Manually advanced UTC clock for storage backends."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class FakeTime:
    """Manually advanced epoch-seconds clock for session stores."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds
