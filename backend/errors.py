"""
Error kinds for the cold-start subsystem.

Retry, reset and status-code decisions are made on these types rather than
on error message text.
"""

from typing import Iterable, List, Optional

import asyncpg


class ColdStartError(RuntimeError):
    """Base class for bootstrap failures."""

    status_code = 500


class DatabaseError(ColdStartError):
    """The backing store is unavailable; cached state must be discarded."""


class DatabaseConnectionError(DatabaseError):
    """Connecting failed after the retry budget was spent."""


class DatabaseNotReadyError(DatabaseError):
    """A query was attempted before the pool was connected."""


class AppConstructionError(ColdStartError):
    """Building the application instance failed after a successful connect."""


class ConfigurationError(ColdStartError):
    """Required configuration is missing or invalid. Never retried."""

    status_code = 503

    def __init__(self, message: str, missing: Optional[Iterable[str]] = None):
        super().__init__(message)
        self.missing: List[str] = list(missing or [])


class InitializationCooldownError(ColdStartError):
    """A recent initialization failure is still inside its cooldown window."""

    def __init__(self, cause: BaseException, retry_after_s: float):
        super().__init__(f"Previous initialization failed: {cause}")
        self.cause = cause
        self.retry_after_s = retry_after_s

    @property
    def status_code(self) -> int:
        return getattr(self.cause, "status_code", 500)


class UnsupportedEventError(ColdStartError):
    """The invocation event is not a shape any event handler recognises."""

    status_code = 400


class PasswordHashingError(RuntimeError):
    pass


def is_database_error(exc: Optional[BaseException]) -> bool:
    """
    True if the failure (or anything in its cause chain) came from the
    database layer.
    """
    seen = set()
    while exc is not None and id(exc) not in seen:
        seen.add(id(exc))
        if isinstance(exc, (DatabaseError, asyncpg.PostgresError, asyncpg.InterfaceError)):
            return True
        if isinstance(exc, InitializationCooldownError):
            exc = exc.cause
            continue
        # Exception groups raised out of task groups
        nested = getattr(exc, "exceptions", None)
        if isinstance(nested, (list, tuple)) and any(is_database_error(e) for e in nested):
            return True
        exc = exc.__cause__
    return False


def is_configuration_error(exc: BaseException) -> bool:
    if isinstance(exc, InitializationCooldownError):
        exc = exc.cause
    return isinstance(exc, ConfigurationError)
