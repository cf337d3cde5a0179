"""
Cold-Start Initializer - lazy, single-flight bootstrap of the application.

A warm Lambda process keeps one ready application instance and one database
pool. The first invocation (or the first one after a failure) builds them:

- Only one initialization attempt runs at a time; concurrent callers await
  the same future and all see the same outcome.
- Database connects are retried with a per-attempt timeout and exponential
  backoff.
- A failed attempt is cached for a cooldown window so a broken dependency is
  not hammered on every invocation.
"""

import asyncio
import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from errors import (
    AppConstructionError,
    ConfigurationError,
    DatabaseConnectionError,
    InitializationCooldownError,
)
from logger import logger


@dataclass(frozen=True)
class InitPolicy:
    max_db_retries: int = 3
    db_timeout_s: float = 10.0
    backoff_base_s: float = 1.0
    backoff_cap_s: float = 5.0
    cooldown_s: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> "InitPolicy":
        return cls(
            max_db_retries=max(1, settings.db_retries),
            db_timeout_s=settings.db_timeout_s,
            backoff_base_s=settings.backoff_base_s,
            backoff_cap_s=settings.backoff_cap_s,
            cooldown_s=settings.cooldown_s,
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay after a failed attempt (1-based): 1s, 2s, 4s... capped."""
        return min(self.backoff_base_s * (2 ** (attempt - 1)), self.backoff_cap_s)


@dataclass
class CachedFailure:
    error: BaseException
    timestamp: float


class ColdStartInitializer:
    """
    Owns the process-wide application instance and its bootstrap state.

    Args:
        connect: no-argument coroutine function that connects the database.
        build_app: called as build_app(logging_enabled=False); may return the
            instance or an awaitable resolving to it.
        policy: retry/timeout/cooldown knobs.
        clock: monotonic time source (seconds).
        sleep: coroutine used for backoff waits.
    """

    def __init__(
        self,
        connect: Callable[[], Awaitable[None]],
        build_app: Callable[..., Any],
        policy: Optional[InitPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._connect = connect
        self._build_app = build_app
        self.policy = policy or InitPolicy()
        self._clock = clock
        self._sleep = sleep

        self.instance: Any = None
        self.database_connected = False
        self._inflight: Optional[asyncio.Future] = None
        self._failure: Optional[CachedFailure] = None

    @property
    def initializing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def cached_failure(self) -> Optional[CachedFailure]:
        return self._failure

    async def get_app(self) -> Any:
        """Return the ready application instance, building it if needed."""
        if self.instance is not None:
            return self.instance

        if self._failure is not None:
            age = self._clock() - self._failure.timestamp
            if age >= self.policy.cooldown_s:
                logger.info("Resetting initialization error state for retry", error_age_s=round(age, 3))
                self._failure = None
            else:
                raise InitializationCooldownError(
                    self._failure.error,
                    retry_after_s=self.policy.cooldown_s - age,
                )

        inflight = self._inflight
        if inflight is None:
            inflight = self._inflight = asyncio.ensure_future(self._initialize())
        else:
            logger.debug("Initialization in progress, awaiting shared attempt")

        # Shield so one cancelled caller does not abort the shared attempt.
        return await asyncio.shield(inflight)

    def reset(self) -> None:
        """Drop the cached instance and connection flag after a database failure."""
        logger.warning("Resetting application instance and database state")
        self.instance = None
        self.database_connected = False

    def status(self) -> Dict[str, Any]:
        failure = self._failure
        return {
            "ready": self.instance is not None,
            "database_connected": self.database_connected,
            "initializing": self.initializing,
            "last_error": str(failure.error) if failure else None,
            "last_error_age_s": round(self._clock() - failure.timestamp, 3) if failure else None,
        }

    async def _initialize(self) -> Any:
        try:
            if not self.database_connected:
                await self._connect_with_retry()

            logger.info("Creating application instance")
            try:
                app = self._build_app(logging_enabled=False)
                if inspect.isawaitable(app):
                    app = await app
            except ConfigurationError:
                raise
            except Exception as e:
                raise AppConstructionError(f"Application construction failed: {e}") from e

            self.instance = app
            self._failure = None
            logger.info("Application instance initialized")
            return app
        except Exception as e:
            logger.exception("Error initializing application", error_type=type(e).__name__)
            self.instance = None
            self.database_connected = False
            self._failure = CachedFailure(error=e, timestamp=self._clock())
            raise
        finally:
            self._inflight = None

    async def _connect_with_retry(self) -> None:
        retries = self.policy.max_db_retries
        last_error: Optional[BaseException] = None

        for attempt in range(1, retries + 1):
            logger.info("Database connection attempt", attempt=attempt, max_attempts=retries)
            try:
                await asyncio.wait_for(self._connect(), timeout=self.policy.db_timeout_s)
            except ConfigurationError:
                # Needs an operator, not a retry.
                self.database_connected = False
                raise
            except asyncio.TimeoutError:
                last_error = DatabaseConnectionError("Database connection timeout")
                logger.warning("Database connection attempt timed out", attempt=attempt)
            except Exception as e:
                last_error = e
                logger.warning("Database connection attempt failed", attempt=attempt, error=str(e))
            else:
                self.database_connected = True
                logger.info("Database connected", attempt=attempt)
                return

            if attempt < retries:
                delay = self.policy.backoff_delay(attempt)
                logger.info("Retrying database connection", delay_s=delay)
                await self._sleep(delay)

        self.database_connected = False
        raise DatabaseConnectionError(
            f"Database connection failed after {retries} attempts: {last_error}"
        ) from last_error
