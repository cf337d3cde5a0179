"""
Runtime configuration for the cold-start backend.

Values come from environment variables (a local .env file is loaded in
development). Required variables are validated once by load_settings().
"""

import os
from dataclasses import dataclass
from typing import Tuple

from dotenv import load_dotenv

from errors import ConfigurationError

load_dotenv()

REQUIRED_VARIABLES = ("DATABASE_URL", "JWT_SECRET", "JWT_REFRESH_SECRET")
DEFAULT_RESERVED_HEADER_PREFIXES = ("x-vercel", "x-amzn")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}", missing=[name])


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", missing=[name])


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip().lower() for item in raw.split(",") if item.strip())


def api_base_path() -> str:
    return os.getenv("API_BASE_PATH", "").strip().rstrip("/")


def reserved_header_prefixes() -> Tuple[str, ...]:
    return _env_list("RESERVED_HEADER_PREFIXES", DEFAULT_RESERVED_HEADER_PREFIXES)


def environment() -> str:
    return os.getenv("ENVIRONMENT", "production").strip().lower()


def is_development() -> bool:
    """True when error responses may carry diagnostic detail."""
    return environment() == "development"


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: str
    jwt_refresh_secret: str
    environment: str = "production"
    api_base_path: str = ""
    reserved_header_prefixes: Tuple[str, ...] = DEFAULT_RESERVED_HEADER_PREFIXES
    # Cold start
    db_retries: int = 3
    db_timeout_s: float = 10.0
    backoff_base_s: float = 1.0
    backoff_cap_s: float = 5.0
    cooldown_s: float = 30.0


def load_settings() -> Settings:
    """
    Build Settings from the environment.

    Raises:
        ConfigurationError: if a required variable is missing or a numeric
            variable cannot be parsed.
    """
    missing = [name for name in REQUIRED_VARIABLES if not os.getenv(name, "").strip()]
    if missing:
        raise ConfigurationError(
            f"Environment validation failed: missing {', '.join(missing)}",
            missing=missing,
        )

    return Settings(
        database_url=os.environ["DATABASE_URL"].strip(),
        jwt_secret=os.environ["JWT_SECRET"].strip(),
        jwt_refresh_secret=os.environ["JWT_REFRESH_SECRET"].strip(),
        environment=environment(),
        api_base_path=api_base_path(),
        reserved_header_prefixes=reserved_header_prefixes(),
        db_retries=_env_int("COLD_START_DB_RETRIES", 3),
        db_timeout_s=_env_float("COLD_START_DB_TIMEOUT_S", 10.0),
        backoff_base_s=_env_float("COLD_START_BACKOFF_BASE_S", 1.0),
        backoff_cap_s=_env_float("COLD_START_BACKOFF_CAP_S", 5.0),
        cooldown_s=_env_float("COLD_START_COOLDOWN_S", 30.0),
    )
