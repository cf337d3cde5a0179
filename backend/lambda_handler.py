"""
Lambda Handler - serves API Gateway events through the transport adapter.

Cold Start Behavior:
- Nothing touches the database at import time; the first invocation builds
  the app and the connection pool through the cold-start initializer.
- One event loop lives for the whole process so the pool and the shared
  initialization future stay bound to the same loop across invocations.
"""
import asyncio
import time
from typing import Any, Dict, Optional

_init_start = time.time()

from cold_start import ColdStartInitializer, InitPolicy  # noqa: E402
from database import connect_database  # noqa: E402
from logger import logger  # noqa: E402
from settings import api_base_path, load_settings, reserved_header_prefixes  # noqa: E402
from transport import TransportAdapter  # noqa: E402

_loop = asyncio.new_event_loop()
asyncio.set_event_loop(_loop)

# Process-wide initializer, created on first invocation
_initializer: Optional[ColdStartInitializer] = None


def _build_app(logging_enabled: bool = True):
    # Imported lazily so import-time failures surface as invocation errors.
    from api_server import create_app

    return create_app(logging_enabled=logging_enabled)


def get_initializer() -> ColdStartInitializer:
    """Get or create the process-wide initializer. Validates configuration on first use."""
    global _initializer
    if _initializer is None:
        settings = load_settings()
        _initializer = ColdStartInitializer(
            connect=connect_database,
            build_app=_build_app,
            policy=InitPolicy.from_settings(settings),
        )
    return _initializer


adapter = TransportAdapter(
    get_initializer,
    reserved_prefixes=reserved_header_prefixes(),
    base_path=api_base_path(),
)

_init_ms = int((time.time() - _init_start) * 1000)
logger.info("Lambda module init completed", init_ms=_init_ms)


@logger.inject_lambda_context
def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """AWS Lambda entry point."""
    return _loop.run_until_complete(adapter.handle(event, context))
