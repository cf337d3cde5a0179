"""
Structured logging for the backend.

One powertools Logger is shared by every module so the service name, level
and Lambda context keys stay consistent. Extra fields are passed as keyword
arguments and land as top-level JSON keys.
"""

import os
import time
import traceback
from typing import Any, Dict, Optional

from aws_lambda_powertools import Logger
from fastapi import FastAPI, Request

SERVICE_NAME = os.getenv("SERVICE_NAME", "coldstart-api")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

logger = Logger(service=SERVICE_NAME, level=LOG_LEVEL)


def log_error(error: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
    """Log an exception with its type, text and stack."""
    logger.error(
        "Application error",
        error={
            "type": type(error).__name__,
            "detail": str(error),
            "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
        },
        context=context or {},
    )


def log_performance(operation: str, duration_ms: float, metadata: Optional[Dict[str, Any]] = None) -> None:
    logger.info(
        "Performance metric",
        operation=operation,
        duration_ms=round(duration_ms, 2),
        metadata=metadata or {},
    )


def install_request_logging(app: FastAPI) -> None:
    """
    Attach incoming/completed request logging to a FastAPI app.

    Only installed when the app owns its own logging (local server); the
    Lambda adapter builds the app with logging disabled.
    """

    @app.middleware("http")
    async def request_logger(request: Request, call_next):
        start = time.time()
        logger.info(
            "Incoming request",
            method=request.method,
            url=str(request.url.path),
            remote_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent", ""),
        )
        response = await call_next(request)
        logger.info(
            "Request completed",
            method=request.method,
            url=str(request.url.path),
            status_code=response.status_code,
            response_time_ms=round((time.time() - start) * 1000, 2),
        )
        return response
