"""
Health route module.
Handles /health and /health/db endpoints.
"""

from fastapi import APIRouter

import database
from models.response_models import HealthResponse, DatabaseHealthResponse
from settings import environment

API_VERSION = "1.0.0"

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Liveness check. No I/O."""
    return HealthResponse(status="healthy", version=API_VERSION, environment=environment())


@router.get("/health/db", response_model=DatabaseHealthResponse)
async def database_health_check():
    """
    Readiness check against the connection pool.

    Database errors are not caught here: they propagate to the transport
    adapter, which resets the cold-start state.
    """
    await database.ping()
    return DatabaseHealthResponse(status="healthy", database="connected")
