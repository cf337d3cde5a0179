"""
Models package.
Pydantic models for API responses and dataclasses for the adapter's
internal request/response contract.
"""

from models.adapter_models import (  # noqa: F401
    ABSENT,
    Absent,
    RawBody,
    StructuredBody,
    InternalRequest,
    AppResponse,
)

from models.response_models import (  # noqa: F401
    HealthResponse,
    DatabaseHealthResponse,
    ErrorResponse,
)
