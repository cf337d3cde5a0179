"""
Response models for the backend API.
"""

from typing import Optional, List
from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str


class DatabaseHealthResponse(BaseModel):
    status: str
    database: str


class ErrorResponse(BaseModel):
    error: str
    message: str
    code: Optional[str] = None
    hint: Optional[str] = None
    details: Optional[str] = None
    missing: Optional[List[str]] = None
    # Only populated when ENVIRONMENT=development
    detail: Optional[str] = None
    stack: Optional[str] = None
