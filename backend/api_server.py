"""
Backend API Server
FastAPI application factory plus the in-process request entry point used by
the serverless transport adapter.
"""

import json
import os
from typing import Optional, List

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from logger import install_request_logging
from models.adapter_models import AppResponse, InternalRequest, RawBody, StructuredBody
from routes.health import API_VERSION, router as health_router

# Base URL for in-process requests; never resolved over the network.
_INJECT_BASE_URL = "http://backend.internal"


def _allowed_origins() -> List[str]:
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    return origins or ["http://localhost:3000"]


class RoutableApp:
    """
    A configured FastAPI app that can serve one request without a server
    loop. inject() runs the request through the ASGI stack in-process.
    """

    def __init__(self, app: FastAPI):
        self.app = app

    async def inject(self, request: InternalRequest) -> AppResponse:
        headers = dict(request.headers)
        content: Optional[bytes] = None

        if isinstance(request.body, StructuredBody):
            content = json.dumps(request.body.value).encode("utf-8")
            if not any(k.lower() == "content-type" for k in headers):
                headers["content-type"] = "application/json"
        elif isinstance(request.body, RawBody):
            content = request.body.content
            if isinstance(content, str):
                content = content.encode("utf-8")

        # Body length is recomputed for the re-encoded payload.
        headers = {k: v for k, v in headers.items() if k.lower() != "content-length"}

        if request.cookies and not any(k.lower() == "cookie" for k in headers):
            headers["cookie"] = "; ".join(f"{k}={v}" for k, v in request.cookies.items())

        transport = httpx.ASGITransport(app=self.app)
        async with httpx.AsyncClient(transport=transport, base_url=_INJECT_BASE_URL) as client:
            response = await client.request(
                request.method,
                request.path,
                params=request.query,
                headers=headers,
                content=content,
            )

        return AppResponse(
            status_code=response.status_code,
            headers=list(response.headers.multi_items()),
            body=response.content,
        )


def create_app(logging_enabled: bool = True) -> RoutableApp:
    """
    Build the application.

    Args:
        logging_enabled: install per-request logging middleware. Disabled when
            the app runs inside a serverless request/response cycle.
    """
    app = FastAPI(
        title="Cold-Start API",
        description="Serverless backend with lazy database bootstrap",
        version=API_VERSION,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    if logging_enabled:
        install_request_logging(app)

    app.include_router(health_router)
    return RoutableApp(app)
