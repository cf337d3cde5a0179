"""
Transport Adapter - Lambda events in, Lambda proxy results out.

Event decoding and result shaping are Mangum's: its handlers cover API
Gateway REST (payload v1), HTTP API and Function URLs (payload v2), ALB and
Lambda@Edge, including stage base-path stripping, base64 bodies,
multiValueHeaders and v2 cookies. Around that, each invocation is:

- run against the cold-start application instance,
- filtered down to the headers the application may see,
- answered exactly once.
"""

import json
import time
import traceback
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit

from mangum.adapter import DEFAULT_TEXT_MIME_TYPES
from mangum.handlers import ALB, APIGateway, HTTPGateway, LambdaAtEdge
from mangum.handlers.utils import get_server_and_port, maybe_encode_body, strip_api_gateway_path
from mangum.types import LambdaConfig, LambdaHandler
from starlette.datastructures import QueryParams
from starlette.requests import cookie_parser

from cold_start import ColdStartInitializer
from errors import (
    ConfigurationError,
    UnsupportedEventError,
    is_configuration_error,
    is_database_error,
)
from logger import log_error, log_performance, logger
from models.adapter_models import (
    ABSENT,
    AppResponse,
    Body,
    InternalRequest,
    RawBody,
    StructuredBody,
)
from models.response_models import ErrorResponse
from settings import DEFAULT_RESERVED_HEADER_PREFIXES, REQUIRED_VARIABLES, is_development

# Transport artifacts that never reach the application
HOP_HEADERS = frozenset({"host", "connection"})

# Headers the platform computes for the final payload
_RECOMPUTED_HEADERS = frozenset({"content-length"})


class DirectInvocation(APIGateway):
    """
    Plain {"method", "url", "headers", "body"} events from a direct invoke or
    a test harness. Results are shaped like API Gateway REST responses.
    """

    @classmethod
    def infer(cls, event: Dict[str, Any], context: Any, config: LambdaConfig) -> bool:
        return "url" in event

    @property
    def body(self) -> bytes:
        body = self.event.get("body")
        if isinstance(body, (dict, list)):
            return json.dumps(body).encode("utf-8")
        return maybe_encode_body(body, is_base64=self.event.get("isBase64Encoded", False))

    @property
    def scope(self) -> Dict[str, Any]:
        parts = urlsplit(self.event["url"])
        headers = {
            k.lower(): ", ".join(v) if isinstance(v, list) else str(v)
            for k, v in (self.event.get("headers") or {}).items()
        }

        query = parse_qsl(parts.query, keep_blank_values=True)
        for key, value in (self.event.get("query") or {}).items():
            for item in value if isinstance(value, list) else [value]:
                if (key, str(item)) not in query:
                    query.append((key, str(item)))

        return {
            "type": "http",
            "http_version": "1.1",
            "method": str(self.event.get("method") or "GET").upper(),
            "headers": [[k.encode(), v.encode()] for k, v in headers.items()],
            "path": strip_api_gateway_path(
                parts.path or "/", api_gateway_base_path=self.config["api_gateway_base_path"]
            ),
            "raw_path": None,
            "root_path": "",
            "scheme": headers.get("x-forwarded-proto", "https"),
            "query_string": urlencode(query).encode(),
            "server": get_server_and_port(headers),
            "client": (None, 0),
            "asgi": {"version": "3.0", "spec_version": "2.0"},
            "aws.event": self.event,
            "aws.context": self.context,
        }


EVENT_HANDLERS = (DirectInvocation, ALB, HTTPGateway, APIGateway, LambdaAtEdge)


def lambda_config(base_path: str = "") -> LambdaConfig:
    return LambdaConfig(
        api_gateway_base_path=base_path or "/",
        text_mime_types=list(DEFAULT_TEXT_MIME_TYPES),
        exclude_headers=[],
    )


def infer_handler(event: Dict[str, Any], context: Any, config: LambdaConfig) -> LambdaHandler:
    """Pick the Mangum handler for this event shape."""
    if not isinstance(event, dict):
        raise UnsupportedEventError(f"Expected a JSON object event, got {type(event).__name__}")

    # Some producers send explicit nulls for optional sections
    nulls = [key for key in ("requestContext", "headers") if key in event and event[key] is None]
    if nulls:
        event = {**event, **{key: {} for key in nulls}}

    for handler_cls in EVENT_HANDLERS:
        if handler_cls.infer(event, context, config):
            return handler_cls(event, context, config)
    raise UnsupportedEventError("Unable to determine the event source for this invocation")


# ============================================
# Request translation
# ============================================

def filter_headers(
    headers: Iterable[Tuple[str, str]],
    reserved_prefixes: Tuple[str, ...] = DEFAULT_RESERVED_HEADER_PREFIXES,
) -> Dict[str, str]:
    """Drop platform-reserved and hop-by-hop headers; keep the rest as given."""
    result: Dict[str, str] = {}
    for key, value in headers:
        lower_key = key.lower()
        if lower_key in HOP_HEADERS or lower_key.startswith(reserved_prefixes):
            continue
        result[key] = value
    return result


def parse_body(body: Any) -> Body:
    """
    Normalize a request body.

    Text is parsed as JSON when possible and otherwise forwarded raw. Bytes
    that are not UTF-8 are forwarded untouched. Already-structured values
    pass through; missing bodies become ABSENT.
    """
    if body is None or body == "" or body == b"":
        return ABSENT

    if isinstance(body, (bytes, bytearray)):
        try:
            body = bytes(body).decode("utf-8")
        except UnicodeDecodeError:
            return RawBody(bytes(body))

    if isinstance(body, str):
        try:
            return StructuredBody(json.loads(body))
        except ValueError:
            return RawBody(body)

    return StructuredBody(body)


def to_internal_request(
    handler: LambdaHandler,
    reserved_prefixes: Tuple[str, ...] = DEFAULT_RESERVED_HEADER_PREFIXES,
) -> InternalRequest:
    """Translate the event behind a Mangum handler into the application's request contract."""
    try:
        scope = handler.scope
        raw_body = handler.body
    except (KeyError, TypeError, AttributeError) as e:
        raise UnsupportedEventError(f"Malformed {type(handler).__name__} event: {e!r}") from e

    headers = [(k.decode("latin-1"), v.decode("latin-1")) for k, v in scope["headers"]]
    cookie_header = next((v for k, v in headers if k.lower() == "cookie"), "")

    event_body = scope["aws.event"].get("body")
    return InternalRequest(
        method=scope["method"].upper(),
        path=scope["path"] or "/",
        headers=filter_headers(headers, reserved_prefixes),
        query=QueryParams(scope["query_string"]).multi_items(),
        body=parse_body(event_body if isinstance(event_body, (dict, list)) else raw_body),
        cookies=cookie_parser(cookie_header),
    )


# ============================================
# Response writing
# ============================================

class ResponseWriter:
    """
    Collects the single response of one invocation and hands it to the Mangum
    handler for shaping.

    Only the first json()/send() call takes effect; later calls return False
    and change nothing.
    """

    def __init__(self, handler: Optional[LambdaHandler] = None):
        self.handler = handler
        self.status_code = 200
        self.headers: List[Tuple[str, str]] = []
        self.body = b""
        self.sent = False

    def set_header(self, name: str, value: str) -> None:
        if self.sent or name.lower() in _RECOMPUTED_HEADERS:
            return
        self.headers.append((name.lower(), str(value)))

    def clear_headers(self) -> None:
        if not self.sent:
            self.headers = []

    def status(self, code: int) -> "ResponseWriter":
        if not self.sent:
            self.status_code = code
        return self

    def json(self, value: Any) -> bool:
        if self.sent:
            return False
        body = json.dumps(value, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
        if not any(k == "content-type" for k, _ in self.headers):
            self.headers.append(("content-type", "application/json"))
        return self._finish(body)

    def send(self, body: Any = b"") -> bool:
        if self.sent:
            return False
        if body is None:
            body = b""
        elif isinstance(body, str):
            body = body.encode("utf-8")
        return self._finish(bytes(body))

    def _finish(self, body: bytes) -> bool:
        self.body = body
        self.sent = True
        return True

    def result(self) -> Dict[str, Any]:
        if not self.sent:
            # Never expected: every path in handle() sends.
            logger.error("Invocation finished without a response")
            self.status(500).json({"error": "Internal server error", "message": "No response was produced"})

        if self.handler is None:
            # No event source to shape for; API Gateway REST layout.
            return {
                "statusCode": self.status_code,
                "headers": dict(self.headers),
                "body": self.body.decode("utf-8", errors="replace"),
                "isBase64Encoded": False,
            }

        return self.handler({
            "status": self.status_code,
            "headers": [[k.encode("latin-1"), v.encode("latin-1")] for k, v in self.headers],
            "body": self.body,
        })


def write_response(writer: ResponseWriter, response: AppResponse) -> None:
    """Copy an application response onto the writer."""
    for name, value in response.headers:
        if value is not None:
            writer.set_header(name, value)

    writer.status(response.status_code or 200)

    if "application/json" in response.content_type.lower():
        try:
            writer.json(json.loads(response.text))
        except (ValueError, TypeError):
            writer.send(response.text)
    else:
        writer.send(response.body or b"")


# ============================================
# Adapter
# ============================================

def error_payload(error: BaseException) -> Tuple[int, Dict[str, Any]]:
    """Status code and body for a failure during an invocation."""
    if is_configuration_error(error):
        cause = getattr(error, "cause", error)
        missing = getattr(cause, "missing", None) or None
        payload = ErrorResponse(
            error="Configuration error",
            code="CONFIGURATION_ERROR",
            message="Missing or invalid environment variables",
            details=f"Check environment variables: {', '.join(REQUIRED_VARIABLES)}",
            hint="Set the variables in the function configuration and redeploy",
            missing=missing,
        )
        status = 503
    elif isinstance(error, UnsupportedEventError):
        payload = ErrorResponse(error="Bad request", code="UNSUPPORTED_EVENT", message=str(error))
        status = 400
    else:
        payload = ErrorResponse(error="Internal server error", message="An unexpected error occurred")
        status = 500

    if is_development():
        payload.detail = str(error)
        payload.stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))

    return status, payload.model_dump(exclude_none=True)


class TransportAdapter:
    """
    Serves invocations against a lazily-initialized application.

    Args:
        load_initializer: returns the process's ColdStartInitializer. Called on
            every invocation; configuration problems surface here.
        reserved_prefixes: header-name prefixes owned by the platform.
        base_path: API Gateway stage/mapping prefix stripped from paths.
    """

    def __init__(
        self,
        load_initializer: Callable[[], ColdStartInitializer],
        reserved_prefixes: Tuple[str, ...] = DEFAULT_RESERVED_HEADER_PREFIXES,
        base_path: str = "",
    ):
        self._load_initializer = load_initializer
        self.reserved_prefixes = tuple(p.lower() for p in reserved_prefixes)
        self.config = lambda_config(base_path)

    async def handle(self, event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
        """Run one invocation. Always returns a proxy result; never raises."""
        start = time.time()

        try:
            handler = infer_handler(event, context, self.config)
        except UnsupportedEventError as e:
            logger.warning("Unsupported invocation event", error=str(e))
            writer = ResponseWriter()
            self._send_error(writer, e)
            return writer.result()

        writer = ResponseWriter(handler)

        try:
            initializer = self._load_initializer()
        except Exception as e:
            self._send_load_error(writer, e)
            return writer.result()

        request: Optional[InternalRequest] = None
        try:
            app = await initializer.get_app()
            request = to_internal_request(handler, self.reserved_prefixes)
            response = await app.inject(request)
            write_response(writer, response)
            log_performance(
                "invocation",
                (time.time() - start) * 1000,
                {"method": request.method, "path": request.path, "status_code": writer.status_code},
            )
        except Exception as e:
            log_error(e, context={"path": request.path if request else None})
            if is_database_error(e):
                logger.error("Database-related error detected - resetting connection state")
                initializer.reset()
            logger.info("Initializer state after failure", initializer=initializer.status())
            self._send_error(writer, e)

        return writer.result()

    def _send_error(self, writer: ResponseWriter, error: BaseException) -> None:
        if writer.sent:
            return
        status, body = error_payload(error)
        writer.clear_headers()
        writer.status(status).json(body)

    def _send_load_error(self, writer: ResponseWriter, error: BaseException) -> None:
        logger.exception("Failed to load application modules", error_type=type(error).__name__)
        if isinstance(error, ConfigurationError):
            self._send_error(writer, error)
            return

        payload = ErrorResponse(
            error="Internal server error",
            code="INITIALIZATION_FAILED",
            message="Failed to initialize application",
            hint="Check the function logs for module import errors",
        )
        if is_development():
            payload.details = str(error).split("\n")[0]
        writer.status(500).json(payload.model_dump(exclude_none=True))
