"""
Internal request/response contract between the transport adapter and the
application instance.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Absent:
    """No request body."""


ABSENT = Absent()


@dataclass(frozen=True)
class RawBody:
    """Body that is not JSON. Text when it decodes as UTF-8, bytes otherwise."""
    content: Union[str, bytes]


@dataclass(frozen=True)
class StructuredBody:
    """Body already parsed into JSON-compatible data."""
    value: Any


Body = Union[Absent, RawBody, StructuredBody]


@dataclass
class InternalRequest:
    method: str
    path: str
    headers: Dict[str, str] = field(default_factory=dict)
    query: List[Tuple[str, str]] = field(default_factory=list)
    body: Body = ABSENT
    cookies: Dict[str, str] = field(default_factory=dict)


@dataclass
class AppResponse:
    status_code: Optional[int] = 200
    # Ordered (name, value) pairs; names may repeat (e.g. set-cookie)
    headers: List[Tuple[str, Optional[str]]] = field(default_factory=list)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers:
            if key.lower() == name:
                return value
        return None

    @property
    def content_type(self) -> str:
        return self.header("content-type") or ""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")
