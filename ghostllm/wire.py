"""Raw HTTP/1.1 request parsing and response serialization.

The gateway speaks a small subset of HTTP/1.1 directly on the socket: one
request per connection, no chunked encoding, no keep-alive. ``parse_request``
turns a received byte buffer into an HttpRequest; ``HttpResponse.to_bytes``
produces the bytes written back.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel

from ghostllm.errors import ProtocolError
from ghostllm.models import ErrorDetail, ErrorResponse

SERVER_TAG = "GhostLLM/0.2.0"

HEADER_TERMINATOR = b"\r\n\r\n"

STATUS_TEXT: Dict[int, str] = {
    200: "OK",
    201: "Created",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    413: "Payload Too Large",
    429: "Too Many Requests",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
}

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

# Set by the builder itself; caller-supplied copies are dropped.
_RESERVED_HEADERS = ("content-length", "server")


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    @classmethod
    def parse(cls, token: str) -> "HttpMethod":
        """Parse a method token. Unrecognized tokens are treated as GET."""
        try:
            return cls(token)
        except ValueError:
            return cls.GET


@dataclass
class HttpRequest:
    """A parsed HTTP request."""

    method: HttpMethod = HttpMethod.GET
    path: str = "/"
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> Optional[str]:
        """Look up a header, trying the exact name before a case-insensitive match."""
        if name in self.headers:
            return self.headers[name]
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    @property
    def content_length(self) -> Optional[int]:
        raw = self.header("Content-Length")
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            return None


def parse_request(raw: bytes) -> HttpRequest:
    """Parse a raw request buffer.

    The request line is split on its first two spaces into method, path and
    version. A missing path or version falls back to "/" and "HTTP/1.1".
    Headers are read line by line up to the first empty line; the body is
    everything after the first CRLF-CRLF.

    Raises:
        ProtocolError: If the request line is blank.
    """
    lines = raw.split(b"\r\n")
    request_line = lines[0].decode("latin-1").strip(" ")
    if not request_line:
        raise ProtocolError("Malformed request line")

    request = HttpRequest()
    tokens = request_line.split(" ", 2)
    request.method = HttpMethod.parse(tokens[0])
    if len(tokens) > 1 and tokens[1]:
        request.path = tokens[1]
    if len(tokens) > 2 and tokens[2]:
        request.version = tokens[2]

    for line in lines[1:]:
        if not line:
            break
        name, sep, value = line.decode("latin-1").partition(":")
        if not sep:
            continue
        request.headers[name.strip(" \t")] = value.strip(" \t")

    _, sep, body = raw.partition(HEADER_TERMINATOR)
    request.body = body if sep else b""
    return request


@dataclass
class HttpResponse:
    """An HTTP response ready to be serialized."""

    status: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def reason(self) -> str:
        return STATUS_TEXT.get(self.status, "Unknown")

    def to_bytes(self) -> bytes:
        """Serialize the response. Content-Length and Server are always set."""
        lines = [
            "HTTP/1.1 {} {}".format(self.status, self.reason),
            "Content-Length: {}".format(len(self.body)),
            "Server: {}".format(SERVER_TAG),
        ]
        for name, value in self.headers.items():
            if name.lower() in _RESERVED_HEADERS:
                continue
            lines.append("{}: {}".format(name, value))
        head = "\r\n".join(lines) + "\r\n\r\n"
        return head.encode("latin-1") + self.body


def json_response(status: int, payload: BaseModel) -> HttpResponse:
    """Build a JSON response from a pydantic model."""
    body = payload.model_dump_json()
    headers = {"Content-Type": "application/json"}
    headers.update(CORS_HEADERS)
    return HttpResponse(status=status, body=body.encode("utf-8"), headers=headers)


def error_response(status: int, message: str, kind: str) -> HttpResponse:
    """Build an error envelope response."""
    envelope = ErrorResponse(error=ErrorDetail(message=message, type=kind, code=status))
    return json_response(status, envelope)


def cors_preflight() -> HttpResponse:
    """Answer a CORS preflight: 200, empty body, permissive CORS headers."""
    return HttpResponse(status=200, headers=dict(CORS_HEADERS))
