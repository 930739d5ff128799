"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.1 responses with proper formatting per RFC 9112.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP RESPONSE STRUCTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    HTTP/1.1 200 OK\r\n                      ← status line            │
    │    Content-Type: text/html; charset=utf-8\r\n                        │
    │    Content-Length: 1270\r\n                  ← always present        │
    │    Access-Control-Allow-Origin: *\r\n        ← added by CORS layer   │
    │    ETag: "1718445600-1270"\r\n                                      │
    │    Date: Sat, 15 Jun 2024 10:00:00 GMT\r\n   ← auto-added            │
    │    Server: dev-srv/1.0.0\r\n                 ← auto-added            │
    │    \r\n                                      ← separator             │
    │    <!DOCTYPE html>...                        ← body (not for HEAD)   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Content-Length is always sent, so a keep-alive client knows where one
response ends and the next begins. HEAD responses keep the
Content-Length of the equivalent GET but send no body bytes.

=============================================================================
BUILDER PATTERN
=============================================================================

    response = (ResponseBuilder()
        .status(HTTPStatus.OK)
        .content_type("text/css; charset=utf-8")
        .header("ETag", etag)
        .body(content)
        .build())

Each method returns the builder; build() returns the HTTPResponse.
=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Union

from .status_codes import HTTPStatus


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    Middleware receives this object after the handler ran, so it can
    observe the final status and body (the request logger does exactly
    that) or add headers (the CORS layer).
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """Status line, e.g. ``HTTP/1.1 200 OK``."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a response header. Returns self for chaining."""
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = "dev-srv", include_body: bool = True) -> bytes:
        """
        Serialize the response for socket.sendall().

        Args:
            server_name: Value for the Server header.
            include_body: False for HEAD requests. Headers (including
                          Content-Length) are identical either way.

        Returns:
            Complete HTTP response as bytes.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))
        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if "Server" not in response_headers:
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("latin-1", errors="replace") + b"\r\n"

        if not include_body:
            return header_bytes
        return header_bytes + self.body


class ResponseBuilder:
    """
    Fluent builder for constructing HTTP responses.

    Usage:
        response = ResponseBuilder().status(HTTPStatus.NOT_FOUND).text("gone").build()
        response = ResponseBuilder().redirect("/docs/", permanent=True).build()
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Set the raw body (strings are encoded as UTF-8)."""
        if isinstance(body, str):
            self._body = body.encode("utf-8")
        else:
            self._body = body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: str) -> "ResponseBuilder":
        return self.text(html, content_type="text/html; charset=utf-8")

    def redirect(self, location: str, permanent: bool = False) -> "ResponseBuilder":
        """
        Redirect the client to another URL.

        301 (permanent) is what a directory request without its trailing
        slash gets: relative links inside an index page only resolve
        correctly against "/docs/", never against "/docs".
        """
        self._status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
        self._headers["Location"] = location
        return self

    def close_connection(self) -> "ResponseBuilder":
        """Tell the client this connection closes after the response."""
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 9110 IMF-fixdate).

    Example: ``Wed, 01 Jan 2026 12:00:00 GMT``. HTTP dates are always
    GMT, so aware datetimes are converted to UTC first.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# ERROR RESPONSES
# =============================================================================
#
# Error bodies are short plain-text lines ("404 page not found"), which is
# what browsers and curl users of a static file server expect to see.
#
# =============================================================================

def error_response(status: HTTPStatus, message: str = "") -> HTTPResponse:
    """Plain-text error response: ``<code> <message>``."""
    text = f"{int(status)} {message or status.phrase.lower()}\n"
    return ResponseBuilder().status(status).text(text).build()


def bad_request(message: str = "bad request") -> HTTPResponse:
    return error_response(HTTPStatus.BAD_REQUEST, message)


def forbidden(message: str = "forbidden") -> HTTPResponse:
    return error_response(HTTPStatus.FORBIDDEN, message)


def not_found(message: str = "page not found") -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, message)


def method_not_allowed(allowed_methods: list[str]) -> HTTPResponse:
    """405 with the Allow header RFC 9110 requires."""
    response = error_response(HTTPStatus.METHOD_NOT_ALLOWED, "method not allowed")
    return response.set_header("Allow", ", ".join(allowed_methods))


def internal_error(message: str = "internal server error") -> HTTPResponse:
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)
