"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes collected by a Connection into an HTTPRequest.

=============================================================================
REQUEST FORMAT (RFC 9112)
=============================================================================

    GET /docs/intro?lang=en HTTP/1.1\r\n        ← request line
    Host: localhost:8080\r\n                   ← headers (case-insensitive)
    If-None-Match: "1718445600-1270"\r\n
    \r\n                                       ← end of headers
    [body]                                     ← Content-Length bytes

A static file server only looks at the method, the path, a handful of
headers (Connection, If-None-Match, Origin) and never at the body, but
the body is still framed correctly so keep-alive connections stay in
sync when a client sends one.

=============================================================================
SECURITY
=============================================================================

The URL path is percent-decoded here, once. A decoded path containing a
".." SEGMENT is rejected with 400 before it can reach the filesystem:

    /css/../../etc/passwd      → 400
    /%2e%2e/secret             → 400 (decoded first)
    /notes/v1..v2.txt          → allowed ("v1..v2.txt" is a file name)

The file resolver normalizes the name again before joining it to the
root (clean_name), so nothing that reaches it can address a file above
the root.
=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import parse_qs, unquote, urlsplit
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code the listener answers with:

        400 Bad Request                 malformed syntax, path traversal
        405 Method Not Allowed          unknown method token
        413 Payload Too Large           request exceeds max_request_size
        505 HTTP Version Not Supported  anything but HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:         Request method ("GET", "HEAD", ...).
        path:           Percent-decoded path without the query string.
        version:        "HTTP/1.1" or "HTTP/1.0".
        headers:        Header map with LOWERCASE names.
        query:          Raw query string (kept verbatim for redirects).
        query_params:   Parsed query string, name → list of values.
        body:           Raw body bytes (Content-Length framed).
        client_address: (ip, port) of the peer.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query: str = ""
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple[str, int] = ("", 0)

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client wants the connection kept open.

            HTTP/1.1: keep-alive unless "Connection: close"
            HTTP/1.0: close unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    Usage:
        parser = RequestParser(max_request_size=1024 * 1024)
        request = parser.parse(raw_bytes, conn.address)
    """

    VALID_METHODS = {
        "GET", "HEAD", "POST", "PUT", "DELETE",
        "PATCH", "OPTIONS", "TRACE", "CONNECT",
    }

    # METHOD SP request-target SP HTTP-version
    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    # field-name ":" OWS field-value OWS
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # Header bytes are ISO-8859-1 per RFC 9110; this decode cannot fail
        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        if not lines or not lines[0]:
            raise HTTPParseError("Empty request line")

        method, path, query, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query=query,
            query_params=parse_qs(query, keep_blank_values=True),
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str, str]:
        """
        Split "GET /path?query HTTP/1.1" into (method, path, query, version).
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        # Absolute-form targets ("GET http://host/path") are reduced to the path
        parts = urlsplit(target)
        path = unquote(parts.path) or "/"
        if not path.startswith("/"):
            raise HTTPParseError(f"Invalid request target: {target!r}")

        if ".." in path.replace("\\", "/").split("/"):
            raise HTTPParseError("Invalid path: contains '..' segment")

        if "\x00" in path:
            raise HTTPParseError("Invalid path: contains NUL byte")

        return method, path, parts.query, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dict with lowercase names.

        Obsolete line folding (continuation lines starting with whitespace)
        is joined to the previous header. Repeated headers are combined
        with ", " as RFC 9110 §5.3 allows.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient: skip malformed header lines

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 1024 * 1024
) -> HTTPRequest:
    """Parse one request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
