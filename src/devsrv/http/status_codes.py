"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes dev-srv sends, and nothing else.

    ┌──────────┬────────────────────────────────────────────────────────┐
    │  Code    │  When                                                  │
    ├──────────┼────────────────────────────────────────────────────────┤
    │  200     │  file or directory listing served                      │
    │  204     │  OPTIONS / CORS preflight                              │
    │  301     │  directory without "/", or ".../index.html"            │
    │  304     │  If-None-Match / If-Modified-Since still valid         │
    │  400     │  malformed request line, ".." segment                  │
    │  403     │  unreadable file, listing disabled                     │
    │  404     │  nothing found (after the ".html" fallback)            │
    │  405     │  anything but GET, HEAD, OPTIONS                       │
    │  408     │  request not complete within read_timeout              │
    │  413     │  request larger than max_request_size                  │
    │  500     │  unexpected I/O or handler error                       │
    │  503     │  listener's worker queue is full                       │
    │  505     │  not HTTP/1.0 or HTTP/1.1                              │
    └──────────┴────────────────────────────────────────────────────────┘

Reason phrases come from the standard library's table, so they follow
the current RFC wording of the running interpreter.
=============================================================================
"""

from enum import IntEnum
from http import HTTPStatus as _Standard


class HTTPStatus(IntEnum):
    """
    Being an IntEnum, members compare equal to plain ints:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    OK = 200
    NO_CONTENT = 204

    MOVED_PERMANENTLY = 301
    FOUND = 302
    NOT_MODIFIED = 304

    BAD_REQUEST = 400
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413

    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line (``HTTP/1.1 404 Not Found``)."""
        return _Standard(self.value).phrase
