"""
=============================================================================
CORS (Cross-Origin Resource Sharing) MIDDLEWARE
=============================================================================

Every response from every listener carries

    Access-Control-Allow-Origin: *

so a page served on :8080 can fetch assets and JSON fixtures from the
tree served on :9090. That is the whole point of running several trees
side by side during development.

=============================================================================
PREFLIGHT
=============================================================================

    ┌─────────┐                                          ┌─────────┐
    │ Browser │─────────── OPTIONS /data.json ──────────▶│ dev-srv │
    │         │           Origin: http://localhost:8080  │  :9090  │
    │         │           Access-Control-Request-Method: │         │
    │         │             GET                          │         │
    │         │◀──────────────────────────────────────────│         │
    │         │    204 No Content                        │         │
    │         │    Access-Control-Allow-Origin: *        │         │
    │         │    Access-Control-Allow-Methods: GET,... │         │
    └─────────┘                                          └─────────┘

A preflight is answered here and never reaches the static handler. A
plain OPTIONS (no Access-Control-Request-Method) is answered the same
way; the static handler has nothing to say about it either.
=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.status_codes import HTTPStatus


ALLOW_ORIGIN_HEADER = "Access-Control-Allow-Origin"


@dataclass
class CORSConfig:
    allow_origin: str = "*"
    allow_methods: list[str] = field(default_factory=lambda: ["GET", "HEAD", "OPTIONS"])
    max_age: int = 86400


def add_cors_header(response: HTTPResponse, origin: str = "*") -> HTTPResponse:
    """Set the open cross-origin header on a response built outside the pipeline."""
    response.headers[ALLOW_ORIGIN_HEADER] = origin
    return response


class CORSMiddleware(Middleware):
    """
    Adds the cross-origin header and answers OPTIONS.

        MiddlewarePipeline(CORSMiddleware()).wrap(static_handler)
    """

    def __init__(self, config: Optional[CORSConfig] = None):
        self.config = config or CORSConfig()

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if request.method == "OPTIONS":
            return self._handle_preflight(request)

        response = next(request)
        return add_cors_header(response, self.config.allow_origin)

    def _handle_preflight(self, request: HTTPRequest) -> HTTPResponse:
        builder = (ResponseBuilder()
            .status(HTTPStatus.NO_CONTENT)
            .header(ALLOW_ORIGIN_HEADER, self.config.allow_origin)
            .header("Access-Control-Allow-Methods", ", ".join(self.config.allow_methods))
            .header("Access-Control-Max-Age", str(self.config.max_age))
            .header("Allow", ", ".join(self.config.allow_methods)))

        # Echo requested headers; there is nothing to protect on a static tree
        requested = request.get_header("access-control-request-headers")
        if requested:
            builder.header("Access-Control-Allow-Headers", requested)

        return builder.build()
