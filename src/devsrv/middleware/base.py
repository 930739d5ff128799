"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Middleware wraps the static file handler so cross-cutting behavior (the
CORS header, request logging) stays out of it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     ONE LISTENER'S PIPELINE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Request ───────────────────────────────────────────►               │
    │                                                                      │
    │   ┌──────────────┐    ┌──────────┐    ┌────────────────────┐         │
    │   │  RequestLog  │───►│   CORS   │───►│ StaticFileHandler  │         │
    │   └──────────────┘    └──────────┘    └────────────────────┘         │
    │    log entry line      preflight        resolve + serve              │
    │    ...                 ...                                           │
    │    log status/body     add header                                    │
    │                                                                      │
    │   ◄─────────────────────────────────────────── Response              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The logger is outermost so it sees the final response, headers included.
A listener's chain is fixed when the listener is built; nothing is added
or removed while it serves.
=============================================================================
"""

from abc import ABC, abstractmethod
from functools import partial
from typing import Callable, Tuple

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Request/response interceptor.

        class AddHeader(Middleware):
            def __call__(self, request, next):
                response = next(request)       # or short-circuit
                response.set_header("X-Thing", "1")
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__}>"


class MiddlewarePipeline:
    """
    An ordered, fixed chain of middleware. First listed is outermost.

        handler = MiddlewarePipeline(RequestLogMiddleware(...), CORSMiddleware()).wrap(static)
    """

    def __init__(self, *middleware: Middleware):
        self.middleware: Tuple[Middleware, ...] = middleware

    def __repr__(self) -> str:
        return f"MiddlewarePipeline{self.middleware!r}"

    def __len__(self) -> int:
        return len(self.middleware)

    def wrap(self, handler: NextHandler) -> NextHandler:
        """Return handler with every middleware applied, A(B(handler)) for (A, B)."""
        for layer in reversed(self.middleware):
            handler = partial(layer, next=handler)
        return handler
