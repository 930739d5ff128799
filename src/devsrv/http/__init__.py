"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Translates between raw bytes on a Connection and the request/response
objects the middleware chain and the static file handler work with.

    bytes ──RequestParser──► HTTPRequest ──handler──► HTTPResponse ──to_bytes()──► bytes

    request.py       HTTPRequest, RequestParser, HTTPParseError
    response.py      HTTPResponse, ResponseBuilder, error responses
    status_codes.py  HTTPStatus
    mime_types.py    Content-Type detection from file extensions
=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    error_response,
    bad_request,
    forbidden,
    not_found,
    method_not_allowed,
    internal_error,
)
from .status_codes import HTTPStatus
from .mime_types import get_mime_type, get_content_type

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "HTTPResponse",
    "ResponseBuilder",
    "error_response",
    "bad_request",
    "forbidden",
    "not_found",
    "method_not_allowed",
    "internal_error",
    "HTTPStatus",
    "get_mime_type",
    "get_content_type",
]
