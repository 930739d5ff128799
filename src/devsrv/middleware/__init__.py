"""
=============================================================================
MIDDLEWARE
=============================================================================

Layers wrapped around each listener's StaticFileHandler:

    RequestLogMiddleware   entry/completion lines per Verbosity
    CORSMiddleware         Access-Control-Allow-Origin: * and OPTIONS

    handler = MiddlewarePipeline(
        RequestLogMiddleware(label, verbosity, palette),
        CORSMiddleware(),
    ).wrap(static_handler)
=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .cors import CORSMiddleware, CORSConfig, add_cors_header
from .logging import RequestLogMiddleware, RequestLogFormatter

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "CORSMiddleware",
    "CORSConfig",
    "add_cors_header",
    "RequestLogMiddleware",
    "RequestLogFormatter",
]
