"""
=============================================================================
REQUEST LOGGING MIDDLEWARE
=============================================================================

Per-request log lines, controlled by Verbosity:

    ┌──────────┬──────────────────────────────────────────────────────────┐
    │ none     │ GET /home/me/site /about     (entry line only)          │
    ├──────────┼──────────────────────────────────────────────────────────┤
    │ status   │ GET /home/me/site /about                                 │
    │          │ /home/me/site /about → 200                               │
    ├──────────┼──────────────────────────────────────────────────────────┤
    │ short    │ ... → 200 <!DOCTYPE html>\n<html lang="en">\n<head>…      │
    │          │ (first body_preview_limit bytes)                          │
    ├──────────┼──────────────────────────────────────────────────────────┤
    │ long     │ ... → 200 <the whole body>                               │
    └──────────┴──────────────────────────────────────────────────────────┘

The entry line is written BEFORE the handler runs, so a request that
hangs or crashes still leaves a trace. The completion line is written
after the whole pipeline, so it shows the final status.

Bodies are decoded as UTF-8 with replacement characters and control
characters are escaped ("\n", "\x1b"), so one request is always exactly
one completion line and a served file cannot inject terminal escapes.

Lines go to the "devsrv.access" logger, separate from lifecycle lines,
so they can be routed or silenced on their own:

    logging.getLogger("devsrv.access").setLevel(logging.WARNING)
=============================================================================
"""

import logging
import time
from typing import Optional

from .base import Middleware, NextHandler
from ..colors import Palette, PLAIN
from ..config import Verbosity
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("devsrv.access")

ELLIPSIS = "…"

_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


def escape_control(text: str) -> str:
    """Escape C0 controls and DEL so the text stays on one log line."""
    out = []
    for ch in text:
        code = ord(ch)
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif code < 0x20 or code == 0x7F:
            out.append(f"\\x{code:02x}")
        else:
            out.append(ch)
    return "".join(out)


class RequestLogFormatter:
    """
    Builds the entry and completion lines for one service.

    Kept apart from the middleware so the format can be tested without
    a request pipeline.
    """

    def __init__(
        self,
        label: str,
        verbosity: Verbosity,
        palette: Palette = PLAIN,
        body_preview_limit: int = 256,
    ):
        self.label = label
        self.verbosity = verbosity
        self.palette = palette
        self.body_preview_limit = body_preview_limit

    def entry(self, method: str, path: str) -> str:
        p = self.palette
        return f"{method} {p.cyan(self.label)} {p.blue(path)}"

    def completion(self, path: str, status: int, body: bytes = b"") -> str:
        p = self.palette
        line = f"{p.cyan(self.label)} {p.blue(path)} → {p.status(int(status))}"

        preview = self.body_text(body)
        if preview:
            line += " " + preview
        return line

    def body_text(self, body: bytes) -> str:
        if self.verbosity is Verbosity.LONG:
            return escape_control(body.decode("utf-8", errors="replace"))

        if self.verbosity is Verbosity.SHORT:
            truncated = len(body) > self.body_preview_limit
            head = body[: self.body_preview_limit]
            # A cut through a multi-byte character would decode to U+FFFD
            text = head.decode("utf-8", errors="ignore" if truncated else "replace")
            text = escape_control(text)
            return text + ELLIPSIS if truncated else text

        return ""


class RequestLogMiddleware(Middleware):
    """
    Logs each request according to the configured Verbosity.

        RequestLogMiddleware("/home/me/site", Verbosity.SHORT, palette)

    The verbosity is fixed at construction. Nothing here reads process-wide
    state, so two listeners could log at different levels.
    """

    def __init__(
        self,
        label: str,
        verbosity: Verbosity = Verbosity.NONE,
        palette: Optional[Palette] = None,
        body_preview_limit: int = 256,
    ):
        self.formatter = RequestLogFormatter(
            label=label,
            verbosity=verbosity,
            palette=palette or PLAIN,
            body_preview_limit=body_preview_limit,
        )

    @property
    def verbosity(self) -> Verbosity:
        return self.formatter.verbosity

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        logger.info(self.formatter.entry(request.method, request.path))
        start_time = time.monotonic()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.error(
                f"{self.formatter.label} {request.path} failed: "
                f"{type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        if not self.verbosity.logs_completion:
            return response

        body = b"" if request.method == "HEAD" else response.body
        logger.info(self.formatter.completion(request.path, response.status, body))
        return response
