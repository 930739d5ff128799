"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Answers GET and HEAD requests from one service's FileSystem.

=============================================================================
FLOW
=============================================================================

    GET /docs/guide
        │
        ├── method not GET/HEAD ─────────────────────► 405 (Allow header)
        │
        ├── is_dir("/docs/guide")?
        │       ├── no trailing slash ───────────────► 301 Location: /docs/guide/
        │       ├── index.html present ──────────────► serve it
        │       ├── listing enabled ─────────────────► HTML listing
        │       └── otherwise ───────────────────────► 403
        │
        ├── path ends in /index.html ────────────────► 301 to the directory
        │
        └── open("/docs/guide")   (fallback: guide.html)
                ├── FileNotFoundError / NotADirectoryError ► 404
                ├── PermissionError ─────────────────► 403
                ├── other OSError ───────────────────► 500
                └── file ─► If-None-Match / If-Modified-Since ─► 304 or 200

Content-Type comes from the name of the file actually opened, so
"/about" served from about.html is text/html.

=============================================================================
CACHING
=============================================================================

    ETag: "<mtime>-<size>"          weak enough for a dev server, changes
                                    whenever a file is saved
    Last-Modified: <mtime>
    Cache-Control: no-cache         revalidate every time, so edits show
                                    up on the next reload
=============================================================================
"""

import html
import logging
import os
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import BinaryIO
from urllib.parse import quote

from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse, ResponseBuilder, format_http_date,
    not_found, forbidden, internal_error, method_not_allowed,
)
from ..http.status_codes import HTTPStatus
from ..http.mime_types import get_content_type
from .filesystem import FileSystem


logger = logging.getLogger(__name__)

ALLOWED_METHODS = ["GET", "HEAD", "OPTIONS"]


class StaticFileHandler:
    """
    Handler for serving one service's static files.

    Usage:
        fs = service_filesystem("/home/me/site")
        handler = StaticFileHandler(fs)
        response = handler.handle(request)
    """

    def __init__(
        self,
        fs: FileSystem,
        index_file: str = "index.html",
        directory_listing: bool = True,
        cache_control: str = "no-cache",
    ):
        self.fs = fs
        self.index_file = index_file
        self.directory_listing = directory_listing
        self.cache_control = cache_control

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self.handle(request)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        if request.method not in ("GET", "HEAD"):
            return method_not_allowed(ALLOWED_METHODS)

        path = request.path

        try:
            if self.fs.is_dir(path):
                return self._serve_directory(request)
        except OSError as e:
            return self._error_for(e, path)

        index_suffix = "/" + self.index_file
        if self.index_file and path.endswith(index_suffix):
            return self._redirect(request, path[: -len(self.index_file)])

        try:
            f = self.fs.open(path)
        except OSError as e:
            return self._error_for(e, path)

        with f:
            return self._serve_file(f, request)

    # ─────────────────────────────────────────────────────────────────────
    # FILES
    # ─────────────────────────────────────────────────────────────────────

    def _serve_file(self, f: BinaryIO, request: HTTPRequest) -> HTTPResponse:
        try:
            stat = os.fstat(f.fileno())
            etag = f'"{int(stat.st_mtime)}-{stat.st_size}"'
            mtime = datetime.fromtimestamp(int(stat.st_mtime), tz=timezone.utc)

            if self._not_modified(request, etag, mtime):
                return (ResponseBuilder()
                    .status(HTTPStatus.NOT_MODIFIED)
                    .header("ETag", etag)
                    .header("Last-Modified", format_http_date(mtime))
                    .header("Content-Length", "0")
                    .build())

            content = f.read()
        except OSError as e:
            return self._error_for(e, request.path)

        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type(get_content_type(f.name))
            .header("ETag", etag)
            .header("Last-Modified", format_http_date(mtime))
            .header("Cache-Control", self.cache_control)
            .body(content)
            .build())

    def _not_modified(self, request: HTTPRequest, etag: str, mtime: datetime) -> bool:
        if_none_match = request.get_header("if-none-match")
        if if_none_match:
            tags = [t.strip() for t in if_none_match.split(",")]
            return "*" in tags or etag in tags or f"W/{etag}" in tags

        if_modified_since = request.get_header("if-modified-since")
        if if_modified_since:
            try:
                since = parsedate_to_datetime(if_modified_since)
            except (TypeError, ValueError):
                return False
            if since.tzinfo is None:
                since = since.replace(tzinfo=timezone.utc)
            return mtime <= since

        return False

    # ─────────────────────────────────────────────────────────────────────
    # DIRECTORIES
    # ─────────────────────────────────────────────────────────────────────

    def _serve_directory(self, request: HTTPRequest) -> HTTPResponse:
        path = request.path

        # Relative links in an index page resolve against "/docs/", not "/docs"
        if not path.endswith("/"):
            return self._redirect(request, path + "/")

        if self.index_file:
            try:
                f = self.fs.open(path + self.index_file)
            except FileNotFoundError:
                pass
            except OSError as e:
                return self._error_for(e, path + self.index_file)
            else:
                with f:
                    return self._serve_file(f, request)

        if not self.directory_listing:
            return forbidden()

        try:
            entries = self.fs.listdir(path)
        except OSError as e:
            return self._error_for(e, path)

        return self._directory_listing(path, entries)

    def _directory_listing(self, url_path: str, entries) -> HTTPResponse:
        title = html.escape(url_path)
        items = []

        if url_path != "/":
            items.append('<li><a href="../">../</a></li>')

        for name, is_dir in entries:
            display = name + "/" if is_dir else name
            href = quote(name) + ("/" if is_dir else "")
            items.append(f'<li><a href="{html.escape(href)}">{html.escape(display)}</a></li>')

        page = (
            "<!DOCTYPE html>\n"
            "<html>\n"
            f"<head><meta charset=\"utf-8\"><title>Index of {title}</title></head>\n"
            "<body>\n"
            f"<h1>Index of {title}</h1>\n"
            "<ul>\n"
            + "\n".join(items) +
            "\n</ul>\n"
            "</body>\n"
            "</html>\n"
        )
        return ResponseBuilder().html(page).build()

    # ─────────────────────────────────────────────────────────────────────
    # HELPERS
    # ─────────────────────────────────────────────────────────────────────

    def _redirect(self, request: HTTPRequest, target: str) -> HTTPResponse:
        location = quote(target)
        if request.query:
            location += "?" + request.query
        return ResponseBuilder().redirect(location, permanent=True).build()

    def _error_for(self, error: OSError, path: str) -> HTTPResponse:
        if isinstance(error, (FileNotFoundError, NotADirectoryError, IsADirectoryError)):
            return not_found()
        if isinstance(error, PermissionError):
            return forbidden()
        logger.error(f"Error reading {path}: {error}")
        return internal_error()
