"""
=============================================================================
MIME TYPE DETECTION
=============================================================================

Maps file extensions to Content-Type values for served files.

The browser decides what to do with a response from its Content-Type,
not from the URL:

    app.js   served as text/plain   → script refuses to execute
    logo.svg served as text/xml     → image does not render
    page     served via page.html   → must still be text/html

The last case matters for the ".html" fallback: the type is derived from
the file that was actually opened, not from the request path.

Lookup order:

    1. MIME_TYPES below (web-oriented, deterministic across platforms)
    2. mimetypes.guess_type() (system tables, e.g. /etc/mime.types)
    3. application/octet-stream
=============================================================================
"""

import mimetypes
from pathlib import Path
from typing import Optional


MIME_TYPES = {
    # Text / documents
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".map": "application/json",
    ".webmanifest": "application/manifest+json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".pdf": "application/pdf",

    # Images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",

    # Fonts
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # Media
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".mp4": "video/mp4",
    ".webm": "video/webm",

    # Other
    ".wasm": "application/wasm",
    ".zip": "application/zip",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

# application/* types that are really text and should carry a charset
_TEXTUAL_APPLICATION_TYPES = {
    "application/json",
    "application/manifest+json",
    "application/xml",
    "application/javascript",
    "image/svg+xml",
}


def get_mime_type(path: str | Path, default: Optional[str] = None) -> str:
    """
    Get the MIME type for a file based on its extension.

    Examples:
        >>> get_mime_type("style.css")
        'text/css'
        >>> get_mime_type("/site/about.HTML")
        'text/html'
        >>> get_mime_type("blob.unknownext")
        'application/octet-stream'
    """
    path = Path(path)
    extension = path.suffix.lower()

    if extension in MIME_TYPES:
        return MIME_TYPES[extension]

    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or default or DEFAULT_MIME_TYPE


def is_text_type(mime_type: str) -> bool:
    """Check if a MIME type is text-based (and so should carry a charset)."""
    return mime_type.startswith("text/") or mime_type in _TEXTUAL_APPLICATION_TYPES


def get_content_type(path: str | Path, charset: str = "utf-8") -> str:
    """
    Get the full Content-Type header value for a file.

        >>> get_content_type("page.html")
        'text/html; charset=utf-8'
        >>> get_content_type("image.png")
        'image/png'
    """
    mime_type = get_mime_type(path)
    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"
    return mime_type
