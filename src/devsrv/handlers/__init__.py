"""
=============================================================================
HANDLERS
=============================================================================

The request handler every Listener runs, and the filesystem it reads.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   HTTPRequest ──► StaticFileHandler ──► HTTPResponse                 │
    │                          │                                           │
    │                          ▼                                           │
    │               ExtensionFallbackFileSystem(".html")                   │
    │                          │                                           │
    │                          ▼                                           │
    │               DirectoryFileSystem(service root)                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
=============================================================================
"""

from .filesystem import (
    FileSystem,
    DirectoryFileSystem,
    ExtensionFallbackFileSystem,
    service_filesystem,
    resolve,
)
from .static import StaticFileHandler

__all__ = [
    "FileSystem",
    "DirectoryFileSystem",
    "ExtensionFallbackFileSystem",
    "service_filesystem",
    "resolve",
    "StaticFileHandler",
]
