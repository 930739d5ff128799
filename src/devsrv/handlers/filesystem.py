"""
=============================================================================
FILE RESOLVER
=============================================================================

Maps a request path onto a file below a service root.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      FileSystem capability                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   open(name)     → binary file object, or raises OSError             │
    │   is_dir(name)   → True for directories                              │
    │   listdir(name)  → [(entry, is_dir), ...] sorted by name             │
    │                                                                      │
    │   DirectoryFileSystem(root)                                          │
    │       names are URL paths ("/css/site.css") mapped below root        │
    │                                                                      │
    │   ExtensionFallbackFileSystem(inner, ".html")                        │
    │       open("/about") fails with FileNotFoundError                    │
    │           and "about" has no extension                               │
    │           → open("/about.html")                                      │
    │       any other failure propagates untouched                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Names are cleaned lexically ("/a/./b//c" → "a/b/c", leading ".." dropped)
before they are joined to the root, so a name can never address anything
above it. Symlinks inside the root are followed.
=============================================================================
"""

import os
import posixpath
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, List, Tuple


class FileSystem(ABC):
    """Read-only view of a tree of files addressed by slash-separated names."""

    @abstractmethod
    def open(self, name: str) -> BinaryIO:
        """
        Open a regular file for reading.

        Raises:
            FileNotFoundError: Nothing exists under that name.
            IsADirectoryError: The name is a directory.
            PermissionError: The file exists but is not readable.
            OSError: Any other I/O failure.
        """

    @abstractmethod
    def is_dir(self, name: str) -> bool:
        ...

    @abstractmethod
    def listdir(self, name: str) -> List[Tuple[str, bool]]:
        ...


def clean_name(name: str) -> str:
    """Normalize a URL path to a root-relative name ("" for the root)."""
    cleaned = posixpath.normpath("/" + name.replace("\\", "/"))
    return cleaned.lstrip("/")


def has_extension(name: str) -> bool:
    """True if the last path element contains a dot ("app.js", ".env")."""
    return "." in posixpath.basename(name.rstrip("/"))


class DirectoryFileSystem(FileSystem):
    """Files below one directory on disk."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"DirectoryFileSystem({str(self.root)!r})"

    def full_path(self, name: str) -> Path:
        relative = clean_name(name)
        return self.root / relative if relative else self.root

    def open(self, name: str) -> BinaryIO:
        path = self.full_path(name)
        if path.is_dir():
            # open() on a directory only fails this way on some platforms
            raise IsADirectoryError(21, "Is a directory", str(path))
        return open(path, "rb")

    def is_dir(self, name: str) -> bool:
        return self.full_path(name).is_dir()

    def listdir(self, name: str) -> List[Tuple[str, bool]]:
        entries = []
        with os.scandir(self.full_path(name)) as it:
            for entry in it:
                try:
                    is_dir = entry.is_dir()
                except OSError:
                    is_dir = False
                entries.append((entry.name, is_dir))
        return sorted(entries)


class ExtensionFallbackFileSystem(FileSystem):
    """
    Retries extension-less names that do not exist with `extension`
    appended, so "/about" serves "about.html".

    Only FileNotFoundError triggers the retry. Permission and other I/O
    errors from the first attempt propagate as they are.
    """

    def __init__(self, inner: FileSystem, extension: str = ".html"):
        self.inner = inner
        self.extension = extension

    def __repr__(self) -> str:
        return f"ExtensionFallbackFileSystem({self.inner!r}, {self.extension!r})"

    def open(self, name: str) -> BinaryIO:
        try:
            return self.inner.open(name)
        except FileNotFoundError:
            if not self.extension or has_extension(name) or name.endswith("/"):
                raise
        return self.inner.open(name + self.extension)

    def is_dir(self, name: str) -> bool:
        return self.inner.is_dir(name)

    def listdir(self, name: str) -> List[Tuple[str, bool]]:
        return self.inner.listdir(name)


def service_filesystem(root: str | Path, fallback_extension: str = ".html") -> FileSystem:
    """The filesystem a Listener serves: a directory with the extension fallback."""
    fs: FileSystem = DirectoryFileSystem(root)
    if fallback_extension:
        fs = ExtensionFallbackFileSystem(fs, fallback_extension)
    return fs


def resolve(root: str | Path, request_path: str, fallback_extension: str = ".html") -> BinaryIO:
    """
    Open the file `request_path` names below `root`.

    Raises:
        FileNotFoundError: Neither the name nor its fallback exists.
        OSError: Any other failure, from the first attempt.
    """
    return service_filesystem(root, fallback_extension).open(request_path)
