"""
ANSI colors for log lines.

A Palette is passed to whatever formats a line instead of colors being
hard-coded, so tests (and --no-color, and NO_COLOR) get plain text.
"""

import os
import sys
from dataclasses import dataclass
from typing import Any, Optional, TextIO

RESET = "\033[0m"

RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
BLUE = "\033[34m"
MAGENTA = "\033[35m"
CYAN = "\033[36m"


@dataclass(frozen=True)
class Palette:
    enabled: bool = False

    def paint(self, code: str, value: Any) -> str:
        if not self.enabled:
            return f"{value}"
        return f"{code}{value}{RESET}"

    def red(self, value: Any) -> str:
        return self.paint(RED, value)

    def green(self, value: Any) -> str:
        return self.paint(GREEN, value)

    def yellow(self, value: Any) -> str:
        return self.paint(YELLOW, value)

    def blue(self, value: Any) -> str:
        return self.paint(BLUE, value)

    def magenta(self, value: Any) -> str:
        return self.paint(MAGENTA, value)

    def cyan(self, value: Any) -> str:
        return self.paint(CYAN, value)

    def status(self, code: int) -> str:
        """Color a status code by class: 2xx green, 3xx cyan, 4xx yellow, 5xx red."""
        if code >= 500:
            return self.red(code)
        if code >= 400:
            return self.yellow(code)
        if code >= 300:
            return self.cyan(code)
        return self.green(code)


PLAIN = Palette(enabled=False)


def detect_color(stream: Optional[TextIO] = None, environ: Optional[dict] = None) -> bool:
    """Color when writing to a terminal, unless NO_COLOR is set (https://no-color.org)."""
    env = os.environ if environ is None else environ
    if env.get("NO_COLOR"):
        return False
    stream = sys.stderr if stream is None else stream
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())
