"""
Services file loading.

A services file lists one static tree per line::

    8080=/home/user/git/myfirstproject
    9090=../coolwebthing/public
    # comments and blank lines are ignored

Relative paths are resolved against the directory holding the services
file, so the same file works no matter where dev-srv is started from.
"""

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .config import ConfigError


logger = logging.getLogger(__name__)

DEFAULT_SERVICES_FILENAME = "services"


@dataclass(frozen=True)
class ServiceDescriptor:
    """
    One static tree served on one port.

    Attributes:
        port:  TCP port, 1-65535. Uniqueness is not checked here; a
               duplicate shows up later as a bind failure.
        root:  Absolute directory the files are served from.
        label: The path as written in the services file, used in logs.
    """

    port: int
    root: Path
    label: str

    def __str__(self) -> str:
        return f"{self.port}={self.label}"


def default_services_path(argv0: Optional[str] = None) -> Path:
    """The ``services`` file next to the running program."""
    program = Path(argv0 if argv0 is not None else sys.argv[0])
    return program.resolve().parent / DEFAULT_SERVICES_FILENAME


def parse_services(
    lines: Iterable[str],
    base_dir: Path,
    source: str = "<services>",
) -> List[ServiceDescriptor]:
    """
    Parse services lines into descriptors, in file order.

    Args:
        lines: The file's lines (trailing newlines are fine).
        base_dir: Directory relative paths are resolved against.
        source: Name used in error messages.

    Raises:
        ConfigError: For the first malformed line.
    """
    services: List[ServiceDescriptor] = []

    for number, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        port_text, sep, path_text = line.partition("=")
        if not sep:
            raise ConfigError(f"expected <port>=<path>, got {line!r}", source, number)

        port_text = port_text.strip()
        path_text = path_text.strip()

        # Plain ASCII digits only, no sign or underscores
        if not (port_text.isascii() and port_text.isdigit()):
            raise ConfigError(f"invalid port {port_text!r}", source, number)
        port = int(port_text)

        if not 0 < port < 65536:
            raise ConfigError(f"port {port} out of range 1-65535", source, number)

        if not path_text:
            raise ConfigError(f"missing path for port {port}", source, number)

        root = Path(path_text).expanduser()
        if not root.is_absolute():
            root = base_dir / root

        services.append(ServiceDescriptor(
            port=port,
            root=Path(root).resolve(),
            label=path_text,
        ))

    return services


def load_services(path: str | Path) -> List[ServiceDescriptor]:
    """
    Read a services file.

    Raises:
        ConfigError: If the file is missing, unreadable or malformed.
    """
    path = Path(path)

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError("services file not found", str(path))
    except IsADirectoryError:
        raise ConfigError("services file is a directory", str(path))
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"cannot read services file: {e}", str(path))

    services = parse_services(text.splitlines(), path.resolve().parent, source=str(path))
    logger.debug(f"Loaded {len(services)} service(s) from {path}")
    return services
