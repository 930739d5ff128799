"""
=============================================================================
DEV-SRV CLI ENTRY POINT
=============================================================================

=============================================================================
USAGE
=============================================================================

    # Serve everything listed in ./services next to the program
    dev-srv

    # Another services file
    dev-srv ~/work/services

    # Log every request with the first bytes of each response
    dev-srv -v short

    # Reachable from other machines on the LAN
    dev-srv --host 0.0.0.0

    # Same thing, as a module
    python -m devsrv -v status services

A services file has one "<port>=<path>" per line:

    8080=/home/user/git/myfirstproject
    9090=../coolwebthing/public

=============================================================================
EXIT CODES
=============================================================================

    0    interrupted, every service stopped (or nothing configured)
    1    every service stopped on its own (e.g. no port could be bound)
    2    configuration error (missing services file, bad line, bad flag)
    130  interrupted a second time while services were still draining
=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .colors import Palette, detect_color
from .config import ConfigError, ServerConfig, Verbosity
from .coordinator import Coordinator, ExitCode
from .services import default_services_path, load_services


HELP_TOKENS = ("help", "usage", "?")

LOG_FORMAT = "%(asctime)s %(message)s"
LOG_DATEFMT = "%Y/%m/%d %H:%M:%S"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dev-srv",
        description="Serve several static directories, each on its own port.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Services file format (one per line, '#' starts a comment):
  8080=/home/user/git/myfirstproject
  9090=../coolwebthing/public

Relative paths are resolved against the services file's directory.
The default services file is 'services' next to the dev-srv program.
        """
    )

    parser.add_argument(
        "services_file",
        nargs="?",
        default=None,
        help="services file to read (default: 'services' next to the program)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--verbosity", "-v",
        choices=[v.value for v in Verbosity],
        default=None,
        help="per-request logging: none (entry line only), status, short or long (default: none)"
    )

    parser.add_argument(
        "--no-color",
        action="store_true",
        help="never color log output"
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="interface to bind every service to (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--shutdown-timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="time each service gets to finish in-flight requests (default: 2)"
    )

    parser.add_argument(
        "--read-timeout",
        type=float,
        default=None,
        metavar="SECONDS",
        help="time a client gets to send a complete request (default: 5)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"dev-srv {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    """
    Environment first, then CLI flags on top.

    Raises:
        ConfigError: If the resulting configuration is invalid.
    """
    config = ServerConfig.from_env()

    if args.verbosity is not None:
        config.verbosity = Verbosity.parse(args.verbosity)
    if args.host is not None:
        config.host = args.host
    if args.shutdown_timeout is not None:
        config.shutdown_timeout = args.shutdown_timeout
    if args.read_timeout is not None:
        config.read_timeout = args.read_timeout
        config.keep_alive_timeout = args.read_timeout

    config.color = not args.no_color and detect_color()

    config.validate()
    return config


def configure_logging(config: ServerConfig, stream=None):
    """Timestamped single-line logs on stderr."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        stream=stream,
    )

    logging.getLogger("devsrv").setLevel(level)


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else list(argv)
    parser = build_parser()

    if argv and argv[0].lower() in HELP_TOKENS:
        parser.print_help()
        return ExitCode.OK

    args = parser.parse_args(argv)

    # Also after flags: "dev-srv -v status help"
    if args.services_file and args.services_file.lower() in HELP_TOKENS:
        parser.print_help()
        return ExitCode.OK

    try:
        config = build_config(args)
        configure_logging(config)

        services_path = args.services_file or default_services_path()
        services = load_services(services_path)
    except ConfigError as e:
        print(f"dev-srv: {e}", file=sys.stderr)
        return ExitCode.CONFIG_ERROR

    coordinator = Coordinator(config, Palette(enabled=config.color))
    return coordinator.run(services)


if __name__ == "__main__":
    sys.exit(main())
