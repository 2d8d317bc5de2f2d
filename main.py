"""Command-line interface for weblet."""

from __future__ import annotations
import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from weblet.config import load_settings, resolve_config_path

logger = logging.getLogger("weblet.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="weblet HTTP service")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: from config)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port (default: from config)")
    serve_parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: $WEBLET_CONFIG)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _serve(
    *,
    config_path: Path | None,
    host: str | None,
    port: int | None,
) -> None:
    from weblet.application import create_application
    from weblet.server import ServerOptions, build_server

    settings = load_settings(config_path)
    app = create_application(settings)
    options = ServerOptions(
        host=host or settings.host,
        port=port or settings.port,
    )
    try:
        server = build_server(app, options)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    server.run()


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)

    if args.command == "serve":
        config_path = resolve_config_path(args.config)
        if config_path is not None:
            logger.info("Loading configuration from %s", config_path)
        _serve(
            config_path=config_path,
            host=args.host,
            port=args.port,
        )


if __name__ == "__main__":
    main()
