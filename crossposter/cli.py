"""Command-line interface for running and inspecting CrossPoster."""

from __future__ import annotations

import argparse

from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    """Run the main CLI entry point.

    Returns
    -------
    int
        Exit code.
    """
    parser = argparse.ArgumentParser(
        prog="crossposter",
        description="CrossPoster OAuth connection backend",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--host", type=str, default=None, help="Bind address")
    serve_parser.add_argument("--port", "-p", type=int, default=None, help="Port")
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        default=None,
        help="Enable auto-reload (dev mode)",
    )

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show or export configuration",
    )
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration (secrets redacted)",
    )
    config_group.add_argument(
        "--env",
        action="store_true",
        help="Export configuration as environment variables",
    )
    config_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output file path (default: stdout)",
    )

    args = parser.parse_args(argv)

    if args.command == "serve":
        return handle_serve(args)
    if args.command == "config":
        return handle_config(args)
    parser.print_help()
    return 0


def handle_config(args: argparse.Namespace) -> int:
    """Handle the config command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from .config import CrossPosterSettings

    settings = CrossPosterSettings()
    output = settings.to_env() if args.env else settings.show()

    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        print(f"Configuration written to {args.output}")
    else:
        print(output)

    return 0


def handle_serve(args: argparse.Namespace) -> int:
    """Handle the serve command (blocks until the server stops)."""
    import uvicorn

    from .app import create_app
    from .config import get_settings

    settings = get_settings()
    server = settings.server
    reload = server.reload if args.reload is None else args.reload
    host = args.host or server.host
    port = args.port or server.port

    if reload:
        # uvicorn needs an import string to reload
        uvicorn.run(
            "crossposter.app:create_app",
            factory=True,
            host=host,
            port=port,
            log_level=server.log_level,
            reload=True,
        )
    else:
        uvicorn.run(create_app(settings), host=host, port=port, log_level=server.log_level)
    return 0
