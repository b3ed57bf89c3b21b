"""
pokersync CLI - Command-line interface for the session server.

Usage:
    pokersync serve [--host HOST] [--port PORT] [--reload]
    pokersync cards
"""

import argparse
import sys

from .config import Settings


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="pokersync - Real-time planning poker server",
        prog="pokersync",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP/WebSocket server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    # Cards command
    subparsers.add_parser("cards", help="Print the configured deck")

    args = parser.parse_args(argv)

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "cards":
        cmd_cards(args)
    else:
        parser.print_help()
        sys.exit(1)


def cmd_serve(args):
    """Run the server with uvicorn."""
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(
        "pokersync.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


def cmd_cards(args):
    """Print the deck participants vote from."""
    settings = Settings.from_env()
    print(" ".join(settings.card_values))


if __name__ == "__main__":
    main()
