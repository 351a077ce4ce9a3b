"""CLI command for running the relay HTTP server.

Usage:
    python -m batchrelay.cli.serve [OPTIONS]

Examples:
    # Serve on HOST/PORT from the environment (default 0.0.0.0:4000)
    python -m batchrelay.cli.serve

    # Override the port
    python -m batchrelay.cli.serve --port 8080

    # Verbose logging
    python -m batchrelay.cli.serve -v
"""

import sys
from argparse import ArgumentParser, Namespace
from typing import Optional, Sequence

import structlog
import uvicorn
from pydantic import ValidationError

from batchrelay.app import create_app
from batchrelay.core.config import Settings, configure_logging

logger = structlog.get_logger()


def parse_args(argv: Optional[Sequence[str]] = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        prog="batchrelay",
        description="Relay image generation batches and aggregate provider webhooks.",
    )
    parser.add_argument("--host", default=None, help="Bind address (default: HOST env var)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: PORT env var)")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser.parse_args(argv)


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Load settings and serve until interrupted.

    Returns:
        Exit code: 0 (clean shutdown), 1 (configuration error)
    """
    args = parse_args(argv)

    try:
        settings = Settings()  # type: ignore[call-arg]
    except (ValidationError, ValueError) as e:
        print(f"Configuration error:\n{e}", file=sys.stderr)
        return 1

    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    host = args.host or settings.host
    port = args.port or settings.port
    logger.info("cli.serving", host=host, port=port, app_env=settings.app_env)

    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())
    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(run())


if __name__ == "__main__":
    main()
