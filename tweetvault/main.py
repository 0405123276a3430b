"""Main Entry Point for TweetVault.

Runs the HTTP API server that archives bookmarked tweets and their media.

Usage:
    python -m tweetvault.main                   # Serve on PORT (default 3000)
    python -m tweetvault.main --port 8080       # Serve on a custom port
    python -m tweetvault.main --host 127.0.0.1  # Bind to localhost only
    python -m tweetvault.main --verbose         # Enable debug logging
"""

import argparse
import asyncio
import signal
import sys
from dataclasses import replace

from tweetvault.api_server import run_server
from tweetvault.core.config import Config, get_config
from tweetvault.core.exceptions import ConfigurationError
from tweetvault.core.logger import get_logger, setup_logging
from tweetvault.processors.extractor import YtDlpExtractor

logger = get_logger(__name__)


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser instance.
    """
    parser = argparse.ArgumentParser(
        prog="tweetvault",
        description="Archive bookmarked tweets and download their media locally.",
        epilog="Settings not given on the command line are read from the environment.",
    )

    parser.add_argument(
        "--host",
        default=None,
        metavar="HOST",
        help="Interface to bind (default: TWEETVAULT_HOST or 0.0.0.0)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        metavar="PORT",
        help="Port to listen on (default: PORT or 3000)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser


async def serve(config: Config) -> None:
    """Run the API server until SIGTERM/SIGINT."""
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda s, f: stop_event.set())

    version = await YtDlpExtractor(config.ytdlp_path).version()
    if version:
        logger.info("Using yt-dlp %s (%s)", version, config.ytdlp_path)
    else:
        logger.warning(
            "yt-dlp not found at '%s'; video and gif downloads will fail",
            config.ytdlp_path,
        )

    runner = await run_server(config)
    try:
        await stop_event.wait()
        logger.info("Shutdown requested, stopping server...")
    finally:
        await runner.cleanup()
        logger.info("Server stopped")


def main(args: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        args: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    parser = create_argument_parser()
    parsed_args = parser.parse_args(args)

    try:
        config = get_config()
        overrides = {}
        if parsed_args.host:
            overrides["host"] = parsed_args.host
        if parsed_args.port is not None:
            overrides["port"] = parsed_args.port
        if overrides:
            config = replace(config, **overrides)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    # Override log level if verbose flag is set
    log_level = "DEBUG" if parsed_args.verbose else config.log_level
    setup_logging(log_level)

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except OSError as e:
        logger.error("Server failed to start: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
