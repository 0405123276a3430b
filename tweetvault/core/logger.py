"""Structured JSON Logger for TweetVault.

Every log entry is a single JSON object with timestamp, level, message and
any ``extra`` context fields. Acquisition code logs through a tweet-scoped
adapter so each line about a bookmark's media carries its ``tweet_id``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

# Attributes every LogRecord has; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON objects.

    Output format:
        {
            "ts": "2026-01-23T10:30:00.123456+00:00",
            "level": "INFO",
            "msg": "Media download completed",
            "logger": "tweetvault.core.queue",
            "tweet_id": "123456789"
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="microseconds"),
            "level": record.levelname,
            "msg": record.getMessage(),
        }

        if record.name and record.name != "root":
            entry["logger"] = record.name

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                entry[key] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TweetLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds ``tweet_id`` to every record.

    Usage:
        log = TweetLoggerAdapter(logging.getLogger(__name__), tweet_id="123")
        log.info("Downloading")  # {"msg": "Downloading", "tweet_id": "123", ...}
    """

    def __init__(self, logger: logging.Logger, tweet_id: str):
        super().__init__(logger, {"tweet_id": tweet_id})

    def process(
        self, msg: str, kwargs: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["tweet_id"] = self.extra["tweet_id"]
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(level: str = "INFO", stream: Any = None) -> None:
    """Configure the root logger with JSON formatting.

    Replaces any handlers already installed on the root logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        stream: Output stream (defaults to sys.stderr).
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    # aiohttp's access log is noisy at INFO and duplicates our own request logs
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name)


def get_bookmark_logger(name: str, tweet_id: str) -> TweetLoggerAdapter:
    """Get a logger adapter that includes tweet_id in all messages.

    Args:
        name: Logger name (typically __name__).
        tweet_id: Tweet id of the bookmark being worked on.

    Returns:
        A TweetLoggerAdapter bound to that tweet id.
    """
    return TweetLoggerAdapter(get_logger(name), tweet_id)


def reset_logging() -> None:
    """Remove all handlers from the root logger.

    Useful for testing to ensure clean state between tests.
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
