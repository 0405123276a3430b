"""Configuration Manager for TweetVault.

Centralized configuration loading from environment variables with sensible defaults.
All configuration is validated at load time to fail fast on invalid values.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from tweetvault.core.exceptions import ConfigurationError


@dataclass
class Config:
    """Application configuration loaded from environment variables.

    All fields are optional (with defaults):
        host: Interface the HTTP API binds to.
        port: Port the HTTP API listens on.
        db_path: Path to the SQLite bookmark store.
        media_dir: Built-in media root, used until the user picks one.
        config_file: JSON file holding the user-chosen media root.
        ytdlp_path: yt-dlp executable (name on PATH or absolute path).
        max_concurrent: Jobs run per queue batch.
        max_retries: Retries per media item after the first attempt.
        retry_delay: Fixed delay in seconds between attempts.
        queue_interval: Seconds between queue drain ticks.
        extractor_timeout: Seconds before a yt-dlp invocation is abandoned.
        api_token: Bearer token required on bookmark submission, if set.
        log_level: Logging verbosity (DEBUG, INFO, WARNING, ERROR).
    """

    host: str = "0.0.0.0"
    port: int = 3000
    db_path: Path = field(default_factory=lambda: Path("data/bookmarks.db"))
    media_dir: Path = field(default_factory=lambda: Path("media"))
    config_file: Path = field(default_factory=lambda: Path("data/config.json"))
    ytdlp_path: str = "yt-dlp"
    max_concurrent: int = 3
    max_retries: int = 3
    retry_delay: float = 5.0
    queue_interval: float = 1.0
    extractor_timeout: int = 300
    api_token: str | None = None
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        # Ensure paths are Path objects
        if isinstance(self.db_path, str):
            self.db_path = Path(self.db_path)
        if isinstance(self.media_dir, str):
            self.media_dir = Path(self.media_dir)
        if isinstance(self.config_file, str):
            self.config_file = Path(self.config_file)

        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.log_level.upper() not in valid_log_levels:
            raise ConfigurationError(
                f"Invalid LOG_LEVEL '{self.log_level}'. "
                f"Must be one of: {', '.join(sorted(valid_log_levels))}"
            )
        self.log_level = self.log_level.upper()

        if not 0 < self.port < 65536:
            raise ConfigurationError(f"PORT must be between 1 and 65535, got {self.port}")
        if self.max_concurrent < 1:
            raise ConfigurationError("TWEETVAULT_MAX_CONCURRENT must be at least 1")
        if self.max_retries < 0:
            raise ConfigurationError("TWEETVAULT_MAX_RETRIES must be non-negative")
        if self.retry_delay < 0:
            raise ConfigurationError("TWEETVAULT_RETRY_DELAY must be non-negative")
        if self.queue_interval <= 0:
            raise ConfigurationError("TWEETVAULT_QUEUE_INTERVAL must be positive")
        if self.extractor_timeout < 1:
            raise ConfigurationError("TWEETVAULT_EXTRACTOR_TIMEOUT must be at least 1")


def load_config() -> Config:
    """Load configuration from environment variables.

    Returns:
        Config object with all settings loaded.

    Raises:
        ConfigurationError: If values are invalid.
    """

    def get_float(key: str, default: float) -> float:
        """Parse float from env var with default."""
        value = os.environ.get(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            raise ConfigurationError(f"{key} must be a valid number, got '{value}'")

    def get_int(key: str, default: int) -> int:
        """Parse int from env var with default."""
        value = os.environ.get(key)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            raise ConfigurationError(f"{key} must be a valid integer, got '{value}'")

    return Config(
        host=os.environ.get("TWEETVAULT_HOST", "0.0.0.0"),
        port=get_int("PORT", 3000),
        db_path=Path(os.environ.get("DB_PATH", "data/bookmarks.db")),
        media_dir=Path(os.environ.get("MEDIA_DIR", "media")),
        config_file=Path(os.environ.get("TWEETVAULT_CONFIG_FILE", "data/config.json")),
        ytdlp_path=os.environ.get("YTDLP_PATH", "yt-dlp"),
        max_concurrent=get_int("TWEETVAULT_MAX_CONCURRENT", 3),
        max_retries=get_int("TWEETVAULT_MAX_RETRIES", 3),
        retry_delay=get_float("TWEETVAULT_RETRY_DELAY", 5.0),
        queue_interval=get_float("TWEETVAULT_QUEUE_INTERVAL", 1.0),
        extractor_timeout=get_int("TWEETVAULT_EXTRACTOR_TIMEOUT", 300),
        api_token=os.environ.get("TWEETVAULT_API_TOKEN") or None,
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )


# Singleton instance for convenience
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Loads configuration on first call and caches it for subsequent calls.
    Use reset_config() to force a reload.

    Returns:
        The global Config instance.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Reset the global configuration instance.

    Forces the next get_config() call to reload from environment variables.
    Useful for testing.
    """
    global _config
    _config = None
