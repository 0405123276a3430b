"""User configuration store for TweetVault.

Persists the user-chosen media root to a small JSON file and resolves the
date-partitioned directory media for "today" is written to.
"""

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class ConfigStore:
    """Manages the user configuration JSON file.

    File format:
        {"mediaDir": "/path/chosen/by/user", "updatedAt": "2026-01-23T10:30:00"}

    An empty ``mediaDir`` means the built-in default is used.

    Attributes:
        config_file: Path to the JSON file.
        default_media_dir: Media root used when the user has not chosen one.
    """

    def __init__(self, config_file: str | Path, default_media_dir: str | Path):
        """Initialize ConfigStore.

        Args:
            config_file: Path to the JSON configuration file.
            default_media_dir: Fallback media root.
        """
        self.config_file = Path(config_file)
        self.default_media_dir = Path(default_media_dir)

    def load(self) -> dict[str, Any]:
        """Load the user configuration.

        A missing or unreadable file yields the defaults; it is never an error.

        Returns:
            Dictionary with ``mediaDir`` and ``updatedAt`` keys.
        """
        data: dict[str, Any] = {"mediaDir": "", "updatedAt": None}
        if not self.config_file.exists():
            return data

        try:
            with open(self.config_file, encoding="utf-8") as f:
                stored = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Failed to load config from %s, using defaults: %s", self.config_file, e)
            return data

        if isinstance(stored, dict):
            data.update(stored)
        return data

    def save(self, media_dir: str | Path) -> dict[str, Any]:
        """Persist a new media root.

        Args:
            media_dir: Directory chosen by the user.

        Returns:
            The saved configuration.

        Raises:
            OSError: If the file cannot be written.
        """
        data = self.load()
        data["mediaDir"] = str(media_dir).strip()
        data["updatedAt"] = datetime.now().isoformat()

        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        logger.info("Config saved: mediaDir=%s", data["mediaDir"])
        return data

    def resolve_media_root(self) -> Path:
        """Return the configured media root, or the built-in default."""
        media_dir = str(self.load().get("mediaDir") or "").strip()
        root = Path(media_dir) if media_dir else self.default_media_dir
        return root.expanduser().resolve()

    def resolve_today_dir(self, today: date | None = None) -> Path:
        """Return ``<media root>/<YYYY-MM-DD>``, creating it on demand.

        Args:
            today: Local date to use (defaults to the current date).

        Returns:
            Absolute path of the date directory.
        """
        day = today or date.today()
        path = self.resolve_media_root() / day.strftime("%Y-%m-%d")
        path.mkdir(parents=True, exist_ok=True)
        return path
