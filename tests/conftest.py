"""Shared test fixtures for TweetVault.

Provides a throwaway SQLite store, media root and config store so tests
never touch real data directories, plus builders for bookmark payloads and
fake collaborators for the download queue.
"""

from pathlib import Path
from typing import Any

import pytest

from tweetvault.core.bookmark import (
    AcquisitionJob,
    BookmarkInput,
    MediaItemResult,
    MediaItemStatus,
    MediaKind,
    MediaType,
)
from tweetvault.core.config_store import ConfigStore
from tweetvault.core.repository import BookmarkRepository
from tweetvault.processors.base import BaseDownloader, DownloadResult


def make_input(tweet_id: str = "1001", **overrides: Any) -> BookmarkInput:
    """Build a valid BookmarkInput with sensible defaults."""
    data: dict[str, Any] = {
        "tweet_id": tweet_id,
        "url": f"https://x.com/someone/status/{tweet_id}",
        "author_id": "someone",
        "author_name": "Some One",
        "author_handle": "@someone",
        "text": f"Tweet {tweet_id}",
    }
    data.update(overrides)
    return BookmarkInput(**data)


def image_result(
    sequence: int,
    status: MediaItemStatus = MediaItemStatus.COMPLETED,
    local_path: str | None = None,
) -> MediaItemResult:
    completed = status == MediaItemStatus.COMPLETED
    return MediaItemResult(
        kind=MediaKind.IMAGE,
        source_url=f"https://pbs.twimg.com/media/img{sequence}.jpg",
        sequence=sequence,
        status=status,
        local_path=(local_path or f"/media/2026-01-23/1001_img_{sequence:02d}.jpg")
        if completed
        else None,
        error=None if completed else "HTTP 404",
        retry_count=0 if completed else 3,
    )


class StubDownloader(BaseDownloader):
    """Downloader returning a canned result and recording every job."""

    def __init__(self, result: DownloadResult | None = None, error: Exception | None = None):
        self.result = result or DownloadResult()
        self.error = error
        self.jobs: list[AcquisitionJob] = []

    async def download(self, job: AcquisitionJob) -> DownloadResult:
        self.jobs.append(job)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Path for a temporary SQLite database (not created, just the path)."""
    return tmp_path / "data" / "bookmarks.db"


@pytest.fixture
def repository(temp_db_path: Path) -> BookmarkRepository:
    return BookmarkRepository(temp_db_path)


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    """Create a temporary media root directory.

    Args:
        tmp_path: pytest's built-in temp directory fixture.

    Returns:
        Path to the media root (created but empty).
    """
    root = tmp_path / "media"
    root.mkdir(parents=True, exist_ok=True)
    return root


@pytest.fixture
def config_store(tmp_path: Path, media_root: Path) -> ConfigStore:
    return ConfigStore(tmp_path / "data" / "config.json", media_root)


@pytest.fixture
def video_input() -> BookmarkInput:
    return make_input("2002", media_type=MediaType.VIDEO)
