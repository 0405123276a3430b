"""Base downloader interface for TweetVault.

This module defines the abstract base class for media downloaders and the
DownloadResult dataclass aggregating per-item outcomes for one job.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tweetvault.core.bookmark import MediaItemResult

if TYPE_CHECKING:
    from tweetvault.core.bookmark import AcquisitionJob


@dataclass
class DownloadResult:
    """Result of acquiring all media for one bookmark.

    Attributes:
        items: Per-asset outcomes ordered by sequence number
        expected_count: Images attempted plus video items expected
        downloaded_count: Items that completed
        failed_count: Items that failed
    """

    items: list[MediaItemResult] = field(default_factory=list)
    expected_count: int = 0
    downloaded_count: int = 0
    failed_count: int = 0

    @property
    def has_failure(self) -> bool:
        return self.failed_count > 0

    @property
    def media_paths(self) -> list[str]:
        """Local paths of completed items, in sequence order."""
        return [item.local_path for item in self.items if item.succeeded and item.local_path]

    @classmethod
    def from_items(
        cls, items: list[MediaItemResult], expected_count: int
    ) -> "DownloadResult":
        ordered = sorted(items, key=lambda item: item.sequence)
        downloaded = sum(1 for item in ordered if item.succeeded)
        return cls(
            items=ordered,
            expected_count=expected_count,
            downloaded_count=downloaded,
            failed_count=len(ordered) - downloaded,
        )


class BaseDownloader(ABC):
    """Abstract base class for media downloaders.

    The download queue only depends on this interface, so tests and
    alternative acquisition strategies can be swapped in.

    Example:
        class NoopDownloader(BaseDownloader):
            async def download(self, job: AcquisitionJob) -> DownloadResult:
                return DownloadResult()
    """

    @abstractmethod
    async def download(self, job: "AcquisitionJob") -> DownloadResult:
        """Acquire all media for a job.

        Per-item failures are reported in the result, never raised. Raising
        means a hard fault of the downloader itself.

        Args:
            job: The acquisition job

        Returns:
            DownloadResult with one item per expected asset
        """
        pass
