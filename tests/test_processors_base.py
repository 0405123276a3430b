"""Tests for the downloader base types."""

import pytest

from conftest import image_result
from tweetvault.core.bookmark import AcquisitionJob, MediaItemStatus
from tweetvault.processors.base import BaseDownloader, DownloadResult


class TestDownloadResult:
    def test_from_items_sorts_and_counts(self):
        result = DownloadResult.from_items(
            [
                image_result(2, MediaItemStatus.FAILED),
                image_result(1, local_path="/m/1.jpg"),
                image_result(3, local_path="/m/3.jpg"),
            ],
            expected_count=3,
        )

        assert [item.sequence for item in result.items] == [1, 2, 3]
        assert result.expected_count == 3
        assert result.downloaded_count == 2
        assert result.failed_count == 1
        assert result.has_failure is True
        assert result.media_paths == ["/m/1.jpg", "/m/3.jpg"]

    def test_empty_result_has_no_failure(self):
        result = DownloadResult()
        assert result.has_failure is False
        assert result.media_paths == []


class TestBaseDownloader:
    def test_cannot_instantiate_abstract_class(self):
        with pytest.raises(TypeError):
            BaseDownloader()  # type: ignore[abstract]

    @pytest.mark.asyncio
    async def test_subclass_download(self):
        class NoopDownloader(BaseDownloader):
            async def download(self, job: AcquisitionJob) -> DownloadResult:
                return DownloadResult()

        job = AcquisitionJob(bookmark_id=1, tweet_id="1", tweet_url="https://x.com/a/status/1")
        assert await NoopDownloader().download(job) == DownloadResult()
