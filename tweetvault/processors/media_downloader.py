"""Media downloader for bookmarked tweets.

Turns an AcquisitionJob into files on disk:
- Images: fetched directly over HTTP with a fixed-delay retry budget
- Video / gif: probed and downloaded through a VideoExtractor (yt-dlp)

Every asset ends up as one MediaItemResult. Failures of one asset never
abort its siblings; only unexpected faults escape download().
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlparse

import httpx

from tweetvault.core.bookmark import (
    AcquisitionJob,
    MediaItemResult,
    MediaItemStatus,
    MediaKind,
    MediaType,
)
from tweetvault.core.config_store import ConfigStore
from tweetvault.core.exceptions import MediaFetchError
from tweetvault.core.http_client import create_client
from tweetvault.core.logger import get_bookmark_logger
from tweetvault.core.retry import retry_async
from tweetvault.processors.base import BaseDownloader, DownloadResult
from tweetvault.processors.extractor import (
    VideoExtractor,
    find_produced_files,
    remove_previous_outputs,
    video_name_prefix,
)

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp")

CONTENT_TYPE_EXTENSIONS = {
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
}


def is_image_url(url: str) -> bool:
    """Whether a candidate URL points at a directly downloadable image.

    Accepts Twitter CDN media (``*.twimg.com``, except the video host and
    video thumbnails) and any URL whose path or ``format`` query names an
    image extension.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False

    path = parsed.path.lower()
    if "video_thumb" in path:
        return False

    host = parsed.netloc.lower().split(":")[0]
    if host == "video.twimg.com":
        return False
    if host == "twimg.com" or host.endswith(".twimg.com"):
        return True

    if path.rsplit(".", 1)[-1] in IMAGE_EXTENSIONS and "." in path:
        return True

    formats = parse_qs(parsed.query).get("format", [])
    return any(fmt.lower() in IMAGE_EXTENSIONS for fmt in formats)


def extension_from_url(url: str) -> Optional[str]:
    """File extension signalled by the URL itself, if any.

    Twitter serves ``.../media/abc?format=png&name=large`` as well as
    ``.../media/abc.png``.
    """
    parsed = urlparse(url)
    formats = [fmt.lower() for fmt in parse_qs(parsed.query).get("format", [])]
    path = parsed.path.lower()

    for ext in ("png", "gif", "webp"):
        if ext in formats or path.endswith(f".{ext}"):
            return f".{ext}"
    if "jpg" in formats or "jpeg" in formats or path.endswith((".jpg", ".jpeg")):
        return ".jpg"
    return None


def extension_from_content_type(content_type: str | None) -> Optional[str]:
    if not content_type:
        return None
    mime = content_type.split(";", 1)[0].strip().lower()
    return CONTENT_TYPE_EXTENSIONS.get(mime)


class MediaDownloader(BaseDownloader):
    """Downloads the media of one bookmark at a time.

    Holds no state between calls besides its collaborators.

    Attributes:
        config_store: Resolves today's media directory.
        extractor: Video extractor used for video/gif/mixed bookmarks.
        max_retries: Retries after the first attempt, per item.
        retry_delay: Fixed delay between attempts, in seconds.
    """

    DEFAULT_MAX_RETRIES = 3
    DEFAULT_RETRY_DELAY = 5.0

    def __init__(
        self,
        config_store: ConfigStore,
        extractor: VideoExtractor,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the downloader.

        Args:
            config_store: Source of the media root / today directory.
            extractor: Video extractor implementation.
            max_retries: Retries after the first attempt (default 3).
            retry_delay: Seconds between attempts (default 5.0).
            client: Shared HTTP client. When omitted, one is created per job.
        """
        self.config_store = config_store
        self.extractor = extractor
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._client = client

    async def download(self, job: AcquisitionJob) -> DownloadResult:
        log = get_bookmark_logger(__name__, job.tweet_id)
        dest_dir = self.config_store.resolve_today_dir()

        image_urls = [url for url in job.media_urls if is_image_url(url)]
        skipped = len(job.media_urls) - len(image_urls)
        if skipped:
            log.info("Ignoring %d non-image media candidate(s)", skipped)

        items: list[MediaItemResult] = []
        if image_urls:
            items.extend(await self._download_images(job, image_urls, dest_dir))

        expected = len(image_urls)
        if job.media_type.needs_extractor:
            video_items, video_expected = await self._download_videos(
                job, dest_dir, first_sequence=len(image_urls) + 1
            )
            items.extend(video_items)
            expected += video_expected

        result = DownloadResult.from_items(items, expected_count=expected)
        log.info(
            "Media download finished: expected=%d downloaded=%d failed=%d",
            result.expected_count,
            result.downloaded_count,
            result.failed_count,
        )
        return result

    # ── Images ───────────────────────────────────────────────────────

    async def _download_images(
        self, job: AcquisitionJob, urls: list[str], dest_dir: Path
    ) -> list[MediaItemResult]:
        if self._client is not None:
            return await self._fetch_all(self._client, job, urls, dest_dir)
        async with create_client() as client:
            return await self._fetch_all(client, job, urls, dest_dir)

    async def _fetch_all(
        self,
        client: httpx.AsyncClient,
        job: AcquisitionJob,
        urls: list[str],
        dest_dir: Path,
    ) -> list[MediaItemResult]:
        return list(
            await asyncio.gather(
                *(
                    self._download_image(client, job.tweet_id, url, sequence, dest_dir)
                    for sequence, url in enumerate(urls, start=1)
                )
            )
        )

    async def _download_image(
        self,
        client: httpx.AsyncClient,
        tweet_id: str,
        url: str,
        sequence: int,
        dest_dir: Path,
    ) -> MediaItemResult:
        """Fetch one image, retrying up to max_retries times."""
        log = get_bookmark_logger(__name__, tweet_id)
        retries = 0

        def count_retry(attempt: int, error: Exception) -> None:
            nonlocal retries
            retries += 1

        try:
            path = await retry_async(
                self._fetch_image,
                client,
                url,
                dest_dir,
                f"{tweet_id}_img_{sequence:02d}",
                max_attempts=self.max_retries + 1,
                base_delay=self.retry_delay,
                backoff_factor=1.0,
                jitter=False,
                on_retry=count_retry,
            )
        except Exception as e:
            log.error("Image %d failed after %d retries: %s", sequence, retries, e)
            return MediaItemResult(
                kind=MediaKind.IMAGE,
                source_url=url,
                sequence=sequence,
                status=MediaItemStatus.FAILED,
                error=str(e) or e.__class__.__name__,
                retry_count=retries,
            )

        log.debug("Image %d saved to %s", sequence, path)
        return MediaItemResult(
            kind=MediaKind.IMAGE,
            source_url=url,
            sequence=sequence,
            status=MediaItemStatus.COMPLETED,
            local_path=str(path),
            retry_count=retries,
            file_size=path.stat().st_size,
        )

    async def _fetch_image(
        self, client: httpx.AsyncClient, url: str, dest_dir: Path, stem: str
    ) -> Path:
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise MediaFetchError(f"Request failed: {e.__class__.__name__}: {e}")

        if not response.is_success:
            raise MediaFetchError(
                f"HTTP {response.status_code}", status_code=response.status_code
            )
        if not response.content:
            raise MediaFetchError("Empty response body", status_code=response.status_code)

        ext = (
            extension_from_url(url)
            or extension_from_content_type(response.headers.get("content-type"))
            or ".jpg"
        )
        path = dest_dir / f"{stem}{ext}"
        path.write_bytes(response.content)
        return path

    # ── Video / gif ──────────────────────────────────────────────────

    async def _download_videos(
        self, job: AcquisitionJob, dest_dir: Path, first_sequence: int
    ) -> tuple[list[MediaItemResult], int]:
        """Probe and extract videos for a job.

        Returns:
            (items, expected video count). Items hold at least ``expected``
            entries: produced files first, failed placeholders for any
            shortfall, and every surplus file beyond the probed count.
        """
        log = get_bookmark_logger(__name__, job.tweet_id)
        kind = MediaKind.GIF if job.media_type == MediaType.GIF else MediaKind.VIDEO
        prefix = video_name_prefix(job.tweet_id)

        expected = await self._probe_expected(job)

        removed = remove_previous_outputs(dest_dir, prefix)
        if removed:
            log.info("Removed %d video file(s) left by an earlier download", removed)

        retries = 0
        last_error: Optional[str] = None

        def count_retry(attempt: int, error: Exception) -> None:
            nonlocal retries
            retries += 1

        try:
            produced = await retry_async(
                self.extractor.extract,
                job.tweet_url,
                dest_dir,
                prefix,
                max_attempts=self.max_retries + 1,
                base_delay=self.retry_delay,
                backoff_factor=1.0,
                jitter=False,
                on_retry=count_retry,
            )
        except Exception as e:
            last_error = str(e) or e.__class__.__name__
            produced = find_produced_files(dest_dir, prefix)
            log.warning("Video extraction failed after %d retries: %s", retries, e)

        items: list[MediaItemResult] = []
        for index, path in enumerate(produced, start=1):
            items.append(
                MediaItemResult(
                    kind=kind,
                    source_url=f"{job.tweet_url}#video-{index}",
                    sequence=first_sequence + index - 1,
                    status=MediaItemStatus.COMPLETED,
                    local_path=str(path),
                    retry_count=retries,
                    file_size=path.stat().st_size,
                )
            )

        if len(produced) > expected:
            log.info(
                "Extractor produced %d file(s), %d expected; keeping all",
                len(produced),
                expected,
            )

        for index in range(len(produced) + 1, expected + 1):
            message = f"Expected {expected} video item(s) but extractor produced {len(produced)}"
            if last_error:
                message = f"{message}: {last_error}"
            items.append(
                MediaItemResult(
                    kind=kind,
                    source_url=f"{job.tweet_url}#video-{index}",
                    sequence=first_sequence + index - 1,
                    status=MediaItemStatus.FAILED,
                    error=message,
                    retry_count=retries,
                )
            )

        return items, expected

    async def _probe_expected(self, job: AcquisitionJob) -> int:
        """Expected number of video entries, falling back to 1.

        The probe is a heuristic: failures and empty answers both mean "one".
        """
        log = get_bookmark_logger(__name__, job.tweet_id)
        try:
            count = await self.extractor.probe(job.tweet_url)
        except Exception as e:
            log.warning("Video probe failed, assuming 1 entry: %s", e)
            return 1
        if count < 1:
            log.info("Video probe inconclusive, assuming 1 entry")
            return 1
        return count
