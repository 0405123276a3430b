"""Download Queue for TweetVault.

In-process, volatile queue of media acquisition jobs. Jobs are keyed by
tweet id: a job already waiting for the same tweet absorbs later submissions.
A background loop drains the queue in batches of at most ``max_concurrent``
jobs and never starts a batch while the previous one is still running, so a
tweet id is never processed by two jobs at once.

Queued jobs are lost on restart; re-submitting the bookmark re-queues it.
"""

import asyncio
import logging
from collections import deque
from typing import Any

from tweetvault.core.bookmark import AcquisitionJob, BookmarkStatus
from tweetvault.core.logger import get_bookmark_logger
from tweetvault.core.repository import BookmarkRepository
from tweetvault.processors.base import BaseDownloader

logger = logging.getLogger(__name__)


class DownloadQueue:
    """Deduplicating FIFO of acquisition jobs with a bounded drain loop.

    Attributes:
        repository: Store the job outcomes are written to.
        downloader: Performs the actual acquisition.
        max_concurrent: Upper bound on jobs executing at the same time.
        interval: Seconds between drain ticks when nothing is enqueued.
    """

    DEFAULT_MAX_CONCURRENT = 3
    DEFAULT_INTERVAL = 1.0

    def __init__(
        self,
        repository: BookmarkRepository,
        downloader: BaseDownloader,
        *,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        interval: float = DEFAULT_INTERVAL,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.repository = repository
        self.downloader = downloader
        self.max_concurrent = max_concurrent
        self.interval = interval

        self._jobs: deque[AcquisitionJob] = deque()
        self._queued_ids: set[str] = set()
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._wakeup = asyncio.Event()
        self._batch_lock = asyncio.Lock()
        self._processing = False
        self._loop_task: asyncio.Task | None = None

    # ── Admission ────────────────────────────────────────────────────

    def enqueue(self, job: AcquisitionJob) -> bool:
        """Add a job to the tail of the queue.

        Args:
            job: Job to admit.

        Returns:
            False if a job for the same tweet id is already waiting (the new
            one is dropped), True otherwise.
        """
        if job.tweet_id in self._queued_ids:
            logger.info(
                "Job for tweet %s already queued, dropping duplicate",
                job.tweet_id,
                extra={"tweet_id": job.tweet_id},
            )
            return False

        self._jobs.append(job)
        self._queued_ids.add(job.tweet_id)
        self._wakeup.set()
        logger.info(
            "Queued media download (queue size %d)",
            len(self._jobs),
            extra={"tweet_id": job.tweet_id},
        )
        return True

    def status(self) -> dict[str, Any]:
        return {"pending": len(self._jobs), "processing": self._processing}

    def __len__(self) -> int:
        return len(self._jobs)

    # ── Drain loop ───────────────────────────────────────────────────

    def start(self) -> None:
        """Start the background drain loop (idempotent)."""
        if self._loop_task is not None and not self._loop_task.done():
            return
        self._loop_task = asyncio.create_task(self._run_loop(), name="download-queue")
        logger.info(
            "Download queue started (max_concurrent=%d, interval=%.1fs)",
            self.max_concurrent,
            self.interval,
        )

    async def stop(self) -> None:
        """Stop the drain loop after the in-flight batch finishes.

        Jobs still waiting in the queue are discarded.
        """
        task = self._loop_task
        self._loop_task = None
        if task is None:
            return

        # Let a running batch complete before cancelling the idle wait
        async with self._batch_lock:
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        if self._jobs:
            logger.warning("Download queue stopped with %d job(s) pending", len(self._jobs))
        logger.info("Download queue stopped")

    async def _run_loop(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
            self._wakeup.clear()

            try:
                await self.drain_once()
            except Exception:
                logger.exception("Download queue tick failed")

    async def drain_once(self) -> int:
        """Run one batch of up to max_concurrent jobs.

        Returns immediately with 0 if a batch is already running or the
        queue is empty.

        Returns:
            Number of jobs run.
        """
        if self._batch_lock.locked() or not self._jobs:
            return 0

        async with self._batch_lock:
            batch: list[AcquisitionJob] = []
            while self._jobs and len(batch) < self.max_concurrent:
                job = self._jobs.popleft()
                self._queued_ids.discard(job.tweet_id)
                batch.append(job)

            if not batch:
                return 0

            self._processing = True
            try:
                await asyncio.gather(*(self._run_guarded(job) for job in batch))
            finally:
                self._processing = False
            return len(batch)

    async def _run_guarded(self, job: AcquisitionJob) -> None:
        """Run one job; a failure never leaves the batch before its siblings."""
        async with self._semaphore:
            try:
                await self.process_job(job)
            except Exception as e:
                logger.exception(
                    "Media download job failed: %s", e, extra={"tweet_id": job.tweet_id}
                )
                await self._mark_failed(job)

    async def _mark_failed(self, job: AcquisitionJob) -> None:
        try:
            await asyncio.to_thread(
                self.repository.set_status,
                job.bookmark_id,
                BookmarkStatus.FAILED,
                media_download_failed=True,
            )
        except Exception as e:
            logger.error(
                "Could not mark bookmark id=%d failed: %s",
                job.bookmark_id,
                e,
                extra={"tweet_id": job.tweet_id},
            )

    # ── Job execution ────────────────────────────────────────────────

    async def process_job(self, job: AcquisitionJob) -> None:
        """Run one job and reconcile its outcome into the repository.

        Status goes to DOWNLOADING, then COMPLETED or FAILED depending on
        whether any item failed. A fault raised by the downloader itself
        marks the bookmark FAILED; the job is not requeued. Store writes
        run in a worker thread so sqlite I/O stays off the event loop.
        """
        log = get_bookmark_logger(__name__, job.tweet_id)
        repo = self.repository

        bookmark = await asyncio.to_thread(repo.get, job.bookmark_id)
        if bookmark is None:
            log.warning("Bookmark id=%d no longer exists, skipping job", job.bookmark_id)
            return

        # Use the latest stored media descriptors, not the ones at enqueue time
        job = AcquisitionJob.from_bookmark(bookmark)

        await asyncio.to_thread(
            repo.set_status,
            job.bookmark_id,
            BookmarkStatus.DOWNLOADING,
            media_download_failed=False,
        )
        log.info(
            "Processing media download (type=%s, candidates=%d)",
            job.media_type.value,
            len(job.media_urls),
        )

        try:
            result = await self.downloader.download(job)
        except Exception as e:
            log.exception("Media download crashed: %s", e)
            await self._mark_failed(job)
            return

        await asyncio.to_thread(repo.replace_media_items, job.bookmark_id, result.items)
        if result.has_failure:
            await asyncio.to_thread(
                repo.set_status,
                job.bookmark_id,
                BookmarkStatus.FAILED,
                media_download_failed=True,
            )
            log.warning(
                "Media download incomplete: %d of %d item(s) failed",
                result.failed_count,
                result.expected_count,
            )
        else:
            await asyncio.to_thread(
                repo.set_status,
                job.bookmark_id,
                BookmarkStatus.COMPLETED,
                media_download_failed=False,
            )
            log.info("Media download completed: %d item(s)", result.downloaded_count)
