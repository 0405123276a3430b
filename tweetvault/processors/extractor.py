"""Video extractor for Twitter native video and gif content.

Wraps yt-dlp behind a small interface with two operations:
- probe: count the media entries a tweet URL exposes, without downloading
- extract: download them into numbered files under a destination directory
"""

import asyncio
import json
import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from tweetvault.core.exceptions import ExtractorError, ExtractorUnavailableError

logger = logging.getLogger(__name__)

# Sidecar and partial files yt-dlp may leave next to real outputs
_IGNORED_SUFFIXES = {".part", ".ytdl", ".temp", ".json", ".description"}


def video_name_prefix(tweet_id: str) -> str:
    return f"{tweet_id}_video_"


def find_produced_files(dest_dir: Path, name_prefix: str) -> list[Path]:
    """List finished extractor outputs for a prefix, in name order.

    Args:
        dest_dir: Directory the extractor wrote into.
        name_prefix: File name prefix, e.g. ``"123_video_"``.

    Returns:
        Sorted paths of non-empty files that are not partial or sidecar files.
    """
    if not dest_dir.exists():
        return []
    files = [
        path
        for path in dest_dir.glob(f"{name_prefix}*")
        if path.is_file()
        and path.suffix.lower() not in _IGNORED_SUFFIXES
        and path.stat().st_size > 0
    ]
    return sorted(files, key=lambda path: path.name)


def remove_previous_outputs(dest_dir: Path, name_prefix: str) -> int:
    """Delete files an earlier extraction left under a prefix.

    yt-dlp skips outputs that already exist, and leftovers would be matched
    as this run's files, so re-acquisition starts from an empty slate.

    Returns:
        Number of files removed.
    """
    if not dest_dir.exists():
        return 0
    removed = 0
    for path in dest_dir.glob(f"{name_prefix}*"):
        if path.is_file():
            path.unlink()
            removed += 1
    return removed


class VideoExtractor(ABC):
    """Capability to turn a tweet URL into downloaded video files."""

    @abstractmethod
    async def probe(self, url: str) -> int:
        """Return the number of media entries available at ``url``.

        Raises:
            ExtractorError: If probing fails.
        """

    @abstractmethod
    async def extract(self, url: str, dest_dir: Path, name_prefix: str) -> list[Path]:
        """Download every entry at ``url`` into ``dest_dir``.

        Output files are named ``<name_prefix><NN>.<ext>`` with NN starting
        at 01.

        Returns:
            Produced files in name order.

        Raises:
            ExtractorError: If the extractor fails and produced nothing.
        """


class YtDlpExtractor(VideoExtractor):
    """VideoExtractor backed by the yt-dlp command-line tool.

    yt-dlp runs in the default executor through subprocess.run so the event
    loop is never blocked.
    """

    DEFAULT_TIMEOUT = 300
    FORMAT = "best[ext=mp4]/best"

    def __init__(self, binary: str = "yt-dlp", timeout: Optional[int] = None):
        self.binary = binary
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    async def probe(self, url: str) -> int:
        cmd = [
            self.binary,
            "--dump-json",
            "--skip-download",
            "--no-warnings",
            url,
        ]
        result = await self._run(cmd)
        if result.returncode != 0:
            raise ExtractorError(
                f"yt-dlp probe exited with code {result.returncode}: "
                f"{_tail(result.stderr)}"
            )

        count = count_probe_entries(result.stdout)
        logger.debug("yt-dlp probe found %d entries for %s", count, url)
        return count

    async def extract(self, url: str, dest_dir: Path, name_prefix: str) -> list[Path]:
        dest_dir.mkdir(parents=True, exist_ok=True)
        template = dest_dir / f"{name_prefix}%(autonumber)02d.%(ext)s"
        cmd = [
            self.binary,
            "-o",
            str(template),
            "--no-warnings",
            "--no-progress",
            "--no-part",
            "-f",
            self.FORMAT,
            url,
        ]
        result = await self._run(cmd, cwd=dest_dir)
        produced = find_produced_files(dest_dir, name_prefix)

        if result.returncode != 0:
            if not produced:
                raise ExtractorError(
                    f"yt-dlp exited with code {result.returncode}: {_tail(result.stderr)}"
                )
            logger.warning(
                "yt-dlp exited with code %d but produced %d file(s) for %s",
                result.returncode,
                len(produced),
                url,
            )
        elif not produced:
            raise ExtractorError("yt-dlp finished without producing any files")

        return produced

    async def version(self) -> str | None:
        """Return the installed yt-dlp version, or None if unavailable."""
        try:
            result = await self._run([self.binary, "--version"])
        except ExtractorError as e:
            logger.debug("yt-dlp version check failed: %s", e)
            return None
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    async def _run(
        self, cmd: list[str], cwd: Path | None = None
    ) -> subprocess.CompletedProcess:
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    lambda: subprocess.run(
                        cmd,
                        capture_output=True,
                        text=True,
                        timeout=self.timeout,
                        cwd=cwd,
                    ),
                ),
                timeout=self.timeout + 5,
            )
        except FileNotFoundError as e:
            raise ExtractorUnavailableError(f"yt-dlp not available ({self.binary}): {e}")
        except PermissionError as e:
            raise ExtractorUnavailableError(f"yt-dlp not executable ({self.binary}): {e}")
        except (asyncio.TimeoutError, subprocess.TimeoutExpired):
            raise ExtractorError(f"yt-dlp timeout after {self.timeout}s")


def count_probe_entries(stdout: str) -> int:
    """Count media entries in ``yt-dlp --dump-json`` output.

    yt-dlp prints one JSON object per entry; a playlist object contributes
    its ``entries``. Unparseable lines are ignored.
    """
    count = 0
    for line in stdout.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            info = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(info, dict):
            continue
        if info.get("_type") == "playlist":
            count += len(info.get("entries") or [])
        else:
            count += 1
    return count


def _tail(text: str | None, limit: int = 300) -> str:
    text = (text or "").strip()
    return text[-limit:] if text else "no output"
