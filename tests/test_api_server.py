"""Tests for the HTTP API."""

import asyncio
import sqlite3
import tempfile
from datetime import date
from pathlib import Path
from unittest.mock import patch

from aiohttp import web
from aiohttp.test_utils import AioHTTPTestCase

from conftest import StubDownloader, image_result, make_input
from tweetvault.api_server import (
    CONFIG_STORE_KEY,
    QUEUE_KEY,
    REPOSITORY_KEY,
    SERVER_VERSION,
    create_app,
)
from tweetvault.core.bookmark import BookmarkStatus
from tweetvault.core.config import Config
from tweetvault.core.queue import DownloadQueue
from tweetvault.core.repository import BookmarkRepository

PAYLOAD = {
    "tweetId": "1001",
    "url": "https://x.com/someone/status/1001",
    "authorId": "someone",
    "authorName": "Some One",
    "authorHandle": "@someone",
    "text": "hello",
    "mediaType": "image",
    "mediaUrls": ["https://pbs.twimg.com/media/AAA?format=jpg&name=large"],
}


class ApiTestCase(AioHTTPTestCase):
    """Base case wiring the app to a temporary store and a stub downloader."""

    api_token: str | None = None

    async def get_application(self) -> web.Application:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.tmp_path = Path(tmp.name)

        config = Config(
            db_path=self.tmp_path / "bookmarks.db",
            media_dir=self.tmp_path / "media",
            config_file=self.tmp_path / "config.json",
            queue_interval=0.01,
            api_token=self.api_token,
        )
        self.repository = BookmarkRepository(config.db_path)
        self.downloader = StubDownloader()
        queue = DownloadQueue(self.repository, self.downloader, interval=0.01)
        return create_app(config, repository=self.repository, queue=queue)

    async def wait_for_jobs(self, count: int) -> None:
        for _ in range(200):
            if len(self.downloader.jobs) >= count:
                return
            await asyncio.sleep(0.01)


class TestHealthEndpoint(ApiTestCase):
    async def test_health(self):
        resp = await self.client.get("/api/health")
        data = await resp.json()

        assert resp.status == 200
        assert data["success"] is True
        assert data["status"] == "ok"
        assert data["version"] == SERVER_VERSION
        assert "timestamp" in data

    async def test_cors_headers(self):
        resp = await self.client.get(
            "/api/health", headers={"Origin": "chrome-extension://abc"}
        )
        assert resp.headers["Access-Control-Allow-Origin"] == "chrome-extension://abc"

    async def test_preflight(self):
        resp = await self.client.options("/api/bookmarks")
        assert resp.status == 204
        assert "POST" in resp.headers["Access-Control-Allow-Methods"]


class TestCreateBookmark(ApiTestCase):
    async def test_create_returns_201_and_queues_media(self):
        resp = await self.client.post("/api/bookmarks", json=PAYLOAD)
        data = await resp.json()

        assert resp.status == 201
        assert data["success"] is True
        assert data["message"] == "Bookmark saved successfully"
        assert data["data"]["tweetId"] == "1001"
        assert data["data"]["status"] == "pending"
        assert data["data"]["mediaItems"] == []

        await self.wait_for_jobs(1)
        assert [job.tweet_id for job in self.downloader.jobs] == ["1001"]

    async def test_text_only_bookmark_is_not_queued(self):
        payload = {**PAYLOAD, "mediaType": "none", "mediaUrls": []}

        resp = await self.client.post("/api/bookmarks", json=payload)
        await asyncio.sleep(0.05)

        assert resp.status == 201
        assert self.downloader.jobs == []
        assert self.repository.get_by_tweet_id("1001").status == BookmarkStatus.PENDING

    async def test_video_without_urls_is_queued(self):
        payload = {**PAYLOAD, "mediaType": "video", "mediaUrls": []}

        await self.client.post("/api/bookmarks", json=payload)
        await self.wait_for_jobs(1)

        assert len(self.downloader.jobs) == 1

    async def test_resubmission_updates_single_row(self):
        await self.client.post("/api/bookmarks", json=PAYLOAD)
        resp = await self.client.post("/api/bookmarks", json={**PAYLOAD, "text": "edited"})
        data = await resp.json()

        assert data["data"]["text"] == "edited"
        assert self.repository.count() == 1

    async def test_validation_error(self):
        resp = await self.client.post("/api/bookmarks", json={"url": "https://x.com/a"})
        data = await resp.json()

        assert resp.status == 400
        assert data["success"] is False
        assert data["error"] == "Validation error"
        fields = {detail["loc"][0] for detail in data["details"]}
        assert {"tweetId", "authorId"} <= fields

    async def test_invalid_json(self):
        resp = await self.client.post(
            "/api/bookmarks", data="{oops", headers={"Content-Type": "application/json"}
        )
        assert resp.status == 400

    async def test_body_not_utf8(self):
        resp = await self.client.post(
            "/api/bookmarks",
            data=b'{"tweetId": "\xff\xfe"}',
            headers={"Content-Type": "application/json; charset=utf-8"},
        )
        assert resp.status == 400

    async def test_non_object_body(self):
        resp = await self.client.post("/api/bookmarks", json=[PAYLOAD])
        assert resp.status == 400


class TestTokenAuth(ApiTestCase):
    api_token = "s3cret"

    async def test_missing_token_is_rejected(self):
        resp = await self.client.post("/api/bookmarks", json=PAYLOAD)
        assert resp.status == 401
        assert self.repository.count() == 0

    async def test_wrong_token_is_rejected(self):
        resp = await self.client.post(
            "/api/bookmarks", json=PAYLOAD, headers={"Authorization": "Bearer nope"}
        )
        assert resp.status == 401

    async def test_valid_token_is_accepted(self):
        resp = await self.client.post(
            "/api/bookmarks", json=PAYLOAD, headers={"Authorization": "Bearer s3cret"}
        )
        assert resp.status == 201


class TestListAndFetch(ApiTestCase):
    async def test_list_with_pagination_and_media(self):
        for i in range(3):
            self.repository.upsert(make_input(str(i)))
        newest = self.repository.get_by_tweet_id("2")
        self.repository.replace_media_items(newest.id, [image_result(1)])

        resp = await self.client.get("/api/bookmarks?limit=2&offset=0")
        data = await resp.json()

        assert resp.status == 200
        assert [b["tweetId"] for b in data["data"]] == ["2", "1"]
        assert [m["sequence"] for m in data["data"][0]["mediaItems"]] == [1]
        assert data["data"][1]["mediaItems"] == []
        assert data["pagination"] == {"total": 3, "limit": 2, "offset": 0, "hasMore": True}

    async def test_last_page_has_no_more(self):
        self.repository.upsert(make_input("1"))

        resp = await self.client.get("/api/bookmarks?limit=5&offset=0")
        data = await resp.json()

        assert data["pagination"]["hasMore"] is False

    async def test_invalid_pagination(self):
        for query in ("limit=abc", "limit=-1", "offset=-5"):
            resp = await self.client.get(f"/api/bookmarks?{query}")
            assert resp.status == 400, query

    async def test_count(self):
        self.repository.upsert(make_input("1"))
        self.repository.upsert(make_input("2"))

        resp = await self.client.get("/api/bookmarks/count")

        assert (await resp.json()) == {"success": True, "count": 2}

    async def test_get_single_bookmark(self):
        bookmark = self.repository.upsert(make_input("1"))
        self.repository.replace_media_items(bookmark.id, [image_result(1)])

        resp = await self.client.get(f"/api/bookmarks/{bookmark.id}")
        data = await resp.json()

        assert resp.status == 200
        assert data["data"]["tweetId"] == "1"
        assert len(data["data"]["mediaItems"]) == 1

    async def test_get_missing_bookmark(self):
        for path in ("/api/bookmarks/999", "/api/bookmarks/abc"):
            resp = await self.client.get(path)
            assert resp.status == 404

    async def test_delete_bookmark(self):
        bookmark = self.repository.upsert(make_input("1"))
        self.repository.replace_media_items(bookmark.id, [image_result(1)])

        resp = await self.client.delete(f"/api/bookmarks/{bookmark.id}")

        assert resp.status == 200
        assert self.repository.get(bookmark.id) is None
        assert self.repository.get_media_items(bookmark.id) == []

        resp = await self.client.delete(f"/api/bookmarks/{bookmark.id}")
        assert resp.status == 404

    async def test_queue_status(self):
        resp = await self.client.get("/api/queue")
        data = await resp.json()

        assert data == {"success": True, "data": {"pending": 0, "processing": False}}
        assert isinstance(self.app[QUEUE_KEY], DownloadQueue)

    async def test_store_error_returns_500(self):
        with patch.object(
            self.app[REPOSITORY_KEY], "count", side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            resp = await self.client.get("/api/bookmarks/count")
            data = await resp.json()

        assert resp.status == 500
        assert data["success"] is False
        assert "disk I/O error" in data["error"]


class TestConfigEndpoints(ApiTestCase):
    async def test_get_config_defaults(self):
        self.repository.upsert(make_input("1"))

        resp = await self.client.get("/api/config")
        data = await resp.json()

        assert data["mediaDir"] == str((self.tmp_path / "media").resolve())
        assert data["serverVersion"] == SERVER_VERSION
        assert data["todayCount"] == 1
        assert data["totalCount"] == 1
        assert data["serverLocalDate"] == date.today().strftime("%Y-%m-%d")
        assert data["updatedAt"] is None

    async def test_update_config_creates_directory(self):
        target = self.tmp_path / "picked" / "media"

        resp = await self.client.post("/api/config", json={"mediaDir": str(target)})
        data = await resp.json()

        assert resp.status == 200
        assert data["mediaDir"] == str(target)
        assert data["updatedAt"]
        assert target.is_dir()
        assert self.app[CONFIG_STORE_KEY].resolve_media_root() == target.resolve()

    async def test_update_config_rejects_empty(self):
        resp = await self.client.post("/api/config", json={"mediaDir": "  "})
        assert resp.status == 400

    async def test_update_config_rejects_body_not_utf8(self):
        resp = await self.client.post(
            "/api/config",
            data=b'{"mediaDir": "\xff"}',
            headers={"Content-Type": "application/json; charset=utf-8"},
        )
        assert resp.status == 400

    async def test_update_config_rejects_uncreatable(self):
        blocker = self.tmp_path / "file.txt"
        blocker.write_text("not a directory")

        resp = await self.client.post("/api/config", json={"mediaDir": str(blocker / "sub")})

        assert resp.status == 400


class TestMediaFiles(ApiTestCase):
    async def test_serves_file_from_media_root(self):
        day_dir = self.app[CONFIG_STORE_KEY].resolve_today_dir(date(2026, 1, 23))
        (day_dir / "1001_img_01.jpg").write_bytes(b"jpeg-bytes")

        resp = await self.client.get("/media/2026-01-23/1001_img_01.jpg")

        assert resp.status == 200
        assert await resp.read() == b"jpeg-bytes"

    async def test_missing_file(self):
        resp = await self.client.get("/media/2026-01-23/nope.jpg")
        assert resp.status == 404

    async def test_path_traversal_is_rejected(self):
        (self.tmp_path / "secret.txt").write_text("top secret")

        resp = await self.client.get("/media/%2E%2E/secret.txt")

        assert resp.status == 404
