"""HTTP API for TweetVault.

Thin aiohttp layer between the capture client (browser extension) and the
bookmark repository / download queue.

Endpoints:
    GET    /api/health            - Health check
    GET    /api/bookmarks/count   - Total number of bookmarks
    POST   /api/bookmarks         - Upsert a bookmark, queue its media (201)
    GET    /api/bookmarks         - Paginated list (?limit=&offset=)
    GET    /api/bookmarks/{id}    - Single bookmark with its media items
    DELETE /api/bookmarks/{id}    - Delete a bookmark and its media items
    GET    /api/queue             - Download queue status
    GET    /api/config            - Media root and capture stats
    POST   /api/config            - Change the media root
    GET    /media/{path}          - Serve downloaded media files
"""

import hmac
import logging
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from tweetvault.core.bookmark import AcquisitionJob, Bookmark, BookmarkInput
from tweetvault.core.config import Config, get_config
from tweetvault.core.config_store import ConfigStore
from tweetvault.core.queue import DownloadQueue
from tweetvault.core.repository import BookmarkRepository
from tweetvault.processors.extractor import YtDlpExtractor
from tweetvault.processors.media_downloader import MediaDownloader

logger = logging.getLogger(__name__)

SERVER_VERSION = "1.0.0"
DEFAULT_PAGE_SIZE = 100

CONFIG_KEY = web.AppKey("config", Config)
REPOSITORY_KEY = web.AppKey("repository", BookmarkRepository)
QUEUE_KEY = web.AppKey("queue", DownloadQueue)
CONFIG_STORE_KEY = web.AppKey("config_store", ConfigStore)


def error_response(message: str, status: int, **extra: Any) -> web.Response:
    return web.json_response({"success": False, "error": message, **extra}, status=status)


def check_auth(request: web.Request) -> bool:
    """Check the bearer token when one is configured.

    With no ``api_token`` set, authentication is disabled.
    """
    token = request.app[CONFIG_KEY].api_token
    if not token:
        return True

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return False
    return hmac.compare_digest(auth_header[7:], token)


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Allow any origin; the capture client runs inside a browser extension."""
    if request.method == "OPTIONS":
        response: web.StreamResponse = web.Response(status=204)
    else:
        response = await handler(request)
    response.headers["Access-Control-Allow-Origin"] = request.headers.get("Origin", "*")
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, DELETE, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
    return response


@web.middleware
async def store_error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Map bookmark store failures to 500 responses."""
    try:
        return await handler(request)
    except sqlite3.Error as e:
        logger.exception("Store error on %s %s", request.method, request.path)
        return error_response(f"Store error: {e}", 500)


def _with_media_items(repository: BookmarkRepository, bookmark: Bookmark) -> dict[str, Any]:
    bookmark.media_items = repository.get_media_items(bookmark.id)
    return bookmark.to_dict()


def _parse_bookmark_id(request: web.Request) -> int | None:
    try:
        return int(request.match_info["id"])
    except ValueError:
        return None


def _parse_non_negative(raw: str | None, default: int) -> int:
    if raw is None or raw == "":
        return default
    value = int(raw)
    if value < 0:
        raise ValueError(f"must be non-negative, got {value}")
    return value


# ── Health ───────────────────────────────────────────────────────────


async def health_handler(request: web.Request) -> web.Response:
    return web.json_response(
        {
            "success": True,
            "status": "ok",
            "version": SERVER_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


async def count_handler(request: web.Request) -> web.Response:
    count = request.app[REPOSITORY_KEY].count()
    return web.json_response({"success": True, "count": count})


# ── Bookmarks ────────────────────────────────────────────────────────


async def create_bookmark_handler(request: web.Request) -> web.Response:
    """Save a bookmark and queue its media download.

    Returns:
        201 with the saved bookmark, 400 on invalid input, 401 when the
        token is wrong, 500 on store errors.
    """
    if not check_auth(request):
        return error_response("Unauthorized - invalid or missing token", 401)

    try:
        body = await request.json()
    except ValueError:
        return error_response("Invalid JSON body", 400)

    if not isinstance(body, dict):
        return error_response("Request body must be a JSON object", 400)

    try:
        data = BookmarkInput.model_validate(body)
    except ValidationError as e:
        return error_response(
            "Validation error",
            400,
            details=e.errors(include_url=False, include_context=False, include_input=False),
        )

    repository = request.app[REPOSITORY_KEY]
    logger.info("Received bookmark request", extra={"tweet_id": data.tweet_id})

    try:
        bookmark = repository.upsert(data)
    except (sqlite3.Error, OSError) as e:
        logger.exception("Failed to save bookmark %s", data.tweet_id)
        return error_response(str(e), 500)

    logger.info("Bookmark saved (id=%d)", bookmark.id, extra={"tweet_id": bookmark.tweet_id})

    if data.needs_media_download():
        request.app[QUEUE_KEY].enqueue(AcquisitionJob.from_bookmark(bookmark))

    return web.json_response(
        {
            "success": True,
            "data": _with_media_items(repository, bookmark),
            "message": "Bookmark saved successfully",
        },
        status=201,
    )


async def list_bookmarks_handler(request: web.Request) -> web.Response:
    try:
        limit = _parse_non_negative(request.query.get("limit"), DEFAULT_PAGE_SIZE)
        offset = _parse_non_negative(request.query.get("offset"), 0)
    except ValueError as e:
        return error_response(f"Invalid pagination parameter: {e}", 400)

    repository = request.app[REPOSITORY_KEY]
    bookmarks = repository.list_bookmarks(limit, offset)
    total = repository.count()
    media = repository.get_media_items_batch(b.id for b in bookmarks)

    data = []
    for bookmark in bookmarks:
        bookmark.media_items = media.get(bookmark.id, [])
        data.append(bookmark.to_dict())

    return web.json_response(
        {
            "success": True,
            "data": data,
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "hasMore": offset + len(bookmarks) < total,
            },
        }
    )


async def get_bookmark_handler(request: web.Request) -> web.Response:
    bookmark_id = _parse_bookmark_id(request)
    if bookmark_id is None:
        return error_response("Bookmark not found", 404)

    repository = request.app[REPOSITORY_KEY]
    bookmark = repository.get(bookmark_id)
    if bookmark is None:
        return error_response("Bookmark not found", 404)

    return web.json_response({"success": True, "data": _with_media_items(repository, bookmark)})


async def delete_bookmark_handler(request: web.Request) -> web.Response:
    bookmark_id = _parse_bookmark_id(request)
    if bookmark_id is None or not request.app[REPOSITORY_KEY].delete(bookmark_id):
        return error_response("Bookmark not found", 404)

    return web.json_response({"success": True, "message": "Bookmark deleted successfully"})


async def queue_status_handler(request: web.Request) -> web.Response:
    return web.json_response({"success": True, "data": request.app[QUEUE_KEY].status()})


# ── Config ───────────────────────────────────────────────────────────


async def get_config_handler(request: web.Request) -> web.Response:
    store = request.app[CONFIG_STORE_KEY]
    repository = request.app[REPOSITORY_KEY]
    user_config = store.load()
    today = date.today()

    return web.json_response(
        {
            "mediaDir": user_config.get("mediaDir") or str(store.resolve_media_root()),
            "serverVersion": SERVER_VERSION,
            "todayCount": repository.count_created_on(today),
            "totalCount": repository.count(),
            "serverLocalDate": today.strftime("%Y-%m-%d"),
            "updatedAt": user_config.get("updatedAt"),
        }
    )


async def update_config_handler(request: web.Request) -> web.Response:
    try:
        body = await request.json()
    except ValueError:
        return error_response("Invalid JSON body", 400)

    media_dir = body.get("mediaDir") if isinstance(body, dict) else None
    if not isinstance(media_dir, str) or not media_dir.strip():
        return error_response("Please provide a media directory path.", 400)

    path = Path(media_dir.strip()).expanduser()
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Failed to create media directory %s: %s", path, e)
        return error_response(f"Unable to create directory: {path}", 400)

    try:
        saved = request.app[CONFIG_STORE_KEY].save(path)
    except OSError as e:
        logger.error("Failed to save config: %s", e)
        return error_response("Failed to update config", 500)

    return web.json_response(
        {"success": True, "mediaDir": saved["mediaDir"], "updatedAt": saved["updatedAt"]}
    )


async def media_handler(request: web.Request) -> web.StreamResponse:
    """Serve a file from below the current media root."""
    root = request.app[CONFIG_STORE_KEY].resolve_media_root()
    target = (root / request.match_info["path"]).resolve()
    if not target.is_relative_to(root) or not target.is_file():
        raise web.HTTPNotFound()
    return web.FileResponse(target)


# ── Application ──────────────────────────────────────────────────────


async def _start_queue(app: web.Application) -> None:
    app[QUEUE_KEY].start()


async def _stop_queue(app: web.Application) -> None:
    await app[QUEUE_KEY].stop()


def create_app(
    config: Config | None = None,
    *,
    repository: BookmarkRepository | None = None,
    queue: DownloadQueue | None = None,
    config_store: ConfigStore | None = None,
) -> web.Application:
    """Create and configure the aiohttp application.

    Args:
        config: Application config. Defaults to get_config().
        repository: Bookmark store. Built from ``config.db_path`` if omitted.
        queue: Download queue. Built with a MediaDownloader and yt-dlp
            extractor if omitted.
        config_store: User config store. Built from ``config`` if omitted.

    Returns:
        Configured aiohttp Application. The queue is started on startup and
        stopped on cleanup.
    """
    config = config or get_config()
    repository = repository or BookmarkRepository(config.db_path)
    config_store = config_store or ConfigStore(config.config_file, config.media_dir)

    if queue is None:
        downloader = MediaDownloader(
            config_store,
            YtDlpExtractor(config.ytdlp_path, timeout=config.extractor_timeout),
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
        )
        queue = DownloadQueue(
            repository,
            downloader,
            max_concurrent=config.max_concurrent,
            interval=config.queue_interval,
        )

    app = web.Application(middlewares=[cors_middleware, store_error_middleware])
    app[CONFIG_KEY] = config
    app[REPOSITORY_KEY] = repository
    app[QUEUE_KEY] = queue
    app[CONFIG_STORE_KEY] = config_store

    app.on_startup.append(_start_queue)
    app.on_cleanup.append(_stop_queue)

    app.router.add_get("/api/health", health_handler)
    app.router.add_get("/api/bookmarks/count", count_handler)
    app.router.add_post("/api/bookmarks", create_bookmark_handler)
    app.router.add_get("/api/bookmarks", list_bookmarks_handler)
    app.router.add_get("/api/bookmarks/{id}", get_bookmark_handler)
    app.router.add_delete("/api/bookmarks/{id}", delete_bookmark_handler)
    app.router.add_get("/api/queue", queue_status_handler)
    app.router.add_get("/api/config", get_config_handler)
    app.router.add_post("/api/config", update_config_handler)
    app.router.add_get("/media/{path:.+}", media_handler)
    return app


async def run_server(config: Config | None = None) -> web.AppRunner:
    """Start the API server.

    Args:
        config: Application config. Defaults to get_config().

    Returns:
        The AppRunner instance (for cleanup).
    """
    config = config or get_config()
    app = create_app(config)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, config.host, config.port)
    await site.start()
    logger.info("Server running at http://%s:%d", config.host, config.port)
    return runner
