"""Bookmark data model for TweetVault.

This module defines the core data structures shared by the repository,
the download queue and the media downloader:
- MediaType / MediaKind: what a bookmark carries and what an item is
- BookmarkStatus / MediaItemStatus: lifecycle states
- BookmarkInput: payload submitted by the capture client
- Bookmark / MediaItem: persisted rows
- MediaItemResult / AcquisitionJob: transient pipeline values
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class MediaType(str, Enum):
    """Media carried by a bookmark, as reported by the capture client.

    - NONE: text only
    - IMAGE: one or more photos
    - VIDEO / GIF: native video or animated gif (needs the extractor)
    - MIXED: photos plus video in the same post
    """

    NONE = "none"
    IMAGE = "image"
    VIDEO = "video"
    GIF = "gif"
    MIXED = "mixed"

    @property
    def needs_extractor(self) -> bool:
        return self in (MediaType.VIDEO, MediaType.GIF, MediaType.MIXED)


class BookmarkStatus(str, Enum):
    """Media acquisition state for a bookmark.

    pending -> downloading -> completed | failed. Terminal states are only
    left through a fresh upsert of the same tweet id.
    """

    PENDING = "pending"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    FAILED = "failed"


class MediaKind(str, Enum):
    """Kind of an individual media asset."""

    IMAGE = "image"
    VIDEO = "video"
    GIF = "gif"


class MediaItemStatus(str, Enum):
    """Outcome of acquiring a single media asset."""

    COMPLETED = "completed"
    FAILED = "failed"


class BookmarkInput(BaseModel):
    """Bookmark payload as sent by the capture client.

    Accepts the client's camelCase keys (``tweetId``, ``mediaUrls``...) as
    well as the snake_case field names.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tweet_id: str = Field(min_length=1)
    url: str
    author_id: str = Field(min_length=1)
    author_name: Optional[str] = None
    author_handle: Optional[str] = None
    text: Optional[str] = None
    media_type: MediaType = MediaType.NONE
    media_urls: list[str] = Field(default_factory=list)
    quoted_tweet_url: Optional[str] = None
    bookmark_time: Optional[str] = None
    raw_html: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError("url must be an absolute http(s) URL")
        return value

    def needs_media_download(self) -> bool:
        """Whether an acquisition job should be queued for this input.

        True when there are candidate media URLs or the media type implies
        an extractor pass (video, gif or mixed).
        """
        return bool(self.media_urls) or self.media_type.needs_extractor


@dataclass
class MediaItem:
    """One acquired-or-attempted media asset belonging to a bookmark."""

    id: int
    bookmark_id: int
    kind: MediaKind
    source_url: str
    sequence: int
    status: MediaItemStatus
    local_path: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int = 0
    file_size: Optional[int] = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "bookmarkId": self.bookmark_id,
            "kind": self.kind.value,
            "sourceUrl": self.source_url,
            "sequence": self.sequence,
            "status": self.status.value,
            "localPath": self.local_path,
            "errorMessage": self.error_message,
            "retryCount": self.retry_count,
            "fileSize": self.file_size,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass
class Bookmark:
    """A captured tweet and the state of its media acquisition.

    ``tweet_id`` is the external identifier; it is unique and never changes.
    ``media_paths`` is a cache of the local paths of completed media items,
    in sequence order.
    """

    # Identity
    id: int
    tweet_id: str

    # Content
    url: str
    author_id: str
    author_name: str = ""
    author_handle: str = ""
    text: str = ""
    quoted_tweet_url: Optional[str] = None
    bookmark_time: str = ""

    # Media descriptors
    media_type: MediaType = MediaType.NONE
    media_urls: list[str] = field(default_factory=list)
    media_paths: list[str] = field(default_factory=list)
    media_download_failed: bool = False

    # Lifecycle
    status: BookmarkStatus = BookmarkStatus.PENDING
    created_at: str = ""
    updated_at: str = ""

    # Attached by callers that render a bookmark together with its items
    media_items: list[MediaItem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase shape used by the HTTP API."""
        return {
            "id": self.id,
            "tweetId": self.tweet_id,
            "url": self.url,
            "authorId": self.author_id,
            "authorName": self.author_name,
            "authorHandle": self.author_handle,
            "text": self.text,
            "mediaType": self.media_type.value,
            "mediaUrls": list(self.media_urls),
            "mediaPaths": list(self.media_paths),
            "mediaDownloadFailed": self.media_download_failed,
            "quotedTweetUrl": self.quoted_tweet_url,
            "status": self.status.value,
            "bookmarkTime": self.bookmark_time,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "mediaItems": [item.to_dict() for item in self.media_items],
        }


@dataclass
class MediaItemResult:
    """Downloader outcome for a single media asset.

    Attributes:
        kind: Image, video or gif
        source_url: Originating URL, or a synthetic locator for
            extractor-derived videos
        sequence: Stable 1-based position within the bookmark
        status: COMPLETED or FAILED
        local_path: Written file (COMPLETED only)
        error: Last error message (FAILED only)
        retry_count: Retries actually consumed
        file_size: Size in bytes of the written file
    """

    kind: MediaKind
    source_url: str
    sequence: int
    status: MediaItemStatus
    local_path: Optional[str] = None
    error: Optional[str] = None
    retry_count: int = 0
    file_size: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.status == MediaItemStatus.COMPLETED


@dataclass
class AcquisitionJob:
    """A queued request to acquire all media for one bookmark.

    Transient: lives in the download queue until handed to the downloader.
    """

    bookmark_id: int
    tweet_id: str
    tweet_url: str
    media_urls: list[str] = field(default_factory=list)
    media_type: MediaType = MediaType.NONE

    @classmethod
    def from_bookmark(cls, bookmark: Bookmark) -> "AcquisitionJob":
        return cls(
            bookmark_id=bookmark.id,
            tweet_id=bookmark.tweet_id,
            tweet_url=bookmark.url,
            media_urls=list(bookmark.media_urls),
            media_type=bookmark.media_type,
        )
