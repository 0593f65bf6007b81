"""YouTube URL parsing and Data API access."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Pattern, Tuple

import httpx

from ..config import YouTubeConfig
from .errors import ConfigurationError, FetchError


LOGGER = logging.getLogger(__name__)


# The leading greedy ".*" makes the last watch, short-link or embed marker in
# the URL win. Shorts are tried only when that pattern yields nothing.
VIDEO_ID_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"^.*(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([^?&#]*)"),
    re.compile(r"^.*(?:youtube\.com/shorts/)([^?&#]*)"),
)

_SHORTS_PATTERN = re.compile(r"youtube\.com/shorts/([a-zA-Z0-9_-]{11})", re.IGNORECASE)
_PLAYLIST_PATTERN = re.compile(r"[?&]list=([a-zA-Z0-9_-]+)", re.IGNORECASE)
_VIDEO_PATTERN = re.compile(
    r"(?:youtube\.com/(?:watch\?v=|embed/)|youtu\.be/)([a-zA-Z0-9_-]{11})",
    re.IGNORECASE,
)
_DURATION_PATTERN = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)

SHORT_MAX_SECONDS = 60
PLAYLIST_PAGE_SIZE = 50
VIDEO_DETAIL_PARTS = "snippet,contentDetails,statistics"

ReferenceType = Literal["video", "short", "playlist"]


def extract_video_id(url: Any) -> Optional[str]:
    """Return the video identifier embedded in *url* or ``None``."""

    if not isinstance(url, str):
        return None
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.match(url)
        if match and match.group(1):
            return match.group(1)
    return None


@dataclass(frozen=True)
class YouTubeReference:
    type: ReferenceType
    id: str


def extract_youtube_info(url: Any) -> Optional[YouTubeReference]:
    """Classify *url* as a short, a playlist or a regular video.

    Shorts are checked first, then a ``list=`` parameter, so a watch URL that
    carries a playlist resolves to the playlist.
    """

    if not isinstance(url, str):
        return None
    match = _SHORTS_PATTERN.search(url)
    if match:
        return YouTubeReference(type="short", id=match.group(1))
    match = _PLAYLIST_PATTERN.search(url)
    if match:
        return YouTubeReference(type="playlist", id=match.group(1))
    match = _VIDEO_PATTERN.search(url)
    if match:
        return YouTubeReference(type="video", id=match.group(1))
    return None


def parse_iso8601_duration(value: Any) -> Optional[int]:
    """Return the number of seconds in an ISO-8601 duration such as ``PT4M13S``."""

    if not isinstance(value, str) or value in {"P", "PT"}:
        return None
    match = _DURATION_PATTERN.match(value.strip())
    if not match or value.strip().endswith("T"):
        return None
    parts = {key: int(number) for key, number in match.groupdict(default="0").items()}
    return parts["days"] * 86400 + parts["hours"] * 3600 + parts["minutes"] * 60 + parts["seconds"]


def _best_thumbnail(snippet: Dict[str, Any]) -> Optional[str]:
    thumbnails = snippet.get("thumbnails") or {}
    for size in ("high", "medium", "default"):
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return None


@dataclass
class VideoMetadata:
    """Normalised snapshot of a single video."""

    id: str
    title: str
    description: str
    thumbnail_url: Optional[str]
    duration: Optional[str]
    published_at: Optional[str]
    is_short: Optional[bool] = None

    @classmethod
    def from_api_item(cls, item: Dict[str, Any]) -> "VideoMetadata":
        """Build from a ``videos`` resource item."""

        snippet = item.get("snippet") or {}
        duration = (item.get("contentDetails") or {}).get("duration")
        return cls._build(str(item.get("id") or ""), snippet, duration)

    @classmethod
    def from_playlist_item(
        cls, item: Dict[str, Any], duration: Optional[str] = None
    ) -> "VideoMetadata":
        """Build from a ``playlistItems`` resource item."""

        snippet = item.get("snippet") or {}
        video_id = (item.get("contentDetails") or {}).get("videoId") or (
            (snippet.get("resourceId") or {}).get("videoId")
        )
        return cls._build(str(video_id or ""), snippet, duration)

    @classmethod
    def _build(
        cls, video_id: str, snippet: Dict[str, Any], duration: Optional[str]
    ) -> "VideoMetadata":
        seconds = parse_iso8601_duration(duration)
        return cls(
            id=video_id,
            title=snippet.get("title") or "",
            description=snippet.get("description") or "",
            thumbnail_url=_best_thumbnail(snippet),
            duration=duration,
            published_at=snippet.get("publishedAt"),
            is_short=None if seconds is None else seconds <= SHORT_MAX_SECONDS,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "thumbnailUrl": self.thumbnail_url,
            "duration": self.duration,
            "publishedAt": self.published_at,
        }
        if self.is_short is not None:
            payload["isShort"] = self.is_short
        return payload


class YouTubeClient:
    """Thin async client for the YouTube Data API v3.

    Every call is a single best-effort attempt: no retries, no caching.
    Concurrent :meth:`get_video_details` calls for the same identifier share
    one outbound request while it is in flight.
    """

    def __init__(
        self,
        config: YouTubeConfig,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport
        self._in_flight: Dict[str, "asyncio.Future[Optional[Dict[str, Any]]]"] = {}

    @property
    def config(self) -> YouTubeConfig:
        return self._config

    def _client(self) -> httpx.AsyncClient:
        if not self._config.api_key:
            raise ConfigurationError("YouTube API key is not configured")
        return httpx.AsyncClient(
            base_url=self._config.api_base_url,
            timeout=httpx.Timeout(self._config.timeout_seconds),
            transport=self._transport,
        )

    async def _request(
        self, client: httpx.AsyncClient, endpoint: str, params: Dict[str, Any]
    ) -> Dict[str, Any]:
        query = dict(params)
        query["key"] = self._config.api_key
        try:
            response = await client.get(f"/{endpoint}", params=query)
        except httpx.HTTPError as error:
            LOGGER.error("YouTube %s request failed: %s: %s", endpoint, type(error).__name__, error)
            raise FetchError(f"YouTube {endpoint} request failed") from error

        if not response.is_success:
            LOGGER.error(
                "YouTube %s request returned %s: %s",
                endpoint,
                response.status_code,
                response.text[:300],
            )
            raise FetchError(
                f"YouTube {endpoint} request returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as error:
            LOGGER.error("YouTube %s response was not valid JSON", endpoint)
            raise FetchError(f"YouTube {endpoint} response was not valid JSON") from error
        if not isinstance(data, dict):
            raise FetchError(f"Unexpected YouTube {endpoint} response shape")
        return data

    async def get_video_details(self, video_id: str) -> Optional[Dict[str, Any]]:
        """Return the raw ``videos`` item for *video_id* or ``None`` when absent."""

        pending = self._in_flight.get(video_id)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch_video_details(video_id))
            self._in_flight[video_id] = pending
            pending.add_done_callback(
                lambda _done, key=video_id: self._in_flight.pop(key, None)
            )
        else:
            LOGGER.debug("Joining in-flight metadata request for %s", video_id)
        return await asyncio.shield(pending)

    async def _fetch_video_details(self, video_id: str) -> Optional[Dict[str, Any]]:
        LOGGER.debug("Fetching video details for %s", video_id)
        async with self._client() as client:
            data = await self._request(
                client, "videos", {"part": VIDEO_DETAIL_PARTS, "id": video_id}
            )
        items = data.get("items") or []
        if not items:
            LOGGER.info("No video found for id %s", video_id)
            return None
        return items[0]

    async def get_video_metadata(self, video_id: str) -> Optional[VideoMetadata]:
        item = await self.get_video_details(video_id)
        return VideoMetadata.from_api_item(item) if item is not None else None

    async def get_playlist_videos(self, playlist_id: str) -> List[VideoMetadata]:
        """Return every video in *playlist_id*, following pagination."""

        videos: List[VideoMetadata] = []
        seen_tokens: set[str] = set()
        page_token: Optional[str] = None
        async with self._client() as client:
            while True:
                params: Dict[str, Any] = {
                    "part": "snippet,contentDetails",
                    "maxResults": PLAYLIST_PAGE_SIZE,
                    "playlistId": playlist_id,
                }
                if page_token:
                    params["pageToken"] = page_token
                page = await self._request(client, "playlistItems", params)
                items = page.get("items") or []

                video_ids = [
                    (item.get("contentDetails") or {}).get("videoId") for item in items
                ]
                video_ids = [value for value in video_ids if value]
                durations: Dict[str, Optional[str]] = {}
                if video_ids:
                    details = await self._request(
                        client,
                        "videos",
                        {"part": "contentDetails", "id": ",".join(video_ids)},
                    )
                    for detail in details.get("items") or []:
                        if detail.get("id"):
                            durations[detail["id"]] = (detail.get("contentDetails") or {}).get(
                                "duration"
                            )

                for item in items:
                    video_id = (item.get("contentDetails") or {}).get("videoId")
                    videos.append(
                        VideoMetadata.from_playlist_item(item, durations.get(video_id or ""))
                    )

                page_token = page.get("nextPageToken")
                if not page_token or page_token in seen_tokens:
                    break
                seen_tokens.add(page_token)

        LOGGER.info("Fetched %d videos from playlist %s", len(videos), playlist_id)
        return videos


__all__ = [
    "VIDEO_ID_PATTERNS",
    "VideoMetadata",
    "YouTubeClient",
    "YouTubeReference",
    "extract_video_id",
    "extract_youtube_info",
    "parse_iso8601_duration",
]
