"""Video import pipeline: record creation, status tracking and finalisation."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

from .errors import (
    ContentNotFoundError,
    ContentServiceError,
    InvalidVideoURLError,
    PersistenceError,
    UpstreamError,
    ValidationError,
)
from .events import emit_import_event
from .naming import utc_timestamp
from .progress import IMPORT_STAGE_PROGRESS, clamp_progress
from .storage import ContentRecord, ContentRepository
from .youtube import extract_video_id


LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportStatus:
    """Status tuple handed to polling clients."""

    status: str
    progress: int
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class VideoDetailsSource(Protocol):
    """Anything able to look up raw video metadata by identifier."""

    async def get_video_details(self, video_id: str) -> Optional[Dict[str, Any]]:
        """Return the platform item for *video_id* or ``None``."""


class ContentImporter:
    """Coordinates the content record store and the metadata fetcher."""

    def __init__(
        self,
        repository: ContentRepository,
        source: Optional[VideoDetailsSource] = None,
        *,
        correlation_provider: Optional[Callable[[], Dict[str, str]]] = None,
    ) -> None:
        self._repository = repository
        self._source = source
        self._correlation_provider = correlation_provider

    def _emit(self, phase: str, message: str, **kwargs: Any) -> None:
        correlation = self._correlation_provider() if self._correlation_provider else None
        emit_import_event(phase, message, correlation=correlation, **kwargs)

    @property
    def repository(self) -> ContentRepository:
        return self._repository

    def check_import_status(self, content_id: str) -> ImportStatus:
        """Return the current status for *content_id*.

        Lookup problems never escape: a missing record or a store failure is
        reported as a ``failed`` status carrying the error message.
        """

        try:
            record = self._repository.get_content(content_id)
            if record is None:
                raise ContentNotFoundError(content_id)
        except (ContentNotFoundError, PersistenceError) as error:
            LOGGER.error("Error checking import status for %s: %s", content_id, error)
            return ImportStatus(status="failed", progress=0, error=str(error))

        return ImportStatus(
            status=record.status,
            progress=clamp_progress(record.progress),
            error=record.error_details,
        )

    def process_video_import(self, video_data: Mapping[str, Any]) -> ContentRecord:
        """Mark the record named by ``video_data["id"]`` completed.

        ``video_data`` becomes the record metadata. The status is written
        whatever it was before, so a failed import can be completed by hand and
        a completed one finalised again. Store failures propagate to the caller.
        """

        content_id = video_data.get("id") if isinstance(video_data, Mapping) else None
        if not content_id:
            raise ValidationError("Video data must include an 'id'")

        try:
            record = self._repository.update_content(
                str(content_id),
                check_transition=False,
                status="completed",
                progress=IMPORT_STAGE_PROGRESS["completed"],
                error_details=None,
                processed_at=utc_timestamp(),
                metadata=dict(video_data),
            )
        except ContentServiceError as error:
            LOGGER.error("Error processing video import %s: %s", content_id, error)
            raise

        self._emit(
            "completed",
            "Video import finalised",
            payload={"content_id": record.id, "video_id": record.video_id},
        )
        return record

    def begin_import(
        self,
        url: str,
        *,
        content_id: Optional[str] = None,
        title: str = "",
    ) -> ContentRecord:
        """Validate *url* and persist a ``pending`` content record for it."""

        video_id = extract_video_id(url)
        if not video_id:
            LOGGER.warning("Rejected import request for unparseable URL %r", url)
            raise InvalidVideoURLError(url)

        record_id = self._repository.add_content(
            content_id=content_id,
            title=title,
            content_type="video",
            source_url=url,
            video_id=video_id,
            status="pending",
            progress=IMPORT_STAGE_PROGRESS["pending"],
        )
        self._emit(
            "pending",
            "Video import accepted",
            payload={"content_id": record_id, "video_id": video_id},
        )
        record = self._repository.get_content(record_id)
        if record is None:
            raise PersistenceError(f"Content record '{record_id}' vanished after insert")
        return record

    def mark_processing(
        self, content_id: str, *, progress: int = IMPORT_STAGE_PROGRESS["processing"]
    ) -> ContentRecord:
        record = self._repository.update_content(
            content_id,
            status="processing",
            progress=clamp_progress(progress),
        )
        self._emit(
            "processing",
            "Video import processing",
            payload={"content_id": content_id, "progress": record.progress},
        )
        return record

    def mark_failed(self, content_id: str, message: str) -> ContentRecord:
        record = self._repository.update_content(
            content_id,
            status="failed",
            error_details=message,
        )
        self._emit(
            "failed",
            "Video import failed",
            payload={"content_id": content_id, "error": message},
            level=logging.WARNING,
        )
        return record

    async def import_video(self, url: str, *, content_id: Optional[str] = None) -> ContentRecord:
        """Run the full import for *url* inside the current call.

        Returns the final record, which is ``completed`` when metadata was
        found and ``failed`` otherwise. Invalid URLs raise before anything is
        stored; store failures propagate.
        """

        if self._source is None:
            raise ContentServiceError("No video metadata source configured")

        start = time.perf_counter()
        record = self.begin_import(url, content_id=content_id)
        video_id = record.video_id or ""
        self.mark_processing(record.id)

        try:
            item = await self._source.get_video_details(video_id)
        except UpstreamError as error:
            LOGGER.error("Metadata fetch for %s failed: %s", video_id, error)
            return self.mark_failed(record.id, str(error))

        if item is None:
            return self.mark_failed(record.id, f"No video found for id '{video_id}'")

        # The finaliser addresses records by ``id``; the platform id moves to ``videoId``.
        metadata = dict(item)
        metadata["id"] = record.id
        metadata["videoId"] = video_id
        final = self.process_video_import(metadata)
        title = (item.get("snippet") or {}).get("title")
        if title and not final.title:
            final = self._repository.update_content(final.id, title=title)
        LOGGER.info(
            "Imported video %s as content %s in %.1f ms",
            video_id,
            final.id,
            (time.perf_counter() - start) * 1000.0,
        )
        return final


__all__ = ["ContentImporter", "ImportStatus", "VideoDetailsSource"]
