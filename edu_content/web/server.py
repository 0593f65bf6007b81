"""FastAPI application exposing learning paths, video lookup and imports."""

from __future__ import annotations

import contextvars
import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException, Query, Request
from fastapi import status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Receive, Scope, Send

from ..config import AppConfig
from ..services.errors import (
    ContentNotFoundError,
    ContentServiceError,
    DuplicateContentError,
    InvalidVideoURLError,
    PersistenceError,
)
from ..services.events import emit_db_event, emit_structured_event
from ..services.imports import ContentImporter
from ..services.storage import CONTENT_STATUSES, ContentRepository
from ..services.youtube import YouTubeClient, extract_video_id


_REQUEST_ID_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "edu_content_request_id",
    default=None,
)
_ACTOR_VAR: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "edu_content_actor",
    default=None,
)


def _new_correlation_id() -> str:
    return uuid.uuid4().hex


def _collect_correlation_context() -> Dict[str, str]:
    context: Dict[str, str] = {}
    request_id = _REQUEST_ID_VAR.get()
    if request_id:
        context["request_id"] = str(request_id)
    actor = _ACTOR_VAR.get()
    if actor:
        context["actor"] = str(actor)
    return context


class RequestContextMiddleware:
    """Assign a correlation identifier to each request and expose it via contextvars."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        request_id = _new_correlation_id()
        scope_state = scope.get("state")
        if scope_state is None:
            scope_state = {}
            scope["state"] = scope_state
        if isinstance(scope_state, dict):
            scope_state["request_id"] = request_id
        else:
            setattr(scope_state, "request_id", request_id)

        method = scope.get("method")
        actor = f"request:{method.upper()}" if isinstance(method, str) else "request"
        request_token = _REQUEST_ID_VAR.set(request_id)
        actor_token = _ACTOR_VAR.set(actor)

        try:
            await self.app(scope, receive, send)
        finally:
            _ACTOR_VAR.reset(actor_token)
            _REQUEST_ID_VAR.reset(request_token)


class ContextualLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects correlation context into records."""

    def process(self, msg: Any, kwargs: Dict[str, Any]) -> tuple[Any, Dict[str, Any]]:  # type: ignore[override]
        extra: Dict[str, Any] = dict(self.extra or {})
        provided = kwargs.get("extra")
        if isinstance(provided, dict):
            extra.update(provided)
        for key, value in _collect_correlation_context().items():
            extra.setdefault(key, value)
        kwargs["extra"] = extra
        return msg, kwargs


LOGGER = ContextualLoggerAdapter(logging.getLogger(__name__), {})
EVENT_LOGGER = ContextualLoggerAdapter(logging.getLogger("edu_content.events"), {})


def _emit_debug_event(
    event_type: str,
    message: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    context: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
    level: int = logging.INFO,
) -> None:
    emit_structured_event(
        event_type,
        message,
        payload=payload,
        context=context,
        correlation=_collect_correlation_context(),
        duration_ms=duration_ms,
        level=level,
        logger=EVENT_LOGGER,
    )


def _emit_db_event(
    action: str,
    *,
    payload: Optional[Dict[str, Any]] = None,
    duration_ms: Optional[float] = None,
) -> None:
    emit_db_event(
        action,
        payload=payload,
        correlation=_collect_correlation_context(),
        duration_ms=duration_ms,
        logger=EVENT_LOGGER,
    )


def _log_event(message: str, **context: Any) -> None:
    _emit_debug_event("APP_EVENT", message, context=context)


def normalize_root_path(value: Optional[str]) -> str:
    if value is None:
        return ""
    normalized = value.strip()
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


class LearningPathPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1)
    description: str = ""
    steps: List[Any] = Field(default_factory=list)
    subject: Optional[str] = None
    grade_level: Optional[str] = Field(None, alias="gradeLevel")


class VideoLookupPayload(BaseModel):
    url: Optional[str] = None


class ImportRequestPayload(BaseModel):
    url: Optional[str] = None
    id: Optional[str] = Field(None, min_length=1, max_length=128)


def create_app(
    repository: ContentRepository,
    *,
    config: AppConfig,
    youtube_client: Optional[YouTubeClient] = None,
    root_path: str | None = None,
) -> FastAPI:
    """Return a configured FastAPI application."""

    app = FastAPI(
        title="Educational Content Service",
        description="Learning paths and YouTube content imports",
        root_path=normalize_root_path(root_path),
    )
    app.state.server = None

    def _repository_event_emitter(event_type: str, message: str, **kwargs: Any) -> None:
        if event_type == "DB_QUERY":
            _emit_db_event(message, **kwargs)
        else:
            _emit_debug_event(event_type, message, **kwargs)

    repository.configure_event_emitter(_repository_event_emitter)

    client = youtube_client or YouTubeClient(config.youtube)
    importer = ContentImporter(
        repository, client, correlation_provider=_collect_correlation_context
    )
    app.state.repository = repository
    app.state.youtube_client = client
    app.state.importer = importer

    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(request: Request, error: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            {"error": error.detail},
            status_code=error.status_code,
            headers=getattr(error, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error_handler(
        request: Request, error: RequestValidationError
    ) -> JSONResponse:
        LOGGER.warning("Rejected %s %s: invalid payload", request.method, request.url.path)
        return JSONResponse(
            {
                "error": "Invalid request payload",
                "details": [
                    {"loc": list(item.get("loc", ())), "msg": str(item.get("msg", ""))}
                    for item in error.errors()
                ],
            },
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.get("/api/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    # ------------------------------------------------------------------
    # Learning paths
    # ------------------------------------------------------------------
    @app.post("/api/learning-paths")
    async def create_learning_path(payload: LearningPathPayload) -> Dict[str, Any]:
        _log_event("Creating learning path", title=payload.title, step_count=len(payload.steps))
        try:
            record = repository.add_learning_path(
                payload.title,
                payload.description,
                payload.steps,
                subject=payload.subject,
                grade_level=payload.grade_level,
            )
        except PersistenceError as error:
            LOGGER.error("Error creating learning path: %s", error)
            raise HTTPException(status_code=500, detail="Failed to create learning path") from error
        _log_event("Created learning path", learning_path_id=record.id, share_code=record.share_code)
        return record.to_dict()

    @app.get("/api/learning-paths")
    async def list_learning_paths(
        share_code: Optional[str] = Query(None, alias="shareCode"),
    ) -> Any:
        try:
            if share_code:
                record = repository.find_learning_path_by_share_code(share_code)
                if record is None:
                    raise HTTPException(status_code=404, detail="Learning path not found")
                return record.to_dict()
            return [record.to_dict() for record in repository.list_learning_paths()]
        except PersistenceError as error:
            LOGGER.error("Error fetching learning paths: %s", error)
            raise HTTPException(status_code=500, detail="Failed to fetch learning paths") from error

    # ------------------------------------------------------------------
    # YouTube lookup
    # ------------------------------------------------------------------
    @app.get("/api/youtube/video/{video_id}")
    async def get_video(video_id: str) -> Optional[Dict[str, Any]]:
        try:
            details = await client.get_video_details(video_id)
        except Exception as error:  # noqa: BLE001 - every failure maps to a 500
            LOGGER.error("Error fetching video details for %s: %s", video_id, error)
            raise HTTPException(status_code=500, detail="Failed to fetch video details") from error
        if details is None:
            LOGGER.info("No video found for id %s", video_id)
        return details

    @app.post("/api/youtube/video")
    @app.post("/api/youtube/video/{video_id}")
    async def lookup_video(payload: VideoLookupPayload) -> Optional[Dict[str, Any]]:
        video_id = extract_video_id(payload.url)
        if not video_id:
            LOGGER.warning("Rejected video lookup for unparseable URL %r", payload.url)
            raise HTTPException(status_code=400, detail="Invalid YouTube URL")
        try:
            details = await client.get_video_details(video_id)
        except Exception as error:  # noqa: BLE001 - every failure maps to a 500
            LOGGER.error("Error processing video %s: %s", video_id, error)
            raise HTTPException(status_code=500, detail="Failed to process video") from error
        if details is None:
            LOGGER.info("No video found for id %s", video_id)
        return details

    @app.get("/api/youtube/playlist/{playlist_id}")
    async def get_playlist(playlist_id: str) -> List[Dict[str, Any]]:
        try:
            videos = await client.get_playlist_videos(playlist_id)
        except Exception as error:  # noqa: BLE001 - every failure maps to a 500
            LOGGER.error("Error fetching playlist %s: %s", playlist_id, error)
            raise HTTPException(status_code=500, detail="Failed to fetch playlist") from error
        return [video.to_dict() for video in videos]

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------
    @app.post("/api/imports", status_code=status.HTTP_201_CREATED)
    async def create_import(payload: ImportRequestPayload) -> Dict[str, Any]:
        _log_event("Starting video import", url=payload.url, content_id=payload.id)
        try:
            record = await importer.import_video(payload.url or "", content_id=payload.id)
        except InvalidVideoURLError as error:
            raise HTTPException(status_code=400, detail=str(error)) from error
        except DuplicateContentError as error:
            raise HTTPException(status_code=409, detail=str(error)) from error
        except ContentServiceError as error:
            LOGGER.error("Error importing video from %r: %s", payload.url, error)
            raise HTTPException(status_code=500, detail="Failed to import video") from error
        _log_event("Finished video import", content_id=record.id, status=record.status)
        return record.to_dict()

    @app.get("/api/imports")
    async def list_imports(status_filter: Optional[str] = Query(None, alias="status")) -> Any:
        if status_filter is not None and status_filter not in CONTENT_STATUSES:
            raise HTTPException(status_code=400, detail="Unknown import status")
        try:
            records = repository.list_content(status=status_filter)
        except PersistenceError as error:
            LOGGER.error("Error listing imports: %s", error)
            raise HTTPException(status_code=500, detail="Failed to fetch imports") from error
        return [record.to_dict() for record in records]

    @app.get("/api/imports/{content_id}")
    async def get_import(content_id: str) -> Dict[str, Any]:
        try:
            record = repository.get_content(content_id)
        except PersistenceError as error:
            LOGGER.error("Error fetching import %s: %s", content_id, error)
            raise HTTPException(status_code=500, detail="Failed to fetch import") from error
        if record is None:
            raise HTTPException(status_code=404, detail="Import not found")
        return record.to_dict()

    @app.get("/api/imports/{content_id}/status")
    async def get_import_status(content_id: str) -> Dict[str, Any]:
        return importer.check_import_status(content_id).to_dict()

    @app.post("/api/imports/{content_id}/complete")
    async def complete_import(
        content_id: str,
        metadata: Optional[Dict[str, Any]] = Body(None),
    ) -> Dict[str, Any]:
        video_data = dict(metadata or {})
        video_data["id"] = content_id
        try:
            record = importer.process_video_import(video_data)
        except ContentNotFoundError as error:
            raise HTTPException(status_code=404, detail="Import not found") from error
        except ContentServiceError as error:
            LOGGER.error("Error finalising import %s: %s", content_id, error)
            raise HTTPException(status_code=500, detail="Failed to finalize import") from error
        return record.to_dict()

    return app


__all__ = ["create_app", "normalize_root_path"]
