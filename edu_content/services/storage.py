"""Persistence helpers backed by SQLite."""

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterator, List, Literal, Optional, Sequence, Tuple

from ..config import AppConfig
from .errors import (
    ContentNotFoundError,
    DuplicateContentError,
    ImportTransitionError,
    PersistenceError,
)
from .naming import build_share_code, new_record_id, utc_timestamp


ContentStatus = Literal["pending", "processing", "completed", "failed"]

CONTENT_STATUSES: Tuple[str, ...] = ("pending", "processing", "completed", "failed")
TERMINAL_STATUSES = frozenset({"completed", "failed"})
_STATUS_RANK = {"pending": 0, "processing": 1, "completed": 2, "failed": 2}


@dataclass
class ContentRecord:
    id: str
    title: str
    content_type: str
    source_url: Optional[str]
    video_id: Optional[str]
    status: str
    progress: int
    error_details: Optional[str]
    metadata: Optional[Any]
    processed_at: Optional[str]
    created_at: str
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LearningPathRecord:
    id: str
    title: str
    description: str
    steps: List[Any]
    subject: Optional[str]
    grade_level: Optional[str]
    share_code: str
    created_at: str
    updated_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_forward_transition(current: str, requested: str) -> bool:
    """Return ``True`` when moving from *current* to *requested* is allowed.

    Statuses only move forward. Repeating the current status is permitted so a
    processing record can report new progress.
    """

    if requested not in _STATUS_RANK:
        return False
    if current == requested:
        return True
    if current in TERMINAL_STATUSES:
        return False
    return _STATUS_RANK[requested] > _STATUS_RANK.get(current, -1)


_CONTENT_COLUMNS = (
    "id",
    "title",
    "content_type",
    "source_url",
    "video_id",
    "status",
    "progress",
    "error_details",
    "metadata",
    "processed_at",
    "created_at",
    "updated_at",
)
_CONTENT_UPDATABLE = frozenset(
    {
        "title",
        "content_type",
        "source_url",
        "video_id",
        "status",
        "progress",
        "error_details",
        "metadata",
        "processed_at",
    }
)
_LEARNING_PATH_COLUMNS = (
    "id",
    "title",
    "description",
    "steps",
    "subject",
    "grade_level",
    "share_code",
    "created_at",
    "updated_at",
)
_LEARNING_PATH_UPDATABLE = frozenset({"title", "description", "steps", "subject", "grade_level"})
_SHARE_CODE_ATTEMPTS = 5

_MISSING = object()


LOGGER = logging.getLogger(__name__)


def _dump_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def _load_json(value: Optional[str], default: Any = None) -> Any:
    if value is None or value == "":
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        LOGGER.warning("Discarding undecodable JSON column value (%d chars)", len(value))
        return default


def _content_from_row(row: sqlite3.Row) -> ContentRecord:
    values = {key: row[key] for key in _CONTENT_COLUMNS}
    values["metadata"] = _load_json(values["metadata"])
    values["progress"] = int(values["progress"] or 0)
    return ContentRecord(**values)


def _learning_path_from_row(row: sqlite3.Row) -> LearningPathRecord:
    values = {key: row[key] for key in _LEARNING_PATH_COLUMNS}
    values["steps"] = _load_json(values["steps"], default=[])
    values["description"] = values["description"] or ""
    return LearningPathRecord(**values)


class ContentRepository:
    """Record store for educational content and learning paths."""

    def __init__(
        self,
        config: AppConfig,
        *,
        event_emitter: Optional[Callable[..., None]] = None,
    ) -> None:
        self._db_path = config.database_file
        self._event_emitter: Optional[Callable[..., None]] = event_emitter

    def configure_event_emitter(self, emitter: Optional[Callable[..., None]]) -> None:
        """Register the callable responsible for emitting debug events."""

        self._event_emitter = emitter

    @contextlib.contextmanager
    def _track_db_event(self, action: str, **payload: Any) -> Iterator[Dict[str, Any]]:
        """Emit a structured debug event capturing execution time for a DB action."""

        if self._event_emitter is None:
            yield payload
            return

        start = time.perf_counter()
        event_payload: Dict[str, Any] = dict(payload)
        error: BaseException | None = None
        try:
            yield event_payload
        except Exception as exc:
            error = exc
            event_payload.setdefault("status", "error")
            event_payload.setdefault("error", f"{exc.__class__.__name__}: {exc}")
            raise
        finally:
            duration_ms = (time.perf_counter() - start) * 1000.0
            if error is None:
                event_payload.setdefault("status", "ok")
            filtered = {
                key: value for key, value in event_payload.items() if value is not None
            }
            self._event_emitter(
                "DB_QUERY",
                action,
                payload=filtered,
                duration_ms=duration_ms,
            )

    @staticmethod
    def _summarize_sql(statement: str) -> str:
        collapsed = " ".join(statement.strip().split())
        return collapsed[:180] + ("…" if len(collapsed) > 180 else "")

    def _execute(
        self,
        connection: sqlite3.Connection,
        statement: str,
        parameters: Sequence[Any] | None = None,
        *,
        action: str,
        table: Optional[str] = None,
    ) -> sqlite3.Cursor:
        params: Tuple[Any, ...] = tuple(parameters) if parameters is not None else ()
        with self._track_db_event(
            action,
            table=table,
            sql=self._summarize_sql(statement),
            parameter_count=len(params),
        ) as event:
            cursor = connection.execute(statement, params)
            if cursor.rowcount >= 0:
                event.setdefault("rowcount", int(cursor.rowcount))
            return cursor

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction, translating SQLite errors."""

        LOGGER.debug("Opening SQLite connection to %s", self._db_path)
        connection: Optional[sqlite3.Connection] = None
        try:
            connection = sqlite3.connect(self._db_path)
            connection.row_factory = sqlite3.Row
            connection.execute("PRAGMA foreign_keys = ON")
            with connection:
                yield connection
        except sqlite3.Error as error:
            LOGGER.error("SQLite operation on %s failed: %s", self._db_path, error)
            raise PersistenceError(str(error)) from error
        finally:
            if connection is not None:
                connection.close()

    # ------------------------------------------------------------------
    # Educational content
    # ------------------------------------------------------------------
    def _fetch_content(
        self, connection: sqlite3.Connection, content_id: str
    ) -> Optional[ContentRecord]:
        cursor = self._execute(
            connection,
            f"SELECT {', '.join(_CONTENT_COLUMNS)} FROM educational_content WHERE id = ?",
            (content_id,),
            action="educational_content.lookup",
            table="educational_content",
        )
        row = cursor.fetchone()
        return _content_from_row(row) if row else None

    def add_content(
        self,
        *,
        content_id: Optional[str] = None,
        title: str = "",
        content_type: str = "video",
        source_url: Optional[str] = None,
        video_id: Optional[str] = None,
        status: str = "pending",
        progress: int = 0,
        metadata: Optional[Any] = None,
    ) -> str:
        if status not in CONTENT_STATUSES:
            raise ValueError(f"Unknown content status '{status}'")
        record_id = content_id or new_record_id()
        now = utc_timestamp()
        LOGGER.debug("Adding content record id=%s (status=%s)", record_id, status)
        with self._track_db_event(
            "add_content",
            table="educational_content",
            content_id=record_id,
            record_status=status,
        ):
            with self._connect() as connection:
                try:
                    self._execute(
                        connection,
                        """
                        INSERT INTO educational_content(
                            id, title, content_type, source_url, video_id,
                            status, progress, metadata, created_at, updated_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            record_id,
                            title,
                            content_type,
                            source_url,
                            video_id,
                            status,
                            int(progress),
                            _dump_json(metadata),
                            now,
                            now,
                        ),
                        action="educational_content.insert",
                        table="educational_content",
                    )
                except sqlite3.IntegrityError as error:
                    # Status is validated above, so the primary key is the only constraint left.
                    LOGGER.warning("Rejected duplicate content id %s", record_id)
                    raise DuplicateContentError(record_id) from error
        LOGGER.debug("Content record %s inserted", record_id)
        return record_id

    def get_content(self, content_id: str) -> Optional[ContentRecord]:
        with self._track_db_event(
            "get_content", table="educational_content", content_id=content_id
        ) as event:
            with self._connect() as connection:
                record = self._fetch_content(connection, content_id)
            event["found"] = record is not None
            return record

    def list_content(self, *, status: Optional[str] = None) -> List[ContentRecord]:
        where = ""
        params: List[Any] = []
        if status is not None:
            where = " WHERE status = ?"
            params.append(status)
        with self._connect() as connection:
            cursor = self._execute(
                connection,
                f"SELECT {', '.join(_CONTENT_COLUMNS)} FROM educational_content{where} "
                "ORDER BY created_at DESC, rowid DESC",
                params,
                action="educational_content.list",
                table="educational_content",
            )
            return [_content_from_row(row) for row in cursor.fetchall()]

    def update_content(
        self, content_id: str, *, check_transition: bool = True, **fields: Any
    ) -> ContentRecord:
        """Apply *fields* to a record and return the stored result.

        A ``status`` change is validated against the current status inside the
        same transaction; backwards moves raise :class:`ImportTransitionError`.
        Pass ``check_transition=False`` to write the status unconditionally.
        """

        unknown = set(fields) - _CONTENT_UPDATABLE
        if unknown:
            raise ValueError(f"Unsupported content fields: {', '.join(sorted(unknown))}")

        requested_status = fields.get("status", _MISSING)
        with self._track_db_event(
            "update_content",
            table="educational_content",
            content_id=content_id,
            fields=sorted(fields),
            check_transition=check_transition,
        ):
            with self._connect() as connection:
                current = self._fetch_content(connection, content_id)
                if current is None:
                    raise ContentNotFoundError(content_id)
                if requested_status is not _MISSING and str(requested_status) not in CONTENT_STATUSES:
                    raise ValueError(f"Unknown content status '{requested_status}'")
                if (
                    check_transition
                    and requested_status is not _MISSING
                    and not is_forward_transition(current.status, str(requested_status))
                ):
                    raise ImportTransitionError(content_id, current.status, str(requested_status))

                assignments: List[str] = []
                params: List[Any] = []
                for column, value in fields.items():
                    if column == "metadata":
                        value = _dump_json(value)
                    elif column == "progress":
                        value = int(value)
                    assignments.append(f"{column} = ?")
                    params.append(value)
                assignments.append("updated_at = ?")
                params.append(utc_timestamp())
                params.append(content_id)
                self._execute(
                    connection,
                    f"UPDATE educational_content SET {', '.join(assignments)} WHERE id = ?",
                    params,
                    action="educational_content.update",
                    table="educational_content",
                )
                updated = self._fetch_content(connection, content_id)
        assert updated is not None
        LOGGER.debug(
            "Content record %s updated (status %s -> %s)",
            content_id,
            current.status,
            updated.status,
        )
        return updated

    def remove_content(self, content_id: str) -> bool:
        with self._connect() as connection:
            cursor = self._execute(
                connection,
                "DELETE FROM educational_content WHERE id = ?",
                (content_id,),
                action="educational_content.delete",
                table="educational_content",
            )
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Learning paths
    # ------------------------------------------------------------------
    def _fetch_learning_path(
        self, connection: sqlite3.Connection, column: str, value: str
    ) -> Optional[LearningPathRecord]:
        cursor = self._execute(
            connection,
            f"SELECT {', '.join(_LEARNING_PATH_COLUMNS)} FROM learning_paths WHERE {column} = ?",
            (value,),
            action=f"learning_paths.lookup_by_{column}",
            table="learning_paths",
        )
        row = cursor.fetchone()
        return _learning_path_from_row(row) if row else None

    def add_learning_path(
        self,
        title: str,
        description: str = "",
        steps: Optional[Sequence[Any]] = None,
        *,
        subject: Optional[str] = None,
        grade_level: Optional[str] = None,
    ) -> LearningPathRecord:
        record_id = new_record_id()
        now = utc_timestamp()
        steps_json = _dump_json(list(steps or []))
        LOGGER.debug(
            "Adding learning path '%s' (%d steps)", title, len(steps or [])
        )
        with self._track_db_event(
            "add_learning_path",
            table="learning_paths",
            learning_path_id=record_id,
            step_count=len(steps or []),
        ) as event:
            with self._connect() as connection:
                for attempt in range(_SHARE_CODE_ATTEMPTS):
                    share_code = build_share_code(title)
                    if self._fetch_learning_path(connection, "share_code", share_code) is None:
                        break
                    LOGGER.debug("Share code %s already taken (attempt %d)", share_code, attempt + 1)
                else:
                    raise PersistenceError("Could not allocate a unique share code")
                event["share_code"] = share_code
                self._execute(
                    connection,
                    """
                    INSERT INTO learning_paths(
                        id, title, description, steps, subject, grade_level,
                        share_code, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record_id,
                        title,
                        description or "",
                        steps_json,
                        subject,
                        grade_level,
                        share_code,
                        now,
                        now,
                    ),
                    action="learning_paths.insert",
                    table="learning_paths",
                )
                record = self._fetch_learning_path(connection, "id", record_id)
        assert record is not None
        return record

    def get_learning_path(self, path_id: str) -> Optional[LearningPathRecord]:
        with self._connect() as connection:
            return self._fetch_learning_path(connection, "id", path_id)

    def find_learning_path_by_share_code(self, share_code: str) -> Optional[LearningPathRecord]:
        LOGGER.debug("Looking up learning path by share code '%s'", share_code)
        with self._connect() as connection:
            return self._fetch_learning_path(connection, "share_code", share_code)

    def list_learning_paths(self) -> List[LearningPathRecord]:
        with self._connect() as connection:
            cursor = self._execute(
                connection,
                f"SELECT {', '.join(_LEARNING_PATH_COLUMNS)} FROM learning_paths "
                "ORDER BY created_at DESC, rowid DESC",
                action="learning_paths.list",
                table="learning_paths",
            )
            return [_learning_path_from_row(row) for row in cursor.fetchall()]

    def update_learning_path(self, path_id: str, **fields: Any) -> Optional[LearningPathRecord]:
        unknown = set(fields) - _LEARNING_PATH_UPDATABLE
        if unknown:
            raise ValueError(f"Unsupported learning path fields: {', '.join(sorted(unknown))}")
        with self._connect() as connection:
            if fields:
                assignments = [f"{column} = ?" for column in fields]
                params: List[Any] = [
                    _dump_json(list(value or [])) if column == "steps" else value
                    for column, value in fields.items()
                ]
                assignments.append("updated_at = ?")
                params.extend([utc_timestamp(), path_id])
                self._execute(
                    connection,
                    f"UPDATE learning_paths SET {', '.join(assignments)} WHERE id = ?",
                    params,
                    action="learning_paths.update",
                    table="learning_paths",
                )
            return self._fetch_learning_path(connection, "id", path_id)

    def remove_learning_path(self, path_id: str) -> bool:
        with self._connect() as connection:
            cursor = self._execute(
                connection,
                "DELETE FROM learning_paths WHERE id = ?",
                (path_id,),
                action="learning_paths.delete",
                table="learning_paths",
            )
            return cursor.rowcount > 0


__all__ = [
    "CONTENT_STATUSES",
    "ContentRecord",
    "ContentRepository",
    "ContentStatus",
    "LearningPathRecord",
    "TERMINAL_STATUSES",
    "is_forward_transition",
]
