from __future__ import annotations

import asyncio
import logging

import pytest

from conftest import FakeYouTubeAPI, video_item
from edu_content.config import AppConfig
from edu_content.services.errors import (
    ContentNotFoundError,
    DuplicateContentError,
    ImportTransitionError,
    InvalidVideoURLError,
    PersistenceError,
    ValidationError,
)
from edu_content.services.imports import ContentImporter, ImportStatus
from edu_content.services.storage import ContentRepository


@pytest.fixture()
def repository(temp_config: AppConfig) -> ContentRepository:
    return ContentRepository(temp_config)


def test_check_import_status_reports_record_fields(repository: ContentRepository) -> None:
    content_id = repository.add_content(content_id="rec-1")
    repository.update_content(content_id, status="processing", progress=40)

    status = ContentImporter(repository).check_import_status(content_id)

    assert status == ImportStatus(status="processing", progress=40, error=None)


def test_check_import_status_on_missing_record_degrades(repository: ContentRepository) -> None:
    status = ContentImporter(repository).check_import_status("does-not-exist")

    assert status.status == "failed"
    assert status.progress == 0
    assert "does-not-exist" in (status.error or "")


def test_check_import_status_swallows_store_failures(
    repository: ContentRepository, monkeypatch
) -> None:
    def _boom(content_id: str):
        raise PersistenceError("database is locked")

    monkeypatch.setattr(repository, "get_content", _boom)

    status = ContentImporter(repository).check_import_status("any")

    assert status.to_dict() == {"status": "failed", "progress": 0, "error": "database is locked"}


def test_process_video_import_completes_and_overwrites(repository: ContentRepository) -> None:
    importer = ContentImporter(repository)
    content_id = repository.add_content(content_id="rec-2")

    first = importer.process_video_import({"id": content_id, "title": "First"})
    assert first.status == "completed"
    assert first.progress == 100
    assert first.metadata == {"id": content_id, "title": "First"}
    assert first.processed_at is not None

    second = importer.process_video_import({"id": content_id, "title": "Second"})
    assert second.status == "completed"
    assert second.metadata == {"id": content_id, "title": "Second"}
    assert second.processed_at >= first.processed_at


def test_process_video_import_propagates_failures(
    repository: ContentRepository, monkeypatch
) -> None:
    importer = ContentImporter(repository)

    with pytest.raises(ValidationError):
        importer.process_video_import({"title": "no id"})
    with pytest.raises(ContentNotFoundError):
        importer.process_video_import({"id": "ghost"})

    content_id = repository.add_content()

    def _boom(*args, **kwargs):
        raise PersistenceError("disk full")

    monkeypatch.setattr(repository, "update_content", _boom)
    with pytest.raises(PersistenceError):
        importer.process_video_import({"id": content_id})


def test_failed_record_can_be_finalised(repository: ContentRepository) -> None:
    importer = ContentImporter(repository)
    content_id = repository.add_content(content_id="p1")
    importer.mark_failed(content_id, "upstream down")

    record = importer.process_video_import({"id": content_id, "title": "Recovered"})

    assert record.status == "completed"
    assert record.error_details is None
    assert record.metadata == {"id": content_id, "title": "Recovered"}
    assert importer.check_import_status(content_id) == ImportStatus(
        status="completed", progress=100, error=None
    )


def test_step_updates_keep_forward_only_guard(repository: ContentRepository) -> None:
    importer = ContentImporter(repository)
    content_id = repository.add_content()
    importer.process_video_import({"id": content_id})

    with pytest.raises(ImportTransitionError):
        importer.mark_processing(content_id)
    with pytest.raises(ImportTransitionError):
        importer.mark_failed(content_id, "late failure")


def test_import_events_carry_correlation(
    repository: ContentRepository, fake_api: FakeYouTubeAPI, caplog
) -> None:
    fake_api.videos["dQw4w9WgXcQ"] = video_item("dQw4w9WgXcQ")
    importer = ContentImporter(
        repository,
        fake_api.client(),
        correlation_provider=lambda: {"request_id": "req-42"},
    )

    with caplog.at_level(logging.INFO, logger="edu_content.events"):
        asyncio.run(importer.import_video("https://youtu.be/dQw4w9WgXcQ"))

    import_events = [
        record for record in caplog.records if getattr(record, "event_type", "") == "IMPORT_STATE"
    ]
    assert [record.event_payload["phase"] for record in import_events] == [
        "pending",
        "processing",
        "completed",
    ]
    assert all(record.event_correlation == {"request_id": "req-42"} for record in import_events)


def test_begin_import_rejects_duplicate_id(repository: ContentRepository) -> None:
    importer = ContentImporter(repository)
    importer.begin_import("https://youtu.be/dQw4w9WgXcQ", content_id="dup")

    with pytest.raises(DuplicateContentError):
        importer.begin_import("https://youtu.be/dQw4w9WgXcQ", content_id="dup")

    assert [record.id for record in repository.list_content()] == ["dup"]


def test_begin_import_rejects_invalid_url(repository: ContentRepository) -> None:
    with pytest.raises(InvalidVideoURLError):
        ContentImporter(repository).begin_import("not-a-url")

    assert repository.list_content() == []


def test_import_video_end_to_end(repository: ContentRepository, fake_api: FakeYouTubeAPI) -> None:
    fake_api.videos["dQw4w9WgXcQ"] = video_item("dQw4w9WgXcQ", title="Never Gonna")
    importer = ContentImporter(repository, fake_api.client())

    record = asyncio.run(
        importer.import_video("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=10s", content_id="e2e")
    )

    assert record.id == "e2e"
    assert record.status == "completed"
    assert record.video_id == "dQw4w9WgXcQ"
    assert record.title == "Never Gonna"
    assert record.metadata["videoId"] == "dQw4w9WgXcQ"
    assert record.metadata["snippet"]["title"] == "Never Gonna"
    assert importer.check_import_status("e2e") == ImportStatus("completed", 100, None)
    assert fake_api.requests[0].url.params["id"] == "dQw4w9WgXcQ"


def test_import_video_marks_failed_when_video_missing(
    repository: ContentRepository, fake_api: FakeYouTubeAPI
) -> None:
    importer = ContentImporter(repository, fake_api.client())

    record = asyncio.run(importer.import_video("https://youtu.be/abcdefghijk"))

    assert record.status == "failed"
    assert "abcdefghijk" in (record.error_details or "")


def test_import_video_marks_failed_on_upstream_error(
    repository: ContentRepository, fake_api: FakeYouTubeAPI
) -> None:
    fake_api.status_code = 500
    importer = ContentImporter(repository, fake_api.client())

    record = asyncio.run(importer.import_video("https://youtu.be/abcdefghijk"))

    assert record.status == "failed"
    assert record.progress == 50
    assert "500" in (record.error_details or "")
