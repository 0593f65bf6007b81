from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import FakeYouTubeAPI, video_item
from edu_content.services.errors import ConfigurationError, FetchError
from edu_content.services.youtube import (
    VideoMetadata,
    YouTubeReference,
    extract_video_id,
    extract_youtube_info,
    parse_iso8601_duration,
)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://www.youtube.com/watch?v=dQw4w9WgXcQ&t=10s", "dQw4w9WgXcQ"),
        ("https://youtu.be/abc123?t=5", "abc123"),
        ("https://www.youtube.com/embed/xyz789#start", "xyz789"),
        ("https://youtube.com/shorts/short12345A?feature=share", "short12345A"),
        ("youtube.com/watch?v=noScheme", "noScheme"),
    ],
)
def test_extract_video_id_recognised_shapes(url: str, expected: str) -> None:
    assert extract_video_id(url) == expected


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com/video",
        "not-a-url",
        "",
        "https://youtu.be/",
        "https://www.youtube.com/watch?list=PL123",
        None,
    ],
)
def test_extract_video_id_rejects_unknown_shapes(url) -> None:
    assert extract_video_id(url) is None


def test_extract_video_id_does_not_normalise_input() -> None:
    assert extract_video_id(" https://youtu.be/AbC ") == "AbC "


def test_extract_video_id_prefers_last_marker() -> None:
    assert extract_video_id("https://youtube.com/watch?v=abc&r=youtu.be/zzz") == "zzz"
    assert extract_video_id("https://youtube.com/embed/first?next=youtube.com/shorts/second") == "first"


def test_extract_youtube_info_classifies_urls() -> None:
    assert extract_youtube_info("https://www.youtube.com/shorts/abcdefghijk") == YouTubeReference(
        type="short", id="abcdefghijk"
    )
    assert extract_youtube_info(
        "https://www.youtube.com/playlist?list=PLx0sYbCqOb8TBPRdmBHs5Iftvv9TPboYG"
    ) == YouTubeReference(type="playlist", id="PLx0sYbCqOb8TBPRdmBHs5Iftvv9TPboYG")
    assert extract_youtube_info("https://youtu.be/dQw4w9WgXcQ") == YouTubeReference(
        type="video", id="dQw4w9WgXcQ"
    )
    assert extract_youtube_info("https://youtu.be/short") is None


@pytest.mark.parametrize(
    ("value", "seconds"),
    [("PT4M13S", 253), ("PT1H2M3S", 3723), ("P1DT1S", 86401), ("PT59S", 59), ("PT0S", 0)],
)
def test_parse_iso8601_duration(value: str, seconds: int) -> None:
    assert parse_iso8601_duration(value) == seconds


@pytest.mark.parametrize("value", [None, "", "P", "PT", "4 minutes", "P1DT"])
def test_parse_iso8601_duration_rejects_garbage(value) -> None:
    assert parse_iso8601_duration(value) is None


def test_video_metadata_from_api_item() -> None:
    metadata = VideoMetadata.from_api_item(video_item("abcdefghijk", duration="PT45S"))

    assert metadata.to_dict() == {
        "id": "abcdefghijk",
        "title": "Sample video",
        "description": "Description for Sample video",
        "thumbnailUrl": "https://i.ytimg.com/vi/abcdefghijk/hqdefault.jpg",
        "duration": "PT45S",
        "publishedAt": "2020-01-02T03:04:05Z",
        "isShort": True,
    }


def test_get_video_details_returns_first_item(fake_api: FakeYouTubeAPI) -> None:
    fake_api.videos["dQw4w9WgXcQ"] = video_item("dQw4w9WgXcQ")
    client = fake_api.client()

    item = asyncio.run(client.get_video_details("dQw4w9WgXcQ"))

    assert item == video_item("dQw4w9WgXcQ")
    request = fake_api.requests[0]
    assert request.url.path == "/v3/videos"
    assert request.url.params["part"] == "snippet,contentDetails,statistics"
    assert request.url.params["id"] == "dQw4w9WgXcQ"
    assert request.url.params["key"] == "test-key"


def test_get_video_details_returns_none_for_empty_result(fake_api: FakeYouTubeAPI) -> None:
    client = fake_api.client()

    assert asyncio.run(client.get_video_details("missing0000")) is None
    assert asyncio.run(client.get_video_metadata("missing0000")) is None


def test_get_video_details_raises_on_error_status(fake_api: FakeYouTubeAPI) -> None:
    fake_api.status_code = 403
    client = fake_api.client()

    with pytest.raises(FetchError) as excinfo:
        asyncio.run(client.get_video_details("dQw4w9WgXcQ"))

    assert excinfo.value.status_code == 403
    assert len(fake_api.requests) == 1


def test_get_video_details_wraps_transport_errors(fake_api: FakeYouTubeAPI) -> None:
    def _fail(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    fake_api.handler = _fail
    client = fake_api.client()

    with pytest.raises(FetchError):
        asyncio.run(client.get_video_details("dQw4w9WgXcQ"))


def test_missing_api_key_fails_before_any_request(fake_api: FakeYouTubeAPI) -> None:
    client = fake_api.client(api_key=None)

    with pytest.raises(ConfigurationError):
        asyncio.run(client.get_video_details("dQw4w9WgXcQ"))

    assert fake_api.requests == []


def test_concurrent_lookups_share_one_request(fake_api: FakeYouTubeAPI) -> None:
    fake_api.videos["dQw4w9WgXcQ"] = video_item("dQw4w9WgXcQ")
    client = fake_api.client()

    async def _run():
        first, second = await asyncio.gather(
            client.get_video_details("dQw4w9WgXcQ"),
            client.get_video_details("dQw4w9WgXcQ"),
        )
        third = await client.get_video_details("dQw4w9WgXcQ")
        return first, second, third

    first, second, third = asyncio.run(_run())

    assert first == second == third
    assert len(fake_api.requests) == 2


def test_get_playlist_videos_follows_pagination(fake_api: FakeYouTubeAPI) -> None:
    pages = {
        None: {
            "items": [
                {
                    "snippet": {"title": "One", "publishedAt": "2021-01-01T00:00:00Z"},
                    "contentDetails": {"videoId": "aaaaaaaaaaa"},
                }
            ],
            "nextPageToken": "page-2",
        },
        "page-2": {
            "items": [
                {
                    "snippet": {"title": "Two", "thumbnails": {"medium": {"url": "m.jpg"}}},
                    "contentDetails": {"videoId": "bbbbbbbbbbb"},
                }
            ],
        },
    }
    durations = {"aaaaaaaaaaa": "PT10M", "bbbbbbbbbbb": "PT30S"}

    def _handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/playlistItems"):
            assert request.url.params["playlistId"] == "PL123"
            assert request.url.params["maxResults"] == "50"
            return httpx.Response(200, json=pages[request.url.params.get("pageToken")])
        ids = request.url.params["id"].split(",")
        return httpx.Response(
            200,
            json={
                "items": [
                    {"id": video_id, "contentDetails": {"duration": durations[video_id]}}
                    for video_id in ids
                ]
            },
        )

    fake_api.handler = _handler
    client = fake_api.client()

    videos = asyncio.run(client.get_playlist_videos("PL123"))

    assert [video.id for video in videos] == ["aaaaaaaaaaa", "bbbbbbbbbbb"]
    assert [video.duration for video in videos] == ["PT10M", "PT30S"]
    assert [video.is_short for video in videos] == [False, True]
    assert videos[1].thumbnail_url == "m.jpg"
    assert len(fake_api.requests) == 4
