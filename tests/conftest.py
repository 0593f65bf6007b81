from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from edu_content.bootstrap import Bootstrapper
from edu_content.config import AppConfig, YouTubeConfig
from edu_content.services.youtube import YouTubeClient


API_BASE = "https://youtube.test/v3"


@pytest.fixture()
def temp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AppConfig:
    monkeypatch.chdir(tmp_path)

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/content.db",
            "youtube": {"api_base_url": API_BASE, "api_key": "test-key"},
        },
        base_path=tmp_path,
        environ={},
    )

    Bootstrapper(config).initialize()
    return config


def video_item(video_id: str, *, title: str = "Sample video", duration: str = "PT4M13S") -> Dict[str, Any]:
    return {
        "kind": "youtube#video",
        "id": video_id,
        "snippet": {
            "title": title,
            "description": f"Description for {title}",
            "publishedAt": "2020-01-02T03:04:05Z",
            "thumbnails": {
                "default": {"url": f"https://i.ytimg.com/vi/{video_id}/default.jpg"},
                "high": {"url": f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"},
            },
        },
        "contentDetails": {"duration": duration},
        "statistics": {"viewCount": "42"},
    }


class FakeYouTubeAPI:
    """Records requests and answers them from a handler callable."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.videos: Dict[str, Dict[str, Any]] = {}
        self.status_code = 200
        self.handler: Callable[[httpx.Request], httpx.Response] | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.handler is not None:
            return self.handler(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": {"message": "boom"}})
        ids = request.url.params.get("id", "").split(",")
        items = [self.videos[video_id] for video_id in ids if video_id in self.videos]
        return httpx.Response(200, content=json.dumps({"items": items}).encode("utf-8"))

    def client(self, api_key: str | None = "test-key") -> YouTubeClient:
        return YouTubeClient(
            YouTubeConfig(api_key=api_key, api_base_url=API_BASE),
            transport=httpx.MockTransport(self),
        )


@pytest.fixture()
def fake_api() -> FakeYouTubeAPI:
    return FakeYouTubeAPI()
