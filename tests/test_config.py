import json
from pathlib import Path

import edu_content.config as config_module
from edu_content.config import API_KEY_ENV_VAR, AppConfig, YouTubeConfig, load_config


def test_storage_root_falls_back_when_preferred_is_unusable(
    tmp_path: Path, monkeypatch
) -> None:
    home_dir = tmp_path / "home"
    monkeypatch.setattr(config_module.Path, "home", lambda: home_dir)

    preferred_storage = tmp_path / "storage"
    preferred_storage.write_text("not a directory", encoding="utf-8")

    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/content.db",
        },
        base_path=tmp_path,
        environ={},
    )

    expected_storage = (home_dir / ".edu_content" / "storage").resolve()
    assert config.storage_root == expected_storage
    assert config.database_file == (expected_storage / "content.db").resolve()
    assert expected_storage.exists()


def test_youtube_settings_are_read_from_mapping(tmp_path: Path) -> None:
    config = AppConfig.from_mapping(
        {
            "storage_root": "storage",
            "database_file": "storage/content.db",
            "youtube": {
                "api_key": " file-key ",
                "api_base_url": "https://example.test/v3/",
                "timeout_seconds": "2.5",
            },
        },
        base_path=tmp_path,
        environ={},
    )

    assert config.youtube.api_key == "file-key"
    assert config.youtube.api_base_url == "https://example.test/v3"
    assert config.youtube.timeout_seconds == 2.5


def test_environment_api_key_overrides_file_value() -> None:
    youtube = YouTubeConfig.from_mapping(
        {"api_key": "file-key"},
        environ={API_KEY_ENV_VAR: "env-key"},
    )

    assert youtube.api_key == "env-key"


def test_invalid_timeout_falls_back_to_default() -> None:
    youtube = YouTubeConfig.from_mapping({"timeout_seconds": "soon"}, environ={})

    assert youtube.timeout_seconds == config_module.DEFAULT_YOUTUBE_TIMEOUT_SECONDS
    assert youtube.api_key is None


def test_load_config_reads_json_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv(API_KEY_ENV_VAR, raising=False)
    config_file = tmp_path / "custom.json"
    config_file.write_text(
        json.dumps(
            {
                "storage_root": str(tmp_path / "data"),
                "database_file": str(tmp_path / "data" / "content.db"),
                "youtube": {"api_key": "abc"},
            }
        ),
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.storage_root == (tmp_path / "data").resolve()
    assert config.youtube.api_key == "abc"
