"""Configuration loading utilities for the educational content service."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


LOGGER = logging.getLogger(__name__)


_PERMISSION_SENTINEL = ".edu_content_write_check"

API_KEY_ENV_VAR = "EDU_CONTENT_YOUTUBE_API_KEY"
DEFAULT_YOUTUBE_API_BASE_URL = "https://www.googleapis.com/youtube/v3"
DEFAULT_YOUTUBE_TIMEOUT_SECONDS = 10.0


def _ensure_writable_directory(path: Path) -> bool:
    """Return ``True`` if *path* can be created and written to."""

    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError:
        return False

    test_file = path / _PERMISSION_SENTINEL
    try:
        with test_file.open("w", encoding="utf-8") as handle:
            handle.write("ok")
    except OSError:
        return False
    finally:
        with contextlib.suppress(OSError):
            test_file.unlink()

    return True


def _select_writable_directory(
    preferred: Path,
    *,
    label: str,
    fallbacks: Iterable[Path] = (),
) -> Tuple[Path, bool]:
    """Return a usable directory based on ``preferred`` and ``fallbacks``.

    The first writable candidate wins and the flag reports whether a fallback
    had to be used. When nothing can be prepared ``preferred`` is returned so
    the bootstrap step can report a meaningful error.
    """

    preferred = preferred.resolve()
    if _ensure_writable_directory(preferred):
        return preferred, False

    for fallback in fallbacks:
        candidate = fallback.resolve()
        if candidate == preferred:
            continue
        if _ensure_writable_directory(candidate):
            LOGGER.warning(
                "Preferred %s directory '%s' is not writable; using fallback '%s'.",
                label,
                preferred,
                candidate,
            )
            return candidate, True

    LOGGER.warning(
        "%s directory '%s' is not writable and no fallback is available.",
        label.capitalize(),
        preferred,
    )
    return preferred, False


@dataclass(frozen=True)
class YouTubeConfig:
    """Settings for the YouTube Data API client."""

    api_key: Optional[str] = None
    api_base_url: str = DEFAULT_YOUTUBE_API_BASE_URL
    timeout_seconds: float = DEFAULT_YOUTUBE_TIMEOUT_SECONDS

    @classmethod
    def from_mapping(
        cls,
        mapping: Optional[Mapping[str, Any]],
        *,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "YouTubeConfig":
        mapping = mapping or {}
        environ = os.environ if environ is None else environ

        api_key = (environ.get(API_KEY_ENV_VAR) or "").strip() or None
        if api_key is None:
            configured = mapping.get("api_key")
            if isinstance(configured, str) and configured.strip():
                api_key = configured.strip()

        base_url = str(mapping.get("api_base_url") or DEFAULT_YOUTUBE_API_BASE_URL).rstrip("/")

        try:
            timeout = float(mapping.get("timeout_seconds", DEFAULT_YOUTUBE_TIMEOUT_SECONDS))
        except (TypeError, ValueError):
            LOGGER.warning(
                "Invalid YouTube timeout %r; using %s seconds.",
                mapping.get("timeout_seconds"),
                DEFAULT_YOUTUBE_TIMEOUT_SECONDS,
            )
            timeout = DEFAULT_YOUTUBE_TIMEOUT_SECONDS
        if timeout <= 0:
            timeout = DEFAULT_YOUTUBE_TIMEOUT_SECONDS

        return cls(api_key=api_key, api_base_url=base_url, timeout_seconds=timeout)


@dataclass(frozen=True)
class AppConfig:
    """Runtime paths and upstream settings for the application."""

    storage_root: Path
    database_file: Path
    youtube: YouTubeConfig = field(default_factory=YouTubeConfig)

    @classmethod
    def from_mapping(
        cls,
        mapping: Dict[str, Any],
        *,
        base_path: Path,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "AppConfig":
        preferred_storage = (base_path / mapping["storage_root"]).resolve()
        storage_fallback = Path.home() / ".edu_content" / "storage"
        storage_root, storage_fallback_used = _select_writable_directory(
            preferred_storage,
            label="storage",
            fallbacks=(storage_fallback,),
        )

        database_file = (base_path / mapping["database_file"]).resolve()

        if storage_fallback_used:
            try:
                relative_database = database_file.relative_to(preferred_storage)
            except ValueError:
                relative_database = None
            if relative_database is not None:
                fallback_database = (storage_root / relative_database).resolve()
                if _ensure_writable_directory(fallback_database.parent):
                    LOGGER.warning(
                        "Preferred database location '%s' is not writable; using fallback '%s'.",
                        database_file,
                        fallback_database,
                    )
                    database_file = fallback_database

        if not _ensure_writable_directory(database_file.parent):
            fallback_database = (storage_root / database_file.name).resolve()
            if fallback_database != database_file and _ensure_writable_directory(
                fallback_database.parent
            ):
                LOGGER.warning(
                    "Preferred database location '%s' is not writable; using fallback '%s'.",
                    database_file,
                    fallback_database,
                )
                database_file = fallback_database
            else:
                LOGGER.warning(
                    "Database location '%s' is not writable and no fallback is available.",
                    database_file,
                )

        youtube = YouTubeConfig.from_mapping(mapping.get("youtube"), environ=environ)
        return cls(storage_root=storage_root, database_file=database_file, youtube=youtube)


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load the application configuration from ``config/default.json`` by default."""

    base_path = Path(__file__).resolve().parent.parent
    if config_path is None:
        config_path = base_path / "config" / "default.json"

    with config_path.open("r", encoding="utf-8") as config_file:
        raw_config = json.load(config_file)

    return AppConfig.from_mapping(raw_config, base_path=base_path)


__all__ = ["API_KEY_ENV_VAR", "AppConfig", "YouTubeConfig", "load_config"]
