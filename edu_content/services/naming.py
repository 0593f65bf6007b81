"""Identifier and share code helpers."""

from __future__ import annotations

import re
import secrets
import uuid
from datetime import datetime, timezone
from typing import Optional

__all__ = [
    "build_share_code",
    "new_record_id",
    "slugify",
    "utc_timestamp",
]


_SHARE_SLUG_LIMIT = 40


def slugify(value: str) -> str:
    """Return a URL-friendly representation of *value*."""

    value = (value or "").strip().lower()
    value = re.sub(r"[^a-z0-9]+", "-", value)
    value = re.sub(r"-+", "-", value).strip("-")
    return value or "path"


def build_share_code(title: str, *, token: Optional[str] = None) -> str:
    """Return a share code such as ``photosynthesis-basics-3f9a2c``."""

    stem = slugify(title)[:_SHARE_SLUG_LIMIT].rstrip("-") or "path"
    suffix = token or secrets.token_hex(3)
    return f"{stem}-{suffix}"


def new_record_id() -> str:
    return uuid.uuid4().hex


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """Return an ISO-8601 UTC timestamp with millisecond precision."""

    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
