"""Exception hierarchy shared by the service layer and the web API."""

from __future__ import annotations


class ContentServiceError(RuntimeError):
    """Base class for all service errors."""


class ValidationError(ContentServiceError):
    """Raised when caller supplied input has the wrong shape."""


class InvalidVideoURLError(ValidationError):
    """Raised when no video identifier can be extracted from a URL."""

    def __init__(self, url: object) -> None:
        super().__init__("Invalid YouTube URL")
        self.url = url


class UpstreamError(ContentServiceError):
    """Raised when the external video platform cannot be used."""


class FetchError(UpstreamError):
    """Raised for a non-success response from the metadata API."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(UpstreamError):
    """Raised when the upstream client is missing required settings."""


class PersistenceError(ContentServiceError):
    """Raised when a record store operation fails."""


class ContentNotFoundError(ContentServiceError):
    """Raised when a content record does not exist."""

    def __init__(self, content_id: str) -> None:
        super().__init__(f"Content record '{content_id}' not found")
        self.content_id = content_id


class DuplicateContentError(ContentServiceError):
    """Raised when a content record with the requested id already exists."""

    def __init__(self, content_id: str) -> None:
        super().__init__(f"Content record '{content_id}' already exists")
        self.content_id = content_id


class ImportTransitionError(ContentServiceError):
    """Raised when a status change would move a record backwards."""

    def __init__(self, content_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot move content record '{content_id}' from '{current}' to '{requested}'"
        )
        self.content_id = content_id
        self.current = current
        self.requested = requested


__all__ = [
    "ConfigurationError",
    "ContentNotFoundError",
    "ContentServiceError",
    "DuplicateContentError",
    "FetchError",
    "ImportTransitionError",
    "InvalidVideoURLError",
    "PersistenceError",
    "UpstreamError",
    "ValidationError",
]
