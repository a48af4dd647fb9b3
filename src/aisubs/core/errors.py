"""Error taxonomy for the translation pipeline.

Every error carries the HTTP status the serving layer maps it to.
"""

from __future__ import annotations


class SubtitleError(Exception):
    """Base class for pipeline errors."""

    status_code = 500


class NotFoundError(SubtitleError):
    """No source subtitle exists for the media. Never retried."""

    status_code = 404


class UpstreamError(SubtitleError):
    """Catalog or translation backend unreachable after retries."""

    status_code = 502


class ProviderError(SubtitleError):
    """Translation backend answered, but unusably (garbled or count mismatch)."""

    status_code = 502


class ParseError(SubtitleError):
    """Source subtitle is malformed beyond recovery."""

    status_code = 422

    def __init__(self, message: str, offset: int | None = None, media_id: str | None = None):
        self.offset = offset
        self.media_id = media_id
        super().__init__(message)

    def __str__(self) -> str:
        details = []
        if self.media_id:
            details.append(f"media={self.media_id}")
        if self.offset is not None:
            details.append(f"offset={self.offset}")
        base = super().__str__()
        return f"{base} ({', '.join(details)})" if details else base


class JobTimeoutError(SubtitleError):
    """A deadline passed while fetching, translating or waiting on a job."""

    status_code = 504


class CacheWriteError(SubtitleError):
    """The finished artifact could not be persisted."""

    status_code = 500


class InvalidRequestError(SubtitleError):
    """The request names an unusable language code or output format."""

    status_code = 400


class UnsupportedLanguageError(InvalidRequestError):
    """The requested target language code is not usable."""
