"""Base class for subtitle source fetchers."""

from __future__ import annotations

from abc import ABC, abstractmethod

from aisubs.core.models import MediaRef, SourceDocument, SubtitleTrack
from aisubs.subtitles.codec import DEFAULT_ENCODINGS, parse


class SubtitleFetcher(ABC):
    """Resolve a source-language subtitle for a media reference.

    Subclasses implement :meth:`fetch_raw`; parsing is shared.
    """

    name: str = "base"
    source_language: str = "en"
    encodings: tuple[str, ...] = DEFAULT_ENCODINGS

    @abstractmethod
    def fetch_raw(self, media: MediaRef, deadline: float | None = None) -> SourceDocument:
        """Download the best source subtitle for ``media``.

        The fingerprint is computed from the raw bytes before any parsing.

        Raises:
            NotFoundError: if the catalog has no subtitle for the media.
            UpstreamError: if the catalog stays unreachable after retries.
            JobTimeoutError: if the deadline passes.
        """
        ...

    def fetch(self, media: MediaRef, deadline: float | None = None) -> SubtitleTrack:
        """Download and parse the best source subtitle for ``media``."""
        document = self.fetch_raw(media, deadline=deadline)
        track = parse(
            document.raw,
            document.format_hint or document.file_name,
            media_id=str(media),
            encodings=self.encodings,
        )
        track.language = self.source_language
        return track

    def close(self) -> None:
        """Release resources."""

    def __enter__(self) -> "SubtitleFetcher":
        return self

    def __exit__(self, *args) -> None:
        self.close()
