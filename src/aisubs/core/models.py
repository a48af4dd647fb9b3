"""Shared data models for aisubs."""

from __future__ import annotations

import enum
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class MediaRef:
    """Opaque media identifier supplied by the player, e.g. ``movie/tt0111161``.

    Series episodes use Stremio's ``<imdb>:<season>:<episode>`` id form.
    """

    type: str
    id: str

    @classmethod
    def parse(cls, media_id: str, media_type: str | None = None) -> MediaRef:
        """Build a MediaRef, inferring the type from the id shape when missing."""
        media_id = media_id.strip()
        if not media_id:
            raise ValueError("Empty media id")
        if media_type is None:
            media_type = "series" if media_id.count(":") >= 2 else "movie"
        return cls(type=media_type, id=media_id)

    @property
    def imdb_id(self) -> str:
        return self.id.split(":", 1)[0]

    @property
    def season(self) -> int | None:
        parts = self.id.split(":")
        return int(parts[1]) if len(parts) >= 3 and parts[1].isdigit() else None

    @property
    def episode(self) -> int | None:
        parts = self.id.split(":")
        return int(parts[2]) if len(parts) >= 3 and parts[2].isdigit() else None

    def __str__(self) -> str:
        return f"{self.type}/{self.id}"


@dataclass(frozen=True)
class JobKey:
    """Coordinator key: one in-flight job per media and target language."""

    media: MediaRef
    language: str

    def __str__(self) -> str:
        return f"{self.media}@{self.language}"


@dataclass(frozen=True)
class Cue:
    """One timed block of subtitle text. Times are in milliseconds."""

    index: int
    start: int
    end: int
    lines: tuple[str, ...]

    @property
    def text(self) -> str:
        return "\n".join(self.lines)

    def with_lines(self, lines: list[str] | tuple[str, ...]) -> Cue:
        """Return a copy with new text and the same index and timing."""
        return Cue(index=self.index, start=self.start, end=self.end, lines=tuple(lines))


@dataclass
class SubtitleTrack:
    """Ordered cues of one subtitle file plus the fingerprint of its raw bytes."""

    cues: list[Cue]
    fingerprint: str
    format: str = "srt"
    language: str | None = None

    def __len__(self) -> int:
        return len(self.cues)


@dataclass
class SourceDocument:
    """Raw source subtitle as downloaded, before parsing."""

    raw: bytes
    fingerprint: str
    format_hint: str | None = None
    file_name: str | None = None
    provider_file_id: str | None = None


class JobState(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED)


@dataclass
class TranslationJob:
    """One attempt to produce a translated artifact for a key.

    The future resolves to an :class:`Artifact` or raises the job's error;
    every waiter holds the same future and so observes the same outcome.
    """

    key: JobKey
    started_at: float
    state: JobState = JobState.PENDING
    source_fingerprint: str | None = None
    future: Future = field(default_factory=Future, repr=False)


@dataclass
class CacheEntry:
    """Metadata for one stored translation artifact."""

    media: MediaRef
    language: str
    fingerprint: str
    path: Path
    created_at: float
    provider_id: str
    format: str = "vtt"
    size_bytes: int = 0
    last_read_at: float = 0.0

    @property
    def key(self) -> JobKey:
        return JobKey(self.media, self.language)


@dataclass
class Artifact:
    """A serialized translated subtitle file, as returned to callers."""

    content: bytes
    format: str
    media_type: str
    fingerprint: str
    language: str
    provider_id: str
    from_cache: bool = False
