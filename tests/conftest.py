"""Shared test fixtures."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from aisubs.cache.sources import SourceStore
from aisubs.cache.store import CacheStore
from aisubs.catalog.base import SubtitleFetcher
from aisubs.core.errors import NotFoundError
from aisubs.core.models import MediaRef, SourceDocument
from aisubs.subtitles.codec import fingerprint

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class FakeFetcher(SubtitleFetcher):
    """Serves fixed bytes per media id and counts downloads."""

    name = "fake"

    def __init__(self, sources: dict[str, bytes] | None = None, fmt: str = "srt") -> None:
        self.sources = dict(sources or {})
        self.fmt = fmt
        self.calls = 0
        self.deadlines: list[float | None] = []
        self._lock = threading.Lock()

    def fetch_raw(self, media: MediaRef, deadline: float | None = None) -> SourceDocument:
        with self._lock:
            self.calls += 1
            self.deadlines.append(deadline)
        raw = self.sources.get(media.id)
        if raw is None:
            raise NotFoundError(f"No subtitle for {media}")
        return SourceDocument(raw=raw, fingerprint=fingerprint(raw), format_hint=self.fmt)


class FakeTranslator:
    """Prefixes every text with the language code; optionally blocks until released."""

    provider_id = "fake/echo"

    def __init__(self, gate: threading.Event | None = None, error: Exception | None = None) -> None:
        self.gate = gate
        self.error = error
        self.calls = 0
        self.deadlines: list[float | None] = []
        self.started = threading.Event()
        self._lock = threading.Lock()

    def translate(self, texts, target_language, source_language=None, deadline=None, on_progress=None):
        with self._lock:
            self.calls += 1
            self.deadlines.append(deadline)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=10)
        if self.error is not None:
            raise self.error
        return [f"[{target_language}] {text}" for text in texts]


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def sample_srt(fixtures_dir: Path) -> Path:
    return fixtures_dir / "sample.srt"


@pytest.fixture
def sample_bytes(sample_srt: Path) -> bytes:
    return sample_srt.read_bytes()


@pytest.fixture
def cache_store(tmp_path: Path) -> CacheStore:
    return CacheStore(tmp_path / "translations")


@pytest.fixture
def source_store(tmp_path: Path) -> SourceStore:
    return SourceStore(tmp_path / "sources", ttl=3600)
