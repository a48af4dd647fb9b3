"""Tests for the fingerprint-validated artifact store."""

from pathlib import Path

import pytest

from aisubs.cache.store import CacheStore, artifact_path
from aisubs.core.errors import CacheWriteError
from aisubs.core.models import JobKey, MediaRef
from aisubs.utils.paths import safe_component

MOVIE = MediaRef.parse("tt0111161", "movie")
EPISODE = MediaRef.parse("tt0903747:1:2", "series")


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_put_then_get_same_fingerprint(cache_store: CacheStore):
    key = JobKey(MOVIE, "el")
    cache_store.put(key, "a" * 64, b"WEBVTT\n", "gemini/flash")

    entry = cache_store.get(key, "a" * 64)
    assert entry is not None
    assert entry.provider_id == "gemini/flash"
    assert cache_store.read(entry) == b"WEBVTT\n"


def test_fingerprint_mismatch_is_miss(cache_store: CacheStore):
    key = JobKey(MOVIE, "el")
    cache_store.put(key, "a" * 64, b"old", "p")
    assert cache_store.get(key, "b" * 64) is None


def test_languages_are_separate_entries(cache_store: CacheStore):
    cache_store.put(JobKey(MOVIE, "el"), "f" * 64, b"el", "p")
    cache_store.put(JobKey(MOVIE, "fr"), "f" * 64, b"fr", "p")
    assert cache_store.read(cache_store.get(JobKey(MOVIE, "fr"), "f" * 64)) == b"fr"
    assert cache_store.stats()["entries"] == 2


def test_new_fingerprint_replaces_old_files(cache_store: CacheStore):
    key = JobKey(MOVIE, "el")
    old = cache_store.put(key, "a" * 64, b"old", "p")
    new = cache_store.put(key, "b" * 64, b"new", "p")
    assert not old.path.exists()
    assert new.path.exists()
    assert cache_store.stats()["entries"] == 1


def test_artifact_path_layout(tmp_path: Path):
    path = artifact_path(tmp_path, JobKey(EPISODE, "pt-br"), "0123456789abcdef" * 4, "vtt")
    assert path.name == "pt-br.0123456789abcdef.vtt"
    assert path.parent == tmp_path / "series" / safe_component("tt0903747:1:2")
    assert ":" not in path.parent.name


def test_entries_survive_restart(tmp_path: Path):
    root = tmp_path / "translations"
    store = CacheStore(root)
    store.put(JobKey(EPISODE, "el"), "c" * 64, b"persisted", "ollama/qwen3")

    reopened = CacheStore(root)
    entry = reopened.get(JobKey(EPISODE, "el"), "c" * 64)
    assert entry is not None
    assert entry.media == EPISODE
    assert reopened.read(entry) == b"persisted"


def test_corrupt_sidecar_ignored(tmp_path: Path):
    root = tmp_path / "translations"
    CacheStore(root).put(JobKey(MOVIE, "el"), "c" * 64, b"x", "p")
    for sidecar in root.rglob("*.json"):
        sidecar.write_text("{not json")
    assert CacheStore(root).entries() == []


def test_deleted_artifact_is_miss(cache_store: CacheStore):
    key = JobKey(MOVIE, "el")
    entry = cache_store.put(key, "a" * 64, b"x", "p")
    entry.path.unlink()
    assert cache_store.get(key, "a" * 64) is None


def test_evict_and_clear(cache_store: CacheStore):
    cache_store.put(JobKey(MOVIE, "el"), "a" * 64, b"x", "p")
    cache_store.put(JobKey(MOVIE, "fr"), "a" * 64, b"y", "p")
    assert cache_store.evict(JobKey(MOVIE, "el")) is True
    assert cache_store.evict(JobKey(MOVIE, "el")) is False
    assert cache_store.clear() == 1
    assert cache_store.stats() == {"entries": 0, "bytes": 0}


def test_lru_eviction_by_entry_count(tmp_path: Path):
    clock = FakeClock()
    store = CacheStore(tmp_path / "t", max_entries=2, clock=clock)
    keys = [JobKey(MOVIE, lang) for lang in ("el", "fr", "de")]

    store.put(keys[0], "a" * 64, b"1", "p")
    clock.now += 1
    store.put(keys[1], "a" * 64, b"2", "p")
    clock.now += 1
    store.get(keys[0], "a" * 64)  # el is now the most recently read
    clock.now += 1
    store.put(keys[2], "a" * 64, b"3", "p")

    assert store.get(keys[1], "a" * 64) is None
    assert store.get(keys[0], "a" * 64) is not None
    assert store.get(keys[2], "a" * 64) is not None


def test_byte_budget_keeps_newest_entry(tmp_path: Path):
    store = CacheStore(tmp_path / "t", max_bytes=10)
    store.put(JobKey(MOVIE, "el"), "a" * 64, b"x" * 8, "p")
    store.put(JobKey(MOVIE, "fr"), "a" * 64, b"y" * 8, "p")
    assert [e.language for e in store.entries()] == ["fr"]


def test_write_failure_is_cache_write_error(cache_store: CacheStore, monkeypatch):
    def fail(path, data):
        raise OSError("disk full")

    monkeypatch.setattr("aisubs.cache.store.atomic_write_bytes", fail)
    with pytest.raises(CacheWriteError, match="disk full"):
        cache_store.put(JobKey(MOVIE, "el"), "a" * 64, b"x", "p")
    assert cache_store.get(JobKey(MOVIE, "el"), "a" * 64) is None
