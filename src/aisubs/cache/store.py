"""Durable store for translated subtitle artifacts.

Layout: ``<root>/<media type>/<media id>/<lang>.<fingerprint[:16]>.<fmt>`` with
a JSON sidecar next to each artifact. The in-memory index is rebuilt from the
sidecars on start-up, so entries survive restarts.

An entry is only a hit when its source fingerprint matches the current one.
Writes for a key come from a single job owner at a time, so the store does not
serialize them; the index lock only guards bookkeeping.
"""

from __future__ import annotations

import json
import os
import threading
import time
from pathlib import Path
from typing import Callable

from aisubs.core.errors import CacheWriteError
from aisubs.core.models import CacheEntry, JobKey, MediaRef
from aisubs.utils.console import console
from aisubs.utils.paths import atomic_write_bytes, ensure_dir, media_dir, safe_component

_SIDECAR_SUFFIX = ".json"


def artifact_path(root: Path, key: JobKey, fingerprint: str, fmt: str) -> Path:
    """Deterministic artifact location for (media, language, fingerprint)."""
    name = f"{safe_component(key.language)}.{fingerprint[:16]}.{fmt}"
    return media_dir(root, key.media) / name


class CacheStore:
    """Fingerprint-validated artifact cache with optional LRU budget.

    Args:
        root: Directory for artifacts; created on first use.
        max_bytes: Evict least-recently-read entries above this total size.
        max_entries: Evict least-recently-read entries above this count.
        clock: Wall-clock function, for created/read timestamps.
    """

    def __init__(
        self,
        root: Path,
        max_bytes: int | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = ensure_dir(Path(root))
        self.max_bytes = max_bytes
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._index: dict[JobKey, CacheEntry] = {}
        self._load_index()

    def _load_index(self) -> None:
        for sidecar in sorted(self.root.rglob(f"*{_SIDECAR_SUFFIX}")):
            try:
                meta = json.loads(sidecar.read_text(encoding="utf-8"))
                artifact = sidecar.with_suffix("")
                stat = artifact.stat()
                entry = CacheEntry(
                    media=MediaRef(type=meta["media_type"], id=meta["media_id"]),
                    language=meta["language"],
                    fingerprint=meta["fingerprint"],
                    path=artifact,
                    created_at=float(meta["created_at"]),
                    provider_id=meta.get("provider_id", "unknown"),
                    format=meta.get("format", artifact.suffix.lstrip(".")),
                    size_bytes=stat.st_size,
                    last_read_at=stat.st_atime,
                )
            except (OSError, ValueError, KeyError) as e:
                console.print(f"[yellow]Ignoring unreadable cache entry {sidecar}:[/yellow] {e}")
                continue
            current = self._index.get(entry.key)
            if current is None or current.created_at < entry.created_at:
                self._index[entry.key] = entry

    def get(self, key: JobKey, fingerprint: str) -> CacheEntry | None:
        """Return the entry for ``key`` if it was built from ``fingerprint``."""
        with self._lock:
            entry = self._index.get(key)
            if entry is None or entry.fingerprint != fingerprint:
                return None
            if not entry.path.is_file():
                del self._index[key]
                return None
            now = self._clock()
            entry.last_read_at = now

        try:
            os.utime(entry.path, (now, entry.created_at))
        except OSError:
            pass  # LRU order then falls back to the in-memory timestamp
        return entry

    def read(self, entry: CacheEntry) -> bytes:
        """Read an artifact's bytes."""
        return entry.path.read_bytes()

    def put(
        self,
        key: JobKey,
        fingerprint: str,
        content: bytes,
        provider_id: str,
        fmt: str = "vtt",
    ) -> CacheEntry:
        """Persist an artifact and make it the current entry for ``key``.

        Entries for older fingerprints of the same key are removed.

        Raises:
            CacheWriteError: if the artifact cannot be written.
        """
        path = artifact_path(self.root, key, fingerprint, fmt)
        now = self._clock()
        meta = {
            "media_type": key.media.type,
            "media_id": key.media.id,
            "language": key.language,
            "fingerprint": fingerprint,
            "created_at": now,
            "provider_id": provider_id,
            "format": fmt,
        }
        try:
            atomic_write_bytes(path, content)
            atomic_write_bytes(
                Path(f"{path}{_SIDECAR_SUFFIX}"),
                json.dumps(meta, indent=2, ensure_ascii=False).encode("utf-8"),
            )
        except OSError as e:
            raise CacheWriteError(f"Could not write cache entry {path}: {e}") from e

        entry = CacheEntry(
            media=key.media,
            language=key.language,
            fingerprint=fingerprint,
            path=path,
            created_at=now,
            provider_id=provider_id,
            format=fmt,
            size_bytes=len(content),
            last_read_at=now,
        )
        with self._lock:
            previous = self._index.get(key)
            self._index[key] = entry
            evicted = self._select_evictions(protect=key)
            for victim in evicted:
                del self._index[victim.key]

        if previous is not None and previous.path != path:
            self._remove_files(previous)
        for victim in evicted:
            console.print(f"[dim]Evicted cached translation:[/dim] {victim.key}")
            self._remove_files(victim)
        return entry

    def _select_evictions(self, protect: JobKey) -> list[CacheEntry]:
        """Pick least-recently-read entries until the budget holds. Caller holds the lock."""
        if self.max_bytes is None and self.max_entries is None:
            return []
        total = sum(e.size_bytes for e in self._index.values())
        count = len(self._index)
        victims = []
        for entry in sorted(self._index.values(), key=lambda e: e.last_read_at):
            over_bytes = self.max_bytes is not None and total > self.max_bytes
            over_count = self.max_entries is not None and count > self.max_entries
            if not (over_bytes or over_count):
                break
            if entry.key == protect:
                continue
            victims.append(entry)
            total -= entry.size_bytes
            count -= 1
        return victims

    @staticmethod
    def _remove_files(entry: CacheEntry) -> None:
        for path in (entry.path, Path(f"{entry.path}{_SIDECAR_SUFFIX}")):
            path.unlink(missing_ok=True)

    def evict(self, key: JobKey) -> bool:
        """Remove the entry for ``key``. Returns True if one existed."""
        with self._lock:
            entry = self._index.pop(key, None)
        if entry is None:
            return False
        self._remove_files(entry)
        return True

    def entries(self) -> list[CacheEntry]:
        """Snapshot of all entries, most recently created first."""
        with self._lock:
            return sorted(self._index.values(), key=lambda e: e.created_at, reverse=True)

    def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        with self._lock:
            entries = list(self._index.values())
            self._index.clear()
        for entry in entries:
            self._remove_files(entry)
        return len(entries)

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._index),
                "bytes": sum(e.size_bytes for e in self._index.values()),
            }
