"""Local copies of downloaded source subtitles.

Keeping the raw source lets the coordinator learn the current fingerprint of
a media item without a catalog round-trip. A copy is authoritative for
``ttl`` seconds; after that the source is fetched again and a changed
fingerprint invalidates every translation built from the old one.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from aisubs.core.models import MediaRef, SourceDocument
from aisubs.subtitles.codec import fingerprint
from aisubs.utils.paths import atomic_write_bytes, ensure_dir, media_dir

_SOURCE_NAME = "source.bin"
_META_NAME = "source.json"


@dataclass
class StoredSource:
    document: SourceDocument
    fetched_at: float


class SourceStore:
    """Per-media raw source cache with a freshness window."""

    def __init__(self, root: Path, ttl: float, clock: Callable[[], float] = time.time) -> None:
        self.root = ensure_dir(Path(root))
        self.ttl = ttl
        self._clock = clock

    def get(self, media: MediaRef) -> StoredSource | None:
        """Return the stored source for ``media``, fresh or not."""
        directory = media_dir(self.root, media)
        try:
            meta = json.loads((directory / _META_NAME).read_text(encoding="utf-8"))
            raw = (directory / _SOURCE_NAME).read_bytes()
        except (OSError, ValueError):
            return None
        if fingerprint(raw) != meta.get("fingerprint"):
            return None  # raw file and metadata come from different writes
        document = SourceDocument(
            raw=raw,
            fingerprint=meta["fingerprint"],
            format_hint=meta.get("format_hint"),
            file_name=meta.get("file_name"),
            provider_file_id=meta.get("provider_file_id"),
        )
        return StoredSource(document=document, fetched_at=float(meta["fetched_at"]))

    def fresh(self, media: MediaRef) -> StoredSource | None:
        """Return the stored source only while it is within the TTL."""
        stored = self.get(media)
        if stored is None or self._clock() - stored.fetched_at >= self.ttl:
            return None
        return stored

    def fresh_fingerprint(self, media: MediaRef) -> str | None:
        stored = self.fresh(media)
        return stored.document.fingerprint if stored else None

    def put(self, media: MediaRef, document: SourceDocument) -> StoredSource:
        """Store a freshly downloaded source. The raw file is written before its metadata."""
        directory = media_dir(self.root, media)
        fetched_at = self._clock()
        atomic_write_bytes(directory / _SOURCE_NAME, document.raw)
        meta = {
            "fingerprint": document.fingerprint,
            "fetched_at": fetched_at,
            "format_hint": document.format_hint,
            "file_name": document.file_name,
            "provider_file_id": document.provider_file_id,
        }
        atomic_write_bytes(
            directory / _META_NAME,
            json.dumps(meta, indent=2, ensure_ascii=False).encode("utf-8"),
        )
        return StoredSource(document=document, fetched_at=fetched_at)
