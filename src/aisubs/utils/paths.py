"""Filesystem layout helpers for cached sources and artifacts."""

from __future__ import annotations

import hashlib
import os
import re
import tempfile
from pathlib import Path

from aisubs.core.models import MediaRef


def slugify(text: str) -> str:
    """Convert text to a filesystem-safe slug."""
    text = text.lower().strip()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[\s_]+", "-", text)
    text = re.sub(r"-+", "-", text)
    return text[:80].strip("-")


def safe_component(value: str) -> str:
    """Make a path component from an arbitrary id without collisions.

    Ids that are already safe are kept verbatim; others are slugified and
    suffixed with a short hash of the original.
    """
    if re.fullmatch(r"[\w.-]{1,100}", value) and value not in (".", ".."):
        return value
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:8]
    return f"{slugify(value) or 'id'}-{digest}"


def media_dir(root: Path, media: MediaRef) -> Path:
    """Directory holding everything cached for one media item."""
    return Path(root) / safe_component(media.type) / safe_component(media.id)


def ensure_dir(path: Path) -> Path:
    """Create a directory (and parents) if absent and return it."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def atomic_write_bytes(path: Path, data: bytes) -> Path:
    """Write bytes via a temporary file and rename, so readers never see partial files."""
    path = Path(path)
    ensure_dir(path.parent)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path
