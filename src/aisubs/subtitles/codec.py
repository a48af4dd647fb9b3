"""Subtitle parsing and serialization.

Converts between subtitle file bytes and the normalized :class:`SubtitleTrack`
cue model. Parsing is built on pysubs2 and tolerant of the usual defects of
community subtitle files (BOM, CRLF or mixed line endings, missing trailing
newline, legacy encodings). A single unusable cue is dropped with a warning;
only a track with no usable cues fails as a whole.
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

import pysubs2
from pysubs2.exceptions import Pysubs2Error

from aisubs.core.errors import ParseError
from aisubs.core.models import Cue, SubtitleTrack
from aisubs.utils.console import console

DEFAULT_ENCODINGS = ("utf-8", "cp1252")

# Serialization formats and the media type each is served with.
MEDIA_TYPES: dict[str, str] = {
    "vtt": "text/vtt; charset=utf-8",
    "srt": "application/x-subrip; charset=utf-8",
    "ass": "text/x-ssa; charset=utf-8",
}

# SRT timing line, e.g. "00:00:01,000 --> 00:00:02,500"
_SRT_TIMING = re.compile(r"^\s*\d+:\d{2}:\d{2}[,.:]\d+\s*-->\s*\d+:\d{2}:\d{2}[,.:]\d+")

# Format hints accepted from catalog metadata or file extensions.
_FORMAT_ALIASES: dict[str, str] = {
    "srt": "srt",
    "subrip": "srt",
    "vtt": "vtt",
    "webvtt": "vtt",
    "ass": "ass",
    "ssa": "ssa",
}


def fingerprint(raw: bytes) -> str:
    """Content hash identifying a source subtitle file."""
    return hashlib.sha256(raw).hexdigest()


def normalize_format(hint: str | None) -> str | None:
    """Map a format hint or file name to a pysubs2 format id, or None to autodetect."""
    if not hint:
        return None
    token = hint.strip().lower()
    if "." in token:
        token = token.rsplit(".", 1)[-1]
    return _FORMAT_ALIASES.get(token)


def decode_subtitle_bytes(
    raw: bytes,
    encodings: tuple[str, ...] | list[str] = DEFAULT_ENCODINGS,
    media_id: str | None = None,
) -> str:
    """Decode raw subtitle bytes and normalize BOM and line endings.

    Tries each encoding in order. Raises ParseError with the byte offset of the
    first undecodable byte when none of them fits.
    """
    first_error: UnicodeDecodeError | None = None
    text = None
    for encoding in encodings:
        codec = "utf-8-sig" if encoding.lower().replace("_", "-") in ("utf-8", "utf8") else encoding
        try:
            text = raw.decode(codec)
            break
        except UnicodeDecodeError as e:
            if first_error is None:
                first_error = e
        except LookupError:
            console.print(f"[yellow]Unknown subtitle encoding skipped:[/yellow] {encoding}")

    if text is None:
        offset = first_error.start if first_error is not None else None
        raise ParseError("Subtitle bytes could not be decoded", offset=offset, media_id=media_id)

    text = text.lstrip("\ufeff")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    if not text.endswith("\n"):
        text += "\n"
    return text


def _warn_dropped(position: int, media_id: str | None, reason: str) -> None:
    console.print(
        f"[yellow]Dropped malformed cue #{position}[/yellow] "
        f"({media_id or 'unknown media'}, {reason})"
    )


def _drop_malformed_srt_blocks(text: str, media_id: str | None) -> tuple[str, int]:
    """Remove SRT blocks whose timing line does not parse.

    pysubs2 appends such a block to the previous cue's text instead of
    rejecting it, so they are filtered out before parsing.
    """
    kept = []
    dropped = 0
    blocks = re.split(r"\n[ \t]*\n", text)
    for position, block in enumerate(blocks, 1):
        lines = [line for line in block.split("\n") if line.strip()]
        if not lines:
            continue
        timing = lines[1] if len(lines) > 1 and lines[0].strip().isdigit() else lines[0]
        if _SRT_TIMING.match(timing):
            kept.append("\n".join(lines))
        else:
            dropped += 1
            _warn_dropped(position, media_id, f"bad timing line {timing.strip()[:40]!r}")
    return "\n\n".join(kept) + "\n", dropped


def _strip_merged_cue(lines: list[str]) -> tuple[list[str], bool]:
    """Cut a cue's text at a swallowed cue header (number line and ``-->`` line)."""
    for i, line in enumerate(lines):
        if "-->" in line:
            cut = i - 1 if i > 0 and lines[i - 1].isdigit() else i
            return lines[:cut], True
    return lines, False


def parse(
    raw: bytes,
    format_hint: str | None = None,
    *,
    media_id: str | None = None,
    encodings: tuple[str, ...] | list[str] = DEFAULT_ENCODINGS,
) -> SubtitleTrack:
    """Parse subtitle file bytes into a SubtitleTrack.

    Args:
        raw: Raw file contents; fingerprinted before any decoding.
        format_hint: Format id or file name ("srt", "episode.vtt", ...).
            Unknown or missing hints fall back to content autodetection.
        media_id: Included in ParseError context for diagnosis.
        encodings: Text encodings to try, in order.

    Returns:
        Track with cues sorted by start time and indexed from 0.

    Raises:
        ParseError: if the bytes cannot be decoded or yield no usable cue.
    """
    digest = fingerprint(raw)
    if not raw.strip():
        raise ParseError("Subtitle file is empty", offset=0, media_id=media_id)

    text = decode_subtitle_bytes(raw, encodings, media_id=media_id)
    fmt = normalize_format(format_hint)
    dropped = 0
    if fmt == "srt":
        text, dropped = _drop_malformed_srt_blocks(text, media_id)

    try:
        subs = pysubs2.SSAFile.from_string(text, format_=fmt)
    except Pysubs2Error as e:
        if fmt is None:
            raise ParseError(f"Unrecognized subtitle format: {e}", offset=0, media_id=media_id) from e
        # Wrong hint, fall back to autodetection
        try:
            subs = pysubs2.SSAFile.from_string(text)
        except Pysubs2Error:
            raise ParseError(
                f"Subtitle does not parse as {fmt}: {e}", offset=0, media_id=media_id
            ) from e

    candidates = []
    for position, event in enumerate(subs.events, 1):
        if event.is_comment:
            continue
        lines = [line.strip() for line in event.plaintext.split("\n")]
        lines, merged = _strip_merged_cue([line for line in lines if line])
        if merged:
            dropped += 1
            _warn_dropped(position + 1, media_id, "header merged into previous cue")
        if event.end <= event.start or not lines:
            dropped += 1
            _warn_dropped(position, media_id, f"{event.start}-{event.end} ms")
            continue
        candidates.append((event.start, event.end, tuple(lines)))

    if not candidates:
        raise ParseError(
            f"No usable cues in subtitle ({dropped} dropped)",
            offset=len(raw),
            media_id=media_id,
        )

    # Stable sort keeps file order for cues sharing a start time
    candidates.sort(key=lambda c: c[0])
    cues = [
        Cue(index=i, start=start, end=end, lines=lines)
        for i, (start, end, lines) in enumerate(candidates)
    ]
    detected = getattr(subs, "format", None) or fmt or "srt"
    return SubtitleTrack(cues=cues, fingerprint=digest, format=detected)


def serialize(track: SubtitleTrack, target_format: str = "vtt") -> bytes:
    """Serialize a track to subtitle file bytes.

    Output is deterministic for a given track and format, so artifacts can be
    compared and cached by content.
    """
    fmt = normalize_format(target_format)
    if fmt not in MEDIA_TYPES:
        raise ValueError(
            f"Unsupported output format: '{target_format}'. "
            f"Expected one of: {', '.join(MEDIA_TYPES)}"
        )

    subs = pysubs2.SSAFile()
    for cue in track.cues:
        event = pysubs2.SSAEvent(start=cue.start, end=cue.end)
        event.plaintext = cue.text
        subs.events.append(event)
    return subs.to_string(fmt).encode("utf-8")


def media_type(fmt: str) -> str:
    """Media type a serialized artifact is served with."""
    return MEDIA_TYPES.get(normalize_format(fmt) or fmt, "text/plain; charset=utf-8")


def load_track(path: Path, encodings: tuple[str, ...] | list[str] = DEFAULT_ENCODINGS) -> SubtitleTrack:
    """Load a subtitle file from disk. Supports SRT, VTT, and ASS."""
    path = Path(path)
    return parse(path.read_bytes(), path.name, media_id=path.name, encodings=encodings)


def save_track(track: SubtitleTrack, path: Path, fmt: str = "vtt") -> Path:
    """Save a track to a subtitle file, creating parent directories.

    Returns:
        The path the file was written to.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(serialize(track, fmt))
    return path
