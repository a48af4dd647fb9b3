"""Tests for subtitle parsing and serialization."""

from pathlib import Path

import pytest

from aisubs.core.errors import ParseError
from aisubs.core.models import Cue, SubtitleTrack
from aisubs.subtitles.codec import (
    decode_subtitle_bytes,
    fingerprint,
    load_track,
    media_type,
    normalize_format,
    parse,
    save_track,
    serialize,
)

SIMPLE_SRT = (
    "1\n00:00:01,000 --> 00:00:02,000\nHello\n\n"
    "2\n00:00:03,000 --> 00:00:04,500\nTwo\nlines\n"
)


def test_parse_sample(sample_bytes: bytes):
    track = parse(sample_bytes, "srt")
    assert len(track) == 10
    assert [cue.index for cue in track.cues] == list(range(10))
    assert track.cues[0].start == 1000
    assert track.cues[0].end == 3500
    assert track.cues[3].lines == ("Get busy living,", "or get busy dying.")
    assert track.fingerprint == fingerprint(sample_bytes)


def test_cues_are_ordered_and_valid(sample_bytes: bytes):
    track = parse(sample_bytes, "srt")
    starts = [cue.start for cue in track.cues]
    assert starts == sorted(starts)
    assert all(cue.start < cue.end for cue in track.cues)


def test_parse_tolerates_bom_crlf_and_missing_newline():
    raw = ("\ufeff" + SIMPLE_SRT.rstrip("\n")).replace("\n", "\r\n").encode("utf-8")
    track = parse(raw, "srt")
    assert len(track) == 2
    assert track.cues[0].text == "Hello"
    assert track.cues[1].lines == ("Two", "lines")


def test_parse_mixed_line_endings():
    raw = b"1\r\n00:00:01,000 --> 00:00:02,000\rHello\n\n2\n00:00:03,000 --> 00:00:04,000\r\nBye\r\n"
    track = parse(raw, "srt")
    assert [cue.text for cue in track.cues] == ["Hello", "Bye"]


def test_parse_cp1252_fallback():
    raw = "1\n00:00:01,000 --> 00:00:02,000\nCafé\n".encode("cp1252")
    track = parse(raw, "srt")
    assert track.cues[0].text == "Café"


def test_malformed_cue_dropped_not_fatal():
    raw = (
        "1\n00:00:01,000 --> 00:00:02,000\nGood\n\n"
        "2\n00:00:05,000 --> 00:00:04,000\nEnds before it starts\n\n"
        "3\n00:00:06,000 --> 00:00:07,000\nAlso good\n"
    ).encode()
    track = parse(raw, "srt", media_id="movie/tt1")
    assert [cue.text for cue in track.cues] == ["Good", "Also good"]
    assert [cue.index for cue in track.cues] == [0, 1]


BROKEN_TIMING_SRT = (
    "1\n00:00:01,000 --> 00:00:02,000\nGood\n\n"
    "2\n00:00:0X,000 --> 00:00:04,000\nBroken timing\n\n"
    "3\n00:00:06,000 --> 00:00:07,000\nAlso good\n"
).encode()


@pytest.mark.parametrize("hint", ["srt", None], ids=["srt-hint", "autodetect"])
def test_cue_with_broken_timing_line_dropped(hint):
    track = parse(BROKEN_TIMING_SRT, hint, media_id="movie/tt1")
    assert [cue.lines for cue in track.cues] == [("Good",), ("Also good",)]
    assert [(cue.start, cue.end) for cue in track.cues] == [(1000, 2000), (6000, 7000)]
    assert all("-->" not in cue.text and "Broken" not in cue.text for cue in track.cues)


def test_numeric_dialogue_line_kept():
    raw = b"1\n00:00:01,000 --> 00:00:02,000\nHow many?\n42\n"
    track = parse(raw, "srt")
    assert track.cues[0].lines == ("How many?", "42")


def test_out_of_order_cues_sorted():
    raw = (
        "1\n00:00:05,000 --> 00:00:06,000\nLater\n\n"
        "2\n00:00:01,000 --> 00:00:02,000\nEarlier\n"
    ).encode()
    track = parse(raw, "srt")
    assert [cue.text for cue in track.cues] == ["Earlier", "Later"]


def test_empty_input_is_parse_error():
    with pytest.raises(ParseError) as exc_info:
        parse(b"  \n", "srt", media_id="movie/tt1")
    assert exc_info.value.offset == 0
    assert "movie/tt1" in str(exc_info.value)


def test_no_usable_cues_is_parse_error():
    raw = b"1\n00:00:05,000 --> 00:00:04,000\nBackwards\n"
    with pytest.raises(ParseError) as exc_info:
        parse(raw, "srt", media_id="movie/tt1")
    assert exc_info.value.offset == len(raw)


def test_undecodable_bytes_report_offset():
    raw = b"1\n00:00:01,000 --> 00:00:02,000\nbad \x81 byte\n"
    with pytest.raises(ParseError) as exc_info:
        decode_subtitle_bytes(raw, ("utf-8", "cp1252"), media_id="movie/tt1")
    assert exc_info.value.offset == raw.index(b"\x81")


def test_vtt_input(tmp_path: Path):
    raw = b"WEBVTT\n\n00:00:01.000 --> 00:00:02.000\nHello\n"
    track = parse(raw, "episode.vtt")
    assert len(track) == 1
    assert track.cues[0].start == 1000


def test_normalize_format():
    assert normalize_format("SubRip") == "srt"
    assert normalize_format("movie.en.vtt") == "vtt"
    assert normalize_format("sub") is None
    assert normalize_format(None) is None


def test_serialize_vtt():
    track = SubtitleTrack(
        cues=[Cue(index=0, start=1000, end=2500, lines=("Γεια σου", "κόσμε"))],
        fingerprint="f",
    )
    text = serialize(track, "vtt").decode("utf-8")
    assert text.startswith("WEBVTT")
    assert "00:00:01.000 --> 00:00:02.500" in text
    assert "Γεια σου\nκόσμε" in text


def test_serialize_is_deterministic(sample_bytes: bytes):
    track = parse(sample_bytes, "srt")
    assert serialize(track, "vtt") == serialize(parse(sample_bytes, "srt"), "vtt")
    assert serialize(track, "srt") == serialize(track, "srt")


def test_serialized_artifact_reparses_to_same_cues(sample_bytes: bytes):
    track = parse(sample_bytes, "srt")
    again = parse(serialize(track, "vtt"), "vtt")
    assert [(c.start, c.end, c.lines) for c in again.cues] == [
        (c.start, c.end, c.lines) for c in track.cues
    ]


def test_serialize_unknown_format():
    with pytest.raises(ValueError, match="Unsupported output format"):
        serialize(SubtitleTrack(cues=[], fingerprint="f"), "docx")


def test_media_types():
    assert media_type("vtt").startswith("text/vtt")
    assert media_type("srt").startswith("application/x-subrip")


def test_save_and_load_track(tmp_path: Path, sample_srt: Path):
    track = load_track(sample_srt)
    out = save_track(track, tmp_path / "nested" / "out.srt", fmt="srt")
    assert out.is_file()
    assert len(load_track(out)) == len(track)
