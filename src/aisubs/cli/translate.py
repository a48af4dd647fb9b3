"""aisubs translate command — translate a local subtitle file."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer

from aisubs.core.config import load_config
from aisubs.core.errors import SubtitleError
from aisubs.subtitles.codec import load_track, save_track
from aisubs.utils.console import console


def translate(
    subtitle_file: Annotated[
        Path,
        typer.Argument(help="Path to subtitle file (SRT, VTT, ASS)."),
    ],
    to: Annotated[
        str,
        typer.Option("--to", "-t", help="Target language code (run 'aisubs languages' to list)."),
    ],
    source: Annotated[
        Optional[str],
        typer.Option("--from", "-s", help="Source language code; detected by the model if omitted."),
    ] = None,
    provider: Annotated[
        Optional[str],
        typer.Option(help="Translation provider: gemini, openai, ollama, litellm."),
    ] = None,
    model: Annotated[
        Optional[str],
        typer.Option(help="Translation model name."),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output file path."),
    ] = None,
    fmt: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: vtt, srt, ass."),
    ] = "vtt",
) -> None:
    """Translate a subtitle file to another language using an LLM."""
    from aisubs.core.languages import language_name, validate_language
    from aisubs.llm.client import ensure_ollama_model
    from aisubs.llm.translator import TranslationClient

    try:
        to = validate_language(to)
        if source is not None:
            source = validate_language(source)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not subtitle_file.is_file():
        console.print(f"[red]File not found:[/red] {subtitle_file}")
        raise typer.Exit(1)

    config = load_config(**{"translator.provider": provider, "translator.model": model})
    client = TranslationClient(config.translator)
    ensure_ollama_model(config.translator.litellm_model)

    try:
        console.print(f"[bold]Loading subtitles:[/bold] {subtitle_file}")
        track = load_track(subtitle_file, encodings=config.catalog.encodings)
        console.print(f"[bold]Cues:[/bold] {len(track)}")

        console.print(f"[bold]Translating to {language_name(to)} with {client.provider_id}...[/bold]")
        translated = client.translate([cue.text for cue in track.cues], to, source_language=source)
    except SubtitleError as e:
        console.print(f"[red]Translation failed:[/red] {e}")
        raise typer.Exit(1)

    track.cues = [cue.with_lines(text.split("\n")) for cue, text in zip(track.cues, translated)]
    track.language = to

    sub_path = output if output is not None else subtitle_file.with_suffix(f".{to}.{fmt}")
    try:
        save_track(track, sub_path, fmt=fmt)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Saved:[/green] {sub_path}")
