"""aisubs cache command — inspect and prune translated artifacts."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

import typer
from rich.table import Table

from aisubs.cache.store import CacheStore
from aisubs.core.config import load_config
from aisubs.utils.console import console


def cache(
    clear: Annotated[
        bool,
        typer.Option("--clear", help="Delete every cached translation."),
    ] = False,
) -> None:
    """List cached translations, or clear them."""
    config = load_config()
    store = CacheStore(config.translations_dir)

    if clear:
        removed = store.clear()
        console.print(f"[green]Removed {removed} cached translation(s).[/green]")
        return

    entries = store.entries()
    table = Table(title=f"Cached Translations ({len(entries)})")
    table.add_column("Media", style="bold cyan")
    table.add_column("Lang", width=6)
    table.add_column("Source", width=12)
    table.add_column("Provider")
    table.add_column("Size", justify="right")
    table.add_column("Created")

    for entry in entries:
        table.add_row(
            str(entry.media),
            entry.language,
            entry.fingerprint[:12],
            entry.provider_id,
            f"{entry.size_bytes / 1024:.1f} KB",
            datetime.fromtimestamp(entry.created_at).strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)
    stats = store.stats()
    console.print(f"[dim]{stats['entries']} entries, {stats['bytes'] / 1024:.1f} KB total[/dim]")
