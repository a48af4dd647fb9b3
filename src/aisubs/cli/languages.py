"""aisubs languages command — list named target languages."""

from __future__ import annotations

from rich.table import Table

from aisubs.core.languages import LANGUAGE_NAMES
from aisubs.utils.console import console


def languages() -> None:
    """List language codes with display names."""
    table = Table(title=f"Named Languages ({len(LANGUAGE_NAMES)})")
    table.add_column("Code", style="bold cyan", width=6)
    table.add_column("Language", width=24)

    for code in sorted(LANGUAGE_NAMES):
        table.add_row(code, LANGUAGE_NAMES[code])

    console.print(table)
    console.print(
        "\n[dim]Other well-formed codes are accepted too; they are passed to the "
        "translation model as-is and labelled with the upper-cased code.[/dim]"
    )
