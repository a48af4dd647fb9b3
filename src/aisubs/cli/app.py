"""aisubs CLI entry point."""

from typing import Annotated, Optional

import typer
from dotenv import load_dotenv

from aisubs import __version__
from aisubs.cli.cache import cache
from aisubs.cli.languages import languages
from aisubs.cli.serve import serve
from aisubs.cli.translate import translate

app = typer.Typer(
    name="aisubs",
    help="aisubs — AI-translated subtitles served on demand.",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"aisubs {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
) -> None:
    """aisubs — AI-translated subtitles served on demand."""
    # Load .env file for API keys (GEMINI_API_KEY, OPENSUBTITLES_API_KEY, etc.)
    # Does not override existing env vars — shell exports take precedence
    load_dotenv(override=False)


app.command("serve")(serve)
app.command("translate")(translate)
app.command("languages")(languages)
app.command("cache")(cache)
