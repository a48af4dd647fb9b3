"""aisubs serve command — HTTP endpoint serving translated subtitles to players."""

from __future__ import annotations

import functools
import http.server
import json
import re
import urllib.parse
from typing import Annotated, Optional

import typer

from aisubs.core.config import load_config
from aisubs.core.coordinator import TranslationCoordinator
from aisubs.core.errors import SubtitleError
from aisubs.core.languages import language_name, normalize_code
from aisubs.core.models import MediaRef
from aisubs.utils.console import console

# /subtitles/<type>/<id>/translate_<lang>.<fmt>, the type segment is optional
_TRANSLATE_RE = re.compile(
    r"^/subtitles/(?:(?P<type>[^/]+)/)?(?P<id>[^/]+)/translate_(?P<lang>[A-Za-z_-]+)\.(?P<fmt>vtt|srt|ass)$"
)
# /subtitles/<type>/<id>.json?lang=el,fr lists subtitle options for a player
_OPTIONS_RE = re.compile(r"^/subtitles/(?P<type>[^/]+)/(?P<id>[^/]+)\.json$")


def subtitle_option(media: MediaRef, language: str, base_url: str, fmt: str = "vtt") -> dict:
    """Describe the AI translation track a player can offer for ``media``."""
    code = normalize_code(language)
    name = language_name(code)
    media_id = urllib.parse.quote(media.id, safe="")
    return {
        "id": f"translate_{code}",
        "url": f"{base_url.rstrip('/')}/subtitles/{media.type}/{media_id}/translate_{code}.{fmt}",
        "lang": code,
        "langName": f"{name} (AI)",
        "title": f"⭐ {name} - AI Translation",
        "rating": 10,
    }


class _SubtitleHandler(http.server.BaseHTTPRequestHandler):
    """Route subtitle requests to the coordinator."""

    def __init__(
        self,
        *args,
        coordinator: TranslationCoordinator,
        base_url: str | None = None,
        default_format: str = "vtt",
        **kwargs,
    ):
        self.coordinator = coordinator
        self.base_url = base_url
        self.default_format = default_format
        super().__init__(*args, **kwargs)

    def do_GET(self) -> None:
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path

        if path == "/health":
            self._send(200, b"ok", "text/plain; charset=utf-8")
            return

        match = _TRANSLATE_RE.match(path)
        if match:
            self._serve_translation(match)
            return

        match = _OPTIONS_RE.match(path)
        if match:
            self._serve_options(match, urllib.parse.parse_qs(parsed.query))
            return

        self._send_error_text(404, "Not found")

    def _serve_translation(self, match: re.Match) -> None:
        media_id = urllib.parse.unquote(match.group("id"))
        media_type = match.group("type")
        try:
            media = MediaRef.parse(media_id, media_type)
            artifact = self.coordinator.request(media, match.group("lang"), fmt=match.group("fmt"))
        except ValueError as e:
            self._send_error_text(400, str(e))
            return
        except SubtitleError as e:
            self._send_error_text(e.status_code, str(e))
            return
        except Exception as e:
            console.print(f"[red]Unexpected error serving {self.path}:[/red] {e}")
            self._send_error_text(500, "Internal server error")
            return

        self._send(
            200,
            artifact.content,
            artifact.media_type,
            extra_headers={
                "ETag": f'"{artifact.fingerprint[:16]}-{artifact.language}"',
                "X-Translation-Provider": artifact.provider_id,
            },
        )

    def _serve_options(self, match: re.Match, query: dict[str, list[str]]) -> None:
        media_id = urllib.parse.unquote(match.group("id"))
        languages = [
            code
            for value in query.get("lang", [])
            for code in value.split(",")
            if code.strip()
        ]
        if not languages:
            self._send_error_text(400, "Missing 'lang' query parameter")
            return
        try:
            media = MediaRef.parse(media_id, match.group("type"))
        except ValueError as e:
            self._send_error_text(400, str(e))
            return

        base_url = self.base_url or f"http://{self.headers.get('Host', 'localhost')}"
        body = {
            "subtitles": [
                subtitle_option(media, code, base_url, self.default_format) for code in languages
            ]
        }
        self._send(200, json.dumps(body, ensure_ascii=False).encode("utf-8"), "application/json")

    def _send(
        self,
        status: int,
        content: bytes,
        content_type: str,
        extra_headers: dict[str, str] | None = None,
    ) -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(content)))
        self.send_header("Access-Control-Allow-Origin", "*")
        for name, value in (extra_headers or {}).items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(content)

    def _send_error_text(self, status: int, message: str) -> None:
        self._send(status, message.encode("utf-8"), "text/plain; charset=utf-8")

    def log_message(self, format, *args):
        """Suppress default access logs."""
        pass


def make_server(
    coordinator: TranslationCoordinator,
    host: str,
    port: int,
    base_url: str | None = None,
    default_format: str = "vtt",
) -> http.server.ThreadingHTTPServer:
    """Build a threaded HTTP server; one thread per request, joined per key by the coordinator."""
    handler_class = functools.partial(
        _SubtitleHandler,
        coordinator=coordinator,
        base_url=base_url,
        default_format=default_format,
    )
    server = http.server.ThreadingHTTPServer((host, port), handler_class)
    server.daemon_threads = True
    return server


def serve(
    port: Annotated[
        Optional[int],
        typer.Option("--port", "-p", help="Port to serve on."),
    ] = None,
    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Host to bind to."),
    ] = None,
    provider: Annotated[
        Optional[str],
        typer.Option(help="Translation provider: gemini, openai, ollama, litellm."),
    ] = None,
    model: Annotated[
        Optional[str],
        typer.Option(help="Translation model name."),
    ] = None,
) -> None:
    """Serve AI-translated subtitles over HTTP."""
    config = load_config(
        **{
            "server.port": port,
            "server.host": host,
            "translator.provider": provider,
            "translator.model": model,
        }
    )

    coordinator = TranslationCoordinator.from_config(config)
    server = make_server(
        coordinator,
        config.server.host,
        config.server.port,
        base_url=config.server.base_url,
        default_format=config.server.default_format,
    )

    base_url = config.server.base_url or f"http://127.0.0.1:{config.server.port}"
    translator_key = bool(config.translator.api_key) or config.translator.provider == "ollama"
    catalog_key = getattr(coordinator.fetcher, "is_configured", False)

    console.print(f"[bold green]Serving:[/bold green] {base_url}")
    console.print(f"[bold]Data:[/bold] {config.data_dir.resolve()}")
    console.print(f"[bold]Translator:[/bold] {coordinator.translator.provider_id}")
    console.print(
        f"  [dim]API key configured:[/dim] {'yes' if translator_key else 'no (provider env var)'}"
    )
    console.print(f"  [dim]OpenSubtitles key configured:[/dim] {'yes' if catalog_key else 'no'}")
    example = f"{base_url}/subtitles/movie/tt0111161/translate_el.{config.server.default_format}"
    console.print(f"  [dim]Example:[/dim] {example}")
    console.print("[dim]Press Ctrl+C to stop[/dim]")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        console.print("\n[bold]Stopped.[/bold]")
    finally:
        server.server_close()
        coordinator.shutdown(wait=False)
