"""Tests for the subtitle HTTP endpoint."""

import threading
from pathlib import Path

import pytest
import requests

from aisubs.cache.sources import SourceStore
from aisubs.cache.store import CacheStore
from aisubs.cli.serve import make_server, subtitle_option
from aisubs.core.coordinator import TranslationCoordinator
from aisubs.core.errors import UpstreamError
from aisubs.core.models import MediaRef

from conftest import FakeFetcher, FakeTranslator


@pytest.fixture
def translator() -> FakeTranslator:
    return FakeTranslator()


@pytest.fixture
def start_server(tmp_path: Path, sample_bytes: bytes, translator: FakeTranslator):
    """Start servers on free ports; returns a function building one and giving its URL."""
    running = []

    def _start(**kwargs) -> str:
        coordinator = TranslationCoordinator(
            FakeFetcher({"tt0111161": sample_bytes, "tt0903747:1:2": sample_bytes}),
            translator,
            CacheStore(tmp_path / "translations"),
            SourceStore(tmp_path / "sources", ttl=3600),
        )
        server = make_server(coordinator, "127.0.0.1", 0, **kwargs)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        running.append((server, coordinator))
        host, port = server.server_address[:2]
        return f"http://{host}:{port}"

    yield _start
    for server, coordinator in running:
        server.shutdown()
        server.server_close()
        coordinator.shutdown()


@pytest.fixture
def base_url(start_server) -> str:
    return start_server()


def test_subtitle_option_descriptor():
    option = subtitle_option(MediaRef.parse("tt0903747:1:2"), "EL", "http://localhost:7000/")
    assert option == {
        "id": "translate_el",
        "url": "http://localhost:7000/subtitles/series/tt0903747%3A1%3A2/translate_el.vtt",
        "lang": "el",
        "langName": "Greek (AI)",
        "title": "⭐ Greek - AI Translation",
        "rating": 10,
    }


def test_health(base_url):
    response = requests.get(f"{base_url}/health", timeout=5)
    assert response.status_code == 200
    assert response.text == "ok"


def test_translated_vtt(base_url):
    response = requests.get(f"{base_url}/subtitles/movie/tt0111161/translate_el.vtt", timeout=10)
    assert response.status_code == 200
    assert response.headers["Content-Type"].startswith("text/vtt")
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.headers["X-Translation-Provider"] == "fake/echo"
    assert response.content.startswith(b"WEBVTT")
    assert "[el] Hope is a good thing." in response.content.decode("utf-8")


def test_episode_id_without_type_segment(base_url):
    response = requests.get(f"{base_url}/subtitles/tt0903747%3A1%3A2/translate_fr.srt", timeout=10)
    assert response.status_code == 200
    assert response.headers["Content-Type"].startswith("application/x-subrip")


def test_unknown_media_is_404(base_url):
    response = requests.get(f"{base_url}/subtitles/movie/tt9999999/translate_el.vtt", timeout=10)
    assert response.status_code == 404


def test_bad_language_is_400(base_url):
    response = requests.get(f"{base_url}/subtitles/movie/tt0111161/translate_x.vtt", timeout=10)
    assert response.status_code == 400


def test_backend_failure_is_502(base_url, translator):
    translator.error = UpstreamError("backend down")
    response = requests.get(f"{base_url}/subtitles/movie/tt0111161/translate_el.vtt", timeout=10)
    assert response.status_code == 502
    assert "backend down" in response.text


def test_options_listing(base_url):
    response = requests.get(f"{base_url}/subtitles/movie/tt0111161.json?lang=el,fr", timeout=5)
    assert response.status_code == 200
    options = response.json()["subtitles"]
    assert [o["id"] for o in options] == ["translate_el", "translate_fr"]
    assert options[0]["url"].startswith(base_url)


def test_options_require_language(base_url):
    response = requests.get(f"{base_url}/subtitles/movie/tt0111161.json", timeout=5)
    assert response.status_code == 400


def test_unknown_path_is_404(base_url):
    assert requests.get(f"{base_url}/nope", timeout=5).status_code == 404


def test_options_use_configured_default_format(start_server):
    url = start_server(default_format="srt")
    response = requests.get(f"{url}/subtitles/movie/tt0111161.json?lang=el", timeout=5)
    option = response.json()["subtitles"][0]
    assert option["url"].endswith("/subtitles/movie/tt0111161/translate_el.srt")

    subtitle = requests.get(option["url"], timeout=10)
    assert subtitle.status_code == 200
    assert subtitle.headers["Content-Type"].startswith("application/x-subrip")
