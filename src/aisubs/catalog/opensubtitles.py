"""OpenSubtitles REST API source fetcher.

Search by IMDb id (episodes by parent id plus season/episode), pick the best
candidate, request a download link and download the file.
"""

from __future__ import annotations

import os
import time
from typing import Callable

import requests

from aisubs.core.config import CatalogConfig
from aisubs.core.errors import JobTimeoutError, NotFoundError, UpstreamError
from aisubs.core.models import MediaRef, SourceDocument
from aisubs.catalog.base import SubtitleFetcher
from aisubs.subtitles.codec import fingerprint
from aisubs.utils.console import console

TRANSIENT_STATUS = {408, 425, 429, 500, 502, 503, 504}


def numeric_imdb_id(raw_id: str) -> str | None:
    """Strip the ``tt`` prefix and leading zeros: "tt0111161" -> "111161"."""
    if not raw_id:
        return None
    token = raw_id.strip().lower()
    if token.startswith("tt"):
        token = token[2:]
    if not token.isdigit():
        return None
    return token.lstrip("0") or "0"


def _as_int(value: object) -> int | None:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def is_exact_match(attributes: dict, media: MediaRef) -> bool:
    """Check that a search result belongs to exactly this movie or episode."""
    details = attributes.get("feature_details") or {}
    wanted = _as_int(numeric_imdb_id(media.imdb_id))
    if media.season is not None and media.episode is not None:
        return (
            _as_int(details.get("parent_imdb_id")) == wanted
            and _as_int(details.get("season_number")) == media.season
            and _as_int(details.get("episode_number")) == media.episode
        )
    return _as_int(details.get("imdb_id")) == wanted


def rank_candidates(results: list[dict], media: MediaRef) -> list[dict]:
    """Order search results best first.

    Exact media match first, then highest download count, then highest
    rating, then earliest upload date. Results without a file are dropped.
    """
    usable = [r for r in results if (r.get("attributes") or {}).get("files")]

    def sort_key(result: dict) -> tuple:
        attrs = result["attributes"]
        return (
            0 if is_exact_match(attrs, media) else 1,
            -(_as_int(attrs.get("download_count")) or 0),
            -float(attrs.get("ratings") or 0.0),
            attrs.get("upload_date") or "9999",
        )

    return sorted(usable, key=sort_key)


class OpenSubtitlesFetcher(SubtitleFetcher):
    """Fetch source subtitles from api.opensubtitles.com.

    Args:
        config: Catalog configuration; the API key falls back to the
            ``OPENSUBTITLES_API_KEY`` environment variable.
        session: Optional requests session for connection pooling.
        sleep: Sleep function used between retries.
    """

    name = "opensubtitles"

    def __init__(
        self,
        config: CatalogConfig,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.source_language = config.source_language
        self.encodings = tuple(config.encodings)
        self._api_key = config.api_key or os.getenv("OPENSUBTITLES_API_KEY", "")
        self._session = session or requests.Session()
        self._owns_session = session is None
        self._sleep = sleep

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Api-Key": self._api_key,
            "User-Agent": self.config.user_agent,
            "Accept": "application/json",
        }

    def _request(
        self,
        method: str,
        url: str,
        deadline: float | None = None,
        **kwargs: object,
    ) -> requests.Response:
        """Send a request, retrying transient failures with exponential backoff."""
        attempts = max(1, self.config.max_attempts)
        last_error = ""
        for attempt in range(1, attempts + 1):
            timeout = self.config.timeout
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise JobTimeoutError(f"Catalog deadline exceeded ({url})")
                timeout = min(timeout, remaining)

            try:
                response = self._session.request(method, url, timeout=timeout, **kwargs)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                if response.status_code not in TRANSIENT_STATUS:
                    if response.status_code >= 400:
                        raise UpstreamError(
                            f"Catalog request failed: {method} {url} -> {response.status_code}"
                        )
                    return response
                last_error = f"HTTP {response.status_code}"

            if attempt == attempts:
                break
            delay = self.config.backoff_base * 2 ** (attempt - 1)
            if deadline is not None and time.monotonic() + delay >= deadline:
                raise JobTimeoutError(f"Catalog deadline exceeded during backoff ({url})")
            console.print(
                f"[yellow]Catalog request failed ({last_error}), "
                f"retry {attempt}/{attempts - 1} in {delay:.1f}s[/yellow]"
            )
            self._sleep(delay)

        raise UpstreamError(f"Catalog unreachable after {attempts} attempts: {last_error}")

    def search(self, media: MediaRef, deadline: float | None = None) -> list[dict]:
        """Search the catalog for source-language subtitles of ``media``."""
        imdb_numeric = numeric_imdb_id(media.imdb_id)
        if imdb_numeric is None:
            raise NotFoundError(f"Not an IMDb-based media id: {media.id}")

        params: dict[str, str] = {
            "languages": self.source_language,
            "order_by": "download_count",
            "order_direction": "desc",
        }
        if media.season is not None and media.episode is not None:
            params["parent_imdb_id"] = imdb_numeric
            params["season_number"] = str(media.season)
            params["episode_number"] = str(media.episode)
            params["type"] = "episode"
        else:
            params["imdb_id"] = imdb_numeric
            params["type"] = "movie"

        response = self._request(
            "GET",
            f"{self.config.api_base}/subtitles",
            deadline=deadline,
            headers=self._headers(),
            params=params,
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(f"Catalog returned invalid JSON for {media}") from e
        data = payload.get("data") if isinstance(payload, dict) else None
        return data if isinstance(data, list) else []

    def _download_link(self, file_id: int, deadline: float | None) -> dict:
        response = self._request(
            "POST",
            f"{self.config.api_base}/download",
            deadline=deadline,
            headers={**self._headers(), "Content-Type": "application/json"},
            json={"file_id": file_id},
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(f"Catalog returned invalid download payload for file {file_id}") from e
        if not isinstance(payload, dict) or not payload.get("link"):
            raise UpstreamError(f"Catalog returned no download link for file {file_id}")
        return payload

    def fetch_raw(self, media: MediaRef, deadline: float | None = None) -> SourceDocument:
        if not self.is_configured:
            raise UpstreamError("OpenSubtitles API key not configured")

        candidates = rank_candidates(self.search(media, deadline=deadline), media)
        if not candidates:
            raise NotFoundError(f"No {self.source_language} subtitle found for {media}")

        best = candidates[0]
        attrs = best["attributes"]
        file_info = attrs["files"][0]
        file_id = file_info.get("file_id")
        link = self._download_link(file_id, deadline)

        response = self._request("GET", link["link"], deadline=deadline)
        raw = response.content
        file_name = link.get("file_name") or file_info.get("file_name")
        console.print(
            f"[dim]Source subtitle for {media}:[/dim] {file_name} "
            f"({attrs.get('download_count', 0)} downloads, {len(raw)} bytes)"
        )
        return SourceDocument(
            raw=raw,
            fingerprint=fingerprint(raw),
            format_hint=attrs.get("format") or file_name,
            file_name=file_name,
            provider_file_id=str(file_id),
        )

    def close(self) -> None:
        if self._owns_session:
            self._session.close()
