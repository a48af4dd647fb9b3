"""LLM-based subtitle translation with chunked processing.

Chunks are sized by cumulative character count, not a fixed cue count, since
cue length varies a lot between dialogue-heavy and sparse scenes. Each chunk is
sent with explicit shared context (recent translation pairs and neighbouring
cues) to keep terminology and tone consistent across chunk boundaries.

The result is all-or-nothing: either every input text is translated, or the
call raises and nothing is returned.
"""

from __future__ import annotations

import time
from typing import Callable, Sequence

from aisubs.core.config import TranslatorConfig
from aisubs.core.errors import JobTimeoutError, ProviderError, UpstreamError
from aisubs.core.languages import language_name
from aisubs.llm.client import TransientBackendError, complete
from aisubs.llm.prompts import (
    TRANSLATION_SYSTEM,
    TRANSLATION_USER,
    LINE_BREAK,
    decode_line_breaks,
    format_history_context,
    format_numbered_segments,
    format_surrounding_context,
    parse_numbered_response,
)
from aisubs.utils.console import console

OVERLAP = 2  # Context cues shown on each side of a chunk
MAX_SPLIT_DEPTH = 3  # Halving retries on count mismatch


def chunk_indices(texts: Sequence[str], max_chars: int, max_items: int | None = None) -> list[list[int]]:
    """Group text positions into chunks bounded by total characters.

    A single text longer than ``max_chars`` gets a chunk of its own; texts are
    never split. Empty texts are skipped.
    """
    chunks: list[list[int]] = []
    current: list[int] = []
    size = 0
    for i, text in enumerate(texts):
        if not text.strip():
            continue
        length = len(text)
        full = max_items is not None and len(current) >= max_items
        if current and (size + length > max_chars or full):
            chunks.append(current)
            current, size = [], 0
        current.append(i)
        size += length
    if current:
        chunks.append(current)
    return chunks


class TranslationClient:
    """Translate batches of cue texts through the configured LLM provider.

    Args:
        config: Provider selection and limits.
        complete_fn: Completion function, ``complete(messages, config, timeout=...)``.
        sleep: Sleep function used between retries.
    """

    def __init__(
        self,
        config: TranslatorConfig,
        complete_fn: Callable[..., str] = complete,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self._complete = complete_fn
        self._sleep = sleep

    @property
    def provider_id(self) -> str:
        return f"{self.config.provider}/{self.config.model}"

    def translate(
        self,
        texts: Sequence[str],
        target_language: str,
        source_language: str | None = None,
        deadline: float | None = None,
        on_progress: Callable[[float], None] | None = None,
    ) -> list[str]:
        """Translate texts, preserving order and count exactly.

        Args:
            texts: Cue texts; newlines separate lines within one cue.
            target_language: Target language code (e.g. "el").
            source_language: Source language code, or None to let the model detect it.
            deadline: ``time.monotonic()`` value after which no new request starts.
            on_progress: Optional callback receiving progress fraction (0.0–1.0).

        Returns:
            Translated texts aligned 1:1 with ``texts``. Empty inputs stay empty.

        Raises:
            ProviderError: if a chunk cannot be aligned with its input.
            UpstreamError: if the backend keeps failing after retries.
            JobTimeoutError: if the deadline passes.
        """
        texts = list(texts)
        translated = [""] * len(texts)
        chunks = chunk_indices(texts, self.config.max_chunk_chars, self.config.max_chunk_cues)
        if not chunks:
            return translated

        source_name = language_name(source_language) if source_language else "the source language"
        target_name = language_name(target_language)
        system_prompt = TRANSLATION_SYSTEM.format(
            source_lang=source_name,
            target_lang=target_name,
            line_break=LINE_BREAK,
        )

        recent_source: list[str] = []
        recent_translated: list[str] = []
        history_size = self.config.history_size

        for n, chunk in enumerate(chunks, 1):
            first, last = chunk[0], chunk[-1]
            before = [t for t in texts[max(0, first - OVERLAP) : first] if t.strip()]
            after = [t for t in texts[last + 1 : last + 1 + OVERLAP] if t.strip()]

            context_prefix = format_surrounding_context(before, after)
            history = format_history_context(
                recent_source[-history_size:] if history_size else [],
                recent_translated[-history_size:] if history_size else [],
            )
            if history:
                context_prefix = history + context_prefix

            chunk_texts = [texts[i] for i in chunk]
            result = self._process_chunk(
                chunk_texts,
                source_name,
                target_name,
                system_prompt,
                context_prefix,
                deadline,
            )
            for i, text in zip(chunk, result):
                translated[i] = text

            recent_source.extend(chunk_texts)
            recent_translated.extend(result)
            if on_progress:
                on_progress(n / len(chunks))

        return translated

    def _process_chunk(
        self,
        texts: list[str],
        source_name: str,
        target_name: str,
        system_prompt: str,
        context_prefix: str,
        deadline: float | None,
        _depth: int = 0,
    ) -> list[str]:
        """Translate one chunk, retrying with smaller batches on count mismatch."""
        messages = [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": TRANSLATION_USER.format(
                    count=len(texts),
                    source_lang=source_name,
                    target_lang=target_name,
                    numbered_segments=context_prefix + format_numbered_segments(texts),
                ),
            },
        ]

        response = self._complete_with_retry(messages, deadline)
        parsed, exact_match = parse_numbered_response(response, len(texts))
        if exact_match:
            return [decode_line_breaks(text) for text in parsed]

        if len(texts) <= 1 or _depth >= MAX_SPLIT_DEPTH:
            raise ProviderError(
                f"Translation count mismatch: expected {len(texts)} aligned lines "
                f"from {self.provider_id}"
            )

        console.print(
            f"[yellow]Translation count mismatch ({len(texts)} expected), "
            f"retrying with smaller batches...[/yellow]"
        )
        mid = len(texts) // 2
        first_half = self._process_chunk(
            texts[:mid],
            source_name,
            target_name,
            system_prompt,
            context_prefix,
            deadline,
            _depth=_depth + 1,
        )
        second_half = self._process_chunk(
            texts[mid:],
            source_name,
            target_name,
            system_prompt,
            "",
            deadline,
            _depth=_depth + 1,
        )
        return first_half + second_half

    def _complete_with_retry(self, messages: list[dict[str, str]], deadline: float | None) -> str:
        """Call the backend, backing off exponentially on transient errors."""
        attempts = max(1, self.config.max_attempts)
        for attempt in range(1, attempts + 1):
            timeout = self.config.timeout
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise JobTimeoutError("Translation deadline exceeded")
                timeout = min(timeout, remaining)

            try:
                return self._complete(messages, self.config, timeout=timeout)
            except TransientBackendError as e:
                if attempt == attempts:
                    raise UpstreamError(
                        f"Translation backend failed after {attempts} attempts: {e}"
                    ) from e
                delay = min(self.config.backoff_max, self.config.backoff_base * 2 ** (attempt - 1))
                if deadline is not None and time.monotonic() + delay >= deadline:
                    raise JobTimeoutError("Translation deadline exceeded during backoff") from e
                console.print(
                    f"[yellow]Translation backend busy ({e}), "
                    f"retry {attempt}/{attempts - 1} in {delay:.1f}s[/yellow]"
                )
                self._sleep(delay)
