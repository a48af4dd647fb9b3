"""Translation job coordinator — cache check, single-flight jobs, fan-out of results.

For each (media, language) key at most one job is pending or running. The
first caller on a cache miss registers the job and submits it to the worker
pool; later callers for the same key wait on the job's future, so every waiter
registered before completion sees the same artifact or the same error.

Job lifecycle:
    (no job) -> PENDING (queued) -> RUNNING -> SUCCEEDED | FAILED -> (no job)

The worker running a job is the only writer of the cache entry for its key.
A failed job leaves the cache untouched and the key free for a new attempt.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import replace

from aisubs.cache.sources import SourceStore
from aisubs.cache.store import CacheStore
from aisubs.catalog.base import SubtitleFetcher
from aisubs.core.config import AppConfig
from aisubs.core.errors import (
    InvalidRequestError,
    JobTimeoutError,
    ProviderError,
    SubtitleError,
    UnsupportedLanguageError,
)
from aisubs.core.events import EventCallback, PipelineEvent
from aisubs.core.languages import validate_language
from aisubs.core.models import (
    Artifact,
    CacheEntry,
    JobKey,
    JobState,
    MediaRef,
    SubtitleTrack,
    TranslationJob,
)
from aisubs.llm.translator import TranslationClient
from aisubs.subtitles.codec import media_type, normalize_format, parse, serialize
from aisubs.utils.console import console

_USE_DEFAULT = object()


class TranslationCoordinator:
    """Serve translated subtitles, running at most one job per key.

    Args:
        fetcher: Source subtitle fetcher.
        translator: Translation client (``translate`` and ``provider_id``).
        cache: Artifact store.
        sources: Local source copies used to learn the current fingerprint.
        max_workers: Jobs that may run in parallel across keys.
        job_timeout: Seconds a job may spend fetching and translating. The
            deadline is a ``time.monotonic()`` value, the clock the fetcher
            and translation client check it against.
        wait_timeout: Default seconds a caller waits for a job, None for no limit.
        cache_format: Format artifacts are stored in; other formats are
            re-serialized from it on the way out.
        on_event: Optional callback for job progress events.
    """

    def __init__(
        self,
        fetcher: SubtitleFetcher,
        translator: TranslationClient,
        cache: CacheStore,
        sources: SourceStore,
        *,
        max_workers: int = 4,
        job_timeout: float | None = 600.0,
        wait_timeout: float | None = None,
        cache_format: str = "vtt",
        on_event: EventCallback | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.translator = translator
        self.cache = cache
        self.sources = sources
        self.job_timeout = job_timeout
        self.wait_timeout = wait_timeout
        self.cache_format = cache_format
        self.on_event = on_event
        self._lock = threading.Lock()
        self._jobs: dict[JobKey, TranslationJob] = {}
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="aisubs-job")

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        on_event: EventCallback | None = None,
    ) -> TranslationCoordinator:
        """Wire the default OpenSubtitles fetcher, LiteLLM client and disk stores."""
        from aisubs.catalog.opensubtitles import OpenSubtitlesFetcher

        return cls(
            fetcher=OpenSubtitlesFetcher(config.catalog),
            translator=TranslationClient(config.translator),
            cache=CacheStore(
                config.translations_dir,
                max_bytes=config.cache.max_bytes,
                max_entries=config.cache.max_entries,
            ),
            sources=SourceStore(config.sources_dir, ttl=config.cache.source_ttl),
            max_workers=config.jobs.max_workers,
            job_timeout=config.jobs.job_timeout,
            wait_timeout=config.jobs.wait_timeout,
            on_event=on_event,
        )

    # -- public API ---------------------------------------------------------

    def request(
        self,
        media: MediaRef,
        language: str,
        fmt: str = "vtt",
        timeout: float | None | object = _USE_DEFAULT,
    ) -> Artifact:
        """Return the translated subtitle for ``media`` in ``language``.

        Blocks while a job runs. A cache hit returns without creating a job.

        Args:
            media: Media to translate subtitles for.
            language: Target language code; required on every call.
            fmt: Output format ("vtt", "srt" or "ass").
            timeout: Seconds to wait for a running job; defaults to
                ``wait_timeout``. Expiry raises JobTimeoutError for this caller
                only; the job keeps running for other waiters.

        Raises:
            UnsupportedLanguageError: for malformed language codes.
            InvalidRequestError: for unsupported output formats.
            NotFoundError, UpstreamError, ProviderError, ParseError,
            CacheWriteError: the job's failure, shared by all its waiters.
            JobTimeoutError: if the wait or the job deadline expires.
        """
        try:
            language = validate_language(language)
        except ValueError as e:
            raise UnsupportedLanguageError(str(e)) from e
        out_format = normalize_format(fmt)
        if out_format not in ("vtt", "srt", "ass"):
            raise InvalidRequestError(f"Unsupported subtitle format: '{fmt}'")

        key = JobKey(media, language)
        cached = self._lookup(key)
        if cached is not None:
            return self._render(cached, out_format)

        job, created = self._join_or_create(key)
        if not created:
            console.print(f"[dim]Joining running job:[/dim] {key}")

        wait = self.wait_timeout if timeout is _USE_DEFAULT else timeout
        try:
            artifact = job.future.result(timeout=wait)
        except FutureTimeout:
            raise JobTimeoutError(f"Timed out after {wait}s waiting for {key}") from None
        return self._render(artifact, out_format)

    def status(self, media: MediaRef, language: str) -> JobState | None:
        """State of the in-flight job for a key, or None when no job exists."""
        with self._lock:
            job = self._jobs.get(JobKey(media, language))
            return job.state if job is not None else None

    def active_jobs(self) -> list[TranslationJob]:
        with self._lock:
            return list(self._jobs.values())

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting jobs and release the worker pool.

        With ``wait=False`` queued jobs are cancelled and their waiters get a
        SubtitleError instead of hanging.
        """
        self._executor.shutdown(wait=wait, cancel_futures=not wait)
        if not wait:
            for job in self.active_jobs():
                if job.state is JobState.PENDING:
                    self._finish(job, error=SubtitleError(f"Coordinator shut down before {job.key} ran"))
        self.fetcher.close()

    def __enter__(self) -> TranslationCoordinator:
        return self

    def __exit__(self, *args) -> None:
        self.shutdown()

    # -- job table ----------------------------------------------------------

    def _join_or_create(self, key: JobKey) -> tuple[TranslationJob, bool]:
        """Atomically attach to the in-flight job for ``key`` or register a new one."""
        with self._lock:
            job = self._jobs.get(key)
            if job is not None and not job.state.is_terminal:
                return job, False
            job = TranslationJob(key=key, started_at=time.time())
            self._jobs[key] = job

        try:
            self._executor.submit(self._run_job, job)
        except RuntimeError as e:
            # Pool already shut down, fail the job for anyone who joined it
            error = SubtitleError(f"Coordinator shut down, cannot run {key}")
            error.__cause__ = e
            self._finish(job, error=error)
        return job, True

    def _run_job(self, job: TranslationJob) -> None:
        with self._lock:
            if job.state.is_terminal:
                return
            job.state = JobState.RUNNING

        console.print(f"[bold]Translating:[/bold] {job.key}")
        try:
            artifact = self._execute(job)
        except Exception as e:
            console.print(f"[red]Job failed:[/red] {job.key}: {e}")
            self._finish(job, error=e)
        else:
            self._finish(job, artifact=artifact)

    def _finish(
        self,
        job: TranslationJob,
        artifact: Artifact | None = None,
        error: BaseException | None = None,
    ) -> None:
        """Move a job to its terminal state, free the key, then wake all waiters."""
        with self._lock:
            if job.state.is_terminal:
                return
            job.state = JobState.FAILED if error is not None else JobState.SUCCEEDED
            if self._jobs.get(job.key) is job:
                del self._jobs[job.key]

        if error is not None:
            job.future.set_exception(error)
        else:
            job.future.set_result(artifact)

    # -- pipeline -----------------------------------------------------------

    def _emit(
        self, key: JobKey, stage: str, progress: float, message: str, data: dict | None = None
    ) -> None:
        if self.on_event:
            self.on_event(
                PipelineEvent(key=str(key), stage=stage, progress=progress, message=message, data=data)
            )

    def _check_deadline(self, deadline: float | None, key: JobKey, stage: str) -> None:
        if deadline is not None and time.monotonic() >= deadline:
            raise JobTimeoutError(f"Job deadline exceeded for {key} after {stage}")

    def _execute(self, job: TranslationJob) -> Artifact:
        """Fetch, parse, translate, serialize and store one key's artifact."""
        key = job.key
        deadline = time.monotonic() + self.job_timeout if self.job_timeout is not None else None

        stored = self.sources.fresh(key.media)
        if stored is None:
            self._emit(key, "fetch", 0.0, f"Fetching source subtitle for {key.media}")
            document = self.fetcher.fetch_raw(key.media, deadline=deadline)
            try:
                self.sources.put(key.media, document)
            except OSError as e:
                console.print(f"[yellow]Could not keep source copy for {key.media}:[/yellow] {e}")
            self._emit(key, "fetch", 1.0, "Source fetched", {"fingerprint": document.fingerprint})
        else:
            document = stored.document
        self._check_deadline(deadline, key, "fetch")
        job.source_fingerprint = document.fingerprint

        # The fetched source may match a translation made before the TTL lapsed
        entry = self.cache.get(key, document.fingerprint)
        if entry is not None:
            self._emit(key, "cache", 1.0, "Source unchanged, cached translation still valid")
            return self._artifact_from_entry(entry, self.cache.read(entry))

        self._emit(key, "parse", 0.0, "Parsing source subtitle")
        track = parse(
            document.raw,
            document.format_hint or document.file_name,
            media_id=str(key.media),
            encodings=self.fetcher.encodings,
        )
        self._emit(key, "parse", 1.0, f"{len(track)} cues", {"cues": len(track)})

        self._emit(key, "translate", 0.0, f"Translating {len(track)} cues to {key.language}")

        def _on_translate_progress(frac: float) -> None:
            self._emit(key, "translate", frac, f"Translating ({frac:.0%})...")

        texts = [cue.text for cue in track.cues]
        translated = self.translator.translate(
            texts,
            key.language,
            source_language=self.fetcher.source_language,
            deadline=deadline,
            on_progress=_on_translate_progress,
        )
        if len(translated) != len(texts):
            raise ProviderError(
                f"Translator returned {len(translated)} texts for {len(texts)} cues"
            )
        if any(not text.strip() for text in translated):
            raise ProviderError(f"Translator returned empty text for {key}")
        self._check_deadline(deadline, key, "translate")

        result = SubtitleTrack(
            cues=[cue.with_lines(text.split("\n")) for cue, text in zip(track.cues, translated)],
            fingerprint=document.fingerprint,
            format=self.cache_format,
            language=key.language,
        )

        self._emit(key, "serialize", 0.0, f"Writing {self.cache_format}")
        content = serialize(result, self.cache_format)

        entry = self.cache.put(
            key,
            document.fingerprint,
            content,
            provider_id=self.translator.provider_id,
            fmt=self.cache_format,
        )
        self._emit(key, "cache", 1.0, "Translation cached", {"path": str(entry.path)})
        console.print(f"[green]Cached:[/green] {key} ({len(result)} cues)")
        return self._artifact_from_entry(entry, content, from_cache=False)

    # -- cache helpers ------------------------------------------------------

    def _lookup(self, key: JobKey) -> Artifact | None:
        """Fast path: serve a cached artifact when the source copy is still fresh."""
        current = self.sources.fresh_fingerprint(key.media)
        if current is None:
            return None
        entry = self.cache.get(key, current)
        if entry is None:
            return None
        try:
            content = self.cache.read(entry)
        except OSError:
            return None
        return self._artifact_from_entry(entry, content)

    @staticmethod
    def _artifact_from_entry(entry: CacheEntry, content: bytes, from_cache: bool = True) -> Artifact:
        return Artifact(
            content=content,
            format=entry.format,
            media_type=media_type(entry.format),
            fingerprint=entry.fingerprint,
            language=entry.language,
            provider_id=entry.provider_id,
            from_cache=from_cache,
        )

    @staticmethod
    def _render(artifact: Artifact, fmt: str) -> Artifact:
        """Re-serialize an artifact into another format; same format passes through."""
        if artifact.format == fmt:
            return artifact
        track = parse(artifact.content, artifact.format)
        return replace(
            artifact,
            content=serialize(track, fmt),
            format=fmt,
            media_type=media_type(fmt),
        )
