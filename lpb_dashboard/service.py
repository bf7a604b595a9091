"""
Dataset orchestration: source fallback, cache policy, in-flight joining,
chunked uploads, and the periodic refresh timer.

Fallback order for fetch_dataset, per source in the configured list:
    1. fresh cache entry for that source (unless force_refresh)
    2. live fetch, written through to the cache on success
    3. stale cache entry for that source if the fetch failed
then the next source. If every source fails with nothing cached, an
empty dataset with timestamp 0 is returned.
"""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

import requests

from .cache import DatasetCache
from .config import (
    AUTO_REFRESH_SECONDS,
    DEFAULT_TABLE,
    UPLOAD_CHUNK_SIZE,
    Settings,
)
from .errors import FetchError, ParseError, UploadError
from .loaders.delimited import ParserService
from .records import Bounds, MeterRecord
from .sources import EdgeSqlSource, HttpSource, PostgrestSource, SheetCsvSource
from .transforms import dedupe_for_upload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatasetResult:
    """Outcome of one fetch_dataset call.

    timestamp is when the returned records were fetched (the "last
    successful sync"); 0 means no data was available at all. rejected
    counts rows dropped for lacking a customer ID in a live fetch.
    """

    records: tuple[MeterRecord, ...]
    from_cache: bool
    timestamp: float
    source: str = ""
    rejected: int = 0
    error: str | None = None


@dataclass(frozen=True)
class UploadResult:
    success: bool
    applied_count: int
    duplicates_dropped: int
    total_chunks: int = 0
    failed_chunk: int | None = None
    error_detail: str | None = None


def build_sources(
    settings: Settings,
    parser: ParserService,
    session: requests.Session | None = None,
) -> list[HttpSource]:
    """Ordered source strategies for the configured backends.

    Hosted Postgres first, then the edge SQL worker, then the spreadsheet
    export. Backends without settings are left out.
    """
    session = session or requests.Session()
    sources: list[HttpSource] = []
    if settings.supabase_url and settings.supabase_key:
        sources.append(PostgrestSource(settings.supabase_url, settings.supabase_key, session=session))
    if settings.edge_url:
        sources.append(EdgeSqlSource(settings.edge_url, session=session))
    if settings.sheet_csv_url:
        sources.append(SheetCsvSource(settings.sheet_csv_url, parser, session=session))
    if not sources:
        logger.warning("No data sources configured (set LPB_* environment variables)")
    return sources


class DatasetService:
    """Entry point used by the dashboard to read and upload records.

    Create one per session with its own DatasetCache; overlapping
    fetch_dataset calls for the same key share one refresh cycle.
    """

    def __init__(
        self,
        sources: Sequence,
        cache: DatasetCache,
        upload_chunk_size: int = UPLOAD_CHUNK_SIZE,
    ):
        self.sources = list(sources)
        self.cache = cache
        self.upload_chunk_size = upload_chunk_size
        self._inflight: dict[str, tuple[Future, bool]] = {}
        self._lock = threading.Lock()

    def fetch_dataset(
        self,
        source_key: str = DEFAULT_TABLE,
        force_refresh: bool = False,
    ) -> DatasetResult:
        with self._lock:
            joined = self._inflight.get(source_key)
            # A forced call never joins a cycle that may answer from cache.
            if joined is not None and (joined[1] or not force_refresh):
                pending = joined[0]
                owner = False
            else:
                pending = Future()
                owner = True
                self._inflight[source_key] = (pending, force_refresh)

        if not owner:
            logger.info("Joining in-flight refresh of %s", source_key)
            return pending.result()

        try:
            result = self._refresh(source_key, force_refresh)
        except Exception as exc:
            pending.set_exception(exc)
            raise
        else:
            pending.set_result(result)
            return result
        finally:
            with self._lock:
                if self._inflight.get(source_key, (None,))[0] is pending:
                    del self._inflight[source_key]

    def _refresh(self, source_key: str, force_refresh: bool) -> DatasetResult:
        errors: list[str] = []
        for source in self.sources:
            key = source.cache_key(source_key)
            entry = self.cache.get(key)
            if entry is not None and not force_refresh and self.cache.is_fresh(entry):
                logger.info("Cache hit for %s (%d records)", key, len(entry.records))
                return DatasetResult(entry.records, True, entry.timestamp, source.name)

            try:
                assembled = source.fetch(source_key)
            except (FetchError, ParseError) as exc:
                logger.warning("Fetch from %s failed: %s", source.name, exc)
                errors.append(str(exc))
                if entry is not None:
                    logger.warning(
                        "Serving stale cache for %s from %.0f", key, entry.timestamp
                    )
                    return DatasetResult(
                        entry.records, True, entry.timestamp, source.name, error=str(exc)
                    )
                continue

            # Zero rows from a successful fetch still replace the entry;
            # only failed fetches leave the previous data in place.
            entry = self.cache.put(key, assembled.records)
            return DatasetResult(
                entry.records,
                False,
                entry.timestamp,
                source.name,
                rejected=assembled.rejected,
            )

        detail = "; ".join(errors) or "no data sources configured"
        logger.warning("No data available for %s: %s", source_key, detail)
        return DatasetResult((), False, 0.0, error=detail)

    def fetch_by_bounds(
        self,
        source_key: str,
        bounds: Bounds,
    ) -> list[MeterRecord]:
        """Records inside a map viewport.

        Uses the first source that supports server-side bounds queries;
        without one, filters the regular dataset locally.
        """
        if not bounds.is_valid():
            logger.warning("Ignoring invalid bounds %s", bounds)
            return []

        for source in self.sources:
            if not source.supports_bounds:
                continue
            try:
                return list(source.fetch_by_bounds(source_key, bounds).records)
            except (FetchError, ParseError) as exc:
                logger.warning("Bounds query on %s failed: %s", source.name, exc)
                return []

        dataset = self.fetch_dataset(source_key)
        return [r for r in dataset.records if bounds.contains(r)]

    def upload_batch(
        self,
        records: Iterable[MeterRecord],
        source_key: str = DEFAULT_TABLE,
        chunk_size: int | None = None,
    ) -> UploadResult:
        """De-duplicate and upsert records in chunks.

        The first failing chunk halts the sequence; failed_chunk names it
        (1-based) so the caller can resume from there.
        """
        unique, dropped = dedupe_for_upload(records)
        target = next((s for s in self.sources if s.supports_upload), None)
        if target is None:
            return UploadResult(False, 0, dropped, error_detail="No upload-capable source configured")

        rows = [r.to_row() for r in unique]
        size = chunk_size or self.upload_chunk_size
        chunks = [rows[i:i + size] for i in range(0, len(rows), size)]

        applied = 0
        for number, chunk in enumerate(chunks, start=1):
            try:
                applied += target.upload_rows(chunk, source_key)
            except FetchError as exc:
                error = UploadError(exc.detail, chunk=number, status=exc.status)
                logger.error("Upload halted at chunk %d/%d: %s", number, len(chunks), error)
                return UploadResult(
                    False, applied, dropped, len(chunks), failed_chunk=number, error_detail=str(error)
                )
            logger.info("Uploaded chunk %d/%d (%d rows)", number, len(chunks), len(chunk))

        return UploadResult(True, applied, dropped, len(chunks))


class AutoRefresher:
    """Background timer that force-refreshes one dataset at a fixed interval.

    A tick that arrives while the previous refresh is still running is
    skipped rather than queued.
    """

    def __init__(
        self,
        service: DatasetService,
        source_key: str = DEFAULT_TABLE,
        interval: float = AUTO_REFRESH_SECONDS,
        on_result: Callable[[DatasetResult], None] | None = None,
    ):
        self.service = service
        self.source_key = source_key
        self.interval = interval
        self.on_result = on_result
        self._busy = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def trigger(self) -> DatasetResult | None:
        """Run one forced refresh now; returns None if one is already running."""
        if not self._busy.acquire(blocking=False):
            logger.info("Refresh of %s still running, tick skipped", self.source_key)
            return None
        try:
            result = self.service.fetch_dataset(self.source_key, force_refresh=True)
        finally:
            self._busy.release()
        if self.on_result is not None:
            self.on_result(result)
        return result

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.trigger()
            except Exception:
                logger.exception("Scheduled refresh of %s failed", self.source_key)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"refresh-{self.source_key}", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.stop()
