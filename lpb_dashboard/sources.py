"""
Remote fetch adapters, one per backend kind.

Every adapter exposes the same surface so DatasetService can try them in
order without knowing which transport is behind each one:

    cache_key(source_key)  -> identity used by the dataset cache
    fetch(source_key)      -> AssemblyResult (raises FetchError / ParseError)
    ping()                 -> (ok, message)

PostgrestSource additionally serves bounding-box queries, and both
PostgrestSource and EdgeSqlSource accept bulk uploads.
"""

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Sequence

import requests

from .config import (
    CSV_TIMEOUT_SECONDS,
    HTTP_TIMEOUT_SECONDS,
    MAX_FETCH_ROWS,
    POSTGREST_PAGE_SIZE,
)
from .errors import FetchError
from .loaders.delimited import ParserService
from .records import Bounds
from .transforms import AssemblyResult, records_from_objects, records_from_rows

logger = logging.getLogger(__name__)

_READ_CHUNK_BYTES = 64 * 1024


def _error_detail(response: requests.Response) -> str:
    """Pull a readable message out of an error response body."""
    try:
        body = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return text[:300] or response.reason or "HTTP error"
    if isinstance(body, dict):
        for key in ("message", "details", "error", "hint"):
            if body.get(key):
                return str(body[key])
    return str(body)[:300]


class HttpSource:
    """Shared request handling: timeouts, status checks, payload shape."""

    name = "http"
    online_message = "Online"
    supports_bounds = False
    supports_upload = False

    def __init__(
        self,
        url: str,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        max_rows: int = MAX_FETCH_ROWS,
    ):
        self.url = url.strip().rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_rows = max_rows

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.url!r})"

    def cache_key(self, source_key: str) -> str:
        return f"{self.url}_{source_key}"

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    def _transfer(
        self,
        result: Future,
        abort: threading.Event,
        method: str,
        url: str,
        kwargs: dict,
    ) -> None:
        """Worker body: send the request and read the whole response body."""
        try:
            response = self.session.request(method, url, stream=True, **kwargs)
            chunks = []
            for chunk in response.iter_content(chunk_size=_READ_CHUNK_BYTES):
                if abort.is_set():
                    response.close()
                    logger.debug("%s: abandoned transfer from %s", self.name, url)
                    return
                chunks.append(chunk)
            response._content = b"".join(chunks)
        except Exception as exc:
            result.set_exception(exc)
        else:
            result.set_result(response)

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send one request; the timeout bounds the whole call, body included.

        requests only applies its timeout to each connect and socket read,
        so the transfer runs on a daemon thread and the caller stops
        waiting once the deadline passes.
        """
        kwargs["headers"] = {**self._headers(), **kwargs.pop("headers", {})}
        timeout = kwargs.setdefault("timeout", self.timeout)
        result: Future = Future()
        abort = threading.Event()
        worker = threading.Thread(
            target=self._transfer,
            args=(result, abort, method, url, kwargs),
            name=f"{self.name}-request",
            daemon=True,
        )
        worker.start()
        try:
            response = result.result(timeout=timeout)
        except FuturesTimeoutError as exc:
            abort.set()
            raise FetchError(f"Timed out after {timeout}s", source=self.name) from exc
        except requests.Timeout as exc:
            raise FetchError(f"Timed out after {timeout}s", source=self.name) from exc
        except requests.RequestException as exc:
            raise FetchError(f"Request failed: {exc}", source=self.name) from exc

        if not response.ok:
            raise FetchError(
                _error_detail(response), status=response.status_code, source=self.name
            )
        return response

    def _json_rows(self, response: requests.Response) -> list[dict]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchError(
                "Malformed JSON payload", status=response.status_code, source=self.name
            ) from exc
        if isinstance(payload, dict) and payload.get("error"):
            raise FetchError(str(payload["error"]), status=response.status_code, source=self.name)
        if not isinstance(payload, list) or not all(isinstance(r, dict) for r in payload):
            raise FetchError(
                f"Expected a JSON array of rows, got {type(payload).__name__}",
                status=response.status_code,
                source=self.name,
            )
        return payload

    def _cap(self, rows: list) -> list:
        if len(rows) > self.max_rows:
            logger.warning(
                "%s returned %d rows, truncated to safety cap %d",
                self.name, len(rows), self.max_rows,
            )
            return rows[: self.max_rows]
        return rows

    def _ping_url(self) -> str:
        return self.url

    def ping(self) -> tuple[bool, str]:
        """Connection test for the admin panel: (ok, message)."""
        try:
            self._request("GET", self._ping_url())
        except FetchError as exc:
            if exc.status is not None:
                return False, f"Error {exc.status}"
            return False, "Offline"
        return True, self.online_message

    def fetch(self, source_key: str) -> AssemblyResult:
        raise NotImplementedError

    def fetch_by_bounds(self, source_key: str, bounds: Bounds) -> AssemblyResult:
        raise NotImplementedError(f"{self.name} does not support bounds queries")

    def upload_rows(self, rows: Sequence[dict], source_key: str) -> int:
        raise NotImplementedError(f"{self.name} does not accept uploads")


class SheetCsvSource(HttpSource):
    """Spreadsheet published as CSV text (Apps Script web app or CSV export URL).

    The whole sheet arrives as one text body, so there is no paging; the
    body is parsed on the ParserService worker.
    """

    name = "sheet-csv"

    def __init__(
        self,
        url: str,
        parser: ParserService,
        session: requests.Session | None = None,
        timeout: float = CSV_TIMEOUT_SECONDS,
        max_rows: int = MAX_FETCH_ROWS,
    ):
        super().__init__(url, session=session, timeout=timeout, max_rows=max_rows)
        self.parser = parser

    def _headers(self) -> dict[str, str]:
        return {"Accept": "text/csv, text/plain"}

    def fetch(self, source_key: str) -> AssemblyResult:
        response = self._request("GET", self.url)
        text = response.text or ""
        # The Apps Script connector reports failures as a 200 text body
        if text.startswith("Error:"):
            raise FetchError(text.strip(), status=response.status_code, source=self.name)

        rows = self.parser.parse(text)
        if rows:
            rows = [rows[0]] + self._cap(rows[1:])
        logger.info("Fetched %d rows from %s", max(len(rows) - 1, 0), self.name)
        return records_from_rows(rows)


class EdgeSqlSource(HttpSource):
    """Edge SQL worker: GET returns every row as a JSON array, POST upserts."""

    name = "edge-sql"
    supports_upload = True

    def fetch(self, source_key: str) -> AssemblyResult:
        response = self._request("GET", self.url, headers={"Cache-Control": "no-cache"})
        rows = self._cap(self._json_rows(response))
        logger.info("Fetched %d rows from %s", len(rows), self.name)
        return records_from_objects(rows)

    def upload_rows(self, rows: Sequence[dict], source_key: str) -> int:
        response = self._request(
            "POST",
            self.url,
            json={"action": "UPLOAD_BULK", "payload": list(rows)},
        )
        try:
            body = response.json()
        except ValueError as exc:
            raise FetchError(
                "Malformed upload response", status=response.status_code, source=self.name
            ) from exc
        if not isinstance(body, dict) or not body.get("success"):
            detail = body.get("error") if isinstance(body, dict) else None
            raise FetchError(
                str(detail or "Upload rejected"), status=response.status_code, source=self.name
            )
        count = body.get("count")
        if count is None:
            return len(rows)
        try:
            return int(count)
        except (TypeError, ValueError, OverflowError) as exc:
            raise FetchError(
                f"Malformed upload response: count={count!r}",
                status=response.status_code,
                source=self.name,
            ) from exc


class PostgrestSource(HttpSource):
    """Hosted Postgres REST endpoint (PostgREST / Supabase).

    Reads page through the Range header until a short or empty page, and
    never past max_rows. Uploads are merge-upserts keyed on idpel.
    """

    name = "postgrest"
    online_message = "Supabase Online"
    supports_bounds = True
    supports_upload = True

    def __init__(
        self,
        url: str,
        api_key: str,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        page_size: int = POSTGREST_PAGE_SIZE,
        max_rows: int = MAX_FETCH_ROWS,
    ):
        super().__init__(url, session=session, timeout=timeout, max_rows=max_rows)
        self.api_key = api_key.strip()
        self.page_size = page_size

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
        }

    def _table_url(self, table: str) -> str:
        return f"{self.url}/rest/v1/{table}"

    def _ping_url(self) -> str:
        return f"{self.url}/rest/v1/"

    def _paginate(self, url: str, params: list[tuple[str, str]]) -> list[dict]:
        rows: list[dict] = []
        offset = 0
        while offset < self.max_rows:
            size = min(self.page_size, self.max_rows - offset)
            response = self._request(
                "GET",
                url,
                params=params,
                headers={"Range-Unit": "items", "Range": f"{offset}-{offset + size - 1}"},
            )
            page = self._json_rows(response)
            rows.extend(page)
            if len(page) < size:
                break
            offset += size
        else:
            logger.warning("%s: stopped at safety cap of %d rows", self.name, self.max_rows)
        return rows

    def fetch(self, source_key: str) -> AssemblyResult:
        rows = self._paginate(self._table_url(source_key), [("select", "*")])
        logger.info("Fetched %d rows from %s/%s", len(rows), self.name, source_key)
        return records_from_objects(rows)

    def fetch_by_bounds(self, source_key: str, bounds: Bounds) -> AssemblyResult:
        params = [
            ("latitude", f"gte.{bounds.min_lat}"),
            ("latitude", f"lte.{bounds.max_lat}"),
            ("longitude", f"gte.{bounds.min_lng}"),
            ("longitude", f"lte.{bounds.max_lng}"),
            ("select", "*"),
        ]
        rows = self._paginate(self._table_url(source_key), params)
        logger.info("Fetched %d rows inside %s from %s", len(rows), bounds, self.name)
        return records_from_objects(rows)

    def upload_rows(self, rows: Sequence[dict], source_key: str) -> int:
        self._request(
            "POST",
            self._table_url(source_key),
            params={"on_conflict": "idpel"},
            json=list(rows),
            headers={
                "Content-Type": "application/json",
                "Prefer": "resolution=merge-duplicates,return=minimal",
            },
        )
        return len(rows)

