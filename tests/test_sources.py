import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests

from conftest import FakeResponse, FakeSession
from lpb_dashboard.errors import FetchError
from lpb_dashboard.loaders.delimited import ParserService
from lpb_dashboard.records import Bounds
from lpb_dashboard.sources import EdgeSqlSource, PostgrestSource, SheetCsvSource


def _rows(start, count):
    return [{"idpel": f"5321100{i:05d}", "nama": f"P{i}"} for i in range(start, start + count)]


def _range_handler(total=None):
    """Serve a full page for every Range request (or up to `total` rows)."""

    def handler(method, url, kwargs):
        first, last = (int(x) for x in kwargs["headers"]["Range"].split("-"))
        count = last - first + 1
        if total is not None:
            count = max(0, min(count, total - first))
        return FakeResponse(206, _rows(first, count))

    return handler


def test_postgrest_pagination_stops_at_safety_cap():
    session = FakeSession(handler=_range_handler())
    source = PostgrestSource("https://db.example.co", "key", session=session, page_size=2, max_rows=5)

    result = source.fetch("lpb_data")

    assert len(result.records) == 5
    ranges = [call[2]["headers"]["Range"] for call in session.calls]
    assert ranges == ["0-1", "2-3", "4-4"]


def test_postgrest_pagination_stops_on_short_page():
    session = FakeSession(handler=_range_handler(total=3))
    source = PostgrestSource("https://db.example.co/", "key", session=session, page_size=2)

    result = source.fetch("lpb_data")

    assert len(result.records) == 3
    assert len(session.calls) == 2
    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert url == "https://db.example.co/rest/v1/lpb_data"
    assert kwargs["headers"]["apikey"] == "key"
    assert kwargs["headers"]["Authorization"] == "Bearer key"
    assert kwargs["headers"]["Range-Unit"] == "items"
    assert ("select", "*") in kwargs["params"]
    assert kwargs["timeout"] == 30


def test_http_500_raises_fetch_error_with_detail():
    session = FakeSession([FakeResponse(500, {"message": "database unavailable"}, reason="Server Error")])
    source = PostgrestSource("https://db.example.co", "key", session=session)

    with pytest.raises(FetchError) as excinfo:
        source.fetch("lpb_data")

    assert excinfo.value.status == 500
    assert excinfo.value.detail == "database unavailable"
    assert excinfo.value.source == "postgrest"


def test_timeout_raises_fetch_error_without_status():
    session = FakeSession([requests.Timeout("read timed out")])
    source = EdgeSqlSource("https://edge.example.workers.dev", session=session, timeout=5)

    with pytest.raises(FetchError) as excinfo:
        source.fetch("lpb_data")

    assert excinfo.value.status is None
    assert "5" in excinfo.value.detail


def test_malformed_payload_raises_fetch_error():
    session = FakeSession([
        FakeResponse(200, {"error": "D1_ERROR: no such table"}),
        FakeResponse(200, {"rows": []}),
        FakeResponse(200, text="<html>not json</html>"),
    ])
    source = EdgeSqlSource("https://edge.example.workers.dev", session=session)

    for _ in range(3):
        with pytest.raises(FetchError):
            source.fetch("lpb_data")


def test_bounds_query_parameters():
    session = FakeSession([FakeResponse(200, _rows(0, 1))])
    source = PostgrestSource("https://db.example.co", "key", session=session)

    source.fetch_by_bounds("lpb_data", Bounds(-0.5, -0.1, 100.2, 100.6))

    params = session.calls[0][2]["params"]
    assert ("latitude", "gte.-0.5") in params
    assert ("latitude", "lte.-0.1") in params
    assert ("longitude", "gte.100.2") in params
    assert ("longitude", "lte.100.6") in params


def test_postgrest_upload_is_merge_upsert_on_idpel():
    session = FakeSession([FakeResponse(201, text="")])
    source = PostgrestSource("https://db.example.co", "key", session=session)

    applied = source.upload_rows([{"idpel": "532110012345"}], "lpb_data")

    assert applied == 1
    method, url, kwargs = session.calls[0]
    assert method == "POST"
    assert kwargs["params"] == {"on_conflict": "idpel"}
    assert "resolution=merge-duplicates" in kwargs["headers"]["Prefer"]
    assert kwargs["json"] == [{"idpel": "532110012345"}]


def test_ping_reports_status():
    session = FakeSession([
        FakeResponse(200, {}),
        FakeResponse(401, {"message": "Invalid API key"}),
        requests.ConnectionError("refused"),
    ])
    source = PostgrestSource("https://db.example.co", "key", session=session)

    assert source.ping() == (True, "Supabase Online")
    assert source.ping() == (False, "Error 401")
    assert source.ping() == (False, "Offline")
    assert session.calls[0][1] == "https://db.example.co/rest/v1/"


def test_sheet_csv_source_parses_text_body():
    body = "IDPEL;NAMA;KOORDINAT X;KOORDINAT Y\n1.23457E+11;JOHN DOE;100,375;-0,305\n123;X;;\n"
    session = FakeSession([FakeResponse(200, text=body)])

    with ParserService() as parser:
        source = SheetCsvSource("https://script.example.com/exec", parser, session=session)
        result = source.fetch("lpb_data")

    assert [r.customer_id for r in result.records] == ["123457000000"]
    assert result.rejected == 1
    assert session.calls[0][2]["timeout"] == 60


def test_sheet_csv_error_body_is_a_fetch_failure():
    session = FakeSession([FakeResponse(200, text="Error: Sheet 'DATA' not found")])

    with ParserService() as parser:
        source = SheetCsvSource("https://script.example.com/exec", parser, session=session)
        with pytest.raises(FetchError):
            source.fetch("lpb_data")


def test_edge_upload_bulk_payload_and_count():
    session = FakeSession([
        FakeResponse(200, {"success": True, "count": 2}),
        FakeResponse(200, {"success": False, "error": "too many SQL variables"}),
    ])
    source = EdgeSqlSource("https://edge.example.workers.dev", session=session)
    rows = [{"idpel": "532110012345"}, {"idpel": "532110012346"}]

    assert source.upload_rows(rows, "lpb_data") == 2
    assert session.calls[0][2]["json"] == {"action": "UPLOAD_BULK", "payload": rows}

    with pytest.raises(FetchError) as excinfo:
        source.upload_rows(rows, "lpb_data")
    assert "too many SQL variables" in str(excinfo.value)


def test_cache_key_combines_endpoint_and_table():
    source = EdgeSqlSource("https://edge.example.workers.dev/", session=FakeSession())
    assert source.cache_key("lpb_data") == "https://edge.example.workers.dev_lpb_data"


@pytest.mark.parametrize("count", [None, "many", [2]])
def test_edge_upload_count_is_checked(count):
    session = FakeSession([FakeResponse(200, {"success": True, "count": count})])
    source = EdgeSqlSource("https://edge.example.workers.dev", session=session)
    rows = [{"idpel": "532110012345"}]

    if count is None:
        assert source.upload_rows(rows, "lpb_data") == 1
    else:
        with pytest.raises(FetchError) as excinfo:
            source.upload_rows(rows, "lpb_data")
        assert "Malformed upload response" in excinfo.value.detail


class _SlowBodyHandler(BaseHTTPRequestHandler):
    """Sends a small JSON body one byte at a time, `delay` seconds apart."""

    body = b'[{"idpel": "532110012345", "nama": "ANDI"}]'
    delay = 0.1

    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(self.body)))
        self.end_headers()
        for byte in self.body:
            try:
                self.wfile.write(bytes([byte]))
                self.wfile.flush()
            except OSError:
                return
            time.sleep(self.delay)

    def log_message(self, *args):
        pass


class _FastBodyHandler(_SlowBodyHandler):
    delay = 0


def _serve(handler):
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    threading.Thread(target=server.serve_forever, daemon=True).start()
    return server


def _local_session():
    session = requests.Session()
    session.trust_env = False
    return session


@pytest.fixture
def slow_server():
    server = _serve(_SlowBodyHandler)
    yield f"http://127.0.0.1:{server.server_port}"
    server.shutdown()
    server.server_close()


@pytest.fixture
def fast_server():
    server = _serve(_FastBodyHandler)
    yield f"http://127.0.0.1:{server.server_port}"
    server.shutdown()
    server.server_close()


def test_slow_body_is_cut_off_at_the_overall_timeout(slow_server):
    source = EdgeSqlSource(slow_server, session=_local_session(), timeout=0.5)

    started = time.monotonic()
    with pytest.raises(FetchError) as excinfo:
        source.fetch("lpb_data")
    elapsed = time.monotonic() - started

    assert elapsed < 1.5
    assert excinfo.value.status is None
    assert "Timed out after 0.5s" in excinfo.value.detail


def test_real_response_body_is_read_in_full(fast_server):
    source = EdgeSqlSource(fast_server, session=_local_session(), timeout=5)

    result = source.fetch("lpb_data")

    assert [(r.customer_id, r.customer_name) for r in result.records] == [("532110012345", "ANDI")]
