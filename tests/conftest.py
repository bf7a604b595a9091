"""
Pytest configuration for the dashboard tests.

Puts the project root on sys.path and provides fake HTTP session and
clock objects so no test touches the network or waits on real time.
"""

import json
import sys
from pathlib import Path

import pytest

root_path = str(Path(__file__).resolve().parents[1])
if root_path not in sys.path:
    sys.path.insert(0, root_path)

from lpb_dashboard.records import MeterRecord, ValidationStatus  # noqa: E402


class FakeResponse:
    """Just enough of requests.Response for the source adapters."""

    def __init__(self, status_code=200, payload=None, text=None, reason="OK"):
        self.status_code = status_code
        self._payload = payload
        if text is None:
            text = json.dumps(payload) if payload is not None else ""
        self.text = text
        self.reason = reason

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            return json.loads(self.text)
        return self._payload

    def iter_content(self, chunk_size=1):
        yield self.text.encode()

    def close(self):
        pass


class FakeSession:
    """Replays queued responses (or exceptions) and records every request.

    A callable handler may be given instead of a queue; it receives
    (method, url, kwargs) and returns a FakeResponse or raises.
    """

    def __init__(self, responses=None, handler=None):
        self.responses = list(responses or [])
        self.handler = handler
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.handler is not None:
            return self.handler(method, url, kwargs)
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_record():
    def _make(customer_id="123456789012", **overrides):
        return MeterRecord(customer_id=customer_id, **overrides)
    return _make


@pytest.fixture
def sample_records():
    return [
        MeterRecord(
            customer_id="111111111111", unit="BUKITTINGGI", officer_name="ANDI SAPUTRA",
            period="202410", validation_status=ValidationStatus.VALID, date="01/10/2024",
            total_work_orders=300_000.0, paid_direct=100_000.0, paid_offline=50_000.0,
            paid_promise=25_000.0, latitude=-0.305, longitude=100.375,
        ),
        MeterRecord(
            customer_id="222222222222", unit="BASO", officer_name="FAJAR HIDAYAT",
            period="202410", validation_status=ValidationStatus.INVALID, date="02/10/2024",
            total_work_orders=150_000.0, paid_direct=150_000.0,
        ),
        MeterRecord(
            customer_id="333333333333", unit="BUKITTINGGI", officer_name="RINA WAHYUNI",
            period="202409", date="01/10/2024",
            total_work_orders=450_000.0, paid_offline=200_000.0,
            latitude=-0.31, longitude=100.38,
        ),
        MeterRecord(
            customer_id="444444444444", unit="BASO", officer_name="FAJAR HIDAYAT",
            period="202410", validation_status=ValidationStatus.VALID, date="10/10/2024",
            total_work_orders=150_000.0, paid_promise=150_000.0,
        ),
    ]
