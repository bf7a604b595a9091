import threading

from lpb_dashboard.dashboard import (
    Debouncer,
    FilterState,
    apply_filter,
    filter_options,
    mappable_records,
)
from lpb_dashboard.records import ValidationStatus


def _ids(records):
    return [r.customer_id for r in records]


def test_empty_filter_keeps_everything(sample_records):
    assert apply_filter(sample_records, FilterState()) == sample_records


def test_period_and_unit_match_exactly(sample_records):
    assert _ids(apply_filter(sample_records, FilterState(period="202409"))) == ["333333333333"]
    assert len(apply_filter(sample_records, FilterState(unit="BASO"))) == 2
    assert apply_filter(sample_records, FilterState(unit="BAS")) == []


def test_officer_is_case_insensitive_substring(sample_records):
    matched = apply_filter(sample_records, FilterState(officer="  fajar "))
    assert _ids(matched) == ["222222222222", "444444444444"]


def test_filters_combine_conjunctively(sample_records):
    filters = FilterState(period="202410", unit="BASO", validation=ValidationStatus.VALID)
    assert _ids(apply_filter(sample_records, filters)) == ["444444444444"]
    assert _ids(apply_filter(sample_records, FilterState(validation="INVALID"))) == ["222222222222"]


def test_filter_options(sample_records):
    options = filter_options(sample_records)
    assert options["periods"] == ["202409", "202410"]
    assert options["units"] == ["BASO", "BUKITTINGGI"]
    assert options["officers"] == ["ANDI SAPUTRA", "FAJAR HIDAYAT", "RINA WAHYUNI"]


def test_mappable_records(sample_records):
    assert _ids(mappable_records(sample_records)) == ["111111111111", "333333333333"]
    assert _ids(mappable_records(sample_records, "333333333333")) == ["333333333333"]
    assert mappable_records(sample_records, "222222222222") == []


def test_debouncer_runs_once_with_latest_arguments():
    calls = []
    done = threading.Event()

    def on_change(value):
        calls.append(value)
        done.set()

    debouncer = Debouncer(on_change, delay=0.05)
    for value in ["a", "ab", "abc"]:
        debouncer.call(value)

    assert done.wait(2)
    assert calls == ["abc"]
    assert not debouncer.pending


def test_debouncer_flush_and_cancel():
    calls = []
    debouncer = Debouncer(calls.append, delay=60)

    debouncer.call("x")
    assert debouncer.pending
    assert debouncer.flush() is True
    assert calls == ["x"]
    assert debouncer.flush() is False

    debouncer.call("y")
    debouncer.cancel()
    assert not debouncer.pending
    assert calls == ["x"]
