"""
Dashboard-ready output functions.

These are the entry points a Streamlit front end calls after
DatasetService.fetch_dataset: the filter predicate, dropdown options,
map points, and a debouncer for filter inputs typed by the user.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from .config import FILTER_DEBOUNCE_SECONDS
from .records import MeterRecord, ValidationStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterState:
    """Active filter selections. Empty strings / None mean "all".

    period, unit and validation match exactly; officer matches any
    officer name containing it, ignoring case.
    """

    period: str = ""
    unit: str = ""
    officer: str = ""
    validation: ValidationStatus | str | None = None

    def is_empty(self) -> bool:
        return not (self.period or self.unit or self.officer.strip() or self.validation)


def apply_filter(
    records: Sequence[MeterRecord],
    filters: FilterState,
) -> list[MeterRecord]:
    """Return the records matching every active filter, in input order."""
    if filters.is_empty():
        return list(records)

    officer = filters.officer.strip().lower()
    validation = ValidationStatus(filters.validation) if filters.validation else None

    result = [
        r
        for r in records
        if (not filters.period or r.period == filters.period)
        and (not filters.unit or r.unit == filters.unit)
        and (not officer or officer in r.officer_name.lower())
        and (validation is None or r.validation_status is validation)
    ]
    logger.debug("Filter %s kept %d of %d records", filters, len(result), len(records))
    return result


def filter_options(records: Sequence[MeterRecord]) -> dict[str, list[str]]:
    """Sorted distinct values for the filter dropdowns.

    Returns
    -------
    {"periods": [...], "units": [...], "officers": [...]}
    """
    return {
        "periods": sorted({r.period for r in records if r.period}),
        "units": sorted({r.unit for r in records if r.unit and r.unit != "-"}),
        "officers": sorted({r.officer_name for r in records if r.officer_name and r.officer_name != "-"}),
    }


def mappable_records(
    records: Sequence[MeterRecord],
    selected_id: str | None = None,
) -> list[MeterRecord]:
    """Records with a usable location, or only the selected customer's."""
    points = [r for r in records if r.is_mappable]
    if selected_id:
        points = [r for r in points if r.customer_id == selected_id]
    return points


class Debouncer:
    """Delay a callback until input has been quiet for `delay` seconds.

    Each call() cancels the pending invocation and schedules a new one
    with the latest arguments, so a burst of filter edits runs the
    callback once.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        delay: float = FILTER_DEBOUNCE_SECONDS,
    ):
        self.func = func
        self.delay = delay
        self._timer: threading.Timer | None = None
        self._pending: tuple[tuple, dict] | None = None
        self._lock = threading.Lock()

    def call(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = (args, kwargs)
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _take_pending(self) -> tuple[tuple, dict] | None:
        with self._lock:
            pending, self._pending = self._pending, None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            return pending

    def _fire(self) -> None:
        pending = self._take_pending()
        if pending is not None:
            args, kwargs = pending
            self.func(*args, **kwargs)

    def flush(self) -> bool:
        """Run the pending call now, if any. Returns True if one ran."""
        pending = self._take_pending()
        if pending is None:
            return False
        args, kwargs = pending
        self.func(*args, **kwargs)
        return True

    def cancel(self) -> None:
        self._take_pending()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None
