"""
Aggregation functions. Pure, no side effects.

Provides per-unit / per-officer / per-day rollups (validation counts and
billing/collection totals), the region-wide stats card, and the daily
realization series behind the trend chart.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

import pandas as pd

from .loaders.utils import date_group_key, natural_sort_key
from .records import MeterRecord, ValidationStatus
from .transforms import records_to_frame

logger = logging.getLogger(__name__)


class GroupBy(str, Enum):
    UNIT = "unit"
    OFFICER = "officer"
    DATE = "date"


class SummaryMode(str, Enum):
    COUNT = "count"
    BILLING = "billing"


_GROUP_COLUMNS = {
    GroupBy.UNIT: "unit",
    GroupBy.OFFICER: "officer_name",
    GroupBy.DATE: "date",
}

# Unit and officer panels show validation counts; the daily view tracks collection
_DEFAULT_MODES = {
    GroupBy.UNIT: SummaryMode.COUNT,
    GroupBy.OFFICER: SummaryMode.COUNT,
    GroupBy.DATE: SummaryMode.BILLING,
}


@dataclass(frozen=True)
class SummaryEntry:
    """One group's rollup. Both count and billing figures are always filled."""

    key: str
    total: int
    valid: int
    invalid: int
    total_work_orders: float
    paid_direct: float
    paid_offline: float
    paid_promise: float

    @property
    def unvalidated(self) -> int:
        return self.total - self.valid - self.invalid

    @property
    def realized(self) -> float:
        return self.paid_direct + self.paid_offline + self.paid_promise


def aggregate_by(
    records: Sequence[MeterRecord],
    group_by: GroupBy | str,
    mode: SummaryMode | str | None = None,
    date_key: Callable[[object], str] = date_group_key,
) -> list[SummaryEntry]:
    """Summarise records per unit, officer, or calendar date.

    Parameters
    ----------
    records : Already-filtered canonical records.
    group_by : GroupBy.UNIT, GroupBy.OFFICER or GroupBy.DATE.
    mode : Ordering metric. COUNT sorts by record count, BILLING by total
           work orders. Defaults to COUNT for unit/officer, BILLING for date.
    date_key : Grouping key for date mode; string identity by default.

    Returns
    -------
    One SummaryEntry per distinct key, highest primary metric first. Ties
    keep the order in which keys first appear in `records`.
    """
    group_by = GroupBy(group_by)
    mode = SummaryMode(mode) if mode is not None else _DEFAULT_MODES[group_by]

    if not records:
        return []

    df = records_to_frame(records)
    column = _GROUP_COLUMNS[group_by]
    keys = df[column].map(date_key) if group_by is GroupBy.DATE else df[column]
    df = df.assign(
        group_key=keys,
        is_valid=df["validation_status"].eq(ValidationStatus.VALID.value),
        is_invalid=df["validation_status"].eq(ValidationStatus.INVALID.value),
    )

    summary = df.groupby("group_key", sort=False).agg(
        total=("customer_id", "size"),
        valid=("is_valid", "sum"),
        invalid=("is_invalid", "sum"),
        total_work_orders=("total_work_orders", "sum"),
        paid_direct=("paid_direct", "sum"),
        paid_offline=("paid_offline", "sum"),
        paid_promise=("paid_promise", "sum"),
    )

    entries = [
        SummaryEntry(
            key=str(key),
            total=int(row["total"]),
            valid=int(row["valid"]),
            invalid=int(row["invalid"]),
            total_work_orders=float(row["total_work_orders"]),
            paid_direct=float(row["paid_direct"]),
            paid_offline=float(row["paid_offline"]),
            paid_promise=float(row["paid_promise"]),
        )
        for key, row in summary.iterrows()
    ]

    if mode is SummaryMode.BILLING:
        entries.sort(key=lambda e: -e.total_work_orders)
    else:
        entries.sort(key=lambda e: -e.total)

    logger.info("Aggregated %d records into %d %s groups", len(records), len(entries), group_by.value)
    return entries


def summary_frame(entries: Sequence[SummaryEntry]) -> pd.DataFrame:
    """Table form of aggregate_by output, with derived columns included."""
    columns = [
        "key", "total", "valid", "invalid", "unvalidated",
        "total_work_orders", "paid_direct", "paid_offline", "paid_promise", "realized",
    ]
    return pd.DataFrame(
        [
            {
                "key": e.key,
                "total": e.total,
                "valid": e.valid,
                "invalid": e.invalid,
                "unvalidated": e.unvalidated,
                "total_work_orders": e.total_work_orders,
                "paid_direct": e.paid_direct,
                "paid_offline": e.paid_offline,
                "paid_promise": e.paid_promise,
                "realized": e.realized,
            }
            for e in entries
        ],
        columns=columns,
    )


def overall_summary(records: Sequence[MeterRecord]) -> dict:
    """Region-wide validation counts for the stats card.

    Returns
    -------
    {"total": ..., "valid": ..., "invalid": ..., "unvalidated": ...}
    """
    valid = sum(1 for r in records if r.validation_status is ValidationStatus.VALID)
    invalid = sum(1 for r in records if r.validation_status is ValidationStatus.INVALID)
    return {
        "total": len(records),
        "valid": valid,
        "invalid": invalid,
        "unvalidated": len(records) - valid - invalid,
    }


def daily_realization(
    records: Sequence[MeterRecord],
    officer: str | None = None,
    date_key: Callable[[object], str] = date_group_key,
) -> pd.DataFrame:
    """Daily realized-vs-target series for the trend chart.

    One series per unit, or a single series for `officer` when given.
    Every series has a point for every date present in `records` (zero
    when it has no rows that day). Dates are ordered with embedded numbers
    compared numerically. Records without a date are left out.

    Returns
    -------
    Long DataFrame with columns: date, series, realized, target
    """
    columns = ["date", "series", "realized", "target"]
    df = records_to_frame(records)
    if df.empty:
        return pd.DataFrame(columns=columns)

    df = df.assign(date=df["date"].map(date_key))
    df = df[df["date"] != ""]
    if df.empty:
        return pd.DataFrame(columns=columns)

    dates = sorted(df["date"].unique(), key=natural_sort_key)
    if officer:
        df = df[df["officer_name"] == officer].assign(series=officer)
        series = [officer]
    else:
        df = df.assign(series=df["unit"])
        series = sorted(df["series"].unique())

    grouped = df.groupby(["date", "series"])[["total_realized", "total_work_orders"]].sum()
    full_index = pd.MultiIndex.from_product([dates, series], names=["date", "series"])
    result = (
        grouped.reindex(full_index, fill_value=0.0)
        .reset_index()
        .rename(columns={"total_realized": "realized", "total_work_orders": "target"})
    )
    return result[columns]
