"""
Record assembly: turn normalized field maps into canonical MeterRecords,
collapse duplicates before upload, and flatten records into DataFrames
for the aggregation and display layers.
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd

from .errors import ValidationError
from .loaders.fields import HeaderIndex, has_identity, normalize_mapping
from .loaders.upload_file import load_upload_rows
from .records import RECORD_FIELDS, MeterRecord, ValidationStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssemblyResult:
    """Records built from one batch, plus the count of rows without identity."""

    records: tuple[MeterRecord, ...]
    rejected: int = 0


def _coordinates(fields: Mapping[str, Any]) -> tuple[float, float]:
    """Return (latitude, longitude), or (0.0, 0.0) when not a usable location."""
    lat = fields.get("latitude")
    lng = fields.get("longitude")
    if not lat or not lng:
        return 0.0, 0.0
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0):
        logger.debug("Coordinates out of range (%s, %s) dropped", lat, lng)
        return 0.0, 0.0
    return float(lat), float(lng)


def build_record(fields: Mapping[str, Any]) -> MeterRecord:
    """Build one MeterRecord from a normalized field map.

    Blank or missing fields take the record defaults. Raises
    ValidationError when the map carries no usable customer ID.
    """
    if not has_identity(fields):
        raise ValidationError(f"No usable customer ID: {fields.get('customer_id')!r}")

    kwargs: dict[str, Any] = {}
    for name in RECORD_FIELDS:
        value = fields.get(name)
        if value is None or value == "":
            continue
        kwargs[name] = value

    kwargs["latitude"], kwargs["longitude"] = _coordinates(fields)
    return MeterRecord(**kwargs)


def build_records(field_maps: Iterable[Mapping[str, Any]]) -> AssemblyResult:
    """Assemble a batch; rows without identity are counted, not kept."""
    records = []
    rejected = 0
    for fields in field_maps:
        try:
            records.append(build_record(fields))
        except ValidationError as exc:
            rejected += 1
            logger.debug("Row rejected: %s", exc)

    logger.info("Built %d records (%d rejected without identity)", len(records), rejected)
    return AssemblyResult(records=tuple(records), rejected=rejected)


def records_from_rows(rows: Sequence[Sequence[Any]]) -> AssemblyResult:
    """Assemble records from parsed delimited rows (first row = headers)."""
    if len(rows) < 2:
        logger.warning("Delimited payload has no data rows")
        return AssemblyResult(records=())
    index = HeaderIndex.for_headers(rows[0])
    return build_records(index.apply(row) for row in rows[1:])


def records_from_objects(items: Iterable[Mapping[str, Any]]) -> AssemblyResult:
    """Assemble records from JSON row objects returned by a backend."""
    return build_records(normalize_mapping(item) for item in items)


def records_from_file(path) -> AssemblyResult:
    """Assemble records from an upload file (.csv or .xlsx)."""
    return records_from_rows(load_upload_rows(path))


def dedupe_for_upload(
    records: Iterable[MeterRecord],
) -> tuple[list[MeterRecord], int]:
    """Collapse records sharing a customer ID to the last one seen.

    Returns
    -------
    (unique records in first-appearance order, number of duplicates dropped)
    """
    latest: dict[str, MeterRecord] = {}
    seen = 0
    for record in records:
        seen += 1
        latest[record.customer_id] = record
    dropped = seen - len(latest)
    if dropped:
        logger.info("Collapsed %d duplicate customer IDs before upload", dropped)
    return list(latest.values()), dropped


def records_to_frame(records: Sequence[MeterRecord]) -> pd.DataFrame:
    """Flatten records into a DataFrame, one column per record field.

    validation_status is stored as its string value and a derived
    total_realized column is added.
    """
    rows = [tuple(getattr(r, name) for name in RECORD_FIELDS) for r in records]
    df = pd.DataFrame.from_records(rows, columns=list(RECORD_FIELDS))
    if df.empty:
        df["total_realized"] = pd.Series(dtype="float64")
        return df

    df["validation_status"] = [
        s.value if isinstance(s, ValidationStatus) else str(s)
        for s in df["validation_status"]
    ]
    df["total_realized"] = df["paid_direct"] + df["paid_offline"] + df["paid_promise"]
    return df
