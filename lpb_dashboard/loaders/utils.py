"""
Shared utilities for data ingestion: numeric cleaning, identifier repair,
header snake-casing, header detection, date grouping keys.
"""

import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

logger = logging.getLogger(__name__)

_SCIENTIFIC = re.compile(r"^[+-]?\d+(?:[.,]\d+)?[eE][+-]?\d+$")
_NUMERIC_NOISE = re.compile(r"[^0-9,.\-]")
_HAS_DIGIT = re.compile(r"\d")


def is_scientific(val: Any) -> bool:
    """True if the value is written in exponential notation (e.g. 1.23E+11)."""
    return isinstance(val, str) and bool(_SCIENTIFIC.match(val.strip()))


def clean_numeric(val: Any) -> float | None:
    """Coerce a locale-formatted number to float, returning None when empty.

    Whichever of the last comma and the last period comes later is the
    decimal separator; the other one is a thousands separator and is
    dropped. A decimal separator that repeats with no other separator
    present ("1.500.000") is grouping only. Characters other than digits,
    separators and the minus sign are stripped first. None means "no
    measurement" and is kept distinct from a real 0.0.
    """
    if val is None:
        return None
    if isinstance(val, (int, float)):
        # NaN from pandas/JSON sources
        if val != val:
            return None
        return float(val)

    s = str(val).strip()
    if _SCIENTIFIC.match(s):
        return float(s.replace(",", "."))

    s = _NUMERIC_NOISE.sub("", s)
    if not _HAS_DIGIT.search(s):
        return None

    negative = s.startswith("-")
    s = s.replace("-", "")

    if s.rfind(",") > s.rfind("."):
        decimal, thousands = ",", "."
    else:
        decimal, thousands = ".", ","
    s = s.replace(thousands, "")
    if s.count(decimal) > 1:
        s = s.replace(decimal, "")
    s = s.replace(decimal, ".")

    try:
        num = float(s)
    except ValueError:
        logger.warning("Could not parse numeric value: %r", val)
        return None
    return -num if negative else num


def fix_scientific(val: Any) -> str:
    """Render an identifier as a plain digit string.

    Spreadsheet exports turn long customer IDs into "1.23457E+11"; such
    values are read as the large integer they stand for. Anything else is
    returned trimmed and otherwise unchanged.
    """
    if val is None:
        return ""
    if isinstance(val, float):
        if val != val:
            return ""
        if val.is_integer():
            return str(int(val))
        return str(val)
    if isinstance(val, int):
        return str(val)

    s = str(val).strip()
    if _SCIENTIFIC.match(s):
        try:
            num = Decimal(s.replace(",", "."))
        except InvalidOperation:
            logger.warning("Could not expand identifier: %r", val)
            return s
        return str(int(num.to_integral_value(rounding=ROUND_HALF_UP)))
    return s


def to_snake_case(name: str) -> str:
    """Convert a column name to snake_case.

    Handles spaces, parentheses, slashes, and percent signs.
    """
    s = str(name).strip()
    # Replace common symbols
    s = s.replace("%", "pct").replace("/", "_per_").replace("(", "").replace(")", "")
    s = s.replace("-", "_").replace(".", "_")
    # Collapse whitespace and special chars to underscores
    s = re.sub(r"[^a-zA-Z0-9]+", "_", s)
    # CamelCase to snake_case
    s = re.sub(r"([a-z])([A-Z])", r"\1_\2", s)
    s = s.lower().strip("_")
    # Collapse multiple underscores
    s = re.sub(r"_+", "_", s)
    return s


def find_header_row(
    sheet,
    signature: set[str],
    max_rows: int = 20,
) -> int | None:
    """Scan an openpyxl sheet for the row containing signature headers.

    Cells are snake-cased before comparison. Returns the 1-based row index
    where at least two cells match values in `signature`, or None if not
    found within `max_rows`.
    """
    for row_idx, values in enumerate(
        sheet.iter_rows(min_row=1, max_row=max_rows, values_only=True), start=1
    ):
        matches = 0
        for value in values:
            if value is not None and to_snake_case(value) in signature:
                matches += 1
        if matches >= 2:
            return row_idx
    return None


def date_group_key(val: Any) -> str:
    """Grouping key for daily rollups.

    Dates are grouped by their string form as delivered by the source,
    so "01/01" and "1/1" are separate days. Calendar normalisation, if
    ever wanted, belongs here.
    """
    if val is None:
        return ""
    return str(val).strip()


def natural_sort_key(val: str) -> list:
    """Sort key that orders embedded numbers numerically ("2" < "10")."""
    return [
        (0, int(part), "") if part.isdigit() else (1, 0, part.lower())
        for part in re.split(r"(\d+)", val)
        if part
    ]
