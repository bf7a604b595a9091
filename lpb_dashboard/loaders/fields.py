"""
Field normalizer: maps source headers onto canonical record fields and
cleans each value according to the field's kind.

Header resolution happens once per distinct header tuple (HeaderIndex is
cached), so per-row work is plain index lookups.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Iterable, Mapping, Sequence

from ..config import (
    FIELD_SYNONYMS,
    IDENTIFIER_FIELDS,
    MIN_IDENTITY_LENGTH,
    NUMERIC_FIELDS,
    VALIDATION_SYNONYMS,
)
from ..records import ValidationStatus
from .utils import clean_numeric, date_group_key, fix_scientific, to_snake_case

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^0-9A-Za-z]")


def _build_synonym_lookup() -> dict[str, tuple[str, int]]:
    lookup: dict[str, tuple[str, int]] = {}
    for field, spellings in FIELD_SYNONYMS.items():
        for priority, spelling in enumerate(spellings):
            lookup.setdefault(to_snake_case(spelling), (field, priority))
    return lookup


# snake-cased spelling -> (canonical field, priority)
_SYNONYM_LOOKUP = _build_synonym_lookup()


def _is_blank(val: Any) -> bool:
    if val is None:
        return True
    if isinstance(val, float) and val != val:
        return True
    return isinstance(val, str) and not val.strip()


def normalize_validation(val: Any) -> ValidationStatus:
    """Map a source validation label onto VALID / INVALID / UNVALIDATED."""
    if isinstance(val, ValidationStatus):
        return val
    if _is_blank(val):
        return ValidationStatus.UNVALIDATED
    label = re.sub(r"[\s_]+", " ", str(val).strip().upper())
    status = VALIDATION_SYNONYMS.get(label)
    if status is None:
        logger.debug("Unknown validation label %r, treated as unvalidated", val)
        return ValidationStatus.UNVALIDATED
    return ValidationStatus(status)


def clean_field(field: str, raw: Any) -> Any:
    """Clean one raw value for a canonical field.

    Numeric fields return float or None (no value). Identifiers are
    expanded from scientific notation and uppercased. Everything else is
    trimmed text.
    """
    if field in NUMERIC_FIELDS:
        return clean_numeric(raw)
    if field in IDENTIFIER_FIELDS:
        return fix_scientific(raw).upper()
    if field == "validation_status":
        return normalize_validation(raw)
    if field == "date":
        return date_group_key(raw)
    if _is_blank(raw):
        return ""
    return str(raw).strip()


def has_identity(fields: Mapping[str, Any]) -> bool:
    """True when the customer ID has more than MIN_IDENTITY_LENGTH alphanumerics."""
    customer_id = fields.get("customer_id") or ""
    return len(_NON_ALNUM.sub("", str(customer_id))) > MIN_IDENTITY_LENGTH


def _backfill_capacity(fields: dict[str, Any]) -> None:
    capacity = fields.get("capacity_va")
    power_limit = fields.get("power_limit")
    if capacity is None and power_limit is not None:
        fields["capacity_va"] = power_limit
    elif power_limit is None and capacity is not None:
        fields["power_limit"] = capacity


@dataclass(frozen=True)
class HeaderIndex:
    """Compiled header lookup for one header layout.

    canonical holds (field, column positions in synonym priority order);
    passthrough holds (snake_case key, position) for unrecognised headers.
    """

    canonical: tuple[tuple[str, tuple[int, ...]], ...]
    passthrough: tuple[tuple[str, int], ...]

    @classmethod
    def for_headers(cls, headers: Iterable[Any]) -> "HeaderIndex":
        return _compile_headers(tuple(str(h) for h in headers))

    @property
    def fields(self) -> set[str]:
        return {field for field, _ in self.canonical}

    def apply(self, row: Sequence[Any]) -> dict[str, Any]:
        """Map one raw row to {canonical field: cleaned value}."""
        width = len(row)
        result: dict[str, Any] = {}
        for field, positions in self.canonical:
            raw = None
            for pos in positions:
                if pos < width and not _is_blank(row[pos]):
                    raw = row[pos]
                    break
            result[field] = clean_field(field, raw)
        for key, pos in self.passthrough:
            raw = row[pos] if pos < width else None
            result[key] = "" if _is_blank(raw) else str(raw).strip()
        _backfill_capacity(result)
        return result


@lru_cache(maxsize=64)
def _compile_headers(headers: tuple[str, ...]) -> HeaderIndex:
    matched: dict[str, list[tuple[int, int]]] = {}
    passthrough: list[tuple[str, int]] = []
    for pos, header in enumerate(headers):
        key = to_snake_case(header)
        hit = _SYNONYM_LOOKUP.get(key)
        if hit is None:
            if key:
                passthrough.append((key, pos))
            continue
        field, priority = hit
        matched.setdefault(field, []).append((priority, pos))

    canonical = tuple(
        (field, tuple(pos for _, pos in sorted(candidates)))
        for field, candidates in matched.items()
    )
    index = HeaderIndex(canonical=canonical, passthrough=tuple(passthrough))
    logger.debug(
        "Compiled header index: %d canonical, %d passthrough",
        len(canonical), len(passthrough),
    )
    return index


def normalize_row(headers: Sequence[Any], row: Sequence[Any]) -> dict[str, Any]:
    """Normalize one delimited-text row against its header row."""
    return HeaderIndex.for_headers(headers).apply(row)


def normalize_mapping(item: Mapping[str, Any]) -> dict[str, Any]:
    """Normalize one JSON row object (backend column names as keys)."""
    return HeaderIndex.for_headers(item.keys()).apply(list(item.values()))
