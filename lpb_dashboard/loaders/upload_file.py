"""
Loader for survey export files picked in the admin upload panel.

Accepted formats:
    .csv / .txt   delimited text, ';' or ',' detected from the first line
    .xlsx / .xlsm Excel workbook, first sheet

Workbook exports sometimes carry a title block above the table, so the
header row is located by matching known column spellings rather than
assumed to be row 1.
"""

import logging
from pathlib import Path
from typing import Any

import openpyxl

from ..config import FIELD_SYNONYMS
from ..errors import ParseError
from .delimited import parse_delimited
from .utils import find_header_row, to_snake_case

logger = logging.getLogger(__name__)

_TEXT_SUFFIXES = {".csv", ".txt"}
_EXCEL_SUFFIXES = {".xlsx", ".xlsm"}

_HEADER_SIGNATURE = {
    to_snake_case(spelling)
    for spellings in FIELD_SYNONYMS.values()
    for spelling in spellings
}


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    # Whole-number floats are how Excel hands back IDs and counts
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _load_workbook_rows(path: Path) -> list[list[str]]:
    try:
        wb = openpyxl.load_workbook(path, read_only=True, data_only=True)
    except Exception as exc:
        logger.exception("Failed to open upload workbook: %s", path)
        raise ParseError(f"Cannot read workbook {path.name}: {exc}") from exc

    try:
        ws = wb[wb.sheetnames[0]]
        header_row = find_header_row(ws, _HEADER_SIGNATURE)
        if header_row is None:
            logger.warning("No known headers in %s, using row 1", path.name)
            header_row = 1

        rows = []
        for values in ws.iter_rows(min_row=header_row, values_only=True):
            row = [_cell_text(v) for v in values]
            if any(row):
                rows.append(row)
    finally:
        wb.close()
    return rows


def load_upload_rows(path: str | Path) -> list[list[str]]:
    """Read an upload file into rows of text cells, header row first.

    Raises
    ------
    ParseError
        Unsupported extension, unreadable workbook, or non-text CSV body.
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix in _TEXT_SUFFIXES:
        rows = parse_delimited(path.read_bytes())
    elif suffix in _EXCEL_SUFFIXES:
        rows = _load_workbook_rows(path)
    else:
        raise ParseError(f"Unsupported upload file type: {suffix or path.name}")

    logger.info("Loaded %d rows from %s", len(rows), path.name)
    return rows

