"""
Delimited-text parser for spreadsheet CSV exports.

Handles comma or semicolon delimiters (detected from the header line),
quoted fields with embedded delimiters and line breaks, doubled-quote
escapes, and LF / CRLF / CR line endings. Parsing large exports runs on
a worker through ParserService so the caller's thread stays responsive.

Recovery rule for malformed quoting: a quote that is still open at the end
of the input is re-read as a literal '"' character and parsing resumes
right after it. The result is deterministic and always terminates.
"""

import logging
import re
from concurrent.futures import Executor, Future, ThreadPoolExecutor

from ..errors import ParseError

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def detect_delimiter(first_line: str) -> str:
    """Return ';' when the header line uses semicolons, else ','."""
    return ";" if first_line.count(";") > first_line.count(",") else ","


def _emit(rows: list[list[str]], row: list[str]) -> None:
    fields = [f.strip() for f in row]
    # A blank line yields a single empty field
    if fields == [""]:
        return
    rows.append(fields)


def _parse_unquoted(text: str, delimiter: str) -> list[list[str]]:
    rows: list[list[str]] = []
    for line in _LINE_BREAK.split(text):
        _emit(rows, line.split(delimiter))
    return rows


def _parse_quoted(text: str, delimiter: str) -> list[list[str]]:
    rows: list[list[str]] = []
    row: list[str] = []
    field: list[str] = []
    in_quotes = False
    line_open = False
    # Snapshot taken when a quote opens: (position, row, field)
    opened: tuple[int, list[str], list[str]] | None = None

    i = 0
    n = len(text)
    while True:
        while i < n:
            ch = text[i]
            if in_quotes:
                if ch == '"':
                    if i + 1 < n and text[i + 1] == '"':
                        field.append('"')
                        i += 2
                        continue
                    in_quotes = False
                else:
                    field.append(ch)
                i += 1
                continue

            if ch == '"':
                in_quotes = True
                line_open = True
                opened = (i, list(row), list(field))
            elif ch == delimiter:
                row.append("".join(field))
                field = []
                line_open = True
            elif ch == "\r" or ch == "\n":
                row.append("".join(field))
                _emit(rows, row)
                row, field = [], []
                line_open = False
                if ch == "\r" and i + 1 < n and text[i + 1] == "\n":
                    i += 1
            else:
                field.append(ch)
                line_open = True
            i += 1

        if not in_quotes:
            break

        # Unterminated quote: treat it as a literal character and resume
        pos, saved_row, saved_field = opened
        logger.warning("Unmatched quote at offset %d treated as literal", pos)
        row = saved_row
        field = saved_field + ['"']
        in_quotes = False
        line_open = True
        i = pos + 1

    if line_open:
        row.append("".join(field))
        _emit(rows, row)
    return rows


def parse_delimited(text: str, delimiter: str | None = None) -> list[list[str]]:
    """Split delimited text into rows of raw string fields.

    Parameters
    ----------
    text : Raw export body. A leading byte-order mark is ignored.
    delimiter : ',' or ';'. Detected from the first line when None.

    Returns
    -------
    List of rows, each a list of whitespace-trimmed field strings. Blank
    lines produce no row; a final line without a trailing newline is kept.
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ParseError(f"Export body is not UTF-8 text: {exc}") from exc
    if not isinstance(text, str):
        raise ParseError(f"Expected text, got {type(text).__name__}")

    text = text.lstrip("\ufeff")
    if delimiter is None:
        first_line = _LINE_BREAK.split(text, maxsplit=1)[0]
        delimiter = detect_delimiter(first_line)

    if '"' in text:
        rows = _parse_quoted(text, delimiter)
    else:
        rows = _parse_unquoted(text, delimiter)

    logger.info("Parsed %d rows (delimiter %r)", len(rows), delimiter)
    return rows


class ParserService:
    """Runs parse_delimited on a background worker.

    One instance is created per session and handed to the sources that
    need it. Each request is a single round trip: submit() returns a
    Future resolved with the complete row list, or with ParseError.
    """

    def __init__(self, executor: Executor | None = None):
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="csv-parse"
        )

    def submit(self, text: str, delimiter: str | None = None) -> Future:
        return self._executor.submit(parse_delimited, text, delimiter)

    def parse(
        self,
        text: str,
        delimiter: str | None = None,
        timeout: float | None = None,
    ) -> list[list[str]]:
        """Parse on the worker and wait for the result."""
        return self.submit(text, delimiter).result(timeout=timeout)

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
