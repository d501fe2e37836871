"""
Tabular data parsing for CSV uploads.

The first line is the header row; every cell is kept as a string so the
field converter decides how to interpret values.
"""

from __future__ import annotations

import csv
import io
import logging
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from .errors import ParseError
from .models import TabularResult

logger = logging.getLogger(__name__)

CANDIDATE_DELIMITERS = (",", ";", "\t", "|")


def detect_delimiter(text: str) -> str:
    """Pick the most frequent candidate delimiter in the header line."""
    header_line = next((line for line in text.splitlines() if line.strip()), "")
    counts = {delim: header_line.count(delim) for delim in CANDIDATE_DELIMITERS}
    best = max(counts, key=counts.get)
    return best if counts[best] else ","


def parse_csv_text(text: str, delimiter: Optional[str] = None, strict: bool = True) -> TabularResult:
    """
    Parse delimited text with a header row.

    Args:
        text: Raw file contents.
        delimiter: Column separator; detected from the header line when omitted.
        strict: Reject rows with fewer fields than there are headers.

    Raises:
        ParseError: empty input, duplicate headers or inconsistent column counts.
    """
    if not text or not text.strip():
        raise ParseError("CSV parsing errors: file is empty")

    sep = delimiter or detect_delimiter(text)
    try:
        # header=None keeps pandas from guessing an index column or renaming
        # duplicate headers; the first record is promoted to headers below.
        frame = pd.read_csv(
            io.StringIO(text),
            sep=sep,
            header=None,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            on_bad_lines="error",
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise ParseError(f"CSV parsing errors: {exc}") from exc

    headers = [str(value) for value in frame.iloc[0].tolist()]
    _check_unique_headers(headers)
    body = frame.iloc[1:]

    if strict:
        short_rows = _short_records(text, sep, len(headers))
        if short_rows:
            line_numbers = ", ".join(str(number) for number in short_rows[:10])
            raise ParseError(f"CSV parsing errors: too few fields in data row(s) {line_numbers}")

    body = body.fillna("")
    rows = [
        {header: str(value) for header, value in zip(headers, record)}
        for record in body.itertuples(index=False, name=None)
    ]
    logger.info("Parsed CSV with %d column(s) and %d row(s)", len(headers), len(rows))
    return TabularResult(headers=headers, rows=rows)


def parse_csv(path: Union[str, Path], delimiter: Optional[str] = None, strict: bool = True) -> TabularResult:
    """Read a CSV file from disk and parse it."""
    file_path = Path(path)
    try:
        text = file_path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseError(f"Failed to read CSV file: {exc}") from exc
    return parse_csv_text(text, delimiter=delimiter, strict=strict)


def _check_unique_headers(headers: List[str]) -> None:
    seen = set()
    for header in headers:
        if header in seen:
            raise ParseError(f"CSV parsing errors: duplicate column '{header}'")
        seen.add(header)


def _short_records(text: str, sep: str, width: int) -> List[int]:
    """1-based data row numbers whose records hold fewer than `width` fields."""
    # pandas pads short records with empty strings, so count raw fields here.
    records = (
        record
        for record in csv.reader(io.StringIO(text), delimiter=sep)
        if record and not (len(record) == 1 and not record[0].strip())
    )
    next(records, None)
    return [number for number, record in enumerate(records, start=1) if len(record) < width]
