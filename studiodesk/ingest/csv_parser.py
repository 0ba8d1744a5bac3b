"""Line-level CSV parsing and numeric cleanup."""

from __future__ import annotations

import logging
import math
import re

from studiodesk.ingest.errors import CsvValidationError
from studiodesk.ingest.headers import HeaderMap
from studiodesk.ingest.models import ParsedCatalogRow, ParsedPerformanceRow

logger = logging.getLogger(__name__)

NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")
LEADING_FLOAT_RE = re.compile(r"-?(?:\d+\.?\d*|\.\d+)")


def parse_csv_line(line: str) -> list[str]:
    """Split one line on commas outside double-quoted spans.

    Quote characters only toggle the quoted state and are never copied into
    a field, so a literal ``"`` cannot be escaped. An unbalanced quote keeps
    the rest of the line in a single field.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(char)
    fields.append("".join(current))
    return fields


def parse_number(value: str | None) -> float:
    """Coerce a formatted number such as ``Rp 150000`` to a non-negative float."""
    if not value:
        return 0.0
    cleaned = NON_NUMERIC_RE.sub("", value)
    match = LEADING_FLOAT_RE.match(cleaned)
    if not match:
        return 0.0
    number = float(match.group(0))
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def parse_clicks(value: str | None) -> int:
    return int(parse_number(value))


def split_lines(text: str) -> list[str]:
    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        raise CsvValidationError("CSV file must have a header row and at least one data row")
    return lines


def _field(values: list[str], index: int) -> str:
    if index < 0 or index >= len(values):
        return ""
    return values[index].strip()


def parse_performance_rows(lines: list[str], headers: HeaderMap) -> tuple[list[ParsedPerformanceRow], int]:
    rows: list[ParsedPerformanceRow] = []
    skipped = 0
    for line in lines:
        values = parse_csv_line(line)
        name = _field(values, headers.name)
        if not name:
            skipped += 1
            continue
        rows.append(
            ParsedPerformanceRow(
                name=name,
                gmv=parse_number(_field(values, headers.gmv)),
                clicks=parse_clicks(_field(values, headers.clicks)),
            )
        )
    if skipped:
        logger.info("Skipped %s performance rows without a product name", skipped)
    return rows, skipped


def parse_catalog_rows(lines: list[str], headers: HeaderMap) -> tuple[list[ParsedCatalogRow], int]:
    rows: list[ParsedCatalogRow] = []
    skipped = 0
    for line in lines:
        values = parse_csv_line(line)
        name = _field(values, headers.name)
        link = _field(values, headers.link)
        if not name or not link:
            skipped += 1
            continue
        rows.append(
            ParsedCatalogRow(
                name=name,
                affiliate_link=link,
                original_url=_field(values, headers.original) or link,
                category=_field(values, headers.category) or None,
                gmv=parse_number(_field(values, headers.gmv)),
                clicks=parse_clicks(_field(values, headers.clicks)),
            )
        )
    if skipped:
        logger.info("Skipped %s catalog rows without a name or link", skipped)
    return rows, skipped
