from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .table import DEFAULT_CATEGORIES, Category, MergedRow
from .timecodec import PLACEHOLDER

DEFAULT_SUFFIX = "all_times"

# Filename suffixes for exports holding a single category.
CATEGORY_SUFFIXES = {
    "qualifying": "qualifying_times",
    "race": "race_times",
    "fastest_lap": "fastest_laps",
}


@dataclass(frozen=True)
class CsvDocument:
    content: str
    filename: str


def sanitize_part(part: Optional[str]) -> str:
    """Lowercase and collapse every non-alphanumeric run into one underscore."""

    return re.sub(r"[^a-z0-9]+", "_", (part or "").lower()).strip("_")


def category_suffix(category_key: str) -> str:
    return CATEGORY_SUFFIXES.get(category_key) or f"{sanitize_part(category_key)}_times"


def build_filename(naming_parts: Sequence[Optional[str]] = (), suffix: str = DEFAULT_SUFFIX) -> str:
    parts = [sanitized for sanitized in (sanitize_part(part) for part in naming_parts) if sanitized]
    parts.append(suffix)
    return "_".join(parts) + ".csv"


def header_row(categories: Sequence[Category], has_divisions: bool) -> List[str]:
    header = ["Position", "Driver Name"]
    if has_divisions:
        header.append("Division")
    for category in categories:
        header.extend([f"{category.label} Time", f"{category.label} Gap"])
    return header


def data_row(row: MergedRow, categories: Sequence[Category], has_divisions: bool) -> List[str]:
    values = [str(row.position), row.driver_name]
    if has_divisions:
        values.append(row.division_name or PLACEHOLDER)
    for category in categories:
        values.extend([row.absolute(category.key), row.gap(category.key) or ""])
    return values


def to_csv(
    rows: Sequence[MergedRow],
    categories: Sequence[Category] = DEFAULT_CATEGORIES,
    has_divisions: bool = False,
    naming_parts: Sequence[Optional[str]] = (),
    suffix: str = DEFAULT_SUFFIX,
) -> CsvDocument:
    """Serialise rows exactly as displayed, in their current order.

    Fields holding a comma, double quote or newline are quoted with inner
    quotes doubled; everything else is written bare.
    """

    records = [_record(header_row(categories, has_divisions))]
    records.extend(_record(data_row(row, categories, has_divisions)) for row in rows)
    return CsvDocument(content="".join(records), filename=build_filename(naming_parts, suffix))


def _record(values: Sequence[str]) -> str:
    # The writer only quotes characters found in its terminator, so write with
    # "\r\n" to catch bare carriage returns and swap the ending for "\n".
    buffer = io.StringIO()
    csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\r\n").writerow(values)
    return buffer.getvalue()[: -len("\r\n")] + "\n"
