"""
Chartprep - Table Structure Module
Header-row detection, canonical header naming, and raw table -> clean table construction
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import pandas as pd

from .header_mapping import create_header_mapping, generic_header_names
from .models import TableMetadata
from .normalizer import looks_numeric, normalize_cell
from .row_classifier import row_looks_like_summary
from .settings import ChartprepSettings, resolve_settings

logger = logging.getLogger(__name__)

RawRow = Sequence[Optional[Any]]


@dataclass(frozen=True)
class ProcessedTable:
    """One immutable snapshot of an ingested table."""

    generic: pd.DataFrame
    original: pd.DataFrame
    cleaned: pd.DataFrame
    metadata: TableMetadata


def sanitize_value(value: str) -> str:
    """Neutralise spreadsheet formula injection."""
    if value.startswith("="):
        return f"'{value}"
    return value


def count_non_empty_cells(row: RawRow) -> int:
    return sum(1 for cell in row if normalize_cell(cell))


def determine_expected_column_count(rows: Sequence[RawRow]) -> int:
    """Most frequent non-empty cell count; ties go to the wider count."""
    counter = Counter(count_non_empty_cells(row) for row in rows)
    counter.pop(0, None)
    if not counter:
        return 0
    return max(counter.items(), key=lambda item: (item[1], item[0]))[0]


def _is_header_candidate(row: RawRow, expected_columns: int, settings: ChartprepSettings) -> bool:
    non_empty = count_non_empty_cells(row)
    if non_empty == 0:
        return False
    # Wider rows are allowed (a title cell spanning the table), narrower are not
    if expected_columns and non_empty < expected_columns:
        return False

    cells = [normalize_cell(cell) for cell in row]
    text_cells = [cell for cell in cells if cell and not looks_numeric(cell)]
    if not text_cells:
        return False
    if len(text_cells) / non_empty < settings.min_text_ratio_for_header:
        return False
    unique_tokens = {cell.lower() for cell in text_cells}
    if len(unique_tokens) < max(1, min(len(text_cells), non_empty - 1)):
        return False
    if len(text_cells) <= 1 and any(re.search(r"total", cell, re.IGNORECASE) for cell in cells):
        return False
    return True


def detect_header_row(
    rows: Sequence[RawRow],
    settings: Optional[ChartprepSettings] = None,
) -> tuple[Optional[int], list[str]]:
    """Return (header index, trimmed header cells); falls back to the first non-empty row."""
    settings = resolve_settings(settings)
    if not rows:
        return None, []

    expected_columns = determine_expected_column_count(rows)
    limit = min(len(rows), settings.max_header_scan_rows)
    for index in range(limit):
        if _is_header_candidate(rows[index], expected_columns, settings):
            return index, [normalize_cell(cell) for cell in rows[index]]

    for index, row in enumerate(rows):
        if count_non_empty_cells(row) > 0:
            logger.debug("No header candidate in first %d rows; using row %d", limit, index)
            return index, [normalize_cell(cell) for cell in row]
    return None, []


def build_header_names(raw_values: Sequence[Any], expected_length: Optional[int] = None) -> list[str]:
    """Trimmed, whitespace-collapsed, case-insensitively unique header names."""
    length = expected_length or len(raw_values)
    headers: list[str] = []
    used: set[str] = set()

    for i in range(length):
        raw = normalize_cell(raw_values[i]) if i < len(raw_values) else ""
        base = re.sub(r"\s+", " ", raw).strip() or f"Column {i + 1}"

        candidate = base
        suffix = 2
        while candidate.lower() in used:
            candidate = f"{base} ({suffix})"
            suffix += 1
        used.add(candidate.lower())
        headers.append(candidate)

    return headers


def build_generic_table(rows: Sequence[RawRow]) -> pd.DataFrame:
    """Position-keyed table (column_1..column_N) holding every non-empty raw row."""
    width = max((len(row) for row in rows), default=0)
    headers = generic_header_names(width)
    records = []
    for row in rows:
        if count_non_empty_cells(row) == 0:
            continue
        cells = [normalize_cell(row[i]) if i < len(row) else "" for i in range(width)]
        records.append([sanitize_value(cell) for cell in cells])
    return pd.DataFrame(records, columns=headers, dtype=object)


def process_raw_table(
    raw_rows: Sequence[RawRow],
    settings: Optional[ChartprepSettings] = None,
) -> ProcessedTable:
    """
    Recover table structure from raw delimited rows.
    Finds the header, builds canonical names, separates leading rows (title,
    notes) and drops summary/footer rows from the cleaned table while keeping
    them in the original table.
    """
    settings = resolve_settings(settings)
    rows = [list(row) for row in raw_rows]

    generic = build_generic_table(rows)
    generic_headers = list(generic.columns)

    if generic.empty:
        empty = pd.DataFrame(dtype=object)
        return ProcessedTable(generic=generic, original=empty, cleaned=empty.copy(), metadata=TableMetadata(
            generic_headers=generic_headers,
        ))

    header_index, header_values = detect_header_row(rows, settings)
    expected_columns = determine_expected_column_count(rows)
    last_filled = max((i + 1 for i, value in enumerate(header_values) if value), default=0)
    header_length = max(expected_columns, last_filled) or len(header_values)
    inferred_headers = build_header_names(header_values, header_length)

    data_rows = rows if header_index is None else rows[header_index + 1:]
    original_records: list[list[str]] = []
    cleaned_records: list[list[str]] = []
    summary_row_count = 0

    for row in data_rows:
        cells = [normalize_cell(row[i]) if i < len(row) else "" for i in range(len(inferred_headers))]
        if not any(cells):
            continue
        record = [sanitize_value(cell) for cell in cells]
        original_records.append(record)
        if row_looks_like_summary(cells):
            summary_row_count += 1
            continue
        cleaned_records.append(record)

    leading_rows = [] if header_index is None else [
        [normalize_cell(cell) for cell in row] for row in rows[:header_index]
    ]
    title_row = next((row for row in leading_rows if any(row)), None)
    report_title = " ".join(cell for cell in title_row if cell).strip() if title_row else None

    limit = settings.context_rows_limit
    context_rows = (leading_rows + cleaned_records[:limit])[:limit]

    mapping = create_header_mapping(generic_headers, inferred_headers)
    metadata = TableMetadata(
        header_row=inferred_headers,
        raw_header_values=header_values,
        detected_header_index=header_index,
        total_rows_before_filter=len(data_rows),
        original_row_count=len(original_records),
        cleaned_row_count=len(cleaned_records),
        removed_summary_row_count=summary_row_count,
        leading_rows=leading_rows[: settings.leading_rows_limit],
        total_leading_rows=len(leading_rows),
        report_title=report_title or None,
        context_rows=context_rows,
        generic_headers=generic_headers,
        inferred_headers=inferred_headers,
        generic_row_count=len(generic),
        header_mapping=mapping.mapping,
    )
    logger.debug(
        "Header row %s; %d data rows, %d summary rows removed",
        header_index, len(original_records), summary_row_count,
    )

    return ProcessedTable(
        generic=generic,
        original=pd.DataFrame(original_records, columns=inferred_headers, dtype=object),
        cleaned=pd.DataFrame(cleaned_records, columns=inferred_headers, dtype=object),
        metadata=metadata,
    )
