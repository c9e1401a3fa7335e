"""
Chartprep - Row Classifier Module
Flags report furniture (titles, page markers, totals, notes) so it never reaches the data
"""

import re
from typing import Any, Iterable, Optional, Sequence

import pandas as pd

from .normalizer import normalize_cell, looks_numeric

DEFAULT_SUMMARY_KEYWORDS = (
    "total",
    "subtotal",
    "grand total",
    "sum",
    "summary",
    "notes",
    "note",
    "memo",
    "remarks",
    "remark",
    "balance",
    "balances",
)

TITLE_PREFIX = re.compile(r"^(report|title|summary|project title|table)\b")
GENERATED_PREFIX = re.compile(r"^(generated on|created on|as of)\b")
TOTAL_WORD = re.compile(r"\b(total|subtotal|grand total|overall total)\b", re.IGNORECASE)
PAGE_PREFIX = re.compile(r"^page\s+\d+", re.IGNORECASE)


def row_looks_like_summary(values: Sequence[Any]) -> bool:
    """
    Structural check for a row that is not data.
    Conservative: only a total label whose siblings are empty or numeric counts,
    so hierarchical parent rows ("50" above "5010") survive.
    """
    cells = [normalize_cell(value) for value in values]
    if not any(cells):
        return True

    first = cells[0]
    first_lower = first.lower()
    rest_empty = not any(cells[1:])

    if first_lower and rest_empty:
        if TITLE_PREFIX.match(first_lower) or GENERATED_PREFIX.match(first_lower):
            return True

    for index, cell in enumerate(cells):
        if not cell or not TOTAL_WORD.search(cell):
            continue
        others = cells[:index] + cells[index + 1:]
        if all(not other or looks_numeric(other) for other in others):
            return True

    if PAGE_PREFIX.match(first):
        return True

    return False


def _keyword_patterns(keywords: Optional[Iterable[str]]) -> list[re.Pattern]:
    source = [k.strip().lower() for k in (keywords or DEFAULT_SUMMARY_KEYWORDS) if k and k.strip()]
    return [re.compile(rf"^{re.escape(keyword)}s?\b") for keyword in source]


def is_keyword_summary_row(values: Iterable[Any], keywords: Optional[Iterable[str]] = None) -> bool:
    """True when any cell equals a summary keyword or starts with one as a whole word."""
    patterns = _keyword_patterns(keywords)
    for value in values:
        lower = normalize_cell(value).lower()
        if lower and any(pattern.match(lower) for pattern in patterns):
            return True
    return False


def remove_summary_rows(
    frame: pd.DataFrame,
    keywords: Optional[Iterable[str]] = None,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Keyword pass over a canonical table. Returns (cleaned, removed)."""
    if frame.empty:
        return frame.copy(), frame.iloc[0:0].copy()
    patterns = _keyword_patterns(keywords)
    if not patterns:
        return frame.copy(), frame.iloc[0:0].copy()

    def flagged(row: pd.Series) -> bool:
        for value in row.tolist():
            lower = normalize_cell(value).lower()
            if lower and any(pattern.match(lower) for pattern in patterns):
                return True
        return False

    mask = frame.apply(flagged, axis=1).astype(bool)
    cleaned = frame[~mask].reset_index(drop=True)
    removed = frame[mask].reset_index(drop=True)
    return cleaned, removed
