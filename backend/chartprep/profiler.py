"""
Chartprep - Column Profiler Module
Per-column semantic profiling over the cleaned table and default chart suggestion
"""

from typing import Optional

import pandas as pd

from .models import AnalysisPlan, ColumnProfile
from .normalizer import (
    has_alpha_numeric_mix,
    is_currency_string,
    is_likely_identifier_value,
    is_percentage_string,
    looks_like_date,
    normalize_cell,
    parse_number,
)
from .settings import ChartprepSettings, resolve_settings

MAX_SAMPLE_VALUES = 5


def _ratio(count: int, total: int) -> float:
    return count / total if total else 0.0


def profile_column(name: str, values: list, settings: Optional[ChartprepSettings] = None) -> ColumnProfile:
    """
    Profile one column in a single pass.
    Numerical only when every non-empty cell parses and the column is not an identifier.
    """
    settings = resolve_settings(settings)
    row_count = len(values)

    non_empty = 0
    numbers: list[float] = []
    currency_hits = 0
    percentage_hits = 0
    date_hits = 0
    identifier_hits = 0
    samples: list[str] = []
    distinct: set[str] = set()

    for raw in values:
        text = normalize_cell(raw)
        if not text:
            continue
        non_empty += 1
        number = parse_number(text)
        if number is not None:
            numbers.append(number)
        if is_currency_string(text):
            currency_hits += 1
        if is_percentage_string(text):
            percentage_hits += 1
        if looks_like_date(text):
            date_hits += 1
        if is_likely_identifier_value(text) and has_alpha_numeric_mix(text):
            identifier_hits += 1
        if len(samples) < MAX_SAMPLE_VALUES:
            samples.append(text)
        distinct.add(text.lower())

    missing_percentage = 100.0 * (1 - non_empty / row_count) if row_count else 0.0
    uniqueness_ratio = _ratio(len(distinct), non_empty)

    identifier_ratio = _ratio(identifier_hits, non_empty)
    has_numeric_coverage = non_empty > 0 and len(numbers) == non_empty
    is_identifier = (
        non_empty > 0
        and identifier_ratio >= settings.identifier_ratio
        and uniqueness_ratio >= settings.identifier_uniqueness
    )
    # Partly code-like text: too few codes to be an identifier column
    is_tricky_mixed = (
        not has_numeric_coverage
        and settings.tricky_mixed_ratio <= identifier_ratio < settings.identifier_ratio
    )
    is_numerical = has_numeric_coverage and not is_identifier

    if _ratio(date_hits, non_empty) >= settings.semantic_ratio:
        semantic_type = "date"
    elif _ratio(currency_hits, non_empty) >= settings.semantic_ratio:
        semantic_type = "currency"
    elif _ratio(percentage_hits, non_empty) >= settings.semantic_ratio:
        semantic_type = "percentage"
    elif is_identifier:
        semantic_type = "identifier"
    elif is_numerical:
        semantic_type = "numeric"
    else:
        semantic_type = "text"

    roles = ["measure" if is_numerical else "dimension"]
    if semantic_type == "identifier":
        roles.append("identifier")
    if semantic_type == "date":
        roles.append("time")
    if semantic_type in ("currency", "percentage"):
        roles.append(semantic_type)

    return ColumnProfile(
        name=name,
        type="numerical" if is_numerical else "categorical",
        semantic_type=semantic_type,
        missing_percentage=missing_percentage,
        uniqueness_ratio=uniqueness_ratio,
        roles=roles,
        sample_values=samples,
        value_range=(min(numbers), max(numbers)) if is_numerical else None,
        unique_values=None if is_numerical else len(distinct),
        is_likely_identifier=is_identifier,
        is_tricky_mixed=is_tricky_mixed,
    )


def profile_columns(frame: pd.DataFrame, settings: Optional[ChartprepSettings] = None) -> list[ColumnProfile]:
    """Profile every column of a canonical table, in column order."""
    settings = resolve_settings(settings)
    return [profile_column(str(col), frame[col].tolist(), settings) for col in frame.columns]


def suggest_default_plan(profiles: list[ColumnProfile]) -> Optional[AnalysisPlan]:
    """Pick the best starting chart from the profiles alone."""
    time_cols = [p for p in profiles if "time" in p.roles]
    measures = [p for p in profiles if p.type == "numerical" and not p.is_likely_identifier]
    dimensions = [
        p for p in profiles
        if p.type == "categorical" and not p.is_likely_identifier and "time" not in p.roles
    ]

    # Best case: time axis with a measure
    if time_cols and measures:
        return AnalysisPlan(
            chart_type="line",
            aggregation="sum",
            group_by_column=time_cols[0].name,
            value_column=measures[0].name,
            title=f"{measures[0].name} Over Time",
            description=f"Tracking {measures[0].name} over {time_cols[0].name} to surface trends.",
        )

    if dimensions and measures:
        # Prefer a dimension with a chart-friendly number of categories
        best = min(dimensions, key=lambda p: abs((p.unique_values or 0) - 10))
        return AnalysisPlan(
            chart_type="bar",
            aggregation="sum",
            group_by_column=best.name,
            value_column=measures[0].name,
            title=f"{measures[0].name} by {best.name}",
            description=f"Comparing {measures[0].name} across {best.name} categories.",
        )

    if len(measures) >= 2:
        return AnalysisPlan(
            chart_type="scatter",
            x_value_column=measures[0].name,
            y_value_column=measures[1].name,
            title=f"{measures[0].name} vs {measures[1].name}",
        )

    if dimensions:
        best = min(dimensions, key=lambda p: abs((p.unique_values or 0) - 10))
        return AnalysisPlan(
            chart_type="bar",
            aggregation="count",
            group_by_column=best.name,
            title=f"Records by {best.name}",
        )

    return None
