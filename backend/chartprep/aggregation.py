"""
Chartprep - Aggregation Module
Plan execution, chronological axis sorting, Top-N/Others grouping and row filters
"""

import logging
from typing import Any, Optional, Union

import pandas as pd

from .analysis import (
    correlation_pairs,
    infer_numeric_columns,
    kmeans_clusters,
    linear_forecast,
    moving_average_trend,
)
from .errors import PlanValidationError, ScatterAxisError, UnsupportedAggregationError
from .models import ROW_INDEX_AXIS, AnalysisPlan, FilterConfig, ResolvedPlan
from .normalizer import (
    DAYS,
    extract_day_token,
    extract_month_details,
    extract_month_token,
    extract_quarter_details,
    looks_like_date,
    normalize_cell,
    parse_date,
    parse_number,
)
from .settings import ChartprepSettings, resolve_settings

logger = logging.getLogger(__name__)

Rows = list[dict[str, Any]]

SUPPORTED_AGGREGATIONS = ("sum", "count", "avg")
OTHERS_LABEL = "Others"
ALLOWED_FILTER_OPERATORS = {"eq", "gt", "lt", "gte", "lte", "contains"}


# =============================================================================
# Chronological sorting
# =============================================================================

def _month_value(label: str) -> Optional[float]:
    details = extract_month_details(label)
    if not details:
        return None
    month, year = details
    return (year or 0) * 100 + month


def _quarter_value(label: str) -> Optional[float]:
    details = extract_quarter_details(label)
    if not details:
        return None
    quarter, year = details
    return year * 10 + quarter


def _day_value(label: str) -> Optional[float]:
    token = extract_day_token(label)
    return DAYS[token] if token else None


def _date_value(label: str) -> Optional[float]:
    stamp = parse_date(label)
    return stamp.value if stamp is not None else None


CHRONOLOGICAL_FAMILIES = (
    ("month", lambda label: bool(extract_month_token(label)), _month_value),
    ("quarter", lambda label: extract_quarter_details(label) is not None, _quarter_value),
    ("weekday", lambda label: bool(extract_day_token(label)), _day_value),
    ("date", looks_like_date, _date_value),
)


def detect_chronological_family(labels: list[str], settings: Optional[ChartprepSettings] = None) -> Optional[str]:
    """Name of the first family (month, quarter, weekday, date) matching enough sampled labels."""
    settings = resolve_settings(settings)
    sample = [label for label in (normalize_cell(v) for v in labels[: settings.chronological_sample_size]) if label]
    if not sample:
        return None
    for name, matches, _ in CHRONOLOGICAL_FAMILIES:
        if sum(1 for label in sample if matches(label)) / len(sample) >= settings.chronological_match_ratio:
            return name
    return None


def try_chronological_sort(rows: Rows, key: str, settings: Optional[ChartprepSettings] = None) -> Optional[Rows]:
    """Sort rows by the time their key label implies; None when the labels are not time-like."""
    if len(rows) < 2:
        return None
    family = detect_chronological_family([row.get(key) for row in rows], settings)
    if family is None:
        return None
    decode = next(decoder for name, _, decoder in CHRONOLOGICAL_FAMILIES if name == family)

    def sort_key(row: dict) -> tuple[int, float]:
        label = normalize_cell(row.get(key))
        value = decode(label) if label else None
        # Unparseable labels go last, keeping their relative order
        return (1, 0.0) if value is None else (0, value)

    return sorted(rows, key=sort_key)


# =============================================================================
# Default and scatter execution
# =============================================================================

def _value_key(plan: AnalysisPlan) -> str:
    if plan.value_column:
        return plan.value_column
    return "count" if plan.aggregation == "count" else "value"


def _group_label(value: Any) -> Optional[str]:
    # Missing cells drop out of the grouping; "" stays its own group
    if value is None or pd.isna(value):
        return None
    return normalize_cell(value)


def aggregate_rows(
    frame: pd.DataFrame,
    plan: AnalysisPlan,
    settings: Optional[ChartprepSettings] = None,
) -> tuple[Rows, ResolvedPlan]:
    """Group-by sum/count/avg for bar, line, pie and doughnut plans."""
    group_by = plan.group_by_column
    aggregation = plan.aggregation
    if not group_by or not aggregation:
        raise PlanValidationError("Non-scatter plans must provide groupByColumn and aggregation.")
    if aggregation not in SUPPORTED_AGGREGATIONS:
        raise UnsupportedAggregationError(aggregation)

    value_key = _value_key(plan)
    resolved = ResolvedPlan.from_plan(plan, value_column=value_key)
    if frame.empty or group_by not in frame.columns:
        if group_by not in frame.columns:
            logger.debug("Group-by column %r not in table", group_by)
        return [], resolved

    work = pd.DataFrame({"key": frame[group_by].map(_group_label)})
    if plan.value_column and plan.value_column in frame.columns:
        work["value"] = pd.to_numeric(frame[plan.value_column].map(parse_number), errors="coerce")
    else:
        work["value"] = float("nan")
    grouped = work.dropna(subset=["key"]).groupby("key", sort=False)

    if aggregation == "count":
        totals = grouped.size()
    elif aggregation == "sum":
        totals = grouped["value"].sum(min_count=0)
    else:
        totals = grouped["value"].mean().fillna(0.0)

    rows = [
        {group_by: key, value_key: int(total) if aggregation == "count" else float(total)}
        for key, total in totals.items()
    ]

    ordered = try_chronological_sort(rows, group_by, settings)
    if ordered is None:
        ordered = sorted(rows, key=lambda row: row[value_key], reverse=True)
    return ordered, resolved


def scatter_points(
    frame: pd.DataFrame,
    plan: AnalysisPlan,
    settings: Optional[ChartprepSettings] = None,
) -> tuple[Rows, ResolvedPlan]:
    """
    Resolve x/y to numeric columns, falling back to the 1-based row index for
    at most one axis.
    """
    numeric = infer_numeric_columns(frame, settings)

    x_col = plan.x_value_column if plan.x_value_column in numeric else None
    if x_col is None:
        x_col = next((col for col in numeric if col != plan.y_value_column), None) or (numeric[0] if numeric else None)
    x_uses_row_index = x_col is None

    y_col = plan.y_value_column if plan.y_value_column in numeric else None
    if y_col is None or y_col == x_col:
        y_col = next((col for col in numeric if col != x_col), None)
    y_uses_row_index = y_col is None

    if x_uses_row_index and y_uses_row_index:
        raise ScatterAxisError("Scatter plot plan is missing numerical columns for both axes.")
    x_key = ROW_INDEX_AXIS if x_uses_row_index else x_col
    y_key = ROW_INDEX_AXIS if y_uses_row_index else y_col

    row_index = pd.Series(range(1, len(frame) + 1), index=frame.index, dtype=float)
    xs = row_index if x_uses_row_index else pd.to_numeric(frame[x_col].map(parse_number), errors="coerce")
    ys = row_index if y_uses_row_index else pd.to_numeric(frame[y_col].map(parse_number), errors="coerce")

    rows = [
        {x_key: float(x), y_key: float(y)}
        for x, y in zip(xs, ys)
        if not (pd.isna(x) or pd.isna(y))
    ]
    resolved = ResolvedPlan.from_plan(
        plan,
        x_value_column=x_key,
        y_value_column=y_key,
        x_uses_row_index=x_uses_row_index,
        y_uses_row_index=y_uses_row_index,
    )
    return rows, resolved


def execute_plan(
    frame: pd.DataFrame,
    plan: Union[AnalysisPlan, dict],
    settings: Optional[ChartprepSettings] = None,
) -> tuple[Rows, ResolvedPlan]:
    """
    Run an analysis plan against a canonical table.
    Returns the chart rows and a ResolvedPlan carrying every default that was
    filled in; the plan passed in is left untouched.
    """
    settings = resolve_settings(settings)
    if isinstance(plan, dict):
        plan = AnalysisPlan.model_validate(plan)

    if plan.analysis_type == "correlation":
        return correlation_pairs(frame, plan, settings)
    if plan.analysis_type == "clustering_kmeans":
        clustered = kmeans_clusters(frame, plan, settings)
        if clustered is not None:
            return clustered
        plan = plan.model_copy(update={"analysis_type": None})
    if plan.analysis_type == "time_series_decompose":
        return moving_average_trend(frame, plan, settings)
    if plan.analysis_type == "prediction_linear":
        return linear_forecast(frame, plan, settings)

    if plan.chart_type == "scatter":
        return scatter_points(frame, plan, settings)
    return aggregate_rows(frame, plan, settings)


# =============================================================================
# Top-N / display
# =============================================================================

def _as_number(value: Any) -> float:
    number = parse_number(value)
    return number if number is not None else 0.0


def apply_top_n_with_others(rows: Rows, group_key: str, value_key: str, top_n: int) -> Rows:
    """Keep the top_n - 1 largest rows and fold the rest into one "Others" row."""
    if top_n < 1 or len(rows) <= top_n:
        return list(rows)
    ranked = sorted(rows, key=lambda row: _as_number(row.get(value_key)), reverse=True)
    top, rest = ranked[: top_n - 1], ranked[top_n - 1:]
    others = {group_key: OTHERS_LABEL, value_key: sum(_as_number(row.get(value_key)) for row in rest)}
    return top + [others]


def resolve_default_top_n(
    rows: Rows,
    plan: AnalysisPlan,
    settings: Optional[ChartprepSettings] = None,
) -> tuple[Optional[int], bool]:
    """(top_n, hide_others) a chart should open with."""
    settings = resolve_settings(settings)
    if plan.default_top_n:
        return plan.default_top_n, bool(plan.default_hide_others)
    if plan.chart_type != "scatter" and len(rows) > settings.top_n_category_threshold:
        return settings.default_top_n, True
    return None, False


def build_display_rows(
    rows: Rows,
    plan: AnalysisPlan,
    top_n: Optional[int] = None,
    hide_others: bool = False,
    hidden_labels: Optional[list[str]] = None,
) -> Rows:
    """Rows as the chart shows them: Top-N folded, Others optionally hidden, legend toggles applied."""
    group_key = plan.group_by_column
    if plan.chart_type == "scatter" or not group_key:
        return list(rows)

    display = list(rows)
    if top_n:
        display = apply_top_n_with_others(display, group_key, _value_key(plan), top_n)
        if hide_others:
            display = [row for row in display if row.get(group_key) != OTHERS_LABEL]
    if hidden_labels:
        hidden = {str(label) for label in hidden_labels}
        display = [row for row in display if str(row.get(group_key)) not in hidden]
    return display


# =============================================================================
# Filters
# =============================================================================

def _numeric_view(col: pd.Series) -> pd.Series:
    if pd.api.types.is_numeric_dtype(col):
        return pd.to_numeric(col, errors="coerce")
    return pd.to_numeric(col.map(parse_number), errors="coerce")


def _date_view(col: pd.Series) -> pd.Series:
    if pd.api.types.is_datetime64_any_dtype(col):
        return col
    return pd.to_datetime(col.map(parse_date), errors="coerce")


def _apply_operator_filter(filtered: pd.DataFrame, f: FilterConfig, applied: list[str]) -> pd.DataFrame:
    """Apply a single operator-style filter without changing the column's cells."""
    if not f.operator or f.value is None:
        return filtered

    op = f.operator.lower()
    if op not in ALLOWED_FILTER_OPERATORS:
        applied.append(f"{f.column}: skipped invalid operator '{f.operator}'")
        return filtered

    col = filtered[f.column]
    symbols = {"eq": "==", "gt": ">", "lt": "<", "gte": ">=", "lte": "<="}

    if op == "contains":
        mask = col.astype(str).str.contains(str(f.value), case=False, na=False, regex=False)
        applied.append(f"{f.column} contains '{f.value}'")
        return filtered[mask]

    number = parse_number(f.value)
    is_datetime = pd.api.types.is_datetime64_any_dtype(col)
    if is_datetime or (number is None and op != "eq"):
        cmp_value = parse_date(f.value)
        if cmp_value is None:
            applied.append(f"{f.column}: skipped invalid datetime value '{f.value}'")
            return filtered
        view = _date_view(col)
    elif number is not None and (pd.api.types.is_numeric_dtype(col) or _numeric_view(col).notna().any()):
        cmp_value = number
        view = _numeric_view(col)
    elif op == "eq":
        cmp_value = str(f.value)
        view = col.map(normalize_cell)
    else:
        applied.append(f"{f.column}: skipped invalid numeric value '{f.value}'")
        return filtered

    if op == "eq":
        mask = view == cmp_value
    elif op == "gt":
        mask = view > cmp_value
    elif op == "lt":
        mask = view < cmp_value
    elif op == "gte":
        mask = view >= cmp_value
    else:
        mask = view <= cmp_value
    applied.append(f"{f.column} {symbols[op]} {f.value}")
    return filtered[mask.fillna(False).astype(bool)]


def apply_filters(frame: pd.DataFrame, filters: Optional[list[FilterConfig]]) -> tuple[pd.DataFrame, list[str]]:
    """Apply filter configurations to a table. Unknown columns are skipped."""
    if not filters:
        return frame, []

    applied: list[str] = []
    filtered = frame.copy()

    for f in filters:
        if f.column not in filtered.columns:
            continue

        filtered = _apply_operator_filter(filtered, f, applied)

        # values behaves like an IN-list equality filter
        if f.values:
            str_values = [str(v) for v in f.values]
            filtered = filtered[filtered[f.column].astype(str).isin(str_values)]
            applied.append(f"{f.column}: {', '.join(str(v) for v in f.values[:3])}")

        # min/max map to gte/lte
        if f.min_val is not None:
            filtered = _apply_operator_filter(
                filtered, FilterConfig(column=f.column, operator="gte", value=f.min_val), applied
            )
        if f.max_val is not None:
            filtered = _apply_operator_filter(
                filtered, FilterConfig(column=f.column, operator="lte", value=f.max_val), applied
            )

    return filtered, applied
