"""
Chartprep - Advanced Analysis Module
Correlation pairs, k-means clustering, moving-average decomposition and linear forecasting
"""

import logging
from typing import Any, Optional

import numpy as np
import pandas as pd

from .errors import PlanValidationError
from .models import ROW_INDEX_AXIS, AnalysisPlan, ResolvedPlan
from .normalizer import parse_date, parse_number
from .settings import ChartprepSettings, resolve_settings

logger = logging.getLogger(__name__)

Rows = list[dict[str, Any]]


def _numbers(frame: pd.DataFrame, col: str) -> pd.Series:
    """Column parsed to floats; unparseable cells become NaN."""
    return pd.to_numeric(frame[col].map(parse_number), errors="coerce")


def infer_numeric_columns(frame: pd.DataFrame, settings: Optional[ChartprepSettings] = None) -> list[str]:
    """Columns with at least one parseable number in the sampled rows, most numeric first."""
    settings = resolve_settings(settings)
    if frame.empty:
        return []
    sample = frame.head(settings.numeric_inference_sample)
    scores = []
    for col in sample.columns:
        count = int(_numbers(sample, col).notna().sum())
        if count > 0:
            scores.append((col, count))
    scores.sort(key=lambda item: item[1], reverse=True)
    return [col for col, _ in scores]


# =============================================================================
# Correlation
# =============================================================================

def pearson(xs: np.ndarray, ys: np.ndarray) -> float:
    """Pearson r; 0 for fewer than 3 points or a constant series."""
    if len(xs) < 3:
        return 0.0
    dx = xs - xs.mean()
    dy = ys - ys.mean()
    denom = np.sqrt((dx * dx).sum() * (dy * dy).sum())
    if denom == 0:
        return 0.0
    return float((dx * dy).sum() / denom)


def correlation_pairs(
    frame: pd.DataFrame,
    plan: AnalysisPlan,
    settings: Optional[ChartprepSettings] = None,
) -> tuple[Rows, ResolvedPlan]:
    settings = resolve_settings(settings)
    resolved = ResolvedPlan.from_plan(
        plan, group_by_column="pair", value_column="value", aggregation=plan.aggregation or "none",
    )
    if frame.empty:
        return [], resolved

    if plan.value_columns:
        columns = [col for col in plan.value_columns if col in frame.columns]
    else:
        columns = infer_numeric_columns(frame, settings)
    max_columns = plan.max_columns if plan.max_columns is not None else settings.correlation_max_columns
    columns = columns[:max_columns]

    parsed = {col: _numbers(frame, col) for col in columns}
    results = []
    for i, col_a in enumerate(columns):
        for col_b in columns[i + 1:]:
            both = parsed[col_a].notna() & parsed[col_b].notna()
            r = pearson(parsed[col_a][both].to_numpy(dtype=float), parsed[col_b][both].to_numpy(dtype=float))
            results.append({"pair": f"{col_a} ~ {col_b}", "value": r})

    results.sort(key=lambda row: abs(row["value"]), reverse=True)
    top_pairs = plan.top_pairs if plan.top_pairs is not None else settings.correlation_top_pairs
    return results[:top_pairs], resolved


# =============================================================================
# K-means
# =============================================================================

def seed_indices(n: int, k: int) -> list[int]:
    """Evenly spread starting rows; a taken index moves to the next free one."""
    used: set[int] = set()
    seeds = []
    for c in range(k):
        idx = min(int((c + 0.5) * n / k), n - 1)
        while idx in used:
            idx = (idx + 1) % n
        used.add(idx)
        seeds.append(idx)
    return seeds


def kmeans(matrix: np.ndarray, k: int, max_iterations: int) -> tuple[np.ndarray, np.ndarray]:
    """Lloyd's algorithm from deterministic seeds. Returns (assignments, centroids)."""
    n = len(matrix)
    centroids = matrix[seed_indices(n, k)].astype(float).copy()
    assignments = np.full(n, -1)

    for _ in range(max_iterations):
        distances = ((matrix[:, None, :] - centroids[None, :, :]) ** 2).sum(axis=2)
        new_assignments = distances.argmin(axis=1)
        changed = int((new_assignments != assignments).sum())
        assignments = new_assignments
        for c in range(k):
            members = matrix[assignments == c]
            # Empty clusters keep their previous centroid
            if len(members):
                centroids[c] = members.mean(axis=0)
        if changed == 0:
            break

    return assignments, centroids


def standardize_columns(matrix: np.ndarray) -> np.ndarray:
    """Z-score with the sample standard deviation; zero spread divides by 1."""
    means = matrix.mean(axis=0)
    ddof = 1 if len(matrix) > 1 else 0
    stds = matrix.std(axis=0, ddof=ddof)
    stds[stds == 0] = 1
    return (matrix - means) / stds


def _resolve_axis(preferred: Optional[str], numeric: list[str], candidates: list[str], exclude: Optional[str]) -> Optional[str]:
    if preferred and preferred in numeric and preferred != exclude:
        return preferred
    for col in candidates + numeric:
        if col in numeric and col != exclude:
            return col
    return None


def kmeans_clusters(
    frame: pd.DataFrame,
    plan: AnalysisPlan,
    settings: Optional[ChartprepSettings] = None,
) -> Optional[tuple[Rows, ResolvedPlan]]:
    """
    Cluster rows on up to max_features numeric columns and project onto an x/y pair.
    Returns None when clustering is impossible so the caller can fall back to
    the plain chart path.
    """
    settings = resolve_settings(settings)
    if frame.empty:
        return [], ResolvedPlan.from_plan(plan)

    if plan.feature_columns:
        features = [col for col in plan.feature_columns if col in frame.columns]
    else:
        features = infer_numeric_columns(frame, settings)
    max_features = plan.max_features if plan.max_features is not None else settings.kmeans_max_features
    features = features[:max_features]
    if not features:
        logger.debug("No numeric features for k-means; falling back")
        return None

    numeric = infer_numeric_columns(frame, settings)
    x_col = _resolve_axis(plan.x_value_column, numeric, features, None)
    y_col = _resolve_axis(plan.y_value_column, numeric, features, x_col)
    if x_col is None:
        logger.debug("Both k-means axes would be the row index; falling back")
        return None

    parsed = pd.DataFrame({col: _numbers(frame, col) for col in features})
    valid = parsed.notna().all(axis=1).to_numpy()
    if not valid.any():
        logger.debug("No complete feature rows for k-means; falling back")
        return None

    matrix = parsed[valid].to_numpy(dtype=float)
    if plan.standardize is not False:
        matrix = standardize_columns(matrix)

    k = plan.k if plan.k else settings.kmeans_default_k
    k = max(settings.kmeans_min_k, min(settings.kmeans_max_k, int(k)))
    k = min(k, len(matrix))
    max_iterations = plan.max_iterations if plan.max_iterations is not None else settings.kmeans_max_iterations
    assignments, _ = kmeans(matrix, k, max_iterations)

    x_values = _numbers(frame, x_col)
    y_values = _numbers(frame, y_col) if y_col else None
    y_key = y_col or ROW_INDEX_AXIS

    rows = []
    for cluster, row_index in zip(assignments, np.flatnonzero(valid)):
        x = x_values.iloc[row_index]
        y = y_values.iloc[row_index] if y_values is not None else row_index + 1
        if pd.isna(x) or pd.isna(y):
            continue
        rows.append({x_col: float(x), y_key: float(y) if y_col else int(y), "cluster": f"Cluster {cluster + 1}"})

    resolved = ResolvedPlan.from_plan(
        plan,
        x_value_column=x_col,
        y_value_column=y_key,
        y_uses_row_index=y_col is None,
        k=k,
    )
    return rows, resolved


# =============================================================================
# Time series
# =============================================================================

def _summed_series(frame: pd.DataFrame, plan: AnalysisPlan) -> tuple[str, pd.Series]:
    time_col = plan.group_by_column
    value_col = plan.value_column
    if not time_col or not value_col:
        raise PlanValidationError(f"{plan.analysis_type} requires groupByColumn and valueColumn.")
    if time_col not in frame.columns or value_col not in frame.columns:
        return time_col, pd.Series(dtype=float)

    keys = frame[time_col].map(lambda v: "" if v is None or (isinstance(v, float) and np.isnan(v)) else str(v))
    work = pd.DataFrame({"key": keys, "value": _numbers(frame, value_col)})
    work = work[(work["key"] != "") & work["value"].notna()]
    return time_col, work.groupby("key", sort=False)["value"].sum()


def order_series(series: pd.Series, settings: Optional[ChartprepSettings] = None) -> tuple[pd.Series, list[Optional[pd.Timestamp]]]:
    """Chronological when enough keys parse as dates, otherwise lexicographic."""
    settings = resolve_settings(settings)
    keys = list(series.index)
    stamps = [parse_date(key) for key in keys]
    parsed = sum(1 for stamp in stamps if stamp is not None)

    if keys and parsed / len(keys) >= settings.time_series_date_ratio:
        order = sorted(
            range(len(keys)),
            key=lambda i: (stamps[i] is None, stamps[i] if stamps[i] is not None else pd.Timestamp.min),
        )
    else:
        order = sorted(range(len(keys)), key=lambda i: str(keys[i]))
    return series.iloc[order], [stamps[i] for i in order]


def moving_average_trend(
    frame: pd.DataFrame,
    plan: AnalysisPlan,
    settings: Optional[ChartprepSettings] = None,
) -> tuple[Rows, ResolvedPlan]:
    settings = resolve_settings(settings)
    resolved = ResolvedPlan.from_plan(plan, aggregation=plan.aggregation or "none", value_column="value")
    if frame.empty:
        return [], resolved

    time_col, series = _summed_series(frame, plan)
    series, _ = order_series(series, settings)
    window = max(2, plan.window or settings.moving_average_window)
    trend = series.rolling(window=window, min_periods=1).mean()

    rows = [{time_col: key, "value": float(value)} for key, value in trend.items()]
    return rows, ResolvedPlan.from_plan(resolved, window=window)


def _median_step(stamps: list[Optional[pd.Timestamp]]) -> Optional[pd.Timedelta]:
    dated = [stamp for stamp in stamps if stamp is not None]
    if len(dated) < 2:
        return None
    gaps = [(b - a).value for a, b in zip(dated, dated[1:]) if b > a]
    if not gaps:
        return None
    return pd.Timedelta(int(np.median(gaps)), unit="ns")


def _forecast_label(last: Optional[pd.Timestamp], step: Optional[pd.Timedelta], h: int) -> str:
    if step is not None and last is not None:
        try:
            return (last + step * h).strftime("%Y-%m-%d")
        except (OverflowError, pd.errors.OutOfBoundsDatetime):
            pass
    return f"Forecast {h}"


def linear_forecast(
    frame: pd.DataFrame,
    plan: AnalysisPlan,
    settings: Optional[ChartprepSettings] = None,
) -> tuple[Rows, ResolvedPlan]:
    """OLS on the 1-based position of each observation, extended `horizon` steps."""
    settings = resolve_settings(settings)
    resolved = ResolvedPlan.from_plan(plan, aggregation=plan.aggregation or "none", value_column="value")
    if frame.empty:
        return [], resolved

    time_col, series = _summed_series(frame, plan)
    series, stamps = order_series(series, settings)
    observed = [{time_col: key, "value": float(value), "isForecast": False} for key, value in series.items()]

    n = len(series)
    if n < 2:
        return observed, resolved

    xs = np.arange(1, n + 1, dtype=float)
    slope, intercept = np.polyfit(xs, series.to_numpy(dtype=float), 1)

    horizon = plan.horizon or settings.forecast_horizon
    horizon = max(1, min(settings.forecast_max_horizon, int(horizon)))
    step = _median_step(stamps)
    last = stamps[-1]

    future = []
    for h in range(1, horizon + 1):
        future.append({
            time_col: _forecast_label(last, step, h),
            "value": float(intercept + slope * (n + h)),
            "isForecast": True,
        })

    return observed + future, ResolvedPlan.from_plan(resolved, horizon=horizon)
