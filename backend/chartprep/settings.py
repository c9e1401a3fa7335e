"""
Chartprep - Settings
Tunable detection and analysis thresholds, overridable via CHARTPREP_* env vars
"""

import os

from pydantic import BaseModel, Field


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(f"CHARTPREP_{name}")
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(f"CHARTPREP_{name}")
    if raw is None or not raw.strip():
        return default
    return float(raw)


class ChartprepSettings(BaseModel):
    """Named thresholds used by structure detection, profiling and analysis."""

    # Structure detection
    max_header_scan_rows: int = Field(
        default_factory=lambda: _env_int("MAX_HEADER_SCAN_ROWS", 15),
        description="Rows scanned from the top when looking for the header row.",
    )
    min_text_ratio_for_header: float = Field(
        default_factory=lambda: _env_float("MIN_TEXT_RATIO_FOR_HEADER", 0.6),
        description="Minimum share of non-numeric cells in a header candidate.",
    )
    context_rows_limit: int = Field(default_factory=lambda: _env_int("CONTEXT_ROWS_LIMIT", 20))
    leading_rows_limit: int = Field(default_factory=lambda: _env_int("LEADING_ROWS_LIMIT", 10))

    # Column profiling
    semantic_ratio: float = Field(
        default_factory=lambda: _env_float("SEMANTIC_RATIO", 0.6),
        description="Share of date/currency/percentage hints needed to claim that semantic type.",
    )
    identifier_ratio: float = Field(default_factory=lambda: _env_float("IDENTIFIER_RATIO", 0.5))
    identifier_uniqueness: float = Field(default_factory=lambda: _env_float("IDENTIFIER_UNIQUENESS", 0.5))
    tricky_mixed_ratio: float = Field(default_factory=lambda: _env_float("TRICKY_MIXED_RATIO", 0.3))

    # Stage-plan pipeline
    max_metadata_rows: int = Field(default_factory=lambda: _env_int("MAX_METADATA_ROWS", 3))
    stage_identifier_uniqueness: float = Field(
        default_factory=lambda: _env_float("STAGE_IDENTIFIER_UNIQUENESS", 0.8)
    )

    # Plan execution
    chronological_match_ratio: float = Field(
        default_factory=lambda: _env_float("CHRONOLOGICAL_MATCH_RATIO", 0.5)
    )
    chronological_sample_size: int = Field(default_factory=lambda: _env_int("CHRONOLOGICAL_SAMPLE_SIZE", 10))
    time_series_date_ratio: float = Field(default_factory=lambda: _env_float("TIME_SERIES_DATE_RATIO", 0.6))
    numeric_inference_sample: int = Field(default_factory=lambda: _env_int("NUMERIC_INFERENCE_SAMPLE", 200))
    correlation_max_columns: int = Field(default_factory=lambda: _env_int("CORRELATION_MAX_COLUMNS", 12))
    correlation_top_pairs: int = Field(default_factory=lambda: _env_int("CORRELATION_TOP_PAIRS", 50))
    kmeans_max_features: int = Field(default_factory=lambda: _env_int("KMEANS_MAX_FEATURES", 6))
    kmeans_default_k: int = Field(default_factory=lambda: _env_int("KMEANS_DEFAULT_K", 3))
    kmeans_min_k: int = 2
    kmeans_max_k: int = 12
    kmeans_max_iterations: int = Field(default_factory=lambda: _env_int("KMEANS_MAX_ITERATIONS", 100))
    moving_average_window: int = Field(default_factory=lambda: _env_int("MOVING_AVERAGE_WINDOW", 7))
    forecast_horizon: int = Field(default_factory=lambda: _env_int("FORECAST_HORIZON", 10))
    forecast_max_horizon: int = 365

    # Display
    default_top_n: int = Field(default_factory=lambda: _env_int("DEFAULT_TOP_N", 8))
    top_n_category_threshold: int = Field(default_factory=lambda: _env_int("TOP_N_CATEGORY_THRESHOLD", 15))


SETTINGS = ChartprepSettings()


def resolve_settings(settings: "ChartprepSettings | None" = None) -> ChartprepSettings:
    return settings or SETTINGS
