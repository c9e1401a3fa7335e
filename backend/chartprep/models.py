"""
Chartprep - Core Pydantic Models
Table metadata, column profiles, analysis plans and stage plans
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ChartType = Literal["bar", "line", "pie", "doughnut", "scatter"]
AnalysisType = Literal["correlation", "clustering_kmeans", "time_series_decompose", "prediction_linear"]
StageStatus = Literal["pending", "in_progress", "ready", "abort"]

ROW_INDEX_AXIS = "Row Index"


class CamelModel(BaseModel):
    """Accepts camelCase keys from planners and snake_case from Python callers."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TableMetadata(CamelModel):
    header_row: list[str] = Field(default_factory=list)
    raw_header_values: list[str] = Field(default_factory=list)
    detected_header_index: Optional[int] = None
    total_rows_before_filter: int = 0
    original_row_count: int = 0
    cleaned_row_count: int = 0
    removed_summary_row_count: int = 0
    leading_rows: list[list[str]] = Field(default_factory=list)
    total_leading_rows: int = 0
    report_title: Optional[str] = None
    context_rows: list[list[str]] = Field(default_factory=list)
    generic_headers: list[str] = Field(default_factory=list)
    inferred_headers: list[str] = Field(default_factory=list)
    generic_row_count: int = 0
    header_mapping: dict[str, str] = Field(default_factory=dict)

    # Populated by the stage-plan pipeline
    header_rows: list[list[str]] = Field(default_factory=list)
    identifier_columns: list[str] = Field(default_factory=list)
    reporting_period_start: Optional[str] = None
    reporting_period_end: Optional[str] = None
    reporting_currency: Optional[str] = None


class ColumnProfile(CamelModel):
    name: str
    type: Literal["numerical", "categorical"]
    semantic_type: Literal["text", "date", "currency", "percentage", "identifier", "numeric"]
    missing_percentage: float
    uniqueness_ratio: float
    roles: list[str]
    sample_values: list[str]
    value_range: Optional[tuple[Optional[float], Optional[float]]] = None
    unique_values: Optional[int] = None
    is_likely_identifier: bool = False
    is_tricky_mixed: bool = False


class HeaderMapping(CamelModel):
    mapping: dict[str, str]
    detected: int
    total: int
    has_unmapped: bool


class AnalysisPlan(CamelModel):
    chart_type: ChartType
    title: Optional[str] = None
    description: Optional[str] = None
    aggregation: Optional[str] = None
    group_by_column: Optional[str] = None
    value_column: Optional[str] = None
    x_value_column: Optional[str] = None
    y_value_column: Optional[str] = None
    analysis_type: Optional[AnalysisType] = None

    # Advanced analysis knobs
    k: Optional[int] = None
    standardize: Optional[bool] = None
    max_iterations: Optional[int] = None
    window: Optional[int] = None
    horizon: Optional[int] = None
    max_columns: Optional[int] = None
    top_pairs: Optional[int] = None
    feature_columns: Optional[list[str]] = None
    value_columns: Optional[list[str]] = None
    max_features: Optional[int] = None

    # Display hints
    default_top_n: Optional[int] = None
    default_hide_others: Optional[bool] = None


class ResolvedPlan(AnalysisPlan):
    """An AnalysisPlan with the executor's resolved defaults written back."""

    x_uses_row_index: bool = False
    y_uses_row_index: bool = False

    @classmethod
    def from_plan(cls, plan: AnalysisPlan, **updates: Any) -> "ResolvedPlan":
        data = plan.model_dump()
        data.update(updates)
        return cls(**data)


class FilterConfig(CamelModel):
    column: str
    operator: Optional[str] = None
    value: Optional[Any] = None
    values: Optional[list[Any]] = None
    min_val: Optional[Any] = None
    max_val: Optional[Any] = None


class StageDetail(CamelModel):
    goal: str = ""
    checkpoints: list[str] = Field(default_factory=list)
    heuristics: list[str] = Field(default_factory=list)
    fallback_strategies: list[str] = Field(default_factory=list)
    expected_artifacts: list[str] = Field(default_factory=list)
    next_action: Optional[str] = None
    status: StageStatus = "pending"
    log_message: Optional[str] = None
    notes: Optional[str] = None


class StagePlan(CamelModel):
    title_extraction: StageDetail = Field(default_factory=StageDetail)
    header_resolution: StageDetail = Field(default_factory=StageDetail)
    data_normalization: StageDetail = Field(default_factory=StageDetail)


class PivotRange(CamelModel):
    start: int
    end: int


class StagePlanHints(CamelModel):
    metadata_row_count: Optional[int] = None
    header_row_count: Optional[int] = None
    pivot_range: Optional[PivotRange] = None
    requires_unpivot: bool = False
    exclude_totals: bool = False
    identifier_labels: list[str] = Field(default_factory=list)
    pivot_field_label: Optional[str] = None
    value_field_label: Optional[str] = None


class StageLogEntry(CamelModel):
    stage: str
    stage_label: str
    status: StageStatus
    message: str


class AuditIssue(CamelModel):
    severity: Literal["info", "warning", "critical"]
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class AuditReport(CamelModel):
    issues: list[AuditIssue]
    stats: dict[str, int]
    summary: str
