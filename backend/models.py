"""
Chartprep Backend - Pydantic Models
All request/response schemas
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from chartprep.models import (
    AnalysisPlan,
    AuditReport,
    ColumnProfile,
    FilterConfig,
    ResolvedPlan,
    StageLogEntry,
    StagePlan,
    TableMetadata,
)


class DatasetState(BaseModel):
    dataset_id: str
    filename: str
    version: int
    row_count: int
    original_row_count: int
    removed_summary_row_count: int
    columns: list[ColumnProfile]
    metadata: TableMetadata
    default_plan: Optional[AnalysisPlan] = None
    preview: list[dict[str, Any]]


class UploadResponse(DatasetState):
    pass


class AggregateRequest(BaseModel):
    dataset_id: str
    plan: AnalysisPlan
    filters: Optional[list[FilterConfig]] = None
    top_n: Optional[int] = None
    hide_others: Optional[bool] = None
    hidden_labels: Optional[list[str]] = None


class ChartResponse(BaseModel):
    data: list[dict[str, Any]]
    full_data: list[dict[str, Any]]
    plan: ResolvedPlan
    row_count: int
    top_n: Optional[int] = None
    hide_others: bool = False
    applied_filters: Optional[list[str]] = None
    audit: AuditReport
    warnings: Optional[list[str]] = None


class StagePlanRequest(BaseModel):
    dataset_id: str
    stage_plan: StagePlan
    summary_keywords: Optional[list[str]] = None


class StagePlanResponse(BaseModel):
    applied: bool
    reason: Optional[str] = None
    summary: Optional[str] = None
    logs: list[StageLogEntry]
    stage_plan: Optional[StagePlan] = None
    dataset: Optional[DatasetState] = None


class TransformRequest(BaseModel):
    dataset_id: str
    code: str
    explanation: Optional[str] = None


class CellEdit(BaseModel):
    row: int
    column: str
    value: Optional[str] = None


class EditRequest(BaseModel):
    dataset_id: str
    cell_edits: list[CellEdit] = Field(default_factory=list)
    delete_rows: list[int] = Field(default_factory=list)


class VersionSummary(BaseModel):
    version: int
    label: str
    row_count: int
    column_count: int
    created_at: str


class VersionsResponse(BaseModel):
    dataset_id: str
    current_version: int
    versions: list[VersionSummary]
