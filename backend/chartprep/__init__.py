"""
Chartprep Core
Schema-free table recovery, column profiling and chart-ready aggregation
"""

from .errors import (
    ChartprepError,
    PlanValidationError,
    UnsupportedAggregationError,
    ScatterAxisError,
    TransformError,
)

from .settings import ChartprepSettings, SETTINGS

from .models import (
    TableMetadata,
    ColumnProfile,
    HeaderMapping,
    AnalysisPlan,
    ResolvedPlan,
    FilterConfig,
    StageDetail,
    StagePlan,
    StagePlanHints,
    StageLogEntry,
    AuditIssue,
    AuditReport,
)

from .normalizer import (
    parse_number,
    split_numeric_string,
    normalize_currency_value,
    looks_numeric,
    looks_like_date,
    parse_date,
)

from .structure import (
    ProcessedTable,
    detect_header_row,
    build_header_names,
    build_generic_table,
    process_raw_table,
)

from .row_classifier import (
    row_looks_like_summary,
    is_keyword_summary_row,
    remove_summary_rows,
)

from .profiler import profile_columns, suggest_default_plan

from .header_mapping import (
    create_header_mapping,
    apply_header_mapping,
    rename_frame,
    invert_mapping,
)

from .stage_plan import (
    StagePipelineResult,
    derive_stage_plan_hints,
    execute_stage_plan,
    detect_identifier_columns,
)

from .aggregation import (
    execute_plan,
    try_chronological_sort,
    apply_top_n_with_others,
    build_display_rows,
    resolve_default_top_n,
    apply_filters,
)

from .audit import audit_plan, has_critical_issues

from .transforms import execute_transform

__all__ = [
    # Errors
    'ChartprepError',
    'PlanValidationError',
    'UnsupportedAggregationError',
    'ScatterAxisError',
    'TransformError',
    # Settings
    'ChartprepSettings',
    'SETTINGS',
    # Models
    'TableMetadata',
    'ColumnProfile',
    'HeaderMapping',
    'AnalysisPlan',
    'ResolvedPlan',
    'FilterConfig',
    'StageDetail',
    'StagePlan',
    'StagePlanHints',
    'StageLogEntry',
    'AuditIssue',
    'AuditReport',
    # Normalizer
    'parse_number',
    'split_numeric_string',
    'normalize_currency_value',
    'looks_numeric',
    'looks_like_date',
    'parse_date',
    # Structure
    'ProcessedTable',
    'detect_header_row',
    'build_header_names',
    'build_generic_table',
    'process_raw_table',
    # Row Classifier
    'row_looks_like_summary',
    'is_keyword_summary_row',
    'remove_summary_rows',
    # Profiler
    'profile_columns',
    'suggest_default_plan',
    # Header Mapping
    'create_header_mapping',
    'apply_header_mapping',
    'rename_frame',
    'invert_mapping',
    # Stage Plan
    'StagePipelineResult',
    'derive_stage_plan_hints',
    'execute_stage_plan',
    'detect_identifier_columns',
    # Aggregation
    'execute_plan',
    'try_chronological_sort',
    'apply_top_n_with_others',
    'build_display_rows',
    'resolve_default_top_n',
    'apply_filters',
    # Audit
    'audit_plan',
    'has_critical_issues',
    # Transforms
    'execute_transform',
]
