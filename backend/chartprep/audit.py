"""
Chartprep - Plan Audit Module
Post-execution sanity checks on a resolved plan and its rows
"""

from typing import Any, Optional

from .models import ROW_INDEX_AXIS, AuditIssue, AuditReport, ColumnProfile, ResolvedPlan

SEVERITY_ORDER = {"critical": 0, "warning": 1, "info": 2}

# Analyses whose resolved columns are synthetic output fields, not table columns
SYNTHETIC_VALUE_ANALYSES = {"correlation", "time_series_decompose", "prediction_linear"}


def audit_plan(
    plan: ResolvedPlan,
    profiles: list[ColumnProfile],
    rows: list[dict[str, Any]],
    dataset_name: Optional[str] = None,
) -> AuditReport:
    """Check that a plan's columns exist, are numeric where needed, and produced usable rows."""
    dataset = (dataset_name or "").strip() or "Current dataset"
    title = plan.title or "Untitled chart"
    columns = {profile.name for profile in profiles}
    numeric = {profile.name for profile in profiles if profile.type == "numerical"}
    issues: list[AuditIssue] = []

    def add(severity: str, message: str, **details: Any) -> None:
        issues.append(AuditIssue(severity=severity, message=message, details=details))

    if not columns:
        add("critical", "No columns detected in the dataset. Check CSV parsing results.")

    is_scatter = plan.chart_type == "scatter" or plan.analysis_type == "clustering_kmeans"
    group_by = (plan.group_by_column or "").strip()
    value_column = (plan.value_column or "").strip()
    is_correlation = plan.analysis_type == "correlation"
    synthetic_value = plan.analysis_type in SYNTHETIC_VALUE_ANALYSES

    if not is_scatter:
        if not group_by:
            add("critical", f'Chart "{title}" is missing a group-by column.')
        elif group_by not in columns and not is_correlation:
            add("critical", f'Chart "{title}" references missing column "{group_by}".', column=group_by)

        # "count"/"value" are the executor's own result fields when no value column was given
        generated_value = value_column in ("count", "value") and value_column not in columns
        if synthetic_value:
            pass
        elif not value_column or generated_value:
            if plan.aggregation != "count":
                add("critical", f'Chart "{title}" requires a value column for aggregation "{plan.aggregation}".')
        elif value_column not in columns:
            add("critical", f'Chart "{title}" references missing value column "{value_column}".', column=value_column)
        elif value_column not in numeric and plan.aggregation != "count":
            add(
                "warning",
                f'Chart "{title}" uses value column "{value_column}" that is not profiled as numerical.',
                column=value_column,
            )
    else:
        x_col = (plan.x_value_column or "").strip()
        y_col = (plan.y_value_column or "").strip()
        if not x_col or not y_col:
            add("critical", f'Scatter plot "{title}" is missing axis columns.')
        else:
            for axis in (x_col, y_col):
                if axis == ROW_INDEX_AXIS:
                    continue
                if axis not in columns:
                    add("critical", f'Scatter plot "{title}" references missing column "{axis}".', column=axis)
                elif axis not in numeric:
                    add(
                        "warning",
                        f'Scatter plot "{title}" uses axis column "{axis}" that is not profiled as numerical.',
                        column=axis,
                    )

    if not rows:
        add("warning", f'Chart "{title}" has no aggregated data.')
    else:
        sample = rows[0]
        if not is_scatter and group_by and group_by not in sample:
            add("warning", f'Chart "{title}" rows do not include the group-by column "{group_by}".')
        if not is_scatter and value_column and value_column not in sample:
            add("warning", f'Chart "{title}" rows are missing the value field "{value_column}".')

    if not plan.title:
        add("info", "Plan has no title; the chart will use a generated label.")

    issues.sort(key=lambda issue: SEVERITY_ORDER[issue.severity])
    stats = {"critical": 0, "warning": 0, "info": 0}
    for issue in issues:
        stats[issue.severity] += 1

    if issues:
        summary = (
            f"{dataset}: {stats['critical']} critical, {stats['warning']} warnings, "
            f"{stats['info']} suggestions detected."
        )
    else:
        summary = f"{dataset}: No problems detected in current analysis pipeline."
    return AuditReport(issues=issues, stats=stats, summary=summary)


def has_critical_issues(report: AuditReport) -> bool:
    return report.stats.get("critical", 0) > 0
