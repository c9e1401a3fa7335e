"""
Chartprep - Stage Plan Module
Turns a free-text three-stage cleaning plan into typed hints and runs
titleExtraction -> headerResolution -> dataNormalization over a generic table
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

import pandas as pd

from .header_mapping import create_header_mapping, rename_frame
from .models import (
    PivotRange,
    StageDetail,
    StageLogEntry,
    StagePlan,
    StagePlanHints,
    StageStatus,
    TableMetadata,
)
from .normalizer import looks_numeric, normalize_cell, parse_number
from .row_classifier import remove_summary_rows
from .settings import ChartprepSettings, resolve_settings
from .structure import build_header_names, detect_header_row, determine_expected_column_count

logger = logging.getLogger(__name__)

# (stage key, StagePlan attribute, display label)
STAGES = (
    ("titleExtraction", "title_extraction", "Title & Metadata"),
    ("headerResolution", "header_resolution", "Header Resolution"),
    ("dataNormalization", "data_normalization", "Data Rows"),
)
STAGE_LABELS = {key: label for key, _, label in STAGES}

DEFAULT_IDENTIFIER_LABELS = ["Code", "Description"]
DEFAULT_PIVOT_FIELD_LABEL = "Pivot_Column"
DEFAULT_VALUE_FIELD_LABEL = "Value"
MAX_IDENTIFIER_LABELS = 2

ROW_RANGE = re.compile(
    r"rows?\s*(\d+)(?:\s*(?:[-–—]|to|through)\s*(\d+)|\s*(?:and|&)\s*(\d+))?",
    re.IGNORECASE,
)
UNPIVOT_DIRECTIVE = re.compile(r"\b(unpivot|melt|wide format|crosstab)\b", re.IGNORECASE)
EXCLUDE_TOTALS_DIRECTIVE = re.compile(r"total\s+column|exclude\s+total", re.IGNORECASE)
GENERIC_COLUMN_REF = re.compile(r"column_(\d+)", re.IGNORECASE)

IDENTIFIER_LABEL_PATTERNS = (
    (re.compile(r"account[_\s]?code", re.IGNORECASE), "Account_Code"),
    (re.compile(r"account[_\s]?description", re.IGNORECASE), "Account_Description"),
    (re.compile(r"payee name", re.IGNORECASE), "Payee Name"),
    (re.compile(r"invoice month", re.IGNORECASE), "Invoice Month"),
    (re.compile(r"code column", re.IGNORECASE), "Code"),
    (re.compile(r"description column", re.IGNORECASE), "Description"),
)

REPORTING_RANGE = re.compile(r"Reporting Date\s*:\s*([\d./-]+)\s*Through\s*([\d./-]+)", re.IGNORECASE)
REPORTING_CURRENCY = re.compile(r"Reporting Currency\s*:\s*([A-Z]{3})", re.IGNORECASE)
REPORT_TYPE = re.compile(r"(Income Statement|Balance Sheet|Cash Flow)[^,;]*", re.IGNORECASE)


@dataclass
class StagePipelineResult:
    applied: bool
    reason: Optional[str] = None
    data: Optional[pd.DataFrame] = None
    metadata: Optional[TableMetadata] = None
    stage_plan: Optional[StagePlan] = None
    logs: list[StageLogEntry] = field(default_factory=list)
    summary: Optional[str] = None
    original_row_count: int = 0
    row_count: int = 0


# =============================================================================
# Hint extraction
# =============================================================================

def _collect_stage_text(stage: Optional[StageDetail]) -> str:
    if stage is None:
        return ""
    parts = []
    for value in (stage.goal, stage.log_message, stage.next_action, stage.status, stage.notes):
        if isinstance(value, str) and value.strip():
            parts.append(value.strip())
    for values in (stage.checkpoints, stage.heuristics, stage.fallback_strategies, stage.expected_artifacts):
        if values:
            parts.append(" ".join(values))
    return " ".join(parts)


def extract_row_indices(text: str) -> list[int]:
    """Every row number named in text, with "rows 2-4" / "rows 1 and 3" expanded."""
    indices: list[int] = []
    for match in ROW_RANGE.finditer(text or ""):
        start = int(match.group(1))
        end_token = match.group(2) or match.group(3)
        end = int(end_token) if end_token else start
        indices.extend(range(min(start, end), max(start, end) + 1))
    return indices


def _coerce_stage_plan(stage_plan: Union[StagePlan, dict, None]) -> StagePlan:
    if stage_plan is None:
        return StagePlan()
    if isinstance(stage_plan, StagePlan):
        return stage_plan
    return StagePlan.model_validate(stage_plan)


def derive_stage_plan_hints(stage_plan: Union[StagePlan, dict, None]) -> StagePlanHints:
    """Scan the plan's prose once and return the typed hints the pipeline acts on."""
    plan = _coerce_stage_plan(stage_plan)
    texts = {key: _collect_stage_text(getattr(plan, attr)) for key, attr, _ in STAGES}
    combined = " ".join(text for text in texts.values() if text)

    hints = StagePlanHints(
        requires_unpivot=bool(UNPIVOT_DIRECTIVE.search(combined)),
        exclude_totals=bool(EXCLUDE_TOTALS_DIRECTIVE.search(combined)),
    )

    column_refs = [int(m.group(1)) for m in GENERIC_COLUMN_REF.finditer(combined)]
    if column_refs:
        hints.pivot_range = PivotRange(start=min(column_refs), end=max(column_refs))

    metadata_rows = extract_row_indices(texts["titleExtraction"])
    if metadata_rows:
        hints.metadata_row_count = max(metadata_rows) + 1

    header_rows = extract_row_indices(texts["headerResolution"])
    if header_rows:
        hints.header_row_count = len(header_rows)

    labels = [label for pattern, label in IDENTIFIER_LABEL_PATTERNS if pattern.search(combined)]
    hints.identifier_labels = list(dict.fromkeys(labels))[:MAX_IDENTIFIER_LABELS]

    if re.search(r"project[_\s]?name", combined, re.IGNORECASE):
        hints.pivot_field_label = "Project_Name"
    elif re.search(r"project", combined, re.IGNORECASE):
        hints.pivot_field_label = "Project"

    if re.search(r"amount", texts["dataNormalization"] or combined, re.IGNORECASE):
        hints.value_field_label = "Amount"

    return hints


# =============================================================================
# Helpers
# =============================================================================

def _fingerprint(values: Iterable[Any]) -> str:
    return "|".join(normalize_cell(v).lower() for v in values if normalize_cell(v))


def is_metadata_row(cells: list[str]) -> bool:
    """Empty, or a few text-only cells (title, "Prepared by ...", notes)."""
    non_empty = [cell for cell in cells if cell]
    if not non_empty:
        return True
    if len(non_empty) > 3:
        return False
    return not any(looks_numeric(cell) for cell in non_empty)


def detect_identifier_columns(frame: pd.DataFrame, threshold: float = 0.8) -> list[str]:
    """Columns whose non-empty values are at least `threshold` unique."""
    identifiers = []
    for col in frame.columns:
        values = [normalize_cell(v) for v in frame[col].tolist()]
        values = [v for v in values if v]
        if values and len(set(values)) / len(values) >= threshold:
            identifiers.append(col)
    return identifiers


def extract_reporting_details(rows: list[list[str]]) -> dict[str, Optional[str]]:
    joined = " ".join(cell for row in rows for cell in row if cell)
    range_match = REPORTING_RANGE.search(joined)
    currency_match = REPORTING_CURRENCY.search(joined)
    type_match = REPORT_TYPE.search(joined)
    return {
        "report_title": type_match.group(0).strip() if type_match else None,
        "reporting_period_start": range_match.group(1) if range_match else None,
        "reporting_period_end": range_match.group(2) if range_match else None,
        "reporting_currency": currency_match.group(1) if currency_match else None,
    }


def _column_number(generic_key: str) -> int:
    digits = re.sub(r"[^\d]", "", generic_key)
    return int(digits) if digits else 0


def _join_header_cells(header_rows: list[list[str]], position: int) -> str:
    parts = [row[position] for row in header_rows if position < len(row) and row[position]]
    return " - ".join(parts)


class _StageTracker:
    """Keeps the cloned stage plan and the log in step."""

    def __init__(self, stage_plan: StagePlan):
        self.stage_plan = stage_plan
        self.logs: list[StageLogEntry] = []
        self._attrs = {key: attr for key, attr, _ in STAGES}

    def update(self, stage: str, status: StageStatus, message: str) -> None:
        detail = getattr(self.stage_plan, self._attrs[stage])
        detail.status = status
        detail.log_message = message
        self.logs.append(StageLogEntry(stage=stage, stage_label=STAGE_LABELS[stage], status=status, message=message))
        log = logger.warning if status == "abort" else logger.info
        log("[%s] %s: %s", STAGE_LABELS[stage], status, message)


# =============================================================================
# Pipeline
# =============================================================================

def _unpivot(
    header_rows: list[list[str]],
    data_rows: list[list[str]],
    generic_headers: list[str],
    metadata_rows: list[list[str]],
    hints: StagePlanHints,
) -> tuple[Optional[list[dict]], str, dict[str, Optional[str]]]:
    """Return (records or None, summary or abort reason, reporting details)."""
    if not header_rows:
        return None, "Stage plan requested unpivot but header rows are missing.", {}
    if not data_rows:
        return None, "No data rows available for unpivoting.", {}

    pivot_columns = []
    for position, key in enumerate(generic_headers):
        number = _column_number(key)
        if number <= 2:
            continue
        if hints.pivot_range and not hints.pivot_range.start <= number <= hints.pivot_range.end:
            continue
        label = _join_header_cells(header_rows, position) or key
        if hints.exclude_totals and re.search(r"total", label, re.IGNORECASE):
            continue
        pivot_columns.append((position, key, label))

    if not pivot_columns:
        return None, "Unable to derive pivot columns from header rows.", {}

    identifier_keys = generic_headers[:2]
    labels = hints.identifier_labels or DEFAULT_IDENTIFIER_LABELS
    id_labels = [
        labels[i] if i < len(labels) else identifier_keys[i]
        for i in range(len(identifier_keys))
    ]
    pivot_label = hints.pivot_field_label or DEFAULT_PIVOT_FIELD_LABEL
    value_label = hints.value_field_label or DEFAULT_VALUE_FIELD_LABEL
    details = extract_reporting_details(metadata_rows + header_rows)

    records = []
    for row in data_rows:
        identifiers = [row[i] if i < len(row) else "" for i in range(len(identifier_keys))]
        if not any(identifiers):
            continue
        for position, _, label in pivot_columns:
            value = parse_number(row[position]) if position < len(row) else None
            if value is None:
                continue
            record: dict[str, Any] = {
                id_label: identifier or None for id_label, identifier in zip(id_labels, identifiers)
            }
            record[pivot_label] = label
            record[value_label] = value
            if details["reporting_currency"]:
                record["Reporting_Currency"] = details["reporting_currency"]
            if details["reporting_period_start"]:
                record["Reporting_Period_Start"] = details["reporting_period_start"]
            if details["reporting_period_end"]:
                record["Reporting_Period_End"] = details["reporting_period_end"]
            records.append(record)

    if not records:
        return None, "Unpivot produced zero rows. Ensure numeric values exist.", details

    summary = (
        f"Unpivoted {len(pivot_columns)} columns ({generic_headers[0]} → {pivot_columns[-1][1]}); "
        f"produced {len(records)} tidy rows from {len(data_rows)} source rows."
    )
    return records, summary, details


def execute_stage_plan(
    table: pd.DataFrame,
    metadata: Optional[TableMetadata] = None,
    stage_plan: Union[StagePlan, dict, None] = None,
    summary_keywords: Optional[list[str]] = None,
    settings: Optional[ChartprepSettings] = None,
) -> StagePipelineResult:
    """
    Run the three cleaning stages over a generic (column_1..column_N) table.
    Never raises on bad data: an unsafe result (zero rows) comes back as
    applied=False with the reason and the stage log.
    """
    settings = resolve_settings(settings)
    if table is None or table.empty:
        return StagePipelineResult(applied=False, reason="No data available")

    generic_headers = [str(col) for col in table.columns]
    meta = metadata.model_copy(deep=True) if metadata else TableMetadata()
    meta.generic_headers = generic_headers
    hints = derive_stage_plan_hints(stage_plan)
    tracker = _StageTracker(_coerce_stage_plan(stage_plan).model_copy(deep=True))

    rows = [[normalize_cell(v) for v in record] for record in table.itertuples(index=False, name=None)]
    total_before = len(rows)

    # Stage 1: title / metadata rows
    tracker.update("titleExtraction", "in_progress", "Scanning leading rows for title and metadata.")
    if hints.metadata_row_count:
        strip_count = min(hints.metadata_row_count, len(rows))
    else:
        fingerprints = {_fingerprint(row) for row in meta.leading_rows} - {""}
        strip_count = 0
        while strip_count < len(rows) and strip_count < settings.max_metadata_rows:
            row = rows[strip_count]
            if not (is_metadata_row(row) or _fingerprint(row) in fingerprints):
                break
            strip_count += 1
    metadata_rows, rows = rows[:strip_count], rows[strip_count:]

    if metadata_rows:
        title = " ".join(cell for cell in metadata_rows[0] if cell).strip()
        if title and not (meta.report_title or "").strip():
            meta.report_title = title
        meta.leading_rows = (meta.leading_rows + metadata_rows)[: settings.leading_rows_limit]
        meta.total_leading_rows += len(metadata_rows)
        message = (
            f'Detected title "{title}" and removed {len(metadata_rows)} metadata row(s).'
            if title else f"Removed {len(metadata_rows)} metadata row(s)."
        )
    else:
        message = "No standalone title rows detected."

    if not rows:
        reason = "All rows were metadata; no data left after title detection."
        tracker.update("titleExtraction", "abort", reason)
        return StagePipelineResult(
            applied=False, reason=reason, stage_plan=tracker.stage_plan, logs=tracker.logs,
            original_row_count=total_before,
        )
    tracker.update("titleExtraction", "ready", message)

    # Stage 2: header rows
    tracker.update("headerResolution", "in_progress", "Resolving header rows.")
    hinted_headers = hints.header_row_count or (2 if hints.requires_unpivot else 0)
    if hinted_headers:
        strategy = "stage plan hint"
        header_count = min(hinted_headers, len(rows))
    else:
        strategy = "header detection"
        index, _ = detect_header_row(rows, settings)
        header_count = index + 1 if index is not None else 0
    header_rows, rows = rows[:header_count], rows[header_count:]

    if header_rows:
        joined = [_join_header_cells(header_rows, i) for i in range(len(generic_headers))]
        last_filled = max((i + 1 for i, value in enumerate(joined) if value), default=0)
        width = max(determine_expected_column_count(rows), last_filled) or len(joined)
        inferred_headers = build_header_names(joined, width)
    else:
        inferred_headers = list(meta.inferred_headers)

    mapping = create_header_mapping(generic_headers, inferred_headers)
    meta.header_rows = header_rows
    meta.header_mapping = mapping.mapping
    if inferred_headers:
        meta.inferred_headers = inferred_headers
        meta.header_row = inferred_headers
        tracker.update(
            "headerResolution", "ready",
            f"Mapped {mapping.detected}/{mapping.total} headers (strategy: {strategy}).",
        )
    else:
        tracker.update("headerResolution", "pending", "Unable to infer canonical headers; using generic column names.")

    # Stage 3: data rows
    tracker.update("dataNormalization", "in_progress", "Normalising data rows.")
    if hints.requires_unpivot:
        records, message, details = _unpivot(header_rows, rows, generic_headers, metadata_rows, hints)
        if records is None:
            tracker.update("dataNormalization", "abort", message)
            return StagePipelineResult(
                applied=False, reason=message, stage_plan=tracker.stage_plan, logs=tracker.logs,
                original_row_count=total_before,
            )
        meta.reporting_period_start = details["reporting_period_start"] or meta.reporting_period_start
        meta.reporting_period_end = details["reporting_period_end"] or meta.reporting_period_end
        meta.reporting_currency = details["reporting_currency"] or meta.reporting_currency
        meta.report_title = details["report_title"] or meta.report_title
        meta.cleaned_row_count = len(records)
        tracker.update("dataNormalization", "ready", message)
        return StagePipelineResult(
            applied=True,
            data=pd.DataFrame(records),
            metadata=meta,
            stage_plan=tracker.stage_plan,
            logs=tracker.logs,
            summary=message,
            original_row_count=total_before,
            row_count=len(records),
        )

    generic_frame = pd.DataFrame(rows, columns=generic_headers, dtype=object)
    canonical = rename_frame(generic_frame, meta.header_mapping)
    cleaned, removed = remove_summary_rows(canonical, summary_keywords)
    if cleaned.empty:
        tracker.update(
            "dataNormalization", "abort",
            "Stage plan executor produced zero rows; aborting to avoid data loss.",
        )
        return StagePipelineResult(
            applied=False, reason="Data normalization produced zero rows.",
            stage_plan=tracker.stage_plan, logs=tracker.logs, original_row_count=total_before,
        )

    identifiers = detect_identifier_columns(cleaned, settings.stage_identifier_uniqueness)
    meta.cleaned_row_count = len(cleaned)
    meta.removed_summary_row_count += len(removed)
    meta.identifier_columns = [str(col) for col in identifiers]
    tracker.update(
        "dataNormalization", "ready",
        f"Removed {len(removed)} summary row(s); identified {len(identifiers)} identifier column(s).",
    )

    summary = f"Rows {total_before} → {len(cleaned)} · summary rows removed {len(removed)}"
    return StagePipelineResult(
        applied=True,
        data=cleaned,
        metadata=meta,
        stage_plan=tracker.stage_plan,
        logs=tracker.logs,
        summary=summary,
        original_row_count=total_before,
        row_count=len(cleaned),
    )
