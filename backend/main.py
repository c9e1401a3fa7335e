"""
Chartprep Backend - Messy Spreadsheet to Chart API
Recovers tables from ragged CSV exports, profiles columns and serves chart-ready rows
"""

import csv
import io
from time import perf_counter
from typing import Any, Optional

import pandas as pd
from dotenv import load_dotenv
from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

# Import models
from models import (
    AggregateRequest, ChartResponse, DatasetState, EditRequest, StagePlanRequest,
    StagePlanResponse, TransformRequest, UploadResponse, VersionSummary, VersionsResponse,
)

# Import storage
from storage import DatasetInfo, get_dataset, store_dataset, cleanup_expired

# Import core
from chartprep import (
    ChartprepError,
    ChartprepSettings,
    apply_filters,
    audit_plan,
    build_display_rows,
    execute_plan,
    execute_stage_plan,
    execute_transform,
    process_raw_table,
    resolve_default_top_n,
)

load_dotenv()
settings = ChartprepSettings()

app = FastAPI(
    title="Chartprep API",
    description="Schema-free table recovery and chart-ready aggregation",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:3001", "http://127.0.0.1:3001"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

PREVIEW_ROWS = 20
CSV_DELIMITERS = ",;\t|"


# ============================================================================
# Helper Functions
# ============================================================================

def read_raw_rows(content: bytes) -> list[list[str]]:
    """Decode an uploaded file into ragged string rows, dropping blank lines."""
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("latin-1")
    try:
        dialect = csv.Sniffer().sniff(text[:4096], delimiters=CSV_DELIMITERS)
    except csv.Error:
        dialect = csv.excel
    return [row for row in csv.reader(io.StringIO(text), dialect) if any(cell.strip() for cell in row)]


def records_for_json(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Convert a table to records with NaN cells as None"""
    data = df.to_dict(orient='records')
    for row in data:
        for k in row:
            if pd.isna(row[k]):
                row[k] = None
    return data


def build_dataset_state(ds: DatasetInfo, model: type[DatasetState] = DatasetState) -> DatasetState:
    snapshot = ds.current
    table = snapshot.table
    return model(
        dataset_id=ds.id,
        filename=ds.filename,
        version=snapshot.version,
        row_count=len(table.cleaned),
        original_row_count=len(table.original),
        removed_summary_row_count=table.metadata.removed_summary_row_count,
        columns=snapshot.profiles,
        metadata=table.metadata,
        default_plan=snapshot.default_plan,
        preview=records_for_json(table.cleaned.head(PREVIEW_ROWS)),
    )


def print_pipeline_timing(endpoint: str, durations: dict[str, float]) -> None:
    """Print formatted execution timings for pipeline phases."""
    print(f"\n=== {endpoint} Pipeline Timing ===")
    for phase, seconds in durations.items():
        print(f"{phase}: {seconds:.2f}s")
    print("=" * (len(endpoint) + 20))


# ============================================================================
# Endpoints
# ============================================================================

@app.get("/")
async def root():
    return {"status": "ok", "version": "1.0.0"}


@app.get("/validate/{dataset_id}")
async def validate_dataset(dataset_id: str):
    """Check if a dataset ID is still valid (exists in memory)"""
    cleanup_expired()
    from storage import DATASETS
    if dataset_id in DATASETS:
        ds = DATASETS[dataset_id]
        ds.touch()
        return {"valid": True, "filename": ds.filename, "version": ds.current.version}
    return {"valid": False}


@app.post("/upload", response_model=UploadResponse)
async def upload_csv(file: UploadFile = File(...)):
    if not file.filename or not file.filename.lower().endswith('.csv'):
        raise HTTPException(status_code=400, detail="Please upload a CSV file.")

    try:
        endpoint_start = perf_counter()
        t0 = perf_counter()
        raw_rows = read_raw_rows(await file.read())
        t1 = perf_counter()
        if not raw_rows:
            raise HTTPException(status_code=400, detail="CSV is empty.")

        # Header detection, summary row removal, canonical naming
        t2 = perf_counter()
        table = process_raw_table(raw_rows, settings)
        t3 = perf_counter()
        if table.cleaned.empty:
            raise HTTPException(status_code=400, detail="No data rows found below the detected header.")

        # Profiling happens when the first snapshot is created
        t4 = perf_counter()
        ds_info = DatasetInfo(filename=file.filename, raw_rows=raw_rows, table=table, settings=settings)
        store_dataset(ds_info)
        t5 = perf_counter()

        print_pipeline_timing("/upload", {
            "CSV Ingestion": t1 - t0,
            "Table Structure": t3 - t2,
            "Column Profiling": t5 - t4,
            "Total Pipeline": t5 - endpoint_start,
        })

        return build_dataset_state(ds_info, UploadResponse)
    except HTTPException:
        raise
    except ChartprepError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/aggregate", response_model=ChartResponse)
async def aggregate_endpoint(request: AggregateRequest):
    ds = get_dataset(request.dataset_id)
    snapshot = ds.current

    t0 = perf_counter()
    filtered, applied_filters = apply_filters(snapshot.table.cleaned, request.filters)
    if filtered.empty:
        raise HTTPException(status_code=400, detail="No data matches filters.")

    try:
        rows, resolved = execute_plan(filtered, request.plan, settings)
    except (ChartprepError, ValidationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    t1 = perf_counter()

    default_top_n, default_hide_others = resolve_default_top_n(rows, resolved, settings)
    top_n = request.top_n if request.top_n is not None else default_top_n
    hide_others = request.hide_others if request.hide_others is not None else default_hide_others
    data = build_display_rows(rows, resolved, top_n, hide_others, request.hidden_labels)

    audit = audit_plan(resolved, snapshot.profiles, rows, ds.filename)
    t2 = perf_counter()
    print_pipeline_timing("/aggregate", {
        "Plan Execution": t1 - t0,
        "Display & Audit": t2 - t1,
        "Total Pipeline": t2 - t0,
    })

    warnings = [issue.message for issue in audit.issues if issue.severity != "info"]
    return ChartResponse(
        data=data,
        full_data=rows,
        plan=resolved,
        row_count=len(data),
        top_n=top_n or None,
        hide_others=bool(top_n) and hide_others,
        applied_filters=applied_filters or None,
        audit=audit,
        warnings=warnings or None,
    )


@app.post("/stage-plan", response_model=StagePlanResponse)
async def stage_plan_endpoint(request: StagePlanRequest):
    ds = get_dataset(request.dataset_id)
    table = ds.current.table

    t0 = perf_counter()
    result = execute_stage_plan(
        table.generic,
        table.metadata,
        request.stage_plan,
        request.summary_keywords,
        settings,
    )
    t1 = perf_counter()

    dataset: Optional[DatasetState] = None
    if result.applied:
        ds.add_version(result.data, "Stage plan", metadata=result.metadata)
        dataset = build_dataset_state(ds)
    t2 = perf_counter()
    print_pipeline_timing("/stage-plan", {
        "Stage Pipeline": t1 - t0,
        "Column Profiling": t2 - t1,
        "Total Pipeline": t2 - t0,
    })

    return StagePlanResponse(
        applied=result.applied,
        reason=result.reason,
        summary=result.summary,
        logs=result.logs,
        stage_plan=result.stage_plan,
        dataset=dataset,
    )


@app.post("/transform", response_model=DatasetState)
async def transform_endpoint(request: TransformRequest):
    ds = get_dataset(request.dataset_id)
    snapshot = ds.current

    try:
        transformed = execute_transform(
            snapshot.table.cleaned,
            request.code,
            snapshot.table.metadata,
            snapshot.profiles,
        )
    except ChartprepError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if transformed.empty:
        raise HTTPException(status_code=400, detail="Transform produced zero rows; keeping the current version.")

    label = "Transform"
    if request.explanation:
        label = f"Transform: {request.explanation.strip()[:80]}"
    ds.add_version(transformed, label)
    return build_dataset_state(ds)


@app.post("/edit", response_model=DatasetState)
async def edit_endpoint(request: EditRequest):
    ds = get_dataset(request.dataset_id)
    if not request.cell_edits and not request.delete_rows:
        raise HTTPException(status_code=400, detail="No edits provided.")

    edited = ds.current.table.cleaned.copy()
    for edit in request.cell_edits:
        if edit.column not in edited.columns:
            raise HTTPException(status_code=400, detail=f"Unknown column '{edit.column}'.")
        if not 0 <= edit.row < len(edited):
            raise HTTPException(status_code=400, detail=f"Row {edit.row} is out of range.")
        edited.at[edit.row, edit.column] = edit.value

    if request.delete_rows:
        invalid = [row for row in request.delete_rows if not 0 <= row < len(edited)]
        if invalid:
            raise HTTPException(status_code=400, detail=f"Rows out of range: {invalid[:5]}")
        edited = edited.drop(index=sorted(set(request.delete_rows)))
        if edited.empty:
            raise HTTPException(status_code=400, detail="Edits would remove every row.")

    parts = []
    if request.cell_edits:
        parts.append(f"{len(request.cell_edits)} cell edit(s)")
    if request.delete_rows:
        parts.append(f"{len(set(request.delete_rows))} row(s) deleted")
    ds.add_version(edited, "Edit: " + ", ".join(parts))
    return build_dataset_state(ds)


@app.get("/datasets/{dataset_id}/versions", response_model=VersionsResponse)
async def versions_endpoint(dataset_id: str):
    ds = get_dataset(dataset_id)
    return VersionsResponse(
        dataset_id=ds.id,
        current_version=ds.current.version,
        versions=[
            VersionSummary(
                version=snapshot.version,
                label=snapshot.label,
                row_count=len(snapshot.table.cleaned),
                column_count=len(snapshot.table.cleaned.columns),
                created_at=snapshot.created_at.isoformat(),
            )
            for snapshot in ds.versions
        ],
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
