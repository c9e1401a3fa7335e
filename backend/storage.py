"""
Chartprep Backend - Dataset Storage
In-memory versioned dataset snapshots with TTL expiration
"""

import uuid
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional, Sequence

import pandas as pd
from fastapi import HTTPException

from chartprep import (
    AnalysisPlan,
    ChartprepSettings,
    ColumnProfile,
    ProcessedTable,
    TableMetadata,
    profile_columns,
    suggest_default_plan,
)


class DatasetSnapshot:
    """One immutable version of a dataset, fully profiled on creation"""

    def __init__(self, version: int, table: ProcessedTable, label: str, settings: Optional[ChartprepSettings] = None):
        self.version = version
        self.table = table
        self.label = label
        self.profiles: list[ColumnProfile] = profile_columns(table.cleaned, settings)
        self.default_plan: Optional[AnalysisPlan] = suggest_default_plan(self.profiles)
        self.created_at = datetime.now()


class DatasetInfo:
    """Container for an uploaded dataset and its version history"""

    def __init__(
        self,
        filename: str,
        raw_rows: Sequence[Sequence[Optional[str]]],
        table: ProcessedTable,
        settings: Optional[ChartprepSettings] = None,
    ):
        self.id = str(uuid.uuid4())
        self.filename = filename
        self.raw_rows = tuple(tuple(row) for row in raw_rows)
        self.settings = settings
        self.versions: list[DatasetSnapshot] = [DatasetSnapshot(1, table, "Upload", settings)]
        self.created_at = datetime.now()
        self.touch()

    @property
    def current(self) -> DatasetSnapshot:
        return self.versions[-1]

    def add_version(
        self,
        cleaned: pd.DataFrame,
        label: str,
        metadata: Optional[TableMetadata] = None,
        original: Optional[pd.DataFrame] = None,
    ) -> DatasetSnapshot:
        """Record a new snapshot; earlier versions are never touched."""
        previous = self.current.table
        meta = (metadata or previous.metadata).model_copy(update={
            "cleaned_row_count": len(cleaned),
            "header_row": [str(col) for col in cleaned.columns],
        })
        table = replace(
            previous,
            cleaned=cleaned.reset_index(drop=True),
            original=original if original is not None else previous.original,
            metadata=meta,
        )
        snapshot = DatasetSnapshot(self.current.version + 1, table, label, self.settings)
        self.versions.append(snapshot)
        return snapshot

    def touch(self):
        """Update last accessed time"""
        self.last_accessed = datetime.now()

    def is_expired(self, ttl_hours: int = 1) -> bool:
        """Check if dataset has expired"""
        return datetime.now() - self.last_accessed > timedelta(hours=ttl_hours)


# Global dataset storage
DATASETS: dict[str, DatasetInfo] = {}
MAX_DATASETS = 10


def cleanup_expired():
    """Remove expired datasets from memory"""
    expired = [k for k, v in DATASETS.items() if v.is_expired()]
    for k in expired:
        del DATASETS[k]


def get_dataset(dataset_id: str) -> DatasetInfo:
    """Retrieve dataset by ID, with expiration check"""
    cleanup_expired()
    if dataset_id not in DATASETS:
        raise HTTPException(status_code=404, detail="Dataset not found or expired. Please re-upload.")
    ds = DATASETS[dataset_id]
    ds.touch()
    return ds


def store_dataset(ds_info: DatasetInfo) -> str:
    """Store dataset and return its ID"""
    cleanup_expired()

    # Evict oldest if at capacity
    if len(DATASETS) >= MAX_DATASETS:
        oldest_id = min(DATASETS.keys(), key=lambda k: DATASETS[k].last_accessed)
        del DATASETS[oldest_id]

    DATASETS[ds_info.id] = ds_info
    return ds_info.id
