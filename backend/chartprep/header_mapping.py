"""
Chartprep - Header Mapping Module
Maps position-stable generic names (column_1..column_N) to inferred canonical headers
"""

from typing import Any, Optional, Sequence

import pandas as pd

from .models import HeaderMapping

DEFAULT_FALLBACK_PREFIX = "column_"


def _normalise_key(key: Any) -> str:
    return key.strip() if isinstance(key, str) else ""


def generic_header_names(width: int, prefix: str = DEFAULT_FALLBACK_PREFIX) -> list[str]:
    return [f"{prefix}{i + 1}" for i in range(width)]


def create_header_mapping(
    generic_headers: Sequence[str],
    inferred_headers: Sequence[Optional[str]],
    fallback_prefix: str = DEFAULT_FALLBACK_PREFIX,
) -> HeaderMapping:
    """Pair generic and inferred headers by position; gaps keep a generic name."""
    prefix = fallback_prefix.strip() if fallback_prefix and fallback_prefix.strip() else DEFAULT_FALLBACK_PREFIX
    mapping: dict[str, str] = {}
    unmapped = 0

    for index, header in enumerate(generic_headers):
        generic_key = _normalise_key(header) or f"{prefix}{index + 1}"
        inferred_key = _normalise_key(inferred_headers[index]) if index < len(inferred_headers) else ""
        if not inferred_key:
            unmapped += 1
        mapping[generic_key] = inferred_key or f"{prefix}{index + 1}"

    return HeaderMapping(
        mapping=mapping,
        detected=sum(1 for name in inferred_headers if _normalise_key(name)),
        total=len(generic_headers),
        has_unmapped=unmapped > 0,
    )


def apply_header_mapping(row: dict[str, Any], mapping: dict[str, str]) -> dict[str, Any]:
    """Rename the keys of one record; keys without a mapping pass through."""
    if not isinstance(row, dict):
        return {}
    result: dict[str, Any] = {}
    for key, value in row.items():
        normalised = _normalise_key(key)
        target = mapping.get(normalised) if normalised and mapping else None
        target = target or normalised
        if not target:
            continue
        result[target] = value
    return result


def rename_frame(frame: pd.DataFrame, mapping: dict[str, str]) -> pd.DataFrame:
    """DataFrame counterpart of apply_header_mapping."""
    renamed = {col: mapping[col.strip()] for col in frame.columns if isinstance(col, str) and col.strip() in mapping}
    return frame.rename(columns=renamed)


def invert_mapping(mapping: dict[str, str]) -> dict[str, str]:
    """Canonical -> generic. The first generic name wins on collisions."""
    inverted: dict[str, str] = {}
    for generic, canonical in mapping.items():
        inverted.setdefault(canonical, generic)
    return inverted
