"""
Chartprep - Transform Runner Module
Executes an externally authored Python function body over table records
behind an AST whitelist and a reduced builtins table
"""

import ast
import builtins
import contextlib
import io
import logging
import textwrap
from types import SimpleNamespace
from typing import Any, Iterable, Optional

import pandas as pd

from .errors import TransformError
from .header_mapping import apply_header_mapping
from .models import ColumnProfile, TableMetadata
from .normalizer import is_likely_identifier_value, normalize_currency_value, parse_number, split_numeric_string
from .row_classifier import is_keyword_summary_row
from .stage_plan import detect_identifier_columns

logger = logging.getLogger(__name__)

TRANSFORM_NAME = "transform"

BANNED_NAMES = {
    "open", "eval", "exec", "compile", "__import__", "globals", "locals",
    "getattr", "setattr", "delattr", "vars", "input", "breakpoint", "help",
}

SAFE_BUILTIN_NAMES = (
    "abs", "all", "any", "bool", "dict", "enumerate", "filter", "float", "int",
    "isinstance", "len", "list", "map", "max", "min", "print", "range", "reversed",
    "round", "set", "sorted", "str", "sum", "tuple", "zip",
    "Exception", "KeyError", "TypeError", "ValueError", "IndexError",
)
SAFE_BUILTINS = {name: getattr(builtins, name) for name in SAFE_BUILTIN_NAMES}


def validate_transform_source(body: str) -> ast.Module:
    """Wrap the body as `def transform(data, _util)` and reject unsafe syntax."""
    if not body or not body.strip():
        raise TransformError("Transform body is empty.")
    source = f"def {TRANSFORM_NAME}(data, _util):\n" + textwrap.indent(textwrap.dedent(body), "    ")
    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        raise TransformError(f"Syntax Error: {e}") from e

    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            raise TransformError("Security: Imports are not allowed.")
        if isinstance(node, (ast.Global, ast.Nonlocal)):
            raise TransformError("Security: global/nonlocal are not allowed.")
        if isinstance(node, ast.Name) and (node.id in BANNED_NAMES or node.id.startswith("__")):
            raise TransformError(f"Security: Name '{node.id}' is banned.")
        if isinstance(node, ast.Attribute) and node.attr.startswith("__"):
            raise TransformError(f"Security: Access to '{node.attr}' is banned.")
    return tree


def _detect_headers(metadata: Optional[TableMetadata]) -> dict[str, Any]:
    if metadata and metadata.inferred_headers:
        return {
            "header_index": metadata.detected_header_index if metadata.detected_header_index is not None else 0,
            "headers": list(metadata.inferred_headers),
            "confidence": 0.9,
            "strategy": "metadata.inferred_headers",
        }
    return {"header_index": 0, "headers": [], "confidence": 0.0, "strategy": "none"}


def _describe_columns(metadata: Optional[TableMetadata], profiles: Optional[list[ColumnProfile]]) -> list[dict]:
    if profiles:
        return [profile.model_dump() for profile in profiles]
    headers = metadata.inferred_headers if metadata else []
    return [{"name": name, "type": "unknown"} for name in headers]


def build_transform_utils(
    metadata: Optional[TableMetadata] = None,
    profiles: Optional[list[ColumnProfile]] = None,
) -> SimpleNamespace:
    """The `_util` helper namespace handed to transform code."""

    def remove_summary_rows(rows: list[dict], keywords: Optional[Iterable[str]] = None) -> list[dict]:
        return [row for row in rows if not is_keyword_summary_row(row.values(), keywords)]

    def identifier_columns(rows: list[dict], threshold: float = 0.8) -> list[str]:
        return [str(col) for col in detect_identifier_columns(pd.DataFrame(rows), threshold)]

    return SimpleNamespace(
        parse_number=parse_number,
        split_numeric_string=split_numeric_string,
        apply_header_mapping=apply_header_mapping,
        detect_headers=lambda meta=None: _detect_headers(meta or metadata),
        remove_summary_rows=remove_summary_rows,
        detect_identifier_columns=identifier_columns,
        is_valid_identifier_value=is_likely_identifier_value,
        normalize_number=normalize_currency_value,
        describe_columns=lambda meta=None: _describe_columns(meta or metadata, profiles),
    )


def execute_transform(
    frame: pd.DataFrame,
    body: str,
    metadata: Optional[TableMetadata] = None,
    profiles: Optional[list[ColumnProfile]] = None,
) -> pd.DataFrame:
    """
    Run `body` as the body of `transform(data, _util)` where data is a list of
    row dicts. The function must return a list of dicts, which becomes the new table.
    """
    tree = validate_transform_source(body)
    scope: dict[str, Any] = {}
    records = [dict(record) for record in frame.to_dict(orient="records")]

    capture = io.StringIO()
    try:
        exec(compile(tree, "<transform>", "exec"), {"__builtins__": SAFE_BUILTINS}, scope)
        with contextlib.redirect_stdout(capture):
            result = scope[TRANSFORM_NAME](records, build_transform_utils(metadata, profiles))
    except Exception as e:
        raise TransformError(f"Data transformation failed: {e}") from e

    output = capture.getvalue().strip()
    if output:
        logger.debug("Transform output: %s", output)

    if not isinstance(result, list):
        raise TransformError("The transform function did not return a list. It may be missing a return statement.")
    if any(not isinstance(row, dict) for row in result):
        raise TransformError("The transform function did not return a list of dicts.")
    return pd.DataFrame(result)
