"""Column type inference for untyped record data.

File and REST connectors have no catalog to ask, so column types are
inferred by sampling values. The result depends only on the set of
sampled kinds, never on their order.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Iterable

from ..utils.date_parser import parse_flexible_date, parse_iso_datetime
from .models import ColumnInfo, MappedType

INFERENCE_SAMPLE_SIZE = 100
FLATTEN_MAX_DEPTH = 2

NUMERIC_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
COMMON_DATE_PATTERNS = [
    re.compile(r"^\d{4}-\d{2}-\d{2}$"),  # YYYY-MM-DD
    re.compile(r"^\d{2}/\d{2}/\d{4}$"),  # MM/DD/YYYY
    re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}"),  # ISO 8601 with time
    re.compile(r"^\d{2}-\d{2}-\d{4}$"),  # DD-MM-YYYY
]


def is_iso_date_string(value: str) -> bool:
    """ISO-8601 shape that also parses as a real date."""
    return parse_iso_datetime(value) is not None


def is_common_date_string(value: str) -> bool:
    """ISO-8601 or one of the common spreadsheet date layouts."""
    if is_iso_date_string(value):
        return True
    if not any(pattern.match(value) for pattern in COMMON_DATE_PATTERNS):
        return False
    return parse_flexible_date(value[:10] if "T" in value else value) is not None


def classify_value(
    value: Any,
    detect_scalars: bool = False,
    common_dates: bool = False,
) -> MappedType | None:
    """Classify one value.

    Args:
        value: The value to classify
        detect_scalars: Also recognize booleans and numbers written as text
        common_dates: Recognize common date layouts, not only ISO-8601

    Returns:
        The mapped type, or None for null values
    """
    if value is None:
        return None
    # bool is a subclass of int
    if isinstance(value, bool):
        return MappedType.BOOLEAN
    if isinstance(value, (int, float, Decimal)):
        return MappedType.NUMBER
    if isinstance(value, (datetime, date)):
        return MappedType.DATE
    if isinstance(value, (dict, list)):
        return MappedType.JSON
    if isinstance(value, str):
        text = value.strip()
        if detect_scalars:
            if text.lower() in ("true", "false"):
                return MappedType.BOOLEAN
            if NUMERIC_PATTERN.match(text):
                return MappedType.NUMBER
        if common_dates:
            is_date = is_common_date_string(text)
        else:
            is_date = is_iso_date_string(text)
        if is_date:
            return MappedType.DATE
        return MappedType.STRING
    return MappedType.STRING


def infer_mapped_type(
    values: Iterable[Any],
    detect_scalars: bool = False,
    common_dates: bool = False,
) -> MappedType:
    """Infer one mapped type from sampled values.

    A single agreed kind wins; any disagreement falls back to string.
    No samples also means string.
    """
    kinds = {
        kind
        for kind in (
            classify_value(v, detect_scalars, common_dates) for v in values
        )
        if kind is not None
    }
    if len(kinds) == 1:
        return kinds.pop()
    return MappedType.STRING


def get_path_value(record: dict[str, Any], path: str) -> Any:
    """Read a key, falling back to walking a dotted path through nested dicts."""
    if path in record:
        return record[path]
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def infer_columns(
    records: list[dict[str, Any]],
    native_prefix: str,
    sample_size: int = INFERENCE_SAMPLE_SIZE,
    detect_scalars: bool = False,
    common_dates: bool = False,
    empty_is_null: bool = False,
    keys: list[str] | None = None,
    getter: Callable[[dict[str, Any], str], Any] | None = None,
) -> list[ColumnInfo]:
    """Infer column descriptors from a list of records.

    Args:
        records: Parsed records
        native_prefix: Prefix for the reported native type, e.g. ``csv``
        sample_size: Maximum non-null values sampled per column
        detect_scalars: Passed to classify_value
        common_dates: Passed to classify_value
        empty_is_null: Treat empty strings as missing values
        keys: Column names to describe (defaults to the union of record keys)
        getter: How to read a column from a record

    Returns:
        One ColumnInfo per column, in first-seen order
    """
    if not records:
        return []

    read = getter or (lambda record, key: record.get(key))
    if keys is None:
        keys = list(dict.fromkeys(key for record in records for key in record))

    def is_missing(value: Any) -> bool:
        return value is None or (empty_is_null and value == "")

    columns = []
    for name in keys:
        samples: list[Any] = []
        nullable = False
        for record in records:
            value = read(record, name)
            if is_missing(value):
                nullable = True
            elif len(samples) < sample_size:
                samples.append(value)

        mapped = infer_mapped_type(samples, detect_scalars, common_dates)
        columns.append(
            ColumnInfo(
                name=name,
                native_type=f"{native_prefix}_{mapped.value}",
                mapped_type=mapped,
                nullable=nullable,
                sample_values=samples,
            )
        )
    return columns


def flatten_record(
    record: dict[str, Any],
    max_depth: int = FLATTEN_MAX_DEPTH,
    prefix: str = "",
    depth: int = 0,
) -> dict[str, Any]:
    """Flatten nested objects into dotted keys.

    Objects are expanded ``max_depth`` levels deep; anything deeper, and every
    list, is kept as an opaque value.
    """
    flat: dict[str, Any] = {}
    for key, value in record.items():
        path = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, dict) and depth < max_depth:
            flat.update(flatten_record(value, max_depth, path, depth + 1))
        else:
            flat[path] = value
    return flat


def cast_scalar(text: str | None) -> Any:
    """Auto-cast a delimited-text cell.

    Empty cells become None, ``true``/``false`` become booleans and numeric
    text becomes int or float. Numbers with leading zeros (codes, zips) stay
    text. Recognized dates become ``date``, or ``datetime`` when a time is
    present. Everything else is returned unchanged.
    """
    if text is None:
        return None
    value = text.strip()
    if value == "":
        return None
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if NUMERIC_PATTERN.match(value):
        digits = value.lstrip("+-")
        if len(digits) > 1 and digits[0] == "0" and digits[1].isdigit():
            return value
        if re.fullmatch(r"[+-]?\d+", value):
            return int(value)
        return float(value)
    if is_common_date_string(value):
        parsed = parse_flexible_date(value)
        if parsed is not None:
            # Every date-only layout is exactly ten characters
            return parsed if len(value) > 10 else parsed.date()
    return value
