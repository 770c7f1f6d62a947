"""JSON file connector."""

from __future__ import annotations

import json
import logging
from typing import Any

from ..base import InvalidQueryError
from ..inference import flatten_record, infer_columns
from ..models import ColumnInfo, SourceKind
from .base_file import BaseFileConnector, resolve_path

logger = logging.getLogger(__name__)

# Property names that commonly hold the record array in API exports
RECORD_ARRAY_KEYS = ("data", "items", "records", "results", "rows", "entries")


def find_record_array(document: Any) -> list[Any]:
    """Locate the record array in a parsed JSON document.

    Order of preference: the document itself if it is an array, a well-known
    property name, the first array-valued property, else the whole document
    as a single record.
    """
    if isinstance(document, list):
        return document
    if not isinstance(document, dict):
        return [document]

    for key in RECORD_ARRAY_KEYS:
        if isinstance(document.get(key), list):
            return document[key]

    for value in document.values():
        if isinstance(value, list):
            return value

    return [document]


def to_record(item: Any) -> dict[str, Any]:
    """Flatten an object item; wrap scalars and arrays as ``{"value": item}``."""
    if isinstance(item, dict):
        return flatten_record(item)
    return {"value": item}


class JsonConnector(BaseFileConnector):
    """Connector for JSON documents.

    The record array is taken from ``root_path`` (dot notation) when
    configured, otherwise auto-detected. Nested objects are flattened two
    levels deep into dotted column names.
    """

    source_kind = SourceKind.JSON_FILE

    def _parse_records(self, text: str) -> list[dict[str, Any]]:
        document = json.loads(text)

        if self.config.root_path:
            items = resolve_path(document, self.config.root_path)
            if not isinstance(items, list):
                raise InvalidQueryError(
                    f'Path "{self.config.root_path}" does not point to an array',
                    self.source_kind,
                )
        else:
            items = find_record_array(document)

        return [to_record(item) for item in items]

    def _infer_columns(self, records: list[dict[str, Any]]) -> list[ColumnInfo]:
        return infer_columns(records, native_prefix="json")
