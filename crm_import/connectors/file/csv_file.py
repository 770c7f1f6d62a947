"""CSV file connector.

Parses delimited text with an optional header row. Cells are trimmed and
auto-cast (empty → None, booleans, numbers); date text is left as-is and
recognized during type inference.
"""

from __future__ import annotations

import csv
import io
import logging
from typing import Any

from ..inference import cast_scalar, infer_columns
from ..models import ColumnInfo, SourceKind
from .base_file import BaseFileConnector

logger = logging.getLogger(__name__)


class CsvConnector(BaseFileConnector):
    """Connector for CSV and other delimited files.

    Supports:
    - Configurable delimiter (",", ";", "\\t", ...)
    - Files with or without a header row (``column_1..N`` otherwise)
    - Ragged rows: short rows are padded with None, extra cells dropped
    """

    source_kind = SourceKind.CSV_FILE

    def _parse_records(self, text: str) -> list[dict[str, Any]]:
        # A BOM survives utf-8 decoding and would end up in the first header
        if text.startswith("\ufeff"):
            text = text[1:]

        reader = csv.reader(
            io.StringIO(text, newline=""),
            delimiter=self.config.delimiter,
            strict=True,
        )
        rows = [row for row in reader if any(cell.strip() for cell in row)]
        if not rows:
            return []

        if self.config.has_header:
            header = self._normalize_header(rows[0])
            data_rows = rows[1:]
        else:
            width = max(len(row) for row in rows)
            header = [f"column_{i + 1}" for i in range(width)]
            data_rows = rows

        records = []
        for row in data_rows:
            cells = row[: len(header)] + [None] * (len(header) - len(row))
            records.append(
                {name: cast_scalar(cell) for name, cell in zip(header, cells)}
            )
        return records

    @staticmethod
    def _normalize_header(header: list[str]) -> list[str]:
        """Trim names, fill blanks and de-duplicate repeated names."""
        seen: dict[str, int] = {}
        names = []
        for index, raw in enumerate(header):
            name = raw.strip() or f"column_{index + 1}"
            if name in seen:
                seen[name] += 1
                name = f"{name}_{seen[name]}"
            else:
                seen[name] = 1
            names.append(name)
        return names

    def _infer_columns(self, records: list[dict[str, Any]]) -> list[ColumnInfo]:
        return infer_columns(
            records,
            native_prefix="csv",
            detect_scalars=True,
            common_dates=True,
            empty_is_null=True,
        )
