"""Base file connector for uploaded CSV/JSON/XML documents.

File connectors parse a whole document into memory when it is loaded and
answer queries by filtering, sorting and paginating that record set.
"""

from __future__ import annotations

import logging
import time
from abc import abstractmethod
from pathlib import Path
from typing import Any, Iterator

from ..base import (
    BaseConnector,
    ConnectionFailedError,
    InvalidQueryError,
    NotConnectedError,
)
from ..filtering import apply_query, filter_rows, project, sort_rows
from ..models import (
    ColumnInfo,
    ConnectionTestResult,
    ConnectorResult,
    FileConnectionConfig,
    QueryOptions,
    TableInfo,
    TableKind,
)

logger = logging.getLogger(__name__)


def resolve_path(document: Any, path: str) -> Any:
    """Walk a dot path through nested dicts.

    Raises:
        InvalidQueryError: If a segment does not exist
    """
    current = document
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            raise InvalidQueryError(f'Path "{path}" not found')
        current = current[part]
    return current


class BaseFileConnector(BaseConnector):
    """Base class for file-based connectors.

    Provides common functionality for:
    - Loading from an uploaded buffer or a local path
    - Holding the parsed record set and inferred columns
    - In-memory query evaluation

    Subclasses must implement:
    - _parse_records(): Turn decoded text into flat records
    - _infer_columns(): Describe the parsed records
    """

    config_model = FileConnectionConfig
    config: FileConnectionConfig

    def __init__(
        self,
        config: FileConnectionConfig | dict[str, Any] | None = None,
        connector_id: str | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(config, connector_id, name)
        self._records: list[dict[str, Any]] = []
        self._columns: list[ColumnInfo] = []
        self._loaded = False
        self.filename = ""

    @abstractmethod
    def _parse_records(self, text: str) -> list[dict[str, Any]]:
        """Parse decoded file content into records.

        Args:
            text: Decoded file content

        Returns:
            Flat records
        """
        pass

    @abstractmethod
    def _infer_columns(self, records: list[dict[str, Any]]) -> list[ColumnInfo]:
        pass

    def load_from_buffer(self, data: bytes, filename: str) -> None:
        """Parse an uploaded file.

        On failure the previous dataset is dropped and nothing partial is kept.

        Raises:
            ConnectionFailedError: If the content cannot be decoded or parsed
            InvalidQueryError: If the configured root path is not a record array
        """
        self._reset()
        try:
            text = data.decode(self.config.encoding)
            records = self._parse_records(text)
            columns = self._infer_columns(records)
        except (InvalidQueryError, ConnectionFailedError):
            raise
        except Exception as e:
            raise ConnectionFailedError.wrap(self.source_kind, e) from e

        self._records = records
        self._columns = columns
        self.filename = filename
        self._loaded = True
        self._connected = True
        self._log(
            "info",
            f"Loaded {len(records)} records from {filename}",
            record_count=len(records),
            column_count=len(columns),
        )

    def load_from_path(self, path: str | Path) -> None:
        """Read and parse a local file."""
        file_path = Path(path)
        try:
            data = file_path.read_bytes()
        except OSError as e:
            self._reset()
            raise ConnectionFailedError.wrap(self.source_kind, e) from e
        self.load_from_buffer(data, file_path.name)

    def parse_structure(self) -> TableInfo:
        """Describe the loaded document as a single table."""
        if not self._loaded:
            raise NotConnectedError(self.source_kind, "Load a file first")
        return TableInfo(
            name=self.filename,
            kind=TableKind.FILE,
            estimated_row_count=len(self._records),
            columns=self._columns,
        )

    def connect(self) -> None:
        """Mark the connector usable; requires a prior load."""
        if not self._loaded:
            raise NotConnectedError(self.source_kind, "Load a file first")
        self._connected = True

    def disconnect(self) -> None:
        """Drop the loaded dataset."""
        if self._loaded:
            self._log("info", "Disconnected, dataset released")
        self._reset()

    def _reset(self) -> None:
        self._records = []
        self._columns = []
        self._loaded = False
        self._connected = False

    def test_connection(self) -> ConnectionTestResult:
        """Report whether a document is loaded, without releasing it."""
        if not self._loaded:
            return ConnectionTestResult(success=False, error="No file loaded")
        return ConnectionTestResult(
            success=True,
            message=f"Loaded {self.filename}",
            latency_ms=0.0,
            permissions=["read"],
        )

    def get_tables(self) -> list[TableInfo]:
        self._require_connected()
        return [self.parse_structure()]

    def get_columns(self, table: str | None = None) -> list[ColumnInfo]:
        self._require_connected()
        return list(self._columns)

    def query(self, options: QueryOptions) -> ConnectorResult:
        """Evaluate the query against the loaded records."""
        self._require_connected()
        start_time = time.time()
        rows, total = apply_query(self._records, options)
        return ConnectorResult.paged(
            rows,
            self._columns,
            options.offset or 0,
            total,
            execution_time_ms=round((time.time() - start_time) * 1000, 2),
        )

    def get_row_count(self, options: QueryOptions) -> int:
        self._require_connected()
        return len(filter_rows(self._records, options.where))

    def iter_batches(
        self, options: QueryOptions, batch_size: int
    ) -> Iterator[list[dict[str, Any]]]:
        """Slice the filtered rows into batches without re-filtering per page."""
        self._require_connected()
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")

        rows = sort_rows(filter_rows(self._records, options.where), options.order_by)
        for start in range(options.offset or 0, len(rows), batch_size):
            yield project(rows[start : start + batch_size], options.columns)
