"""Base database connector using SQLAlchemy.

Provides common functionality for all relational connectors including
connection management, catalog-driven schema discovery, dialect-aware
query building and counting.
"""

from __future__ import annotations

import importlib
import logging
import time
from abc import abstractmethod
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Connection, CursorResult, Engine
from sqlalchemy.exc import SQLAlchemyError

from ...config import CONNECT_TIMEOUT_SECONDS, POOL_RECYCLE_SECONDS
from ..base import (
    BaseConnector,
    ConnectionFailedError,
    MissingDependencyError,
    QueryFailedError,
    sanitize_error_message,
)
from ..models import (
    ColumnInfo,
    ConnectionTestResult,
    ConnectorResult,
    MappedType,
    QueryOptions,
    TableInfo,
)

logger = logging.getLogger(__name__)

SAMPLE_ROW_COUNT = 5


class BaseDatabaseConnector(BaseConnector):
    """Base class for database connectors using SQLAlchemy.

    One connection is checked out on connect() and held until disconnect().

    Subclasses must implement:
    - _build_url(): Build the SQLAlchemy connection URL
    - _table_catalog(): Rows describing tables and views
    - _column_catalog(): Rows describing a table's columns
    - paginate_sql(): Dialect pagination
    - _server_probe(): Version/identity for test_connection()
    """

    driver_module: str = ""
    driver_package: str = ""
    probe_sql = "SELECT 1"

    def __init__(
        self,
        config: Any = None,
        connector_id: str | None = None,
        name: str | None = None,
    ) -> None:
        super().__init__(config, connector_id, name)
        self._engine: Engine | None = None
        self._connection: Connection | None = None

    @abstractmethod
    def _build_url(self) -> URL:
        """Build the SQLAlchemy connection URL."""
        pass

    def _connect_args(self) -> dict[str, Any]:
        """Driver-specific keyword arguments for the DBAPI connect()."""
        return {}

    @abstractmethod
    def _table_catalog(self) -> list[TableInfo]:
        pass

    @abstractmethod
    def _column_catalog(self, table: str) -> list[dict[str, Any]]:
        """Catalog rows for ``table``.

        Returns:
            Dicts with keys name, native_type, nullable, is_primary_key,
            max_length, precision, scale
        """
        pass

    @abstractmethod
    def paginate_sql(self, sql: str, limit: int | None, offset: int | None) -> str:
        """Append dialect pagination to ``sql``."""
        pass

    @abstractmethod
    def _server_probe(self) -> tuple[str | None, str | None]:
        """Return (version, server_info) for the connected server."""
        pass

    def map_native_type(self, native_type: str) -> MappedType:
        """Map a catalog-declared type name."""
        return self.map_column_type(native_type)

    def map_result_type(self, type_code: Any) -> tuple[str, MappedType]:
        """Map a DBAPI cursor description type code to (native, mapped)."""
        native = str(type_code)
        return native, self.map_native_type(native)

    def _check_driver(self) -> None:
        try:
            importlib.import_module(self.driver_module)
        except ImportError as e:
            raise MissingDependencyError(self.source_kind, self.driver_package) from e

    def connect(self) -> None:
        """Open the engine and check out the connector's connection.

        Raises:
            MissingDependencyError: If the driver package is not installed
            ConnectionFailedError: On any connection or authentication error
        """
        if self._connected:
            return

        self._check_driver()
        try:
            self._engine = create_engine(
                self._build_url(),
                pool_size=1,
                max_overflow=0,
                pool_pre_ping=True,
                pool_timeout=CONNECT_TIMEOUT_SECONDS,
                pool_recycle=POOL_RECYCLE_SECONDS,
                connect_args=self._connect_args(),
            )
            self._connection = self._engine.connect()
            self._connection.execute(text(self.probe_sql))
        except (SQLAlchemyError, ValueError) as e:
            # ValueError: incomplete addressing in the config
            self._release()
            raise ConnectionFailedError.wrap(self.source_kind, e) from e

        self._connected = True
        self._log("info", "Connected successfully")

    def disconnect(self) -> None:
        """Close the connection and dispose of the engine. Never raises."""
        was_connected = self._connected
        self._release()
        if was_connected:
            self._log("info", "Disconnected")

    def _release(self) -> None:
        self._connected = False
        if self._connection is not None:
            try:
                self._connection.close()
            except SQLAlchemyError as e:
                self._log(
                    "warning",
                    f"Error closing connection: {sanitize_error_message(str(e))}",
                )
            self._connection = None
        if self._engine is not None:
            try:
                self._engine.dispose()
            except SQLAlchemyError as e:
                self._log(
                    "warning",
                    f"Error disposing engine: {sanitize_error_message(str(e))}",
                )
            self._engine = None

    def _execute(self, sql: str, params: dict[str, Any] | None = None) -> CursorResult:
        """Run SQL on the held connection.

        Raises:
            NotConnectedError: If not connected
            QueryFailedError: On any execution error
        """
        self._require_connected()
        assert self._connection is not None

        self._log("debug", f"Executing SQL: {sql}")
        try:
            return self._connection.execute(text(sql), params or {})
        except SQLAlchemyError as e:
            # A failed statement aborts the transaction on some servers
            try:
                self._connection.rollback()
            except SQLAlchemyError:
                self._log("warning", "Rollback after failed query also failed")
            raise QueryFailedError.wrap(self.source_kind, e) from e

    def _fetch_dicts(
        self, sql: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        result = self._execute(sql, params)
        column_names = list(result.keys())
        return [dict(zip(column_names, row)) for row in result.fetchall()]

    def _fetch_scalar(self, sql: str, params: dict[str, Any] | None = None) -> Any:
        row = self._execute(sql, params).fetchone()
        return row[0] if row else None

    def test_connection(self) -> ConnectionTestResult:
        """Connect and report server version and identity. Never raises."""
        start_time = time.time()
        try:
            self.connect()
            version, server_info = self._server_probe()
            latency_ms = (time.time() - start_time) * 1000
            return ConnectionTestResult(
                success=True,
                message="Connection successful",
                latency_ms=round(latency_ms, 2),
                version=version,
                server_info=server_info,
                permissions=["read"],
            )
        except Exception as e:
            error = sanitize_error_message(str(e)) or type(e).__name__
            self._log("warning", f"Connection test failed: {error}")
            return ConnectionTestResult(
                success=False,
                error=error,
                latency_ms=round((time.time() - start_time) * 1000, 2),
            )
        finally:
            self.disconnect()

    def get_tables(self) -> list[TableInfo]:
        """List base tables and views from the catalog."""
        self._require_connected()
        return self._table_catalog()

    def get_columns(self, table: str | None = None) -> list[ColumnInfo]:
        """Describe a table's columns with primary keys and sample values."""
        self._require_connected()
        if not table:
            raise ValueError("table is required for database connectors")

        catalog = self._column_catalog(table)
        samples = self._fetch_dicts(
            self.paginate_sql(
                f"SELECT * FROM {self.qualify_table(table)}", SAMPLE_ROW_COUNT, None
            )
        )

        columns = []
        for entry in catalog:
            name = entry["name"]
            columns.append(
                ColumnInfo(
                    name=name,
                    native_type=entry["native_type"],
                    mapped_type=self.map_native_type(entry["native_type"]),
                    nullable=entry.get("nullable", True),
                    is_primary_key=entry.get("is_primary_key", False),
                    max_length=entry.get("max_length"),
                    precision=entry.get("precision"),
                    scale=entry.get("scale"),
                    sample_values=[sample.get(name) for sample in samples],
                )
            )
        return columns

    def build_query_sql(self, options: QueryOptions) -> tuple[str, str]:
        """Build the data and count statements for ``options``.

        The data statement is ``build_select_query`` plus dialect pagination.
        A raw query with nothing to project, filter, sort or page runs as-is.
        WHERE and ORDER BY are trusted caller input and passed through verbatim.

        Returns:
            (data_sql, count_sql)
        """
        options.require_target(self.source_kind)
        count_sql = f"SELECT COUNT(*) FROM {self.select_source(options)}"
        if options.where:
            count_sql += f" WHERE {options.where}"

        wrap_raw = (
            options.columns
            or options.where
            or options.order_by
            or options.limit is not None
            or options.offset
        )
        if options.raw_query and not wrap_raw:
            return options.raw_query.strip().rstrip(";"), count_sql

        data_sql = self.build_select_query(options)
        return self.paginate_sql(data_sql, options.limit, options.offset), count_sql

    def query(self, options: QueryOptions) -> ConnectorResult:
        """Count matching rows, then fetch the requested page."""
        self._require_connected()
        start_time = time.time()
        data_sql, count_sql = self.build_query_sql(options)

        total = int(self._fetch_scalar(count_sql, options.params) or 0)
        result = self._execute(data_sql, options.params)
        description = getattr(getattr(result, "cursor", None), "description", None)
        column_names = list(result.keys())
        rows = [dict(zip(column_names, row)) for row in result.fetchall()]

        return ConnectorResult.paged(
            rows,
            self._result_columns(column_names, description, rows),
            options.offset or 0,
            total,
            execution_time_ms=round((time.time() - start_time) * 1000, 2),
        )

    def _result_columns(
        self,
        column_names: list[str],
        description: Any,
        rows: list[dict[str, Any]],
    ) -> list[ColumnInfo]:
        type_codes: dict[str, Any] = {}
        for entry in description or []:
            type_codes[entry[0]] = entry[1]

        columns = []
        for name in column_names:
            if name in type_codes:
                native, mapped = self.map_result_type(type_codes[name])
            else:
                native, mapped = "unknown", MappedType.UNKNOWN
            columns.append(
                ColumnInfo(
                    name=name,
                    native_type=native,
                    mapped_type=mapped,
                    nullable=True,
                    sample_values=[row.get(name) for row in rows[:SAMPLE_ROW_COUNT]],
                )
            )
        return columns

    def get_row_count(self, options: QueryOptions) -> int:
        """Run a dedicated COUNT(*) for ``options``."""
        self._require_connected()
        _, count_sql = self.build_query_sql(options)
        return int(self._fetch_scalar(count_sql, options.params) or 0)
