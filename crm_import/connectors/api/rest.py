"""Generic REST API connector.

Translates QueryOptions into paginated HTTP requests and evaluates
WHERE/ORDER BY/projection client-side on the fetched records, since the
remote API's own filtering is not assumed to exist.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Iterator

from ..base import sanitize_error_message
from ..filtering import apply_query, filter_rows, project, sort_rows
from ..inference import (
    INFERENCE_SAMPLE_SIZE,
    flatten_record,
    get_path_value,
    infer_columns,
)
from ..models import (
    ColumnInfo,
    ConnectionTestResult,
    ConnectorResult,
    PaginationType,
    QueryOptions,
    SourceKind,
    TableInfo,
    TableKind,
)
from .base_api import BaseApiConnector

logger = logging.getLogger(__name__)

# Checked in order when no data_path is configured
RECORD_ARRAY_KEYS = ("data", "results", "items")
DEFAULT_CURSOR_PATH = "next_cursor"


@dataclass
class RestPage:
    """One decoded response page."""

    records: list[dict[str, Any]] = field(default_factory=list)
    total: int | None = None
    next_cursor: str | None = None


def extract_records(body: Any, data_path: str | None = None) -> list[dict[str, Any]]:
    """Extract the record array from a response body.

    Args:
        body: Decoded JSON body
        data_path: Dot path to the records; auto-detected when omitted

    Returns:
        Records as dicts; scalar items are wrapped as ``{"value": item}``
    """
    if data_path:
        data = get_path_value(body, data_path) if isinstance(body, dict) else None
        if data is None:
            items: list[Any] = []
        else:
            items = data if isinstance(data, list) else [data]
    elif isinstance(body, list):
        items = body
    else:
        items = [body]
        if isinstance(body, dict):
            for key in RECORD_ARRAY_KEYS:
                if isinstance(body.get(key), list):
                    items = body[key]
                    break

    return [item if isinstance(item, dict) else {"value": item} for item in items]


def _read_total(body: Any, total_path: str | None) -> int | None:
    if not total_path or not isinstance(body, dict):
        return None
    value = get_path_value(body, total_path)
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _read_cursor(body: Any, cursor_path: str) -> str | None:
    if not isinstance(body, dict):
        return None
    value = get_path_value(body, cursor_path)
    if value is None or value == "":
        return None
    return str(value)


def infer_api_columns(records: list[dict[str, Any]]) -> list[ColumnInfo]:
    """Infer columns one level into nested objects.

    ``{"address": {"city": "X"}}`` yields an ``address.city`` column; deeper
    objects and all arrays stay opaque json columns.
    """
    sample = records[:INFERENCE_SAMPLE_SIZE]
    keys = list(
        dict.fromkeys(key for record in sample for key in flatten_record(record, 1))
    )
    return infer_columns(sample, native_prefix="api", keys=keys, getter=get_path_value)


class RestApiConnector(BaseApiConnector):
    """Connector for generic REST APIs.

    Supports:
    - Authentication via Basic, Bearer or API key headers
    - Offset, page-number and cursor pagination
    - JSON path extraction for nested record arrays
    - Client-side WHERE / ORDER BY / projection
    """

    source_kind = SourceKind.REST_API

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._columns: list[ColumnInfo] | None = None

    def disconnect(self) -> None:
        self._columns = None
        super().disconnect()

    def test_connection(self) -> ConnectionTestResult:
        """Fetch a single record from the endpoint. Never raises."""
        start_time = time.time()
        try:
            self.connect()
            page = self._fetch_page(limit=1, offset=0, page=1)
            latency_ms = (time.time() - start_time) * 1000
            return ConnectionTestResult(
                success=True,
                message=f"Successfully connected to API: {self.config.base_url}",
                latency_ms=round(latency_ms, 2),
                server_info=(
                    f"Endpoint: {self.config.endpoint}, "
                    f"sample records: {len(page.records)}"
                ),
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

    def _fetch_page(
        self,
        limit: int | None = None,
        offset: int | None = None,
        page: int | None = None,
        cursor: str | None = None,
    ) -> RestPage:
        """Request one page using the configured pagination parameters.

        Args:
            limit: Page size sent in the limit parameter
            offset: Start offset (offset pagination)
            page: 1-based page number (page pagination)
            cursor: Opaque cursor from the previous page (cursor pagination)

        Returns:
            The page's records, total (when total_path is set) and next cursor
        """
        pagination = self.config.pagination
        params: dict[str, Any] = {}
        data_path = None
        total_path = None
        cursor_path = DEFAULT_CURSOR_PATH

        if pagination is not None:
            data_path = pagination.data_path
            total_path = pagination.total_path
            cursor_path = pagination.cursor_path or DEFAULT_CURSOR_PATH
            if limit is not None:
                params[pagination.limit_param or "limit"] = limit
            if pagination.type == PaginationType.OFFSET:
                params[pagination.page_param or "offset"] = offset or 0
            elif pagination.type == PaginationType.PAGE:
                params[pagination.page_param or "page"] = page or 1
            elif pagination.type == PaginationType.CURSOR and cursor:
                params[pagination.cursor_param or "cursor"] = cursor

        self._log(
            "debug", f"{self.config.method} {self.config.endpoint} params={params}"
        )
        body = self._get_json(self.config.endpoint, params=params)

        return RestPage(
            records=extract_records(body, data_path),
            total=_read_total(body, total_path),
            next_cursor=_read_cursor(body, cursor_path),
        )

    def _fetch_window(
        self, offset: int, limit: int | None
    ) -> tuple[list[dict[str, Any]], int | None, str | None]:
        """Fetch raw records for ``[offset, offset + limit)``.

        Returns:
            (records, total or None, next cursor or None)
        """
        pagination = self.config.pagination

        if pagination is None:
            records = self._fetch_page().records
            end = None if limit is None else offset + limit
            return records[offset:end], len(records), None

        page_size = limit if limit is not None else pagination.page_size

        if pagination.type == PaginationType.OFFSET:
            result = self._fetch_page(limit=page_size, offset=offset)
            return result.records, result.total, None

        if pagination.type == PaginationType.PAGE:
            page_size = max(page_size, 1)
            result = self._fetch_page(limit=page_size, page=offset // page_size + 1)
            # Drop the part of the page before an unaligned offset
            return result.records[offset % page_size :], result.total, None

        # Cursor APIs cannot jump, so walk pages until the window is covered
        wanted = None if limit is None else offset + limit
        accumulated: list[dict[str, Any]] = []
        cursor: str | None = None
        total: int | None = None
        requests = 0
        while True:
            result = self._fetch_page(limit=pagination.page_size, cursor=cursor)
            requests += 1
            accumulated.extend(result.records)
            total = result.total if result.total is not None else total
            cursor = result.next_cursor
            if not result.records or not cursor:
                break
            if wanted is not None and len(accumulated) >= wanted:
                break

        self._log(
            "debug",
            f"Cursor pagination fetched {len(accumulated)} records "
            f"in {requests} requests",
        )
        return accumulated[offset:wanted], total, cursor

    def query(self, options: QueryOptions) -> ConnectorResult:
        """Fetch the requested window and evaluate the query client-side.

        Without pagination the whole response is filtered before slicing, so
        the total is the number of matching records. With remote pagination
        filtering applies to the fetched window and the total is the one the
        API reports through ``total_path``.
        """
        self._require_connected()
        start_time = time.time()
        offset = options.offset or 0

        if self.config.pagination is None:
            records = self._fetch_page().records
            rows, total = apply_query(records, options)
            return ConnectorResult.paged(
                rows,
                self._result_columns(records),
                offset,
                total,
                execution_time_ms=round((time.time() - start_time) * 1000, 2),
            )

        window, total, next_cursor = self._fetch_window(offset, options.limit)
        rows = filter_rows(window, options.where)
        rows = project(sort_rows(rows, options.order_by), options.columns)

        end = offset + len(window)
        has_more = total is not None and end < total
        return ConnectorResult(
            rows=rows,
            columns=self._result_columns(window),
            total_row_count=total,
            has_more=has_more,
            next_offset=end if has_more else None,
            next_cursor=next_cursor,
            execution_time_ms=round((time.time() - start_time) * 1000, 2),
        )

    def _result_columns(self, records: list[dict[str, Any]]) -> list[ColumnInfo]:
        if self._columns is not None:
            return self._columns
        return infer_api_columns(records)

    def iter_batches(
        self, options: QueryOptions, batch_size: int
    ) -> Iterator[list[dict[str, Any]]]:
        """Yield filtered batches without needing a total.

        Pages are requested until one comes back short or empty; cursor
        pagination follows the cursor chain once instead of re-walking it
        for every batch. ORDER BY applies within each batch.
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._require_connected()
        pagination = self.config.pagination

        def finish(records: list[dict[str, Any]]) -> list[dict[str, Any]]:
            rows = filter_rows(records, options.where)
            return project(sort_rows(rows, options.order_by), options.columns)

        if pagination is None:
            rows, _ = apply_query(
                self._fetch_page().records,
                options.model_copy(update={"limit": None}),
            )
            for start in range(0, len(rows), batch_size):
                yield rows[start : start + batch_size]
            return

        if pagination.type == PaginationType.CURSOR:
            buffer: list[dict[str, Any]] = []
            skip = options.offset or 0
            cursor: str | None = None
            while True:
                result = self._fetch_page(limit=pagination.page_size, cursor=cursor)
                records = result.records
                if skip:
                    dropped = min(skip, len(records))
                    records = records[dropped:]
                    skip -= dropped
                buffer.extend(records)
                while len(buffer) >= batch_size:
                    batch = finish(buffer[:batch_size])
                    buffer = buffer[batch_size:]
                    if batch:
                        yield batch
                cursor = result.next_cursor
                if not result.records or not cursor:
                    break
            if buffer:
                batch = finish(buffer)
                if batch:
                    yield batch
            return

        offset = options.offset or 0
        while True:
            window, _, _ = self._fetch_window(offset, batch_size)
            if not window:
                break
            batch = finish(window)
            if batch:
                yield batch
            if len(window) < batch_size:
                break
            offset += len(window)

    def get_row_count(self, options: QueryOptions) -> int:
        """Count rows; without a reported total the endpoint is fully walked."""
        self._require_connected()
        if options.where is None and self.config.pagination is not None:
            _, total, _ = self._fetch_window(0, 1)
            if total is not None:
                return total
        return sum(len(batch) for batch in self.iter_batches(options, 500))

    def get_tables(self) -> list[TableInfo]:
        """Describe the endpoint as a single collection, caching its columns."""
        self._require_connected()
        page = self._fetch_page(limit=INFERENCE_SAMPLE_SIZE, offset=0, page=1)
        self._columns = infer_api_columns(page.records)
        return [
            TableInfo(
                name=self.config.endpoint,
                kind=TableKind.COLLECTION,
                estimated_row_count=page.total,
                columns=self._columns,
            )
        ]

    def get_columns(self, table: str | None = None) -> list[ColumnInfo]:
        """Cached columns, discovered from a sample page on first use."""
        self._require_connected()
        if self._columns is None:
            self.get_tables()
        return list(self._columns or [])
