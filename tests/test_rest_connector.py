"""Tests for the REST API connector using an in-process mock transport."""

import base64

import httpx
import pytest

from crm_import.connectors.api import RestApiConnector, extract_records
from crm_import.connectors.base import (
    ConnectionFailedError,
    NotConnectedError,
    QueryFailedError,
)
from crm_import.connectors.models import MappedType, QueryOptions, TableKind

CONTACTS = [
    {
        "id": i,
        "name": f"Contact {i}",
        "status": "LEAD" if i % 2 else "CUSTOMER",
        "owner": {"email": f"owner{i % 3}@example.com"},
    }
    for i in range(250)
]


class RecordingHandler:
    """Serves CONTACTS and records every request it receives."""

    def __init__(self, responder):
        self.responder = responder
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)


def cursor_responder(request: httpx.Request) -> httpx.Response:
    start = int(request.url.params.get("cursor", "0"))
    limit = int(request.url.params.get("limit", "100"))
    end = start + limit
    return httpx.Response(
        200,
        json={
            "data": CONTACTS[start:end],
            "next_cursor": str(end) if end < len(CONTACTS) else None,
        },
    )


def offset_responder(request: httpx.Request) -> httpx.Response:
    start = int(request.url.params.get("offset", "0"))
    limit = int(request.url.params.get("limit", "100"))
    return httpx.Response(
        200,
        json={"items": CONTACTS[start : start + limit], "meta": {"total": 250}},
    )


def page_responder(request: httpx.Request) -> httpx.Response:
    page = int(request.url.params.get("page", "1"))
    size = int(request.url.params.get("per_page", "100"))
    start = (page - 1) * size
    return httpx.Response(200, json={"results": CONTACTS[start : start + size]})


def make_connector(handler, pagination=None, **overrides) -> RestApiConnector:
    config = {
        "base_url": "https://crm.example.com/api",
        "endpoint": "/contacts",
        "pagination": pagination,
    }
    config.update(overrides)
    connector = RestApiConnector(
        config,
        transport=httpx.MockTransport(handler),
        retry_delay=0,
    )
    return connector


class TestExtractRecords:
    """Tests for locating the record array in a response body."""

    def test_data_path(self) -> None:
        body = {"payload": {"rows": [{"a": 1}]}}
        assert extract_records(body, "payload.rows") == [{"a": 1}]

    def test_missing_data_path_is_empty(self) -> None:
        assert extract_records({"x": 1}, "payload.rows") == []

    def test_auto_detect(self) -> None:
        assert extract_records([{"a": 1}]) == [{"a": 1}]
        assert extract_records({"results": [{"a": 1}]}) == [{"a": 1}]
        assert extract_records({"a": 1}) == [{"a": 1}]

    def test_scalars_wrapped(self) -> None:
        assert extract_records([1, "x"]) == [{"value": 1}, {"value": "x"}]


class TestCursorPagination:
    """Tests for cursor-paginated endpoints."""

    @pytest.fixture
    def handler(self) -> RecordingHandler:
        return RecordingHandler(cursor_responder)

    @pytest.fixture
    def connector(self, handler) -> RestApiConnector:
        connector = make_connector(
            handler,
            {"type": "cursor", "data_path": "data", "page_size": 100},
        )
        connector.connect()
        yield connector
        connector.disconnect()

    def test_cursor_scenario(self, connector, handler) -> None:
        """offset 150 / limit 50 walks two pages and returns records 150-199."""
        result = connector.query(
            QueryOptions(table="contacts", offset=150, limit=50)
        )
        assert len(handler.requests) >= 2
        assert len(result.rows) == 50
        assert result.rows[0]["id"] == 150
        assert result.rows[-1]["id"] == 199
        assert result.next_cursor == "200"

    def test_cursor_is_sent(self, connector, handler) -> None:
        connector.query(QueryOptions(table="contacts", offset=150, limit=50))
        assert "cursor" not in handler.requests[0].url.params
        assert handler.requests[1].url.params["cursor"] == "100"

    def test_iter_batches_follows_chain_once(self, connector, handler) -> None:
        batches = list(
            connector.iter_batches(QueryOptions(table="contacts", offset=20), 100)
        )
        assert sum(len(batch) for batch in batches) == 230
        assert batches[0][0]["id"] == 20
        assert len(handler.requests) == 3

    def test_stream_with_filter(self, connector) -> None:
        received = []
        delivered = connector.stream(
            QueryOptions(table="contacts", where="status = 'LEAD'"),
            batch_size=50,
            on_batch=received.extend,
        )
        assert delivered == 125
        assert all(row["status"] == "LEAD" for row in received)

    def test_row_count_walks_endpoint(self, connector) -> None:
        assert connector.get_row_count(QueryOptions(table="contacts")) == 250

    def test_tables_and_columns(self, connector) -> None:
        (table,) = connector.get_tables()
        assert table.name == "/contacts"
        assert table.kind == TableKind.COLLECTION

        columns = {column.name: column for column in connector.get_columns()}
        assert columns["id"].mapped_type == MappedType.NUMBER
        assert columns["id"].native_type == "api_number"
        assert columns["owner.email"].mapped_type == MappedType.STRING


class TestOffsetAndPagePagination:
    """Tests for offset and page-number pagination."""

    def test_offset_window_and_total(self) -> None:
        handler = RecordingHandler(offset_responder)
        connector = make_connector(
            handler,
            {"type": "offset", "data_path": "items", "total_path": "meta.total"},
        )
        connector.connect()

        result = connector.query(QueryOptions(table="contacts", offset=40, limit=10))
        assert [row["id"] for row in result.rows] == list(range(40, 50))
        assert result.total_row_count == 250
        assert result.has_more is True
        assert result.next_offset == 50
        assert handler.requests[0].url.params["offset"] == "40"
        assert handler.requests[0].url.params["limit"] == "10"

    def test_offset_last_page_has_no_more(self) -> None:
        connector = make_connector(
            RecordingHandler(offset_responder),
            {"type": "offset", "data_path": "items", "total_path": "meta.total"},
        )
        connector.connect()
        result = connector.query(QueryOptions(table="contacts", offset=240, limit=50))
        assert len(result.rows) == 10
        assert result.has_more is False
        assert result.next_offset is None

    def test_offset_row_count_uses_reported_total(self) -> None:
        handler = RecordingHandler(offset_responder)
        connector = make_connector(
            handler,
            {"type": "offset", "data_path": "items", "total_path": "meta.total"},
        )
        connector.connect()
        assert connector.get_row_count(QueryOptions(table="contacts")) == 250
        assert len(handler.requests) == 1

    def test_page_number_from_offset(self) -> None:
        handler = RecordingHandler(page_responder)
        connector = make_connector(
            handler, {"type": "page", "page_param": "page", "limit_param": "per_page"}
        )
        connector.connect()

        result = connector.query(QueryOptions(table="contacts", offset=20, limit=10))
        assert handler.requests[0].url.params["page"] == "3"
        assert handler.requests[0].url.params["per_page"] == "10"
        assert [row["id"] for row in result.rows] == list(range(20, 30))
        assert result.has_more is False

    def test_page_batches_stop_on_short_page(self) -> None:
        handler = RecordingHandler(page_responder)
        connector = make_connector(
            handler, {"type": "page", "page_param": "page", "limit_param": "per_page"}
        )
        connector.connect()
        batches = list(connector.iter_batches(QueryOptions(table="contacts"), 100))
        assert [len(batch) for batch in batches] == [100, 100, 50]
        assert len(handler.requests) == 3


class TestUnpaginated:
    """Tests for endpoints returning every record in one response."""

    @pytest.fixture
    def connector(self) -> RestApiConnector:
        connector = make_connector(
            RecordingHandler(lambda request: httpx.Response(200, json=CONTACTS[:5]))
        )
        connector.connect()
        return connector

    def test_client_side_query(self, connector) -> None:
        result = connector.query(
            QueryOptions(
                table="contacts",
                where="status = 'LEAD'",
                order_by="id DESC",
                limit=1,
                columns=["id", "owner.email"],
            )
        )
        assert result.rows == [{"id": 3, "owner.email": "owner0@example.com"}]
        assert result.total_row_count == 2
        assert result.has_more is True

    def test_row_count_with_filter(self, connector) -> None:
        count = connector.get_row_count(
            QueryOptions(table="contacts", where="status = 'CUSTOMER'")
        )
        assert count == 3

    def test_numbers_sent_as_strings(self) -> None:
        """Amounts serialized as JSON strings still filter and sort numerically."""
        deals = [
            {"id": 1, "amount": "950.00"},
            {"id": 2, "amount": "12000.50"},
            {"id": 3, "amount": "80"},
        ]
        connector = make_connector(
            RecordingHandler(lambda request: httpx.Response(200, json=deals))
        )
        connector.connect()

        result = connector.query(
            QueryOptions(table="deals", where="amount >= 100", order_by="amount DESC")
        )
        assert [row["id"] for row in result.rows] == [2, 1]


class TestAuthentication:
    """Tests for authentication header injection."""

    def _sent_headers(self, **config) -> httpx.Headers:
        handler = RecordingHandler(lambda request: httpx.Response(200, json=[]))
        connector = make_connector(handler, **config)
        connector.connect()
        connector.query(QueryOptions(table="contacts"))
        return handler.requests[0].headers

    def test_basic(self) -> None:
        headers = self._sent_headers(
            auth_type="basic", auth_config={"username": "u", "password": "p"}
        )
        expected = base64.b64encode(b"u:p").decode()
        assert headers["authorization"] == f"Basic {expected}"

    def test_bearer(self) -> None:
        headers = self._sent_headers(auth_type="bearer", auth_config={"token": "t0k"})
        assert headers["authorization"] == "Bearer t0k"

    def test_api_key_custom_header(self) -> None:
        headers = self._sent_headers(
            auth_type="api_key",
            auth_config={"api_key": "secret", "api_key_header": "X-Token"},
            headers={"Accept": "application/json"},
        )
        assert headers["x-token"] == "secret"
        assert headers["accept"] == "application/json"
        assert "authorization" not in headers

    def test_none(self) -> None:
        headers = self._sent_headers()
        assert "authorization" not in headers


class TestRetriesAndErrors:
    """Tests for HTTP failure handling."""

    def test_client_error_is_not_retried(self) -> None:
        handler = RecordingHandler(lambda request: httpx.Response(404, text="nope"))
        connector = make_connector(handler)
        connector.connect()
        with pytest.raises(QueryFailedError, match="HTTP 404"):
            connector.query(QueryOptions(table="contacts"))
        assert len(handler.requests) == 1

    def test_server_error_is_retried(self) -> None:
        responses = iter(
            [
                httpx.Response(503),
                httpx.Response(502),
                httpx.Response(200, json=[{"id": 1}]),
            ]
        )
        handler = RecordingHandler(lambda request: next(responses))
        connector = make_connector(handler)
        connector.connect()
        result = connector.query(QueryOptions(table="contacts"))
        assert result.rows == [{"id": 1}]
        assert len(handler.requests) == 3

    def test_retries_exhausted(self) -> None:
        handler = RecordingHandler(lambda request: httpx.Response(500))
        connector = RestApiConnector(
            {"base_url": "https://crm.example.com", "endpoint": "/contacts"},
            transport=httpx.MockTransport(handler),
            max_retries=1,
            retry_delay=0,
        )
        connector.connect()
        with pytest.raises(QueryFailedError, match="after 2 attempts"):
            connector.query(QueryOptions(table="contacts"))
        assert len(handler.requests) == 2

    def test_rate_limit_honors_retry_after(self, monkeypatch) -> None:
        sleeps = []
        monkeypatch.setattr(
            "crm_import.connectors.api.base_api.time.sleep", sleeps.append
        )
        responses = iter(
            [
                httpx.Response(429, headers={"Retry-After": "7"}),
                httpx.Response(200, json=[]),
            ]
        )
        connector = make_connector(RecordingHandler(lambda request: next(responses)))
        connector.connect()
        connector.query(QueryOptions(table="contacts"))
        assert sleeps == [7.0]

    def test_connect_error_is_retried(self) -> None:
        def responder(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        handler = RecordingHandler(responder)
        connector = make_connector(handler)
        connector.connect()
        with pytest.raises(QueryFailedError):
            connector.query(QueryOptions(table="contacts"))
        assert len(handler.requests) == 4

    def test_invalid_json(self) -> None:
        connector = make_connector(
            RecordingHandler(lambda request: httpx.Response(200, text="<html>"))
        )
        connector.connect()
        with pytest.raises(QueryFailedError, match="not valid JSON"):
            connector.query(QueryOptions(table="contacts"))


class TestLifecycle:
    """Tests for connect, disconnect and connection tests."""

    def test_query_requires_connect(self) -> None:
        connector = make_connector(RecordingHandler(cursor_responder))
        with pytest.raises(NotConnectedError):
            connector.query(QueryOptions(table="contacts"))

    def test_missing_endpoint(self) -> None:
        connector = make_connector(RecordingHandler(cursor_responder), endpoint="")
        with pytest.raises(ConnectionFailedError, match="endpoint is required"):
            connector.connect()

    def test_disconnect_is_idempotent(self) -> None:
        connector = make_connector(RecordingHandler(cursor_responder))
        connector.connect()
        connector.disconnect()
        connector.disconnect()
        assert connector.is_connected is False

    def test_connection_test_success(self) -> None:
        handler = RecordingHandler(cursor_responder)
        connector = make_connector(handler, {"type": "cursor", "data_path": "data"})
        result = connector.test_connection()
        assert result.success is True
        assert result.latency_ms is not None
        assert handler.requests[0].url.params["limit"] == "1"
        assert connector.is_connected is False

    def test_connection_test_failure_does_not_raise(self) -> None:
        connector = RestApiConnector(
            {"base_url": "https://crm.example.com", "endpoint": "/contacts"},
            transport=httpx.MockTransport(lambda request: httpx.Response(401)),
        )
        result = connector.test_connection()
        assert result.success is False
        assert "401" in result.error
