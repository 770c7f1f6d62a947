"""Tests for the CSV, JSON and XML file connectors."""

import pytest

from crm_import.connectors.base import (
    ConnectionFailedError,
    InvalidQueryError,
    NotConnectedError,
)
from crm_import.connectors.file import CsvConnector, JsonConnector, XmlConnector
from crm_import.connectors.models import MappedType, QueryOptions, TableKind


def _columns_by_name(connector) -> dict:
    return {column.name: column for column in connector.get_columns()}


class TestCsvConnector:
    """Tests for delimited text parsing and querying."""

    def test_csv_scenario(self) -> None:
        """Two rows; age is a nullable number because Grace has no age."""
        connector = CsvConnector()
        connector.load_from_buffer(b"name,age\nAda,30\nGrace,\n", "people.csv")

        result = connector.query(QueryOptions(table="people.csv"))
        assert len(result.rows) == 2
        assert result.rows[1] == {"name": "Grace", "age": None}

        age = _columns_by_name(connector)["age"]
        assert age.mapped_type == MappedType.NUMBER
        assert age.nullable is True

    def test_inferred_types(self, sample_csv) -> None:
        connector = CsvConnector()
        connector.load_from_buffer(sample_csv, "contacts.csv")
        columns = _columns_by_name(connector)

        assert columns["name"].mapped_type == MappedType.STRING
        assert columns["score"].mapped_type == MappedType.NUMBER
        assert columns["active"].mapped_type == MappedType.BOOLEAN
        assert columns["signed_up"].mapped_type == MappedType.DATE
        assert columns["signed_up"].native_type == "csv_date"
        assert columns["email"].nullable is True

    def test_custom_delimiter_without_header(self) -> None:
        connector = CsvConnector({"delimiter": ";", "has_header": False})
        connector.load_from_buffer(b"a;1\nb;2;extra\n", "data.csv")

        rows = connector.query(QueryOptions(table="data.csv")).rows
        assert rows == [
            {"column_1": "a", "column_2": 1, "column_3": None},
            {"column_1": "b", "column_2": 2, "column_3": "extra"},
        ]

    def test_duplicate_headers_and_bom(self) -> None:
        connector = CsvConnector()
        connector.load_from_buffer(b"\xef\xbb\xbfid,name,name\n1,a,b\n", "d.csv")
        assert [c.name for c in connector.get_columns()] == ["id", "name", "name_2"]

    def test_where_scenario(self, sample_csv) -> None:
        """Both clauses apply; a malformed fragment is ignored."""
        connector = CsvConnector()
        connector.load_from_buffer(sample_csv, "contacts.csv")

        result = connector.query(
            QueryOptions(table="contacts", where="status = 'LEAD' AND score > 10")
        )
        assert [row["name"] for row in result.rows] == ["Ada Lovelace", "Alan Turing"]
        assert result.total_row_count == 2

        lenient = connector.query(
            QueryOptions(table="contacts", where="status = 'LEAD' AND score")
        )
        assert len(lenient.rows) == 3

    def test_dates_are_cast_for_filtering(self) -> None:
        """US-style dates compare and sort as dates, not text."""
        connector = CsvConnector()
        connector.load_from_buffer(
            b"name,joined\nA,12/31/2023\nB,02/01/2024\nC,03/15/2023\n", "m.csv"
        )
        assert _columns_by_name(connector)["joined"].mapped_type == MappedType.DATE

        later = connector.query(QueryOptions(table="m", where="joined > '06/01/2023'"))
        assert [row["name"] for row in later.rows] == ["A", "B"]

        ordered = connector.query(QueryOptions(table="m", order_by="joined"))
        assert [row["name"] for row in ordered.rows] == ["C", "A", "B"]

    def test_parse_error_is_connection_failed(self) -> None:
        connector = CsvConnector()
        with pytest.raises(ConnectionFailedError, match="CSV_FILE"):
            connector.load_from_buffer(b'a,b\n"unterminated,1\n', "bad.csv")
        assert connector.is_connected is False

    def test_failed_load_drops_previous_dataset(self, sample_csv) -> None:
        """No partial or stale dataset survives a failed load."""
        connector = CsvConnector()
        connector.load_from_buffer(sample_csv, "contacts.csv")
        with pytest.raises(ConnectionFailedError):
            connector.load_from_buffer(b"\xff\xfe\xfa", "bad.csv")
        with pytest.raises(NotConnectedError):
            connector.query(QueryOptions(table="contacts"))

    def test_load_from_path(self, tmp_path, sample_csv) -> None:
        path = tmp_path / "contacts.csv"
        path.write_bytes(sample_csv)
        connector = CsvConnector()
        connector.load_from_path(path)
        assert connector.filename == "contacts.csv"
        assert connector.get_row_count(QueryOptions(table="contacts")) == 4

    def test_missing_path(self, tmp_path) -> None:
        with pytest.raises(ConnectionFailedError):
            CsvConnector().load_from_path(tmp_path / "missing.csv")


class TestFileConnectorLifecycle:
    """Tests for load/connect/disconnect semantics shared by file connectors."""

    def test_query_before_load(self) -> None:
        connector = CsvConnector()
        with pytest.raises(NotConnectedError, match="Load a file first"):
            connector.connect()
        with pytest.raises(NotConnectedError):
            connector.query(QueryOptions(table="x"))

    def test_disconnect_releases_data(self, sample_csv) -> None:
        connector = CsvConnector()
        connector.load_from_buffer(sample_csv, "contacts.csv")
        connector.disconnect()
        assert connector.is_connected is False
        with pytest.raises(NotConnectedError):
            connector.get_columns()

    def test_test_connection_keeps_data(self, sample_csv) -> None:
        connector = CsvConnector()
        assert connector.test_connection().success is False

        connector.load_from_buffer(sample_csv, "contacts.csv")
        assert connector.test_connection().success is True
        assert connector.is_connected is True

    def test_tables(self, sample_csv) -> None:
        connector = CsvConnector()
        connector.load_from_buffer(sample_csv, "contacts.csv")
        (table,) = connector.get_tables()
        assert table.name == "contacts.csv"
        assert table.kind == TableKind.FILE
        assert table.estimated_row_count == 4


class TestPaging:
    """Tests for limit, has_more and streaming."""

    @pytest.fixture
    def connector(self, sample_csv) -> CsvConnector:
        connector = CsvConnector()
        connector.load_from_buffer(sample_csv, "contacts.csv")
        return connector

    @pytest.mark.parametrize("offset,limit", [(0, 1), (0, 3), (2, 2), (3, 5), (4, 1)])
    def test_limit_and_has_more(self, connector, offset, limit) -> None:
        """Never more than limit rows; has_more iff rows remain past the page."""
        result = connector.query(
            QueryOptions(table="contacts", offset=offset, limit=limit)
        )
        assert len(result.rows) <= limit
        assert result.total_row_count == 4
        assert result.has_more == (offset + len(result.rows) < 4)
        if result.has_more:
            assert result.next_offset == offset + len(result.rows)
        else:
            assert result.next_offset is None

    def test_order_and_projection(self, connector) -> None:
        result = connector.query(
            QueryOptions(table="contacts", order_by="score DESC", columns=["name"])
        )
        assert result.rows[0] == {"name": "Ada Lovelace"}

    def test_preview(self, connector) -> None:
        result = connector.preview(QueryOptions(table="contacts", offset=3), 2)
        assert len(result.rows) == 2
        assert result.rows[0]["name"] == "Ada Lovelace"

    def test_stream_delivers_all_rows_in_order(self, connector) -> None:
        batches = []
        delivered = connector.stream(
            QueryOptions(table="contacts", where="status = 'LEAD'"),
            batch_size=2,
            on_batch=batches.append,
        )
        assert delivered == 3
        assert [len(batch) for batch in batches] == [2, 1]
        assert batches[1][0]["name"] == "Katherine Johnson"

    def test_invalid_batch_size(self, connector) -> None:
        with pytest.raises(ValueError):
            list(connector.iter_batches(QueryOptions(table="contacts"), 0))


class TestJsonConnector:
    """Tests for JSON documents."""

    def test_json_scenario(self) -> None:
        """The array under "results" is found; createdAt is a date."""
        connector = JsonConnector()
        connector.load_from_buffer(
            b'{"results":[{"id":1,"createdAt":"2024-01-01"}]}', "export.json"
        )
        result = connector.query(QueryOptions(table="export.json"))
        assert result.rows == [{"id": 1, "createdAt": "2024-01-01"}]

        columns = _columns_by_name(connector)
        assert columns["createdAt"].mapped_type == MappedType.DATE
        assert columns["id"].mapped_type == MappedType.NUMBER

    def test_nested_objects_flattened(self, sample_json) -> None:
        connector = JsonConnector()
        connector.load_from_buffer(sample_json, "companies.json")
        columns = _columns_by_name(connector)

        assert columns["address.city"].mapped_type == MappedType.STRING
        assert columns["address.zip"].nullable is True
        assert columns["tags"].mapped_type == MappedType.JSON

        result = connector.query(
            QueryOptions(table="companies", where="address.city = 'Paris'")
        )
        assert [row["name"] for row in result.rows] == ["Globex"]

    def test_root_path(self, sample_json) -> None:
        connector = JsonConnector({"root_path": "data"})
        connector.load_from_buffer(sample_json, "companies.json")
        assert connector.get_row_count(QueryOptions(table="companies")) == 3

    def test_root_path_not_an_array(self, sample_json) -> None:
        connector = JsonConnector({"root_path": "meta"})
        with pytest.raises(InvalidQueryError, match="array"):
            connector.load_from_buffer(sample_json, "companies.json")

    def test_root_path_missing(self, sample_json) -> None:
        connector = JsonConnector({"root_path": "nope.items"})
        with pytest.raises(InvalidQueryError, match="not found"):
            connector.load_from_buffer(sample_json, "companies.json")

    def test_single_object_is_one_record(self) -> None:
        connector = JsonConnector()
        connector.load_from_buffer(b'{"id": 7, "name": "Solo"}', "one.json")
        assert connector.query(QueryOptions(table="one")).rows == [
            {"id": 7, "name": "Solo"}
        ]

    def test_invalid_json(self) -> None:
        with pytest.raises(ConnectionFailedError, match="JSON_FILE"):
            JsonConnector().load_from_buffer(b"{not json", "bad.json")


class TestXmlConnector:
    """Tests for XML documents."""

    def test_repeated_elements_become_records(self, sample_xml) -> None:
        connector = XmlConnector()
        connector.load_from_buffer(sample_xml, "contacts.xml")

        rows = connector.query(QueryOptions(table="contacts")).rows
        assert rows[0] == {
            "id": "1",
            "name": "Ada",
            "score": "42",
            "deal": "1200.50",
            "deal.currency": "EUR",
        }

        columns = _columns_by_name(connector)
        assert columns["score"].mapped_type == MappedType.NUMBER
        assert columns["score"].native_type == "xml_number"
        assert columns["deal.currency"].mapped_type == MappedType.STRING

    def test_root_path(self, sample_xml) -> None:
        connector = XmlConnector({"root_path": "export.contacts.contact"})
        connector.load_from_buffer(sample_xml, "contacts.xml")
        assert connector.get_row_count(QueryOptions(table="contacts")) == 2

    def test_entities_are_not_expanded(self) -> None:
        document = (
            b'<?xml version="1.0"?>'
            b'<!DOCTYPE r [<!ENTITY secret SYSTEM "file:///etc/passwd">]>'
            b"<r><item><v>&secret;</v></item><item><v>x</v></item></r>"
        )
        connector = XmlConnector()
        connector.load_from_buffer(document, "evil.xml")
        rows = connector.query(QueryOptions(table="r")).rows
        assert all("root:" not in str(row.get("v")) for row in rows)

    def test_malformed_xml(self) -> None:
        with pytest.raises(ConnectionFailedError, match="XML_FILE"):
            XmlConnector().load_from_buffer(b"<a><b></a>", "bad.xml")

    def test_where_on_numeric_text(self) -> None:
        """XML values are text, yet numeric filters and sorting still apply."""
        document = (
            b"<contacts>"
            b"<contact><name>Ada</name><status>LEAD</status><score>42</score>"
            b"</contact>"
            b"<contact><name>Grace</name><status>CUSTOMER</status>"
            b"<score>80</score></contact>"
            b"<contact><name>Kat</name><status>LEAD</status><score>5</score>"
            b"</contact>"
            b"</contacts>"
        )
        connector = XmlConnector()
        connector.load_from_buffer(document, "contacts.xml")

        result = connector.query(
            QueryOptions(table="contacts", where="status = 'LEAD' AND score > 10")
        )
        assert [row["name"] for row in result.rows] == ["Ada"]

        ordered = connector.query(QueryOptions(table="contacts", order_by="score"))
        assert [row["name"] for row in ordered.rows] == ["Kat", "Ada", "Grace"]
