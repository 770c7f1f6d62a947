"""Pydantic models for data source connectors.

Defines connection configurations per source kind, schema descriptors,
query options, result envelopes, and the field-mapping/progress records
consumed by the import pipeline.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..config import HTTP_TIMEOUT_SECONDS

# Sample values kept per column for previews
MAX_SAMPLE_VALUES = 5


class SourceKind(str, Enum):
    """Supported import source kinds."""

    CSV_FILE = "CSV_FILE"
    JSON_FILE = "JSON_FILE"
    XML_FILE = "XML_FILE"
    REST_API = "REST_API"
    POSTGRESQL_DB = "POSTGRESQL_DB"
    MYSQL_DB = "MYSQL_DB"
    ORACLE_DB = "ORACLE_DB"
    MSSQL_DB = "MSSQL_DB"


class SourceCategory(str, Enum):
    """Broad families of source kinds."""

    FILE = "file"
    API = "api"
    DATABASE = "database"


class MappedType(str, Enum):
    """Normalized column type every native type is reduced to."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    JSON = "json"
    UNKNOWN = "unknown"


class TableKind(str, Enum):
    """Kind of object exposed by a connector's schema discovery."""

    TABLE = "table"
    VIEW = "view"
    COLLECTION = "collection"
    FILE = "file"


class PaginationType(str, Enum):
    """Pagination strategies understood by the REST connector."""

    OFFSET = "offset"
    PAGE = "page"
    CURSOR = "cursor"


class AuthType(str, Enum):
    """REST authentication schemes."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"
    API_KEY = "api_key"


# --- Connection configs ---


class ConnectionConfig(BaseModel):
    """Base for all connection config variants.

    Variants are immutable once built and reject fields that belong to
    another source kind.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")


class FileConnectionConfig(ConnectionConfig):
    """Configuration for CSV, JSON and XML file connectors."""

    delimiter: str = ","
    encoding: str = "utf-8"
    has_header: bool = True
    root_path: str | None = None  # Dot path to the record array (JSON/XML)
    date_format: str | None = None


class PostgreSQLConnectionConfig(ConnectionConfig):
    """Configuration for PostgreSQL."""

    host: str
    port: int = Field(default=5432, ge=1, le=65535)
    database: str
    user: str
    password: str = Field(repr=False)
    schema_name: str = "public"
    ssl_mode: str | None = None  # disable, allow, prefer, require, ...


class MySQLConnectionConfig(ConnectionConfig):
    """Configuration for MySQL / MariaDB."""

    host: str
    port: int = Field(default=3306, ge=1, le=65535)
    database: str
    user: str
    password: str = Field(repr=False)
    ssl: bool = False
    charset: str = "utf8mb4"


class OracleConnectionConfig(ConnectionConfig):
    """Configuration for Oracle.

    Either ``connect_string`` (a full DSN / Easy Connect string) or
    ``host`` plus one of ``service_name``/``sid`` identifies the instance.
    """

    host: str | None = None
    port: int = Field(default=1521, ge=1, le=65535)
    service_name: str | None = None
    sid: str | None = None
    user: str
    password: str = Field(repr=False)
    connect_string: str | None = None


class MSSQLConnectionConfig(ConnectionConfig):
    """Configuration for SQL Server. Declared but no connector is registered."""

    host: str
    port: int = Field(default=1433, ge=1, le=65535)
    database: str
    user: str
    password: str = Field(repr=False)
    encrypt: bool = False
    trust_server_certificate: bool = False


class RestAuthConfig(ConnectionConfig):
    """Credentials for REST authentication."""

    username: str | None = None
    password: str | None = Field(default=None, repr=False)
    token: str | None = Field(default=None, repr=False)
    api_key: str | None = Field(default=None, repr=False)
    api_key_header: str = "X-API-Key"


class PaginationConfig(ConnectionConfig):
    """Describes how a REST endpoint pages its results."""

    type: PaginationType
    page_param: str | None = None
    limit_param: str | None = None
    cursor_param: str | None = None
    cursor_path: str | None = None  # Dot path to the next cursor in the body
    total_path: str | None = None  # Dot path to the total count in the body
    data_path: str | None = None  # Dot path to the record array in the body
    page_size: int = Field(default=100, ge=1)


class RestApiConnectionConfig(ConnectionConfig):
    """Configuration for REST API sources."""

    base_url: str
    endpoint: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    auth_type: AuthType = AuthType.NONE
    auth_config: RestAuthConfig | None = None
    pagination: PaginationConfig | None = None
    timeout: float = HTTP_TIMEOUT_SECONDS
    verify_ssl: bool = True

    @field_validator("method")
    @classmethod
    def validate_method(cls, v: str) -> str:
        """Only GET and POST are supported for data retrieval."""
        v = v.upper()
        if v not in ("GET", "POST"):
            raise ValueError("method must be GET or POST")
        return v


# --- Schema descriptors ---


class ColumnInfo(BaseModel):
    """Column/field information from a data source."""

    name: str
    native_type: str
    mapped_type: MappedType
    nullable: bool = True
    is_primary_key: bool | None = None
    max_length: int | None = None
    precision: int | None = None
    scale: int | None = None
    sample_values: list[Any] = Field(default_factory=list)

    @field_validator("sample_values")
    @classmethod
    def cap_sample_values(cls, v: list[Any]) -> list[Any]:
        """Drop null entries and keep at most five samples."""
        return [value for value in v if value is not None][:MAX_SAMPLE_VALUES]


class TableInfo(BaseModel):
    """Table, view, collection or file exposed by a source."""

    name: str
    schema_name: str | None = None
    kind: TableKind
    estimated_row_count: int | None = None
    columns: list[ColumnInfo] | None = None


class QueryOptions(BaseModel):
    """Options accepted by ``BaseConnector.query``.

    ``where`` and ``order_by`` are passed through verbatim to SQL sources and
    evaluated client-side (restricted grammar) by file and REST sources.
    """

    table: str | None = None
    raw_query: str | None = None
    columns: list[str] | None = None
    where: str | None = None
    order_by: str | None = None
    limit: int | None = Field(default=None, ge=0)
    offset: int | None = Field(default=None, ge=0)
    params: dict[str, Any] | None = None

    def require_target(self, source_kind: SourceKind | None = None) -> None:
        """Raise InvalidQueryError unless a table or raw query is set."""
        if not self.table and not self.raw_query:
            from .base import InvalidQueryError

            raise InvalidQueryError(
                "Either table or raw_query must be specified", source_kind
            )


class ConnectorResult(BaseModel):
    """Envelope returned by every query."""

    rows: list[dict[str, Any]]
    columns: list[ColumnInfo] = Field(default_factory=list)
    total_row_count: int | None = None
    has_more: bool = False
    next_offset: int | None = None
    next_cursor: str | None = None
    execution_time_ms: float | None = None

    @classmethod
    def paged(
        cls,
        rows: list[dict[str, Any]],
        columns: list[ColumnInfo],
        offset: int,
        total: int | None,
        **extra: Any,
    ) -> "ConnectorResult":
        """Build a result whose has_more/next_offset follow from the total.

        ``has_more`` is true only when the total is known and rows remain
        past ``offset + len(rows)``.
        """
        end = offset + len(rows)
        has_more = total is not None and end < total
        return cls(
            rows=rows,
            columns=columns,
            total_row_count=total,
            has_more=has_more,
            next_offset=end if has_more else None,
            **extra,
        )


class ConnectionTestResult(BaseModel):
    """Result of testing a connector connection."""

    success: bool
    message: str | None = None
    error: str | None = None
    latency_ms: float | None = None
    version: str | None = None
    server_info: str | None = None
    permissions: list[str] = Field(default_factory=list)


class ConfigValidationResult(BaseModel):
    """Outcome of validating a connection config; errors are field-level."""

    valid: bool
    errors: list[str] = Field(default_factory=list)


# --- Import pipeline records ---


class TransformType(str, Enum):
    """Field transforms applied by the import pipeline."""

    NONE = "none"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    TRIM = "trim"
    TRUNCATE = "truncate"
    TO_NUMBER = "to_number"
    TO_BOOLEAN = "to_boolean"
    TO_DATE = "to_date"
    REGEX = "regex"
    LOOKUP = "lookup"
    TEMPLATE = "template"


class FieldTransform(BaseModel):
    """Descriptor for a single-field transform.

    Only the parameters relevant to ``type`` are meaningful; the validator
    enforces the ones each type requires.
    """

    type: TransformType = TransformType.NONE
    max_length: int | None = Field(default=None, ge=0)
    decimal_separator: str | None = None
    true_values: list[str] | None = None
    false_values: list[str] | None = None
    input_format: str | None = None
    output_format: str | None = None
    pattern: str | None = None
    replacement: str | None = None
    lookup_table: dict[str, Any] | None = None
    template: str | None = None  # e.g. "{first_name} {last_name}"

    @model_validator(mode="after")
    def check_required_params(self) -> "FieldTransform":
        required = {
            TransformType.TRUNCATE: ("max_length",),
            TransformType.REGEX: ("pattern", "replacement"),
            TransformType.LOOKUP: ("lookup_table",),
            TransformType.TEMPLATE: ("template",),
        }.get(self.type, ())
        missing = [name for name in required if getattr(self, name) is None]
        if missing:
            raise ValueError(
                f"Transform '{self.type.value}' requires: {', '.join(missing)}"
            )
        return self


class FieldMapping(BaseModel):
    """Maps one source field onto one target entity field."""

    source_field: str
    target_field: str
    transform: FieldTransform | None = None
    default_value: Any = None
    is_required: bool = False


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class RowValidationError(BaseModel):
    """A validation problem found on one imported row."""

    row: int
    field: str
    value: Any = None
    error: str
    severity: Severity = Severity.ERROR


class ImportPhase(str, Enum):
    CONNECTING = "connecting"
    FETCHING = "fetching"
    VALIDATING = "validating"
    IMPORTING = "importing"
    COMPLETED = "completed"
    FAILED = "failed"


class ImportProgress(BaseModel):
    """Snapshot of an import job's progress."""

    phase: ImportPhase = ImportPhase.CONNECTING
    total_rows: int = 0
    processed_rows: int = 0
    imported_rows: int = 0
    updated_rows: int = 0
    skipped_rows: int = 0
    error_rows: int = 0
    current_batch: int | None = None
    total_batches: int | None = None
    errors: list[RowValidationError] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.now)
    estimated_seconds_remaining: float | None = None


class ImportableEntity(str, Enum):
    """Target entities records can be imported into."""

    PRODUCTS = "products"
    CONTACTS = "contacts"
    COMPANIES = "companies"
    DEALS = "deals"
    PRODUCT_CATEGORIES = "product_categories"
    PRODUCT_ATTRIBUTES = "product_attributes"


# Required / optional target fields per entity, used by mapping UIs
ENTITY_FIELDS: dict[ImportableEntity, dict[str, list[str]]] = {
    ImportableEntity.PRODUCTS: {
        "required": ["sku", "name", "base_price"],
        "optional": [
            "description", "short_description", "type", "status", "currency",
            "pricing_type", "category", "tags", "track_inventory",
            "stock_quantity", "cost_price", "brand", "weight", "length",
            "width", "height", "dimension_unit", "weight_unit", "meta_title",
            "meta_description", "slug", "external_id",
        ],
    },
    ImportableEntity.CONTACTS: {
        "required": ["first_name", "last_name"],
        "optional": [
            "email", "phone", "title", "status", "source", "lead_score",
            "company_name", "address", "city", "state", "country",
            "external_id",
        ],
    },
    ImportableEntity.COMPANIES: {
        "required": ["name"],
        "optional": [
            "website", "industry", "size", "address", "city", "state",
            "country", "phone", "email", "external_id",
        ],
    },
    ImportableEntity.DEALS: {
        "required": ["title", "value"],
        "optional": [
            "currency", "stage", "probability", "expected_close_date",
            "source", "contact_email", "company_name", "owner_email",
            "external_id",
        ],
    },
    ImportableEntity.PRODUCT_CATEGORIES: {
        "required": ["name", "slug"],
        "optional": ["description", "parent_slug", "image_url", "is_active"],
    },
    ImportableEntity.PRODUCT_ATTRIBUTES: {
        "required": ["name", "label", "value_type"],
        "optional": [
            "description", "is_required", "is_filterable", "is_searchable",
            "show_in_list", "is_variant_defining", "options", "unit",
        ],
    },
}
