"""Data Source Connector Framework.

Provides a unified interface for extracting records from:
- Files (CSV, JSON, XML)
- APIs (REST)
- Databases (PostgreSQL, MySQL, Oracle)

Example usage:
    from crm_import.connectors import ConnectorFactory, QueryOptions, SourceKind

    connector = ConnectorFactory.create(
        SourceKind.POSTGRESQL_DB,
        {
            "host": "db.example.com",
            "database": "crm",
            "user": "reader",
            "password": "secret",
        },
    )

    # Test connection
    result = connector.test_connection()
    if result.success:
        # Stream rows in batches
        with connector:
            connector.stream(
                QueryOptions(table="contacts"),
                batch_size=500,
                on_batch=process_batch,
            )
"""

from .base import (
    BaseConnector,
    ConnectionFailedError,
    ConnectorError,
    InvalidQueryError,
    MissingDependencyError,
    NotConnectedError,
    QueryFailedError,
    UnsupportedSourceError,
    sanitize_error_message,
)
from .config_loader import (
    ConfigLoader,
    ConfigValidationError,
    DataSourceDefinition,
    load_data_sources_from_config,
)
from .factory import (
    ConnectorFactory,
    decrypt_connection_config,
    encrypt_connection_config,
    is_dependency_installed,
    list_source_kinds,
    requires_external_package,
    validate_connection_config,
)
from .models import (
    AuthType,
    ColumnInfo,
    ConfigValidationResult,
    ConnectionConfig,
    ConnectionTestResult,
    ConnectorResult,
    FieldMapping,
    FieldTransform,
    FileConnectionConfig,
    ImportableEntity,
    ImportPhase,
    ImportProgress,
    MappedType,
    MSSQLConnectionConfig,
    MySQLConnectionConfig,
    OracleConnectionConfig,
    PaginationConfig,
    PaginationType,
    PostgreSQLConnectionConfig,
    QueryOptions,
    RestApiConnectionConfig,
    RestAuthConfig,
    RowValidationError,
    SourceCategory,
    SourceKind,
    TableInfo,
    TableKind,
    TransformType,
)
from .registry import ConnectorRegistry, ConnectorSpec, get_registry

__all__ = [
    # Base classes
    "BaseConnector",
    # Errors
    "ConnectorError",
    "ConnectionFailedError",
    "QueryFailedError",
    "NotConnectedError",
    "InvalidQueryError",
    "UnsupportedSourceError",
    "MissingDependencyError",
    "sanitize_error_message",
    # Connection configs
    "ConnectionConfig",
    "FileConnectionConfig",
    "PostgreSQLConnectionConfig",
    "MySQLConnectionConfig",
    "OracleConnectionConfig",
    "MSSQLConnectionConfig",
    "RestApiConnectionConfig",
    "RestAuthConfig",
    "PaginationConfig",
    "PaginationType",
    "AuthType",
    # Schema and query models
    "SourceKind",
    "SourceCategory",
    "MappedType",
    "TableKind",
    "ColumnInfo",
    "TableInfo",
    "QueryOptions",
    "ConnectorResult",
    "ConnectionTestResult",
    "ConfigValidationResult",
    # Import pipeline records
    "TransformType",
    "FieldTransform",
    "FieldMapping",
    "RowValidationError",
    "ImportPhase",
    "ImportProgress",
    "ImportableEntity",
    # Factory
    "ConnectorFactory",
    "requires_external_package",
    "is_dependency_installed",
    "list_source_kinds",
    "validate_connection_config",
    "encrypt_connection_config",
    "decrypt_connection_config",
    # Registry
    "ConnectorRegistry",
    "ConnectorSpec",
    "get_registry",
    # Config loader
    "ConfigLoader",
    "ConfigValidationError",
    "DataSourceDefinition",
    "load_data_sources_from_config",
]
