"""Connector registry for the supported source kinds.

Each source kind maps to a ConnectorSpec naming its implementation by import
path. Implementations are imported only when a connector is created, so a
source kind whose optional driver is missing never breaks the others.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from typing import Type

from .base import BaseConnector, UnsupportedSourceError
from .models import (
    ConnectionConfig,
    FileConnectionConfig,
    MSSQLConnectionConfig,
    MySQLConnectionConfig,
    OracleConnectionConfig,
    PostgreSQLConnectionConfig,
    RestApiConnectionConfig,
    SourceCategory,
    SourceKind,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectorSpec:
    """How to build the connector for one source kind.

    Attributes:
        source_kind: The kind this entry describes
        display_name: Human-readable name
        category: file, api or database
        config_model: Connection config variant
        import_path: ``module:Class`` of the implementation, None if unregistered
        required_package: Optional pip package the connector needs
        driver_module: Import name of that package
    """

    source_kind: SourceKind
    display_name: str
    category: SourceCategory
    config_model: Type[ConnectionConfig]
    import_path: str | None = None
    required_package: str | None = None
    driver_module: str | None = None

    @property
    def is_registered(self) -> bool:
        return self.import_path is not None


class ConnectorRegistry:
    """Registry for connector implementations.

    Maintains a mapping of source kinds to their specs and resolves the
    implementation class on demand.
    """

    def __init__(self) -> None:
        self._specs: dict[SourceKind, ConnectorSpec] = {}
        self._classes: dict[SourceKind, Type[BaseConnector]] = {}

    def register(self, spec: ConnectorSpec) -> None:
        """Register (or replace) the spec for a source kind."""
        if spec.source_kind in self._specs:
            logger.warning(f"Overwriting existing connector for {spec.source_kind}")
        self._specs[spec.source_kind] = spec
        self._classes.pop(spec.source_kind, None)
        logger.debug(f"Registered connector: {spec.source_kind.value}")

    def unregister(self, source_kind: SourceKind) -> None:
        self._specs.pop(source_kind, None)
        self._classes.pop(source_kind, None)

    def get_spec(self, source_kind: SourceKind) -> ConnectorSpec | None:
        return self._specs.get(source_kind)

    def get_connector_class(self, source_kind: SourceKind) -> Type[BaseConnector]:
        """Import and return the implementation class for a source kind.

        Raises:
            UnsupportedSourceError: If no implementation is registered
        """
        if source_kind in self._classes:
            return self._classes[source_kind]

        spec = self._specs.get(source_kind)
        if spec is None or spec.import_path is None:
            raise UnsupportedSourceError(
                f"Unsupported source kind: {source_kind.value}", source_kind
            )

        module_name, class_name = spec.import_path.split(":")
        module = importlib.import_module(module_name, package=__package__)
        connector_class = getattr(module, class_name)
        self._classes[source_kind] = connector_class
        return connector_class

    def list_specs(self) -> list[ConnectorSpec]:
        return list(self._specs.values())

    def list_by_category(self, category: SourceCategory) -> list[ConnectorSpec]:
        return [spec for spec in self._specs.values() if spec.category == category]

    def is_registered(self, source_kind: SourceKind) -> bool:
        spec = self._specs.get(source_kind)
        return spec is not None and spec.is_registered


_registry = ConnectorRegistry()


def get_registry() -> ConnectorRegistry:
    """Get the global connector registry."""
    return _registry


def _register_builtin() -> None:
    """Register the built-in source kinds."""
    builtin = [
        ConnectorSpec(
            SourceKind.CSV_FILE,
            "CSV File",
            SourceCategory.FILE,
            FileConnectionConfig,
            ".file.csv_file:CsvConnector",
        ),
        ConnectorSpec(
            SourceKind.JSON_FILE,
            "JSON File",
            SourceCategory.FILE,
            FileConnectionConfig,
            ".file.json_file:JsonConnector",
        ),
        ConnectorSpec(
            SourceKind.XML_FILE,
            "XML File",
            SourceCategory.FILE,
            FileConnectionConfig,
            ".file.xml_file:XmlConnector",
        ),
        ConnectorSpec(
            SourceKind.REST_API,
            "REST API",
            SourceCategory.API,
            RestApiConnectionConfig,
            ".api.rest:RestApiConnector",
        ),
        ConnectorSpec(
            SourceKind.POSTGRESQL_DB,
            "PostgreSQL",
            SourceCategory.DATABASE,
            PostgreSQLConnectionConfig,
            ".database.postgresql:PostgreSQLConnector",
        ),
        ConnectorSpec(
            SourceKind.MYSQL_DB,
            "MySQL",
            SourceCategory.DATABASE,
            MySQLConnectionConfig,
            ".database.mysql:MySQLConnector",
            required_package="pymysql",
            driver_module="pymysql",
        ),
        ConnectorSpec(
            SourceKind.ORACLE_DB,
            "Oracle",
            SourceCategory.DATABASE,
            OracleConnectionConfig,
            ".database.oracle:OracleConnector",
            required_package="oracledb",
            driver_module="oracledb",
        ),
        # Declared for configuration and pre-flight checks; no connector yet
        ConnectorSpec(
            SourceKind.MSSQL_DB,
            "SQL Server",
            SourceCategory.DATABASE,
            MSSQLConnectionConfig,
            None,
            required_package="pymssql",
            driver_module="pymssql",
        ),
    ]
    for spec in builtin:
        _registry.register(spec)


_register_builtin()
