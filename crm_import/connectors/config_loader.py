"""Configuration file loader for data sources.

Supports loading data source definitions from YAML and JSON files,
enabling infrastructure-as-code patterns for import source management.
``${ENV_VAR}`` placeholders are expanded so secrets stay out of the files.
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from ..config import DATA_SOURCES_DIR
from .base import BaseConnector, UnsupportedSourceError
from .factory import ConnectorFactory, _coerce_kind, validate_connection_config
from .models import SourceKind

logger = logging.getLogger(__name__)

_ENV_PLACEHOLDER = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class DataSourceDefinition(BaseModel):
    """A named, validated data source from a config file."""

    name: str
    source_kind: SourceKind
    description: str | None = None
    connection: dict[str, Any] = Field(default_factory=dict)

    def create_connector(self, **kwargs: Any) -> BaseConnector:
        """Build the connector for this definition through the factory."""
        return ConnectorFactory.create(
            self.source_kind, self.connection, name=self.name, **kwargs
        )


def expand_env_vars(value: Any) -> Any:
    """Recursively replace ``${VAR}`` in strings with environment values.

    Unset variables are left as-is so validation can report them.
    """
    if isinstance(value, str):
        return _ENV_PLACEHOLDER.sub(
            lambda match: os.environ.get(match.group(1), match.group(0)), value
        )
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


class ConfigLoader:
    """Loads and validates data source definitions from files."""

    def __init__(self, config_dir: str | Path | None = None):
        """Initialize the config loader.

        Args:
            config_dir: Directory containing config files.
                        Defaults to DATA_SOURCES_DIR.
        """
        self.config_dir = Path(config_dir or DATA_SOURCES_DIR)

    def load_file(self, file_path: str | Path) -> list[DataSourceDefinition]:
        """Load data source definitions from a single file.

        Args:
            file_path: Path to YAML or JSON config file

        Returns:
            List of DataSourceDefinition models

        Raises:
            ConfigValidationError: If validation fails
            FileNotFoundError: If file doesn't exist
            ValueError: If the extension is not .yaml, .yml or .json
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        suffix = path.suffix.lower()
        with open(path, encoding="utf-8") as f:
            if suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif suffix == ".json":
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported config format: {suffix}")

        return self._parse_config(data, str(path))

    def load_directory(
        self, directory: str | Path | None = None
    ) -> list[DataSourceDefinition]:
        """Load all data source definitions from a directory.

        Args:
            directory: Directory to scan. Defaults to self.config_dir.

        Returns:
            List of DataSourceDefinition models from all files

        Raises:
            ConfigValidationError: If any file or definition is invalid;
                errors from every file are aggregated
        """
        config_dir = Path(directory) if directory else self.config_dir

        if not config_dir.exists():
            logger.warning(f"Config directory does not exist: {config_dir}")
            return []

        definitions = []
        errors: list[dict[str, Any]] = []

        for pattern in ("*.yaml", "*.yml", "*.json"):
            for file_path in sorted(config_dir.glob(pattern)):
                try:
                    loaded = self.load_file(file_path)
                except ConfigValidationError as e:
                    errors.extend(e.errors)
                    continue
                except (OSError, ValueError, yaml.YAMLError) as e:
                    errors.append({"file": str(file_path), "error": str(e)})
                    continue
                definitions.extend(loaded)
                logger.info(
                    f"Loaded {len(loaded)} data source(s) from {file_path.name}"
                )

        if errors:
            raise ConfigValidationError(
                f"Validation failed for {len(errors)} item(s)",
                errors=errors,
            )

        return definitions

    def _parse_config(self, data: Any, source: str) -> list[DataSourceDefinition]:
        """Parse file content into definitions.

        A file holds one definition, a list of them, or a mapping with a
        ``data_sources`` list.

        Raises:
            ConfigValidationError: If validation fails
        """
        if isinstance(data, dict):
            configs = data["data_sources"] if "data_sources" in data else [data]
        elif isinstance(data, list):
            configs = data
        else:
            raise ConfigValidationError(
                f"Invalid config format in {source}",
                errors=[{"file": source, "error": "Expected dict or list"}],
            )

        definitions = []
        errors: list[dict[str, Any]] = []

        for index, config in enumerate(configs):
            if not isinstance(config, dict):
                errors.append(
                    {"file": source, "index": index, "error": "Expected a mapping"}
                )
                continue
            try:
                definitions.append(self._validate_definition(config, source, index))
            except ConfigValidationError as e:
                errors.extend(e.errors)

        if errors:
            raise ConfigValidationError(
                f"Validation failed for {len(errors)} data source(s) in {source}",
                errors=errors,
            )

        return definitions

    def _validate_definition(
        self, config: dict[str, Any], source: str, index: int
    ) -> DataSourceDefinition:
        """Validate and convert a single data source definition.

        Raises:
            ConfigValidationError: If validation fails
        """
        errors = []

        def add_error(field: str, error: str) -> None:
            errors.append(
                {"file": source, "index": index, "field": field, "error": error}
            )

        name = config.get("name")
        if not name:
            add_error("name", "Name is required")

        kind_value = config.get("source_kind", config.get("type"))
        source_kind: SourceKind | None = None
        try:
            source_kind = _coerce_kind(kind_value)
        except UnsupportedSourceError:
            add_error(
                "source_kind",
                f"Invalid source_kind: {kind_value}. "
                f"Valid: {[k.value for k in SourceKind]}",
            )

        connection = expand_env_vars(config.get("connection") or {})
        if not isinstance(connection, dict):
            add_error("connection", "Connection configuration must be a mapping")
        elif source_kind is not None:
            result = validate_connection_config(source_kind, connection)
            for message in result.errors:
                field, _, error = message.partition(": ")
                add_error(f"connection.{field}", error or message)

        if errors:
            raise ConfigValidationError(
                f"Validation failed for data source '{name}'",
                errors=errors,
            )

        return DataSourceDefinition(
            name=name,
            source_kind=source_kind,
            description=config.get("description"),
            connection=connection,
        )

    def export_config(
        self,
        definitions: list[DataSourceDefinition],
        output_path: str | Path,
        format: str = "yaml",
    ) -> None:
        """Export data source definitions to a file.

        Connection values are written as given; keep secrets as ``${VAR}``
        placeholders in definitions meant for export.

        Args:
            definitions: Definitions to export
            output_path: Output file path
            format: Output format ("yaml" or "json")
        """
        path = Path(output_path)

        export_data = {
            "version": "1.0",
            "exported_at": datetime.now().isoformat(),
            "data_sources": [d.model_dump(mode="json") for d in definitions],
        }

        path.parent.mkdir(parents=True, exist_ok=True)

        if format == "yaml":
            with open(path, "w", encoding="utf-8") as f:
                yaml.dump(export_data, f, default_flow_style=False, sort_keys=False)
        elif format == "json":
            with open(path, "w", encoding="utf-8") as f:
                json.dump(export_data, f, indent=2)
        else:
            raise ValueError(f"Unsupported format: {format}")

        logger.info(f"Exported {len(definitions)} data source(s) to {path}")


def load_data_sources_from_config(
    config_dir: str | Path | None = None,
) -> list[DataSourceDefinition]:
    """Convenience function to load definitions from the config directory."""
    return ConfigLoader(config_dir).load_directory()


# Example configuration template
EXAMPLE_POSTGRESQL_CONFIG = """
# PostgreSQL data source
name: legacy_crm
source_kind: POSTGRESQL_DB
description: Contacts from the legacy CRM

connection:
  host: db.example.com
  port: 5432
  database: crm
  user: readonly_user
  password: "${LEGACY_CRM_PASSWORD}"  # Use environment variable
  schema_name: public
  ssl_mode: require
"""
