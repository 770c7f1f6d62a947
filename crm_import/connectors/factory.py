"""Connector factory and connection-config helpers.

Creates connectors by source kind, pre-flights optional drivers, validates
connection configs into a structured result and encrypts/decrypts configs
for storage.
"""

from __future__ import annotations

import importlib.util
import logging
from typing import Any
from urllib.parse import urlparse

from pydantic import ValidationError

from ..security import credentials
from .base import BaseConnector, UnsupportedSourceError
from .models import (
    ConfigValidationResult,
    ConnectionConfig,
    SourceCategory,
    SourceKind,
)
from .registry import ConnectorSpec, get_registry

logger = logging.getLogger(__name__)


def _coerce_kind(source_kind: SourceKind | str) -> SourceKind:
    if isinstance(source_kind, SourceKind):
        return source_kind
    try:
        return SourceKind(str(source_kind).upper())
    except ValueError:
        message = f"Unsupported source kind: {source_kind}"
        raise UnsupportedSourceError(message) from None


def _get_spec(source_kind: SourceKind | str) -> ConnectorSpec:
    kind = _coerce_kind(source_kind)
    spec = get_registry().get_spec(kind)
    if spec is None:
        raise UnsupportedSourceError(f"Unsupported source kind: {kind.value}", kind)
    return spec


class ConnectorFactory:
    """Builds connectors for source kinds.

    Example:
        connector = ConnectorFactory.create(
            SourceKind.POSTGRESQL_DB,
            {"host": "db", "database": "crm", "user": "app", "password": "..."},
        )
        with connector:
            result = connector.query(QueryOptions(table="contacts", limit=10))
    """

    @staticmethod
    def create(
        source_kind: SourceKind | str,
        config: ConnectionConfig | dict[str, Any] | None = None,
        connector_id: str | None = None,
        name: str | None = None,
        **kwargs: Any,
    ) -> BaseConnector:
        """Create a connector.

        The implementation module is imported here; its driver package is
        not imported until connect().

        Args:
            source_kind: Source kind as enum or its string value
            config: Connection config model or dict
            connector_id: Identifier used in log context
            name: Human-readable name
            **kwargs: Extra constructor arguments (e.g. ``transport`` for REST)

        Raises:
            UnsupportedSourceError: Unknown kind or no registered implementation
        """
        spec = _get_spec(source_kind)
        connector_class = get_registry().get_connector_class(spec.source_kind)
        logger.debug(
            f"Creating {connector_class.__name__} for {spec.source_kind.value}"
        )
        return connector_class(config, connector_id=connector_id, name=name, **kwargs)

    @staticmethod
    def create_file_connector(
        source_kind: SourceKind | str,
        config: ConnectionConfig | dict[str, Any] | None = None,
        connector_id: str | None = None,
        name: str | None = None,
    ) -> BaseConnector:
        """Create a CSV, JSON or XML connector.

        Raises:
            UnsupportedSourceError: If the kind is not a file kind
        """
        spec = _get_spec(source_kind)
        if spec.category != SourceCategory.FILE:
            raise UnsupportedSourceError(
                f"{spec.source_kind.value} is not a file source kind",
                spec.source_kind,
            )
        return ConnectorFactory.create(spec.source_kind, config, connector_id, name)


def requires_external_package(source_kind: SourceKind | str) -> str | None:
    """Optional pip package a source kind needs, or None."""
    return _get_spec(source_kind).required_package


def is_dependency_installed(source_kind: SourceKind | str) -> bool:
    """Whether the optional driver for a source kind can be imported."""
    spec = _get_spec(source_kind)
    if not spec.driver_module:
        return True
    return importlib.util.find_spec(spec.driver_module) is not None


def list_source_kinds() -> list[dict[str, Any]]:
    """Describe every known source kind for a configuration UI."""
    kinds = []
    for spec in get_registry().list_specs():
        kinds.append(
            {
                "source_kind": spec.source_kind.value,
                "name": spec.display_name,
                "category": spec.category.value,
                "registered": spec.is_registered,
                "required_package": spec.required_package,
                "dependency_installed": is_dependency_installed(spec.source_kind),
                "config_schema": spec.config_model.model_json_schema(),
            }
        )
    return kinds


def _format_validation_error(error: ValidationError) -> list[str]:
    messages = []
    for entry in error.errors():
        location = ".".join(str(part) for part in entry["loc"])
        message = entry["msg"]
        messages.append(f"{location}: {message}" if location else message)
    return messages


def _check_database(data: dict[str, Any], errors: list[str]) -> None:
    for field in ("host", "database", "user", "password"):
        if not data.get(field):
            errors.append(f"{field}: is required")
    port = data.get("port")
    if port is not None:
        try:
            port_number = int(port)
        except (TypeError, ValueError):
            errors.append("port: must be an integer")
        else:
            if not 1 <= port_number <= 65535:
                errors.append("port: must be between 1 and 65535")


def _check_oracle(data: dict[str, Any], errors: list[str]) -> None:
    for field in ("user", "password"):
        if not data.get(field):
            errors.append(f"{field}: is required")
    if data.get("connect_string"):
        return
    if not data.get("host"):
        errors.append("host: is required unless connect_string is given")
    if not data.get("service_name") and not data.get("sid"):
        errors.append("service_name: service_name or sid is required with host")


def _check_rest(data: dict[str, Any], errors: list[str]) -> None:
    base_url = data.get("base_url")
    if not base_url:
        errors.append("base_url: is required")
    elif urlparse(str(base_url)).scheme not in ("http", "https"):
        errors.append("base_url: must be an http(s) URL")
    if not data.get("endpoint"):
        errors.append("endpoint: is required")


def _check_file(data: dict[str, Any], errors: list[str]) -> None:
    delimiter = data.get("delimiter")
    if delimiter is not None and len(str(delimiter)) != 1:
        errors.append("delimiter: must be a single character")


def validate_connection_config(
    source_kind: SourceKind | str,
    config: ConnectionConfig | dict[str, Any] | None,
) -> ConfigValidationResult:
    """Check a connection config and report every problem at once.

    Never raises; an unknown kind is reported as an error entry.
    """
    try:
        spec = _get_spec(source_kind)
    except UnsupportedSourceError as e:
        return ConfigValidationResult(valid=False, errors=[str(e)])

    if isinstance(config, ConnectionConfig):
        data = config.model_dump()
    elif isinstance(config, dict):
        data = dict(config)
    elif config is None:
        data = {}
    else:
        return ConfigValidationResult(
            valid=False, errors=["config: must be an object"]
        )

    errors: list[str] = []
    kind = spec.source_kind
    if kind == SourceKind.ORACLE_DB:
        _check_oracle(data, errors)
    elif spec.category == SourceCategory.DATABASE:
        _check_database(data, errors)
    elif spec.category == SourceCategory.API:
        _check_rest(data, errors)
    else:
        _check_file(data, errors)

    # Shape checks (types, enums, unknown fields) from the config model
    try:
        spec.config_model.model_validate(data)
    except ValidationError as e:
        for message in _format_validation_error(e):
            field = message.split(":", 1)[0]
            if not any(existing.startswith(f"{field}:") for existing in errors):
                errors.append(message)

    return ConfigValidationResult(valid=not errors, errors=errors)


def encrypt_connection_config(config: ConnectionConfig | dict[str, Any]) -> str:
    """Encrypt a connection config for storage.

    Raises:
        ValueError: If encryption is not configured
    """
    if isinstance(config, ConnectionConfig):
        data = config.model_dump(mode="json")
    else:
        data = dict(config)
    return credentials.encrypt_object(data)


def decrypt_connection_config(
    stored: str | dict[str, Any],
    source_kind: SourceKind | str | None = None,
) -> dict[str, Any] | ConnectionConfig:
    """Decrypt a stored connection config.

    Plain dicts written before encryption was introduced are returned as-is.
    When ``source_kind`` is given the result is validated into that kind's
    config model.

    Raises:
        ValueError: For any other stored shape, a bad token or a wrong key
    """
    if isinstance(stored, dict):
        logger.debug("Stored connection config is not encrypted; using as-is")
        data = stored
    elif isinstance(stored, str):
        data = credentials.decrypt_object(stored)
        if not isinstance(data, dict):
            raise ValueError("Decrypted connection config is not an object")
    else:
        raise ValueError(
            f"Unsupported stored connection config type: {type(stored).__name__}"
        )

    if source_kind is None:
        return data
    return _get_spec(source_kind).config_model.model_validate(data)
