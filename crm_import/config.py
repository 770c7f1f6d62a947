"""Shared configuration for the import connectors.

This module centralizes environment variable access and default values
to prevent drift between modules.
"""

import os

# Credential encryption (Fernet key, or a passphrase that is key-stretched)
CONNECTOR_ENCRYPTION_KEY = os.getenv("CONNECTOR_ENCRYPTION_KEY")

# Database connectors
CONNECT_TIMEOUT_SECONDS = int(os.getenv("CONNECTOR_CONNECT_TIMEOUT", "10"))
POOL_RECYCLE_SECONDS = int(os.getenv("CONNECTOR_POOL_RECYCLE", "1800"))

# REST connector
HTTP_TIMEOUT_SECONDS = float(os.getenv("CONNECTOR_HTTP_TIMEOUT", "30"))
HTTP_MAX_RETRIES = int(os.getenv("CONNECTOR_HTTP_MAX_RETRIES", "3"))
HTTP_RETRY_DELAY_SECONDS = float(os.getenv("CONNECTOR_HTTP_RETRY_DELAY", "1"))

# Query defaults
DEFAULT_PREVIEW_ROWS = int(os.getenv("CONNECTOR_PREVIEW_ROWS", "100"))

# Data source definition files
DATA_SOURCES_DIR = os.getenv("DATA_SOURCES_DIR", "./config/data_sources")
