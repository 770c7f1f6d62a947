"""Database connectors for PostgreSQL, MySQL, and Oracle.

These connectors use SQLAlchemy for database abstraction and provide
schema discovery, dialect-aware querying, and connection testing. Driver
packages are imported on connect(), so importing a connector class never
requires its driver.
"""

from .base_db import BaseDatabaseConnector
from .mysql import MySQLConnector
from .oracle import OracleConnector
from .postgresql import PostgreSQLConnector

__all__ = [
    "BaseDatabaseConnector",
    "PostgreSQLConnector",
    "MySQLConnector",
    "OracleConnector",
]
