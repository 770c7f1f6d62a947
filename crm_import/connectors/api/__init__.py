"""API connectors for external data sources.

Provides connectivity to REST APIs with offset, page and cursor pagination.
"""

from .base_api import ApiRequestError, BaseApiConnector
from .rest import RestApiConnector, extract_records

__all__ = [
    "ApiRequestError",
    "BaseApiConnector",
    "RestApiConnector",
    "extract_records",
]
