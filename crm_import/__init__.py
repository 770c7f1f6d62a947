"""CRM data import connectors."""

__version__ = "0.1.0"
