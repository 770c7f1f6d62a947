"""File connectors for uploaded CSV, JSON and XML documents."""

from .base_file import BaseFileConnector
from .csv_file import CsvConnector
from .json_file import JsonConnector
from .xml_file import XmlConnector

__all__ = [
    "BaseFileConnector",
    "CsvConnector",
    "JsonConnector",
    "XmlConnector",
]
