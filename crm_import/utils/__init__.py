"""Shared utilities."""

from .date_parser import parse_flexible_date, parse_iso_datetime

__all__ = ["parse_flexible_date", "parse_iso_datetime"]
