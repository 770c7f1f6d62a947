"""Client-side evaluation of the restricted WHERE / ORDER BY grammar.

Sources without a query engine (files, REST endpoints) evaluate
``QueryOptions`` in memory. The grammar is deliberately small:

    where    := clause ( AND clause )*
    clause   := field-path op value
    op       := = | != | <> | > | < | >= | <= | LIKE | IN
    order_by := field-path [ ASC | DESC ]

There is no OR and no parentheses. Field paths may use dot notation.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from ..utils.date_parser import parse_flexible_date
from .base import InvalidQueryError
from .inference import NUMERIC_PATTERN, get_path_value
from .models import QueryOptions

logger = logging.getLogger(__name__)

# Quoted literals are matched first so an AND inside quotes never splits
_AND_SPLIT_PATTERN = re.compile(
    r"'(?:[^']|'')*'|\"[^\"]*\"|(?P<sep>\s+AND\s+)", re.IGNORECASE
)
_CLAUSE_PATTERN = re.compile(
    r"^\s*(?P<field>[\w.]+)\s*"
    r"(?P<op>>=|<=|!=|<>|=|>|<|\bLIKE\b|\bIN\b)\s*"
    r"(?P<value>.+?)\s*$",
    re.IGNORECASE | re.DOTALL,
)
_COMMA_SPLIT_PATTERN = re.compile(r"'(?:[^']|'')*'|\"[^\"]*\"|(?P<sep>,)")
_ORDER_BY_PATTERN = re.compile(r"^\s*([\w.]+)(?:\s+(ASC|DESC))?\s*$", re.IGNORECASE)

get_field_value = get_path_value


def _split_outside_quotes(text: str, pattern: re.Pattern[str]) -> list[str]:
    parts = []
    start = 0
    for match in pattern.finditer(text):
        if match.group("sep"):
            parts.append(text[start : match.start()])
            start = match.end()
    parts.append(text[start:])
    return [part.strip() for part in parts if part.strip()]


def _unquote(text: str) -> tuple[str, bool]:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        inner = text[1:-1]
        if text[0] == "'":
            inner = inner.replace("''", "'")
        return inner, True
    return text, False


def _to_number(text: str) -> int | float | None:
    text = text.strip()
    if not NUMERIC_PATTERN.match(text):
        return None
    return float(text) if any(c in text for c in ".eE") else int(text)


def _is_number(value: Any) -> bool:
    # bool is a subclass of int
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def parse_literal(text: str) -> Any:
    """Convert a literal to None, bool, int, float or str."""
    text = text.strip()
    value, quoted = _unquote(text)
    if quoted:
        return value
    lowered = value.lower()
    if lowered == "null":
        return None
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    number = _to_number(value)
    return value if number is None else number


def like_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a SQL LIKE pattern into an anchored case-insensitive regex."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def _coerce_date(field_value: date, value: str) -> Any:
    parsed = parse_flexible_date(value)
    if parsed is None:
        return value
    if isinstance(field_value, datetime):
        if field_value.tzinfo is not None and parsed.tzinfo is None:
            return parsed.replace(tzinfo=field_value.tzinfo)
        if field_value.tzinfo is None and parsed.tzinfo is not None:
            return parsed.replace(tzinfo=None)
        return parsed
    return parsed.date()


def _coerce_pair(field_value: Any, value: Any) -> tuple[Any, Any]:
    """Align a field value and a literal before comparing them.

    Numeric text (XML content, string-typed API fields) compares numerically
    against a number, and date values compare against date literals.
    """
    if isinstance(field_value, str) and _is_number(value):
        number = _to_number(field_value)
        return (field_value if number is None else number), value
    if _is_number(field_value) and isinstance(value, str):
        number = _to_number(value)
        return field_value, (value if number is None else number)
    if isinstance(field_value, (date, datetime)) and isinstance(value, str):
        return field_value, _coerce_date(field_value, value)
    return field_value, value


def _equals(field_value: Any, value: Any) -> bool:
    left, right = _coerce_pair(field_value, value)
    return left == right


@dataclass(frozen=True)
class Condition:
    """One ``field op value`` clause."""

    field: str
    operator: str
    value: Any

    def matches(self, row: dict[str, Any]) -> bool:
        field_value = get_field_value(row, self.field)
        op = self.operator

        if op == "IN":
            return any(_equals(field_value, item) for item in self.value)

        if field_value is None:
            if op == "=":
                return self.value is None
            if op in ("!=", "<>"):
                return self.value is not None
            return False

        if op == "LIKE":
            if isinstance(field_value, str) and isinstance(self.value, str):
                return like_to_regex(self.value).match(field_value) is not None
            return False

        field_value, value = _coerce_pair(field_value, self.value)
        try:
            if op == "=":
                return field_value == value
            if op in ("!=", "<>"):
                return field_value != value
            if value is None:
                return False
            if op == ">":
                return field_value > value
            if op == "<":
                return field_value < value
            if op == ">=":
                return field_value >= value
            if op == "<=":
                return field_value <= value
        except TypeError:
            # Incomparable types never satisfy an ordering comparison
            return False
        return True


def parse_where(where: str | None, strict: bool = False) -> list[Condition]:
    """Parse a WHERE expression into AND-ed conditions.

    Args:
        where: The expression
        strict: Raise on fragments that cannot be parsed instead of skipping

    Returns:
        Parsed conditions; an empty list means no constraint

    Raises:
        InvalidQueryError: On an unparsable fragment when ``strict`` is set
    """
    if not where or not where.strip():
        return []

    conditions = []
    for fragment in _split_outside_quotes(where, _AND_SPLIT_PATTERN):
        match = _CLAUSE_PATTERN.match(fragment)
        if not match:
            if strict:
                raise InvalidQueryError(f"Cannot parse WHERE clause: {fragment!r}")
            logger.warning(f"Ignoring unparsable WHERE clause: {fragment!r}")
            continue

        op = match.group("op").upper()
        raw_value = match.group("value")
        if op == "IN":
            list_match = re.match(r"^\((.*)\)$", raw_value.strip(), re.DOTALL)
            if list_match:
                value: Any = tuple(
                    parse_literal(item)
                    for item in _split_outside_quotes(
                        list_match.group(1), _COMMA_SPLIT_PATTERN
                    )
                )
            else:
                value = (parse_literal(raw_value),)
        else:
            value = parse_literal(raw_value)

        conditions.append(Condition(match.group("field"), op, value))
    return conditions


def filter_rows(
    rows: list[dict[str, Any]], where: str | None, strict: bool = False
) -> list[dict[str, Any]]:
    """Keep rows satisfying every condition in ``where``."""
    conditions = parse_where(where, strict=strict)
    if not conditions:
        return list(rows)
    return [row for row in rows if all(c.matches(row) for c in conditions)]


def parse_order_by(order_by: str | None) -> tuple[str, bool] | None:
    """Parse ``field [ASC|DESC]`` into ``(field, descending)``.

    Only the first comma-separated term is honored.
    """
    if not order_by or not order_by.strip():
        return None
    first = order_by.split(",")[0]
    match = _ORDER_BY_PATTERN.match(first)
    if not match:
        logger.warning(f"Ignoring unparsable ORDER BY: {order_by!r}")
        return None
    direction = (match.group(2) or "ASC").upper()
    return match.group(1), direction == "DESC"


def _sort_key(value: Any) -> tuple[Any, ...]:
    if value is None:
        return (1, "", 0)
    if isinstance(value, bool):
        return (0, "bool", int(value))
    if isinstance(value, (int, float, Decimal)):
        return (0, "number", value)
    if isinstance(value, (dict, list)):
        return (0, "json", json.dumps(value, sort_keys=True, default=str))
    if isinstance(value, datetime):
        return (0, "datetime", value.isoformat())
    if isinstance(value, str):
        number = _to_number(value)
        if number is not None:
            return (0, "number", number)
    return (0, type(value).__name__, value)


def sort_rows(
    rows: list[dict[str, Any]], order_by: str | None
) -> list[dict[str, Any]]:
    """Stable sort on a single field.

    Nulls sort last ascending and first descending.
    """
    parsed = parse_order_by(order_by)
    if parsed is None:
        return list(rows)
    field, descending = parsed
    return sorted(
        rows,
        key=lambda row: _sort_key(get_field_value(row, field)),
        reverse=descending,
    )


def paginate(
    rows: list[dict[str, Any]], offset: int | None, limit: int | None
) -> list[dict[str, Any]]:
    start = offset or 0
    if limit is None:
        return rows[start:]
    return rows[start : start + limit]


def project(
    rows: list[dict[str, Any]], columns: list[str] | None
) -> list[dict[str, Any]]:
    if not columns:
        return rows
    return [
        {column: get_field_value(row, column) for column in columns} for row in rows
    ]


def apply_query(
    rows: list[dict[str, Any]], options: QueryOptions, strict: bool = False
) -> tuple[list[dict[str, Any]], int]:
    """Evaluate WHERE, ORDER BY, pagination and projection in that order.

    Returns:
        The page of rows and the number of rows matching the filter
    """
    filtered = filter_rows(rows, options.where, strict=strict)
    ordered = sort_rows(filtered, options.order_by)
    page = paginate(ordered, options.offset, options.limit)
    return project(page, options.columns), len(filtered)
