"""XML file connector using lxml.

Elements are converted to nested dicts: attributes become fields, repeated
child tags become lists, text-only elements become strings and the text of
an element that also carries attributes is kept under ``"_"``.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from lxml import etree

from ..inference import FLATTEN_MAX_DEPTH, infer_columns
from ..models import ColumnInfo, SourceKind
from .base_file import BaseFileConnector, resolve_path

logger = logging.getLogger(__name__)

TEXT_KEY = "_"

# lxml refuses str input that still carries an encoding declaration
_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)


def local_name(tag: str) -> str:
    """Strip a ``{namespace}`` or ``prefix:`` qualifier from a tag/attribute."""
    if tag.startswith("{"):
        tag = tag.split("}", 1)[1]
    return tag.split(":")[-1]


def element_to_value(element: Any) -> Any:
    """Convert an element into a string or a dict of its attributes/children."""
    children = [child for child in element if isinstance(child.tag, str)]
    attributes = {local_name(key): value for key, value in element.attrib.items()}
    text = (element.text or "").strip()

    if not children and not attributes:
        return text

    result: dict[str, Any] = dict(attributes)
    for child in children:
        key = local_name(child.tag)
        value = element_to_value(child)
        if key not in result:
            result[key] = value
        elif isinstance(result[key], list):
            result[key].append(value)
        else:
            result[key] = [result[key], value]

    if text:
        result[TEXT_KEY] = text
    return result


def find_record_array(document: dict[str, Any]) -> list[Any]:
    """Locate the repeated record elements.

    Single-child containers are descended (root, container, one extra
    level) looking for a repeated element. When none is found the innermost
    dict is treated as one record.
    """
    current: Any = document
    for _ in range(3):
        for value in current.values():
            if isinstance(value, list) and value:
                return value
        dict_children = [v for v in current.values() if isinstance(v, dict)]
        if len(current) != 1 or not dict_children:
            break
        current = dict_children[0]
    return [current]


def flatten_xml_record(
    record: dict[str, Any], prefix: str = "", depth: int = 0
) -> dict[str, Any]:
    """Flatten like JSON records, lifting element text to the element's key.

    ``<price currency="EUR">10</price>`` becomes ``price`` = ``"10"`` and
    ``price.currency`` = ``"EUR"``.
    """
    flat: dict[str, Any] = {}
    for key, value in record.items():
        path = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and TEXT_KEY in value:
            flat[path] = value[TEXT_KEY]
            for attr_key, attr_value in value.items():
                if attr_key != TEXT_KEY:
                    flat[f"{path}.{attr_key}"] = attr_value
        elif isinstance(value, dict) and depth < FLATTEN_MAX_DEPTH:
            flat.update(flatten_xml_record(value, path, depth + 1))
        else:
            flat[path] = value
    return flat


class XmlConnector(BaseFileConnector):
    """Connector for XML documents.

    Entity resolution and network access are disabled in the parser. All
    leaf values are text; types are inferred by sniffing the strings.
    """

    source_kind = SourceKind.XML_FILE

    def _parse_records(self, text: str) -> list[dict[str, Any]]:
        parser = etree.XMLParser(
            resolve_entities=False,
            no_network=True,
            remove_comments=True,
            remove_pis=True,
        )
        root = etree.fromstring(_XML_DECLARATION.sub("", text, count=1), parser)
        document = {local_name(root.tag): element_to_value(root)}

        if self.config.root_path:
            items = resolve_path(document, self.config.root_path)
            if not isinstance(items, list):
                # A path to one element is a single record
                items = [items]
        else:
            items = find_record_array(document)

        records = []
        for item in items:
            if isinstance(item, dict):
                records.append(flatten_xml_record(item))
            else:
                records.append({"value": item})
        return records

    def _infer_columns(self, records: list[dict[str, Any]]) -> list[ColumnInfo]:
        return infer_columns(
            records,
            native_prefix="xml",
            detect_scalars=True,
            common_dates=True,
        )
