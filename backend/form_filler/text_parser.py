"""
Free text parsing for manually typed data.

Supported line formats, tried in this order (first match wins):
  1. ``Key: Value``
  2. ``Key = Value``
  3. ``Key - Value``
  4. ``Key | Value``
  5. a one-line JSON object ``{"key": "value"}``
  6. ``Key<TAB>Value``

The order is authoritative. A line such as ``Address: 12-14 Main St`` is
split at the colon, and ``a=b: c`` yields the key ``a=b``. A whole input that
is itself a JSON object is merged last and wins on key collisions.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Dict, Mapping, Optional

from .models import TabularResult

logger = logging.getLogger(__name__)

DELIMITER_PATTERNS = (
    ("colon", re.compile(r"^(.+?)\s*:\s*(.+)$")),
    ("equals", re.compile(r"^(.+?)\s*=\s*(.+)$")),
    ("dash", re.compile(r"^(.+?)\s*-\s*(.+)$")),
    ("pipe", re.compile(r"^(.+?)\s*\|\s*(.+)$")),
)


def stringify_value(value: object) -> str:
    """Render a parsed JSON value as a cell string."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _load_json_object(text: str) -> Optional[Dict[str, str]]:
    if not (text.startswith("{") and text.endswith("}")):
        return None
    try:
        data = json.loads(text)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return {str(key): stringify_value(value) for key, value in data.items()}


def match_line(line: str) -> Optional[Dict[str, str]]:
    """
    Apply the line matchers to one line.

    Returns the key/value pairs the first matching format produced, or None
    when the line is blank or no format applies.
    """
    stripped = line.strip()
    if not stripped:
        return None

    for _name, pattern in DELIMITER_PATTERNS:
        match = pattern.match(stripped)
        if match:
            key, value = match.group(1).strip(), match.group(2).strip()
            if key and value:
                return {key: value}

    json_fields = _load_json_object(stripped)
    if json_fields is not None:
        return json_fields

    if "\t" in stripped:
        parts = [part.strip() for part in stripped.split("\t") if part.strip()]
        if len(parts) == 2:
            return {parts[0]: parts[1]}

    return None


def parse_fields(text: str) -> Dict[str, str]:
    """Collect key/value pairs from free text, later lines overwriting earlier ones."""
    fields: Dict[str, str] = {}
    for line in text.split("\n"):
        matched = match_line(line)
        if matched:
            fields.update(matched)

    document_json = _load_json_object(text.strip())
    if document_json is not None:
        fields.update(document_json)

    return fields


def parse_text(text: str) -> TabularResult:
    """Parse free text into a single synthetic row."""
    logger.info("Parsing manual text input (%d characters)", len(text or ""))
    fields = parse_fields(text or "")
    logger.info("Extracted %d field(s) from text", len(fields))
    return TabularResult.single_row(fields)


def format_fields(fields: Mapping[str, str]) -> str:
    """Write fields in the canonical ``Key: Value`` form, one per line."""
    return "\n".join(f"{key}: {value}" for key, value in fields.items())
