# shared/json_utils.py
"""
JSON helpers shared across recipe-ai services.
Covers JSONB columns coming back from asyncpg and JSON produced by LLMs.
"""

import json
import logging
import re
from typing import Any, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

RECIPE_CONTENT_FIELDS = ("ingredients", "shopping_list", "instructions")

_LEADING_JSON_FENCE = re.compile(r"^```json\s*")
_LEADING_FENCE = re.compile(r"^```\s*")
_TRAILING_FENCE = re.compile(r"\s*```$")


def safe_json_parse(
    value: Any, default: T = None, expected_type: type = None
) -> Union[T, dict, list, str, int, float, bool]:
    """
    Safely parse JSON with consistent error handling.

    Args:
        value: Value to parse (string, dict, list, etc.)
        default: Default value to return on parse failure
        expected_type: Expected type for validation (dict, list, etc.)

    Returns:
        Parsed value or default on failure
    """
    if expected_type and isinstance(value, expected_type):
        return value

    if not isinstance(value, str):
        return value if value is not None else default

    try:
        parsed = json.loads(value)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.debug(f"JSON parse failed for value '{value[:100]}...': {e}")
        return default

    if expected_type and not isinstance(parsed, expected_type):
        logger.warning(f"Parsed JSON type {type(parsed)} doesn't match expected {expected_type}")
        return default

    return parsed


def parse_jsonb_field(field_value: Any, default: dict = None, field_name: str = "unknown") -> dict:
    """Parse a JSONB column value, falling back to `default` (an empty dict)"""
    if default is None:
        default = {}

    if field_value is None:
        return default

    if isinstance(field_value, dict):
        return field_value

    parsed = safe_json_parse(field_value, default, dict)
    if parsed is default and field_value:
        logger.warning(f"Failed to parse JSONB field '{field_name}': {field_value}")

    return parsed


def safe_json_dumps(value: Any) -> str:
    """Serialize for a JSONB parameter; asyncpg expects text for json columns"""
    return json.dumps(value, ensure_ascii=False, default=str)


def strip_code_fences(text: str) -> str:
    """Remove an optional ```json / ``` markdown wrapper around model output"""
    cleaned = text.strip()
    cleaned = _LEADING_JSON_FENCE.sub("", cleaned)
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    return cleaned.strip()


def parse_llm_json(text: Optional[str]) -> dict:
    """
    Parse a JSON object returned by an LLM.

    Raises:
        ValueError: If the text is empty, not JSON, or not a JSON object
    """
    if not text:
        raise ValueError("Empty response from model")

    parsed = json.loads(strip_code_fences(text))
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def normalize_recipe_content(content: Any) -> dict[str, list[str]]:
    """Guarantee the three recipe lists exist and hold strings"""
    data = parse_jsonb_field(content, field_name="recipe_content")
    normalized = {}
    for field in RECIPE_CONTENT_FIELDS:
        value = data.get(field)
        if isinstance(value, list):
            normalized[field] = [str(item) for item in value if item is not None]
        else:
            normalized[field] = []
    return normalized
