import hashlib
from typing import Any


def _safe_json_parse(response: Any):
    """Safely parse JSON response, returning dict or text on failure."""
    try:
        return response.json()
    except Exception:
        full_text = response.text if hasattr(response, "text") else str(response.content)
        return {"_raw_response": full_text[:2000], "_parse_error": "Not valid JSON"}


def calculate_region_code(api_url: str) -> str:
    """Region code for a cloud: hex SHA3-224 of its configured API URL."""
    return hashlib.sha3_224((api_url or "").encode("utf-8")).hexdigest()


def parse_bool_flag(value: Any) -> bool:
    """Checkbox style config values arrive as 'on', 'true' or a real bool."""
    return value is True or value == "on" or value == "true"


def tokenize(value: str):
    """Split on runs of whitespace, dropping empty tokens."""
    return (value or "").split()


def to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default
