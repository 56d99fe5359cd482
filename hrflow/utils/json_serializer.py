"""
JSON serializer utility for audit metadata
"""
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel


def to_json_safe(value: Any) -> Any:
    """
    Recursively convert Python objects to JSON-safe values
    (datetime/date -> isoformat, Decimal -> float, Enum -> value, models -> dict).
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (date, datetime, time)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_safe(item) for item in value]
    if isinstance(value, BaseModel):
        return to_json_safe(value.model_dump())
    return str(value)


def sanitize_for_json(obj: Any) -> Any:
    """Use before saving to JSON columns (audit_logs.meta_json)."""
    return to_json_safe(obj)
