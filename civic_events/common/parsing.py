"""
Request parsing helpers shared by the service blueprints.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import request

from civic_events.common.errors import ValidationError

TRUTHY_FLAGS = ("1", "true", "yes", "on")


def get_json_body() -> Dict[str, Any]:
    """
    Return the JSON object sent with the request.

    A missing or unparsable body is treated as empty; a JSON value that is
    not an object is rejected.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def parse_dt(val: Optional[str]) -> Optional[datetime]:
    """
    Safely parse an ISO-8601 or datetime-local string to a datetime object.
    Naive values are taken as UTC.

    Args:
        val (str): The date string to parse.

    Returns:
        datetime: The parsed datetime, or None if invalid.
    """
    if not val or not isinstance(val, str):
        return None
    try:
        # Handles 'YYYY-MM-DD', 'YYYY-MM-DDTHH:MM' and '...Z' or '...+00:00'
        if val.endswith("Z"):
            val = val[:-1] + "+00:00"
        parsed = datetime.fromisoformat(val)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_flag(val: Optional[str]) -> bool:
    """Query-string flag: "1", "true", "yes" or "on" (any case) mean set."""
    return (val or "").strip().lower() in TRUTHY_FLAGS


def parse_id(val: Any, field: str) -> int:
    """Parse a positive integer id from JSON or the query string."""
    if isinstance(val, bool):
        raise ValidationError(f"{field} must be an integer id")
    try:
        parsed = int(val)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer id")
    if isinstance(val, float) and val != parsed:
        raise ValidationError(f"{field} must be an integer id")
    if parsed < 1:
        raise ValidationError(f"{field} must be an integer id")
    return parsed


def isoformat(val: Optional[datetime]) -> Optional[str]:
    return val.isoformat() if val else None
