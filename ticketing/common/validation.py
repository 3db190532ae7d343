"""
Request field validation shared by the events and users handlers.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

from flask import request

from ticketing.common.errors import ValidationError


def parse_dt(val: Optional[str]) -> Optional[datetime]:
    """
    Safely parse an ISO-8601 or datetime-local string to a datetime object.

    Naive values are taken as UTC so they can be compared with now().

    Args:
        val (str): The date string to parse.

    Returns:
        datetime: The parsed, timezone-aware datetime, or None if invalid.
    """
    if not val or not isinstance(val, str):
        return None
    try:
        # Handles 'YYYY-MM-DDTHH:MM' and '...Z' or '...+00:00'
        if val.endswith('Z'):
            val = val[:-1] + '+00:00'
        parsed = datetime.fromisoformat(val)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def json_body() -> Dict[str, Any]:
    """
    Return the JSON object sent with the request.

    An absent or unparsable body reads as empty so the required-field
    checks report what is missing. A body that parses to anything other
    than an object is rejected.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid request body")
    return data


def require_fields(data: Mapping[str, Any], fields: Sequence[str]) -> None:
    """
    Raise a 400 naming every field that is absent or empty.

    The message lists the whole required set, the way clients have always
    been told which fields an operation needs.
    """
    missing = [name for name in fields if not data.get(name)]
    if not missing:
        return
    if len(fields) == 1:
        raise ValidationError(f"Missing required field: {fields[0]}")
    raise ValidationError(f"Missing required fields: {', '.join(fields)}")


def require_param(args: Mapping[str, Any], name: str) -> str:
    """Return a required query parameter or raise a 400."""
    value = args.get(name)
    if not value:
        raise ValidationError(f"Missing required parameter: {name}")
    return value


def build_patch(data: Mapping[str, Any], allowed: Iterable[str]) -> Dict[str, Any]:
    """
    Collect the fields of a partial update.

    Only fields that are present and non-empty make it into the patch;
    anything omitted is left untouched on the stored record.
    """
    return {key: data[key] for key in allowed if data.get(key)}


def require_choice(value: Any, choices: Sequence[str], name: str) -> None:
    if value not in choices:
        quoted = " or ".join(f'"{c}"' for c in choices)
        raise ValidationError(f"Invalid {name}. Must be {quoted}")


def parse_positive_int(value: Any, name: str, default: int) -> int:
    """Parse a query parameter as an integer >= 1, falling back to default when absent."""
    if value in (None, ""):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}: must be a positive integer")
    if number < 1:
        raise ValidationError(f"Invalid {name}: must be a positive integer")
    return number


def parse_sort(value: Optional[str], columns: Iterable[str], default: str) -> str:
    sort = value or default
    if sort not in columns:
        raise ValidationError(f"Invalid sort field: {sort}")
    return sort
