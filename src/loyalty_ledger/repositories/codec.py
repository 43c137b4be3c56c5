"""Value encoding at the document store boundary.

Timestamps are stored as fixed-width ISO-8601 UTC strings so that string
ordering matches time ordering in every backend. Everything read back goes
through to_datetime before it reaches the services.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any


def encode_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def to_datetime(value: Any) -> datetime:
    """Normalize a stored timestamp to an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), dates, and ISO strings
    with either an offset or a trailing ``Z``.
    """
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        result = datetime.fromisoformat(text)
    else:
        raise TypeError(f"Cannot interpret {value!r} as a timestamp")

    if result.tzinfo is None:
        return result.replace(tzinfo=UTC)
    return result.astimezone(UTC)


def optional_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    return to_datetime(value)


def encode_value(value: Any) -> Any:
    """Convert a Python value into its JSON-compatible stored form."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return encode_datetime(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(key): encode_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [encode_value(item) for item in value]
    return value


def dumps(data: Mapping[str, Any]) -> str:
    return json.dumps(encode_value(data), separators=(",", ":"), sort_keys=True)


def loads(text: str | bytes) -> dict[str, Any]:
    return json.loads(text)
