"""Argument checks shared by the services, raising ValidationError instead of coercing."""

from __future__ import annotations

from enum import Enum
from typing import Any, TypeVar

from loyalty_ledger.exceptions import ValidationError

E = TypeVar("E", bound=Enum)


def parse_enum(enum_type: type[E], value: Any, field_name: str) -> E:
    """Accept an enum member or its value; anything else is a ValidationError."""
    try:
        return enum_type(value)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid {field_name}: {value!r}", context={"field": field_name}
        ) from exc


def optional_flag(value: Any, field_name: str) -> bool | None:
    """Return a flag that is either a real bool or None (meaning unchanged)."""
    if value is not None and not isinstance(value, bool):
        raise ValidationError(
            f"{field_name} must be a boolean, got {value!r}",
            context={"field": field_name},
        )
    return value
