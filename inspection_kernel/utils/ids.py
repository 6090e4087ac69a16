"""Identifier coercion for values arriving from the authentication layer."""

from typing import Any
from uuid import UUID


def as_uuid(value: Any, field_name: str = "id") -> UUID:
    """
    Coerce a UUID or its string form.

    Raises:
        ValueError: If ``value`` is not a UUID.
    """
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} is not a valid UUID: {value!r}") from None
