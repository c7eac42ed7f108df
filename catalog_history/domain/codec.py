"""String encoding of tracked field values.

Audit events store values as strings.  Encoding is canonical so that change
detection can compare strings, and decoding is exhaustive over TrackedField.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from catalog_history.domain.enums import TrackedField
from catalog_history.domain.errors import DataQualityError


def encode_value(field: TrackedField, value: Any) -> str:
    """Return the canonical string form of *value* for *field*."""
    if isinstance(value, Enum):
        return str(value.value)
    if field is TrackedField.READ_COUNT:
        if isinstance(value, bool):
            return str(int(value))
        if isinstance(value, int):
            return str(value)
        return str(value).strip()
    return str(value)


def decode_value(field: TrackedField, raw: str) -> str | int:
    """Decode a stored string into the field's typed value.

    Raises:
        DataQualityError: If *raw* is not a valid value for *field*.
    """
    if field is TrackedField.READ_COUNT:
        try:
            count = int(raw.strip())
        except (AttributeError, ValueError) as exc:
            raise DataQualityError(field.value, raw, "not an integer") from exc
        if count < 0:
            raise DataQualityError(field.value, raw, "negative count")
        return count
    if field in (TrackedField.STATUS, TrackedField.OWNER, TrackedField.HOLDER):
        return raw
    raise DataQualityError(field.value, raw, "unknown tracked field")


def fallback_value(field: TrackedField) -> str | int:
    """Safe default used when lenient decoding gives up on a stored value."""
    if field is TrackedField.READ_COUNT:
        return 0
    return ""
