"""Error taxonomy shared by the capture, query and reporting paths.

    ValidationFailure      malformed input to a public entry point
    NotFound               a subject id that resolves to no current item
    DataQualityError       a stored value that cannot be decoded
    StoreUnavailableError  the durable store cannot be reached

Batch aggregation isolates the first three per item.  The last one always
fails the whole request.
"""

from __future__ import annotations


class CatalogHistoryError(Exception):
    """Base class for all catalog-history errors."""


class ValidationFailure(CatalogHistoryError):
    """Raised when a caller passes malformed input.  Nothing is processed."""


class NotFound(CatalogHistoryError):
    """Raised when a subject id does not resolve to a current catalog item."""

    def __init__(self, subject_id: str) -> None:
        self.subject_id = subject_id
        super().__init__(f"Catalog item {subject_id} not found")


class DataQualityError(CatalogHistoryError):
    """Raised when a stored value fails to decode into its expected type."""

    def __init__(self, field: str, raw_value: str, reason: str) -> None:
        self.field = field
        self.raw_value = raw_value
        self.reason = reason
        super().__init__(f"Cannot decode {field}={raw_value!r}: {reason}")


class StoreUnavailableError(CatalogHistoryError):
    """Raised when the durable store cannot be reached."""
