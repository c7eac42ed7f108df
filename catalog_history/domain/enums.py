"""Controlled enumerations for the catalog-history domain.

Every categorical field in the domain MUST reference an enum defined here.
Free-form strings are not acceptable for classification fields.
"""

from __future__ import annotations

from enum import Enum


class TrackedField(str, Enum):
    """The closed set of catalog item attributes whose changes are audited."""

    STATUS = "status"
    OWNER = "owner"
    HOLDER = "holder"
    READ_COUNT = "read_count"


class ItemStatus(str, Enum):
    """Shelf status of a catalog item."""

    IN_LIBRARY = "In library"
    CHECKED_OUT = "Checked out"
    LOST = "Lost"
