"""Derived predicates over tracked values.

A predicate is a pure function of a TrackedValues tuple.  It never looks at
time, so the same function classifies an item "now" and "then".
"""

from __future__ import annotations

from catalog_history.domain.item import CatalogItem, TrackedValues
from catalog_history.domain.snapshot import Snapshot


def is_unused(values: TrackedValues) -> bool:
    """Never read and not away from its owner."""
    return values.read_count == 0 and values.holder == values.owner


def evaluate_current(item: CatalogItem) -> bool:
    return is_unused(item.tracked_values())


def evaluate_snapshot(snapshot: Snapshot) -> bool:
    return is_unused(snapshot.values)
