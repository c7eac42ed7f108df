"""Identifier generation for catalog items and change sets."""

from __future__ import annotations

from uuid import uuid4


def new_id() -> str:
    """Generate a new random UUID v4 string identifier."""
    return str(uuid4())
