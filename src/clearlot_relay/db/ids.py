"""Identifier helpers for database models."""

import uuid


def new_id() -> str:
    """Return an opaque, URL-safe record identifier."""
    return uuid.uuid4().hex
