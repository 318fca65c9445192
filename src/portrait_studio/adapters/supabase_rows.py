"""Helpers for decoding Supabase row values."""

from datetime import datetime
from uuid import UUID


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO timestamp column, tolerating nulls."""
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None


def optional_uuid(value: object) -> UUID | None:
    """Parse a nullable UUID column."""
    return UUID(str(value)) if value else None


def optional_str(value: object) -> str | None:
    """Stringify a nullable column, keeping None."""
    return str(value) if value is not None else None
