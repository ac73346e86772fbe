"""
Deterministic JSON helpers.

Every text blob the ledger persists (nested version collections, audit
before/after values, side-channel state) goes through these functions so
that the same value always produces the same text.
"""

import json
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    JSON serializer for types not natively supported.

    Decimal is written as a string so no precision is lost on the round trip.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """
    Convert data to a canonical JSON string.

    Keys are sorted and separators carry no whitespace.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
        ensure_ascii=False,
    )


def from_json(text: str | None, default: Any = None) -> Any:
    """
    Parse JSON text.

    ``None`` or empty text returns ``default``; malformed text raises
    ``json.JSONDecodeError`` so callers decide how to report it.
    """
    if text is None or text == "":
        return default
    return json.loads(text)


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, preserving None.  Naive values are UTC."""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
