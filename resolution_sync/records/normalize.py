"""
Row normalization at the store boundary.

Rows arrive from the remote store and from older cache blobs with
inconsistent field spellings (``userId``, ``userid``, ``user_id``,
``createdat``...). Every record type decodes through this module, which
matches keys case-insensitively and ignoring underscores, so business code
only ever sees one canonical shape.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, TypeVar

E = TypeVar("E", bound=Enum)


def canonical_key(key: str) -> str:
    """Fold a field name to its comparison form (``ownerId`` -> ``ownerid``)."""
    return key.replace("_", "").replace("-", "").lower()


def normalize_row(row: Mapping[str, Any], aliases: Mapping[str, tuple[str, ...]]) -> dict[str, Any]:
    """Map a raw row onto canonical field names.

    Args:
        row: Raw row as read from the remote store or cache
        aliases: canonical field name -> accepted spellings, in priority order

    Returns:
        Dict keyed by canonical field names. Fields with no matching key
        are omitted; keys matching no alias are dropped.

    Raises:
        TypeError: If row is not a mapping
    """
    if not isinstance(row, Mapping):
        raise TypeError(f"Expected a mapping row, got {type(row).__name__}")

    index: dict[str, Any] = {}
    for key, value in row.items():
        if isinstance(key, str):
            index.setdefault(canonical_key(key), value)

    normalized: dict[str, Any] = {}
    for field_name, spellings in aliases.items():
        for spelling in (field_name, *spellings):
            folded = canonical_key(spelling)
            if folded in index:
                normalized[field_name] = index[folded]
                break
    return normalized


def parse_enum(enum_cls: type[E], value: Any, legacy: Mapping[str, E] | None = None) -> E:
    """Parse an enum value, accepting member names and legacy labels.

    Raises:
        ValueError: If the value matches nothing
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        text = value.strip()
        if legacy and text in legacy:
            return legacy[text]
        lowered = text.lower()
        for member in enum_cls:
            if lowered in (str(member.value).lower(), member.name.lower()):
                return member
    raise ValueError(f"Invalid {enum_cls.__name__}: {value!r}")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a timestamp into an aware UTC datetime.

    Naive values are taken to be UTC. Empty or unparseable values
    return None (older clients stored locale-formatted times).
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


def format_timestamp(value: datetime | None) -> str | None:
    """Serialize a timestamp to ISO 8601 (None stays None)."""
    return value.isoformat() if value else None


def parse_date(value: Any) -> str:
    """Normalize a partition date to ``YYYY-MM-DD``.

    Raises:
        ValueError: If the value is not a date
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10]).isoformat()
    raise ValueError(f"Invalid date: {value!r}")
