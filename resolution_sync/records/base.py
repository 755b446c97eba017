"""
Base record contract.

Every record kept in a SyncedRecordStore knows its id, its partition
(if the collection is partitioned), how to serialize itself for the
local cache and for the remote row schema, and how to decode either
shape back.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Self


class SyncedRecord(ABC):
    """A record that can live in both the local cache and the remote store."""

    id: str

    def partition(self) -> str | None:
        """Partition value (e.g. the board date); None for unpartitioned collections."""
        return None

    @abstractmethod
    def to_dict(self) -> dict[str, Any]:
        """Serialize to the canonical cache shape."""
        ...

    @abstractmethod
    def to_row(self) -> dict[str, Any]:
        """Serialize to the remote table's row schema."""
        ...

    @classmethod
    @abstractmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Decode from either the cache shape or a remote row.

        Raises:
            ValueError, TypeError or KeyError for malformed rows
        """
        ...
