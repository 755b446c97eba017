"""
Local durable cache for synced collections.

One JSON-array blob per collection key, optionally partitioned by date.
"""

from .cache import FileCache, LocalCache, MemoryCache

__all__ = [
    "LocalCache",
    "FileCache",
    "MemoryCache",
]
