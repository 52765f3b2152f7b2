"""
Infrastructure Layer - Storage for the catalogue.

Key-value backends (memory, JSON files, Redis) and the repositories that map
records, facts, bookmarks and users onto them.
"""

from .repositories import (
    KeyValueBookmarkRepository,
    KeyValueRecordRepository,
    KeyValueUserRepository,
)
from .storage import create_backend

__all__ = [
    "KeyValueRecordRepository",
    "KeyValueBookmarkRepository",
    "KeyValueUserRepository",
    "create_backend",
]
