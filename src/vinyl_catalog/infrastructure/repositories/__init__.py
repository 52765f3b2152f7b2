"""Key-value implementations of the domain repositories."""

from .bookmark_store import KeyValueBookmarkRepository
from .record_store import KeyValueRecordRepository
from .user_store import KeyValueUserRepository

__all__ = [
    "KeyValueRecordRepository",
    "KeyValueBookmarkRepository",
    "KeyValueUserRepository",
]
