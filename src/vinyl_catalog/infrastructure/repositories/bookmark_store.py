"""
Key-value Bookmark Repository.

    bookmark:{user_id}:{record_id}      one bookmark

Keying on the (user, record) pair makes "at most one bookmark per pair" a
property of the store: adding is a create-if-absent.
"""

import logging
from typing import List

from ...domain.catalog.entities import Bookmark, BookmarkWithRecord
from ...domain.catalog.repositories import BookmarkRepository, RecordRepository
from ...exceptions import RecordNotFound
from ..storage.backends import KeyValueBackend

logger = logging.getLogger(__name__)

BOOKMARK_PREFIX = "bookmark:"


def bookmark_key(user_id: str, record_id: str) -> str:
    return f"{BOOKMARK_PREFIX}{user_id}:{record_id}"


class KeyValueBookmarkRepository(BookmarkRepository):
    """Bookmark repository over a KeyValueBackend, joined against the record store."""

    def __init__(self, backend: KeyValueBackend, records: RecordRepository):
        self.backend = backend
        self.records = records

    async def list(self, user_id: str) -> List[Bookmark]:
        documents = await self.backend.scan(bookmark_key(user_id, ""))
        bookmarks = [Bookmark.from_dict(doc) for doc in documents.values()]
        bookmarks.sort(key=lambda b: (b.created_at, b.record_id))
        return bookmarks

    async def list_with_records(self, user_id: str) -> List[BookmarkWithRecord]:
        """A user's bookmarks joined with their records.

        Bookmarks whose record has since been deleted are skipped.
        """
        joined = []
        for bookmark in await self.list(user_id):
            try:
                record = await self.records.get_by_id(bookmark.record_id)
            except RecordNotFound:
                logger.debug(f"Skipping bookmark {bookmark.id}; record {bookmark.record_id} is gone")
                continue
            joined.append(BookmarkWithRecord(bookmark=bookmark, record=record))
        return joined

    async def add(self, user_id: str, record_id: str) -> Bookmark:
        """Bookmark a record; returns the existing bookmark if already present.

        Raises RecordNotFound when the record does not exist.
        """
        await self.records.get_by_id(record_id)

        key = bookmark_key(user_id, record_id)
        bookmark = Bookmark(user_id=user_id, record_id=record_id)
        if await self.backend.compare_and_set(key, bookmark.to_dict(), None):
            logger.info(f"User {user_id} bookmarked record {record_id}")
            return bookmark

        existing = await self.backend.get(key)
        if existing is None:
            # Removed between the failed create and the read; try once more
            await self.backend.set(key, bookmark.to_dict())
            return bookmark
        return Bookmark.from_dict(existing)

    async def remove(self, user_id: str, record_id: str) -> bool:
        removed = await self.backend.delete(bookmark_key(user_id, record_id))
        if removed:
            logger.info(f"User {user_id} removed bookmark for record {record_id}")
        return removed

    async def exists(self, user_id: str, record_id: str) -> bool:
        return await self.backend.get(bookmark_key(user_id, record_id)) is not None

    async def list_for_record(self, record_id: str) -> List[Bookmark]:
        documents = await self.backend.scan(BOOKMARK_PREFIX)
        return [
            Bookmark.from_dict(doc)
            for doc in documents.values()
            if doc.get("recordId") == record_id
        ]
