"""Catalog Context Repository Interfaces.

This module defines repository interfaces for the Catalog bounded context.
Repositories provide abstraction over data storage and retrieval.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .entities import Bookmark, BookmarkWithRecord, Record


@dataclass(frozen=True, slots=True)
class RecordChange:
    """Which per-user facts a mutation touched.

    The store rewrites only the listed users' facts, so a merge for one user
    never rewrites another user's stored fact.
    """
    owner_ids: Tuple[str, ...] = ()
    rater_ids: Tuple[str, ...] = ()
    details: bool = False


Mutator = Callable[[Record], RecordChange]


class RecordRepository(ABC):
    """Repository for Record entities."""

    @abstractmethod
    async def list_all(self) -> List[Record]:
        """Full snapshot, ordered by creation time then id."""
        pass

    @abstractmethod
    async def get_by_id(self, record_id: str) -> Record:
        """Find a record by its ID; raises RecordNotFound."""
        pass

    @abstractmethod
    async def find_by_product_code(self, product_code: str) -> Optional[Record]:
        """Find the record carrying a product code."""
        pass

    @abstractmethod
    async def put(self, record: Record) -> Record:
        """Replace a record and all of its facts; rejects stale versions."""
        pass

    @abstractmethod
    async def modify(self, record_id: str, mutator: Mutator) -> Record:
        """Run a fetch-mutate-commit cycle, retrying on stale writes."""
        pass

    @abstractmethod
    async def delete(self, record_id: str) -> bool:
        """Delete a record and its facts."""
        pass


class BookmarkRepository(ABC):
    """Repository for Bookmark entities."""

    @abstractmethod
    async def list(self, user_id: str) -> List[Bookmark]:
        """A user's bookmarks, oldest first."""
        pass

    @abstractmethod
    async def list_with_records(self, user_id: str) -> List[BookmarkWithRecord]:
        """A user's bookmarks joined with their records."""
        pass

    @abstractmethod
    async def add(self, user_id: str, record_id: str) -> Bookmark:
        """Bookmark a record; returns the existing bookmark if already present."""
        pass

    @abstractmethod
    async def remove(self, user_id: str, record_id: str) -> bool:
        """Remove a bookmark."""
        pass

    @abstractmethod
    async def exists(self, user_id: str, record_id: str) -> bool:
        """Check whether a user bookmarked a record."""
        pass

    @abstractmethod
    async def list_for_record(self, record_id: str) -> List[Bookmark]:
        """All bookmarks pointing at a record."""
        pass
