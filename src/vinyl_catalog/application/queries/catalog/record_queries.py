"""Record and bookmark queries."""

from dataclasses import dataclass
from typing import List, Optional

from ...queries.base import Query, QueryHandler
from ....domain.catalog.entities import BookmarkWithRecord, Record
from ....domain.catalog.repositories import BookmarkRepository, RecordRepository
from ....exceptions import Unauthorized


@dataclass(frozen=True, slots=True, kw_only=True)
class ListRecordsQuery(Query):
    """Browse the catalogue, newest first, optionally one owner's collection."""

    owner_id: Optional[str] = None
    limit: Optional[int] = None


@dataclass(frozen=True, slots=True, kw_only=True)
class GetRecordQuery(Query):
    record_id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class ListBookmarksQuery(Query):
    """A user's bookmarks joined with their records."""

    user_id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class IsBookmarkedQuery(Query):
    user_id: str
    record_id: str


class ListRecordsHandler(QueryHandler[ListRecordsQuery, List[Record]]):
    query_type = ListRecordsQuery

    def __init__(self, record_repo: RecordRepository):
        self.record_repo = record_repo

    async def handle(self, query: ListRecordsQuery) -> List[Record]:
        records = await self.record_repo.list_all()
        if query.owner_id:
            records = [r for r in records if r.is_owned_by(query.owner_id)]
        records = sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)
        if query.limit is not None:
            records = records[:max(0, query.limit)]
        return records


class GetRecordHandler(QueryHandler[GetRecordQuery, Record]):
    query_type = GetRecordQuery

    def __init__(self, record_repo: RecordRepository):
        self.record_repo = record_repo

    async def handle(self, query: GetRecordQuery) -> Record:
        return await self.record_repo.get_by_id(query.record_id)


class ListBookmarksHandler(QueryHandler[ListBookmarksQuery, List[BookmarkWithRecord]]):
    query_type = ListBookmarksQuery

    def __init__(self, bookmark_repo: BookmarkRepository):
        self.bookmark_repo = bookmark_repo

    async def handle(self, query: ListBookmarksQuery) -> List[BookmarkWithRecord]:
        if not query.user_id:
            raise Unauthorized("You must be signed in to see bookmarks")
        return await self.bookmark_repo.list_with_records(query.user_id)


class IsBookmarkedHandler(QueryHandler[IsBookmarkedQuery, bool]):
    query_type = IsBookmarkedQuery

    def __init__(self, bookmark_repo: BookmarkRepository):
        self.bookmark_repo = bookmark_repo

    async def handle(self, query: IsBookmarkedQuery) -> bool:
        if not query.user_id:
            return False
        return await self.bookmark_repo.exists(query.user_id, query.record_id)
