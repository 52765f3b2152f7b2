"""Collection statistics query."""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from ...queries.base import Query, QueryHandler
from ....domain.catalog.repositories import RecordRepository
from ....domain.catalog.statistics import CollectionAggregationEngine, CollectionStatistics
from ....domain.catalog.value_objects import as_calendar_date, utc_now
from ....exceptions import Unauthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class GetCollectionStatisticsQuery(Query):
    """Dashboard figures for one user's collection.

    ``today`` defaults to the current UTC date; pass it explicitly for
    reproducible results.
    """

    user_id: str
    today: Optional[date] = None


class GetCollectionStatisticsHandler(QueryHandler[GetCollectionStatisticsQuery, CollectionStatistics]):
    """Reads a fresh snapshot on every call and reduces it; nothing is cached."""

    query_type = GetCollectionStatisticsQuery

    def __init__(self, record_repo: RecordRepository, engine: Optional[CollectionAggregationEngine] = None):
        self.record_repo = record_repo
        self.engine = engine or CollectionAggregationEngine()

    async def handle(self, query: GetCollectionStatisticsQuery) -> CollectionStatistics:
        if not query.user_id:
            raise Unauthorized("You must be signed in to see collection statistics")
        today = query.today or as_calendar_date(utc_now())
        snapshot = await self.record_repo.list_all()
        stats = self.engine.compute(snapshot, query.user_id, today)
        logger.debug(f"Computed statistics for {query.user_id} over {len(snapshot)} record(s)")
        return stats
