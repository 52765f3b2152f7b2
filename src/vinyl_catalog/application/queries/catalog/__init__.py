"""Catalog queries."""

from .record_queries import (
    GetRecordHandler,
    GetRecordQuery,
    IsBookmarkedHandler,
    IsBookmarkedQuery,
    ListBookmarksHandler,
    ListBookmarksQuery,
    ListRecordsHandler,
    ListRecordsQuery,
)
from .statistics_queries import GetCollectionStatisticsHandler, GetCollectionStatisticsQuery

__all__ = [
    "ListRecordsQuery",
    "ListRecordsHandler",
    "GetRecordQuery",
    "GetRecordHandler",
    "ListBookmarksQuery",
    "ListBookmarksHandler",
    "IsBookmarkedQuery",
    "IsBookmarkedHandler",
    "GetCollectionStatisticsQuery",
    "GetCollectionStatisticsHandler",
]
