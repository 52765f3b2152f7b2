"""
Catalog Context - The shared record catalogue.

This bounded context is responsible for:
- Records shared between owners, deduplicated by product code
- Merging each user's ownership and rating facts into a record
- Bookmarks of records a user does not own
- Per-user collection statistics over the catalogue
"""

from .entities import (
    Bookmark,
    BookmarkWithRecord,
    OwnershipDetails,
    OwnershipFact,
    RatingFact,
    Record,
)
from .value_objects import Condition, Track
from .repositories import BookmarkRepository, RecordChange, RecordRepository
from .services import OwnershipMergeEngine, RatingAggregator, RatingSummary
from .statistics import CollectionAggregationEngine, CollectionStatistics, rarity_tier
from .legacy import migrate_record_dict

__all__ = [
    # Entities
    "Record",
    "OwnershipFact",
    "OwnershipDetails",
    "RatingFact",
    "Bookmark",
    "BookmarkWithRecord",
    # Value Objects
    "Condition",
    "Track",
    # Repositories
    "RecordRepository",
    "BookmarkRepository",
    "RecordChange",
    # Services
    "OwnershipMergeEngine",
    "RatingAggregator",
    "RatingSummary",
    "CollectionAggregationEngine",
    "CollectionStatistics",
    "rarity_tier",
    "migrate_record_dict",
]
