"""
Domain Layer - Vinyl Catalog

Bounded Contexts:
- Catalog: shared records, per-user ownership and rating facts, bookmarks
  and collection statistics
- Accounts: the users those facts are keyed by
"""

from .catalog import (
    Bookmark,
    CollectionAggregationEngine,
    OwnershipMergeEngine,
    RatingAggregator,
    Record,
)
from .accounts import User

__all__ = [
    "Bookmark",
    "CollectionAggregationEngine",
    "OwnershipMergeEngine",
    "RatingAggregator",
    "Record",
    "User",
]
