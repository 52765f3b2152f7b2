"""Catalog Context Domain Services.

Pure merge rules for the per-user facts of a shared record. These services
work on an in-memory Record and never touch storage; the application layer
runs them inside a fetch-mutate-commit cycle.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from .entities import OwnershipDetails, OwnershipFact, RatingFact, Record
from .value_objects import utc_now, validate_rating


@dataclass(frozen=True, slots=True)
class RatingSummary:
    """Public rating figures for a record."""
    average: float
    count: int


class OwnershipMergeEngine:
    """Attach and detach ownership facts without disturbing sibling owners."""

    @staticmethod
    def attach(
        record: Record,
        user_id: str,
        username: str,
        details: OwnershipDetails,
        now: Optional[datetime] = None,
    ) -> OwnershipFact:
        """Upsert a user's ownership fact on the record.

        An existing fact keeps its added_at and has its mutable fields replaced;
        otherwise a new fact is appended. Returns the resulting fact.
        """
        now = now or utc_now()

        if not record.owners and record.primary_owner_id == user_id:
            # Legacy single-owner record not yet carrying its owner as a fact
            record.owners.append(OwnershipFact(
                user_id=user_id,
                username=record.primary_owner_username or username,
                added_at=record.created_at,
            ))

        for index, existing in enumerate(record.owners):
            if existing.user_id == user_id:
                merged = replace(existing.with_details(details), username=username or existing.username)
                record.owners[index] = merged
                return merged

        fact = OwnershipFact(
            user_id=user_id,
            username=username,
            added_at=now,
            condition=details.condition,
            notes=details.notes,
            purchase_price=details.purchase_price,
        )
        record.owners.append(fact)
        return fact

    @staticmethod
    def detach(record: Record, user_id: str) -> bool:
        """Remove exactly one user's ownership fact.

        Clears the legacy primary owner fields when they name this user.
        Returns True if the user owned the record.
        """
        before = len(record.owners)
        record.owners = [o for o in record.owners if o.user_id != user_id]
        removed = len(record.owners) != before

        if record.primary_owner_id == user_id:
            record.primary_owner_id = None
            record.primary_owner_username = None
            removed = True

        return removed


class RatingAggregator:
    """Maintain one rating per user and the public average."""

    @staticmethod
    def set_rating(
        record: Record,
        user_id: str,
        username: Optional[str],
        rating: Optional[int],
        now: Optional[datetime] = None,
    ) -> Optional[RatingFact]:
        """Upsert or (for None/0) remove a user's rating.

        Raises InvalidRating for anything other than an integer 1-5, None or 0.
        Returns the stored fact, or None when the rating was cleared.
        """
        value = validate_rating(rating)
        others = [r for r in record.ratings if r.user_id != user_id]

        if value is None:
            record.ratings = others
            return None

        existing = record.rating_fact(user_id)
        fact = RatingFact(
            user_id=user_id,
            username=username or (existing.username if existing else None),
            rating=value,
            created_at=existing.created_at if existing else (now or utc_now()),
        )
        if existing:
            record.ratings = [fact if r.user_id == user_id else r for r in record.ratings]
        else:
            record.ratings = others + [fact]
        return fact

    @staticmethod
    def summarize(record: Record) -> RatingSummary:
        """Public average and count of a record's ratings."""
        return RatingSummary(average=record.average_rating, count=record.rating_count)
