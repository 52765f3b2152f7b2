"""Catalog Context Entities.

This module defines the core entities for the Catalog bounded context.
A Record is the shared representation of one physical release; every user's
ownership and rating facts hang off it, keyed by user id.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from .value_objects import (
    Condition,
    Track,
    format_timestamp,
    parse_timestamp,
    release_year,
    round_half_up,
    utc_now,
    validate_purchase_price,
)
from ...exceptions import ValidationError

# Descriptive fields that owners may edit; (attribute, wire name)
DESCRIPTIVE_FIELDS = (
    ("artist", "artist"),
    ("album", "album"),
    ("product_code", "productCode"),
    ("release_date", "releaseDate"),
    ("genre", "genre"),
    ("label", "label"),
    ("country", "country"),
    ("pressing_type", "pressingType"),
    ("artwork_ref", "artworkRef"),
    ("notes", "notes"),
    ("bio", "bio"),
    ("credits", "credits"),
)


@dataclass(frozen=True, slots=True)
class OwnershipDetails:
    """The mutable part of an ownership fact, as submitted by its owner."""

    condition: Optional[Condition] = None
    notes: Optional[str] = None
    purchase_price: Optional[float] = None

    @classmethod
    def create(
        cls,
        condition: Any = None,
        notes: Optional[str] = None,
        purchase_price: Any = None,
    ) -> "OwnershipDetails":
        """Validate raw input into ownership details."""
        return cls(
            condition=Condition.parse(condition),
            notes=notes or None,
            purchase_price=validate_purchase_price(purchase_price),
        )


@dataclass(frozen=True, slots=True)
class OwnershipFact:
    """One user's private annotations on a shared record."""

    user_id: str
    username: str
    added_at: datetime
    condition: Optional[Condition] = None
    notes: Optional[str] = None
    purchase_price: Optional[float] = None

    def with_details(self, details: OwnershipDetails) -> "OwnershipFact":
        """Replace the mutable fields, keeping identity and added_at."""
        return replace(
            self,
            condition=details.condition,
            notes=details.notes,
            purchase_price=details.purchase_price,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "userId": self.user_id,
            "username": self.username,
            "addedAt": format_timestamp(self.added_at),
        }
        if self.condition is not None:
            data["condition"] = self.condition.value
        if self.notes:
            data["notes"] = self.notes
        if self.purchase_price is not None:
            data["purchasePrice"] = self.purchase_price
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OwnershipFact":
        return cls(
            user_id=str(data["userId"]),
            username=data.get("username") or "",
            added_at=parse_timestamp(data.get("addedAt")) or utc_now(),
            condition=Condition.parse(data.get("condition")),
            notes=data.get("notes") or None,
            purchase_price=validate_purchase_price(data.get("purchasePrice")),
        )


@dataclass(frozen=True, slots=True)
class RatingFact:
    """One user's star rating of a record."""

    user_id: str
    rating: int
    created_at: datetime
    username: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "userId": self.user_id,
            "rating": self.rating,
            "createdAt": format_timestamp(self.created_at),
        }
        if self.username:
            data["username"] = self.username
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RatingFact":
        return cls(
            user_id=str(data["userId"]),
            rating=int(data["rating"]),
            created_at=parse_timestamp(data.get("createdAt")) or utc_now(),
            username=data.get("username") or None,
        )


def average_rating(ratings: Iterable[RatingFact]) -> float:
    """Mean of the rating values rounded half-up to one decimal; 0.0 when empty."""
    values = [r.rating for r in ratings]
    if not values:
        return 0.0
    return round_half_up(sum(values) / len(values), 1)


@dataclass(kw_only=True)
class Record:
    """
    Represents one physical release in the shared catalogue.

    The record is shared by every user who owns it. Ownership and rating facts
    are kept per user; at most one of each per user id.
    """

    # Entity ID
    id: str = field(default_factory=lambda: str(uuid4()))

    # Core identity
    artist: str
    album: str
    product_code: Optional[str] = None

    # Descriptive metadata
    release_date: Optional[str] = None
    genre: Optional[str] = None
    label: Optional[str] = None
    country: Optional[str] = None
    pressing_type: Optional[str] = None
    artwork_ref: Optional[str] = None
    track_list: List[Track] = field(default_factory=list)
    notes: Optional[str] = None
    bio: Optional[str] = None
    credits: Optional[str] = None

    # Legacy single-owner fields
    primary_owner_id: Optional[str] = None
    primary_owner_username: Optional[str] = None

    # Per-user facts
    owners: List[OwnershipFact] = field(default_factory=list)
    ratings: List[RatingFact] = field(default_factory=list)

    # Timestamps
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    # Optimistic concurrency; 0 means never stored
    version: int = 0

    @property
    def release_year(self) -> Optional[int]:
        """Get the release year."""
        return release_year(self.release_date)

    @property
    def owner_ids(self) -> List[str]:
        """User ids holding an ownership fact."""
        return [o.user_id for o in self.owners]

    @property
    def owner_count(self) -> int:
        """Number of distinct owners, counting an unmigrated primary owner once."""
        ids = set(self.owner_ids)
        if self.primary_owner_id:
            ids.add(self.primary_owner_id)
        return len(ids)

    @property
    def average_rating(self) -> float:
        """Public average of all rating facts."""
        return average_rating(self.ratings)

    @property
    def rating_count(self) -> int:
        return len(self.ratings)

    def get_display_name(self) -> str:
        """Get human-readable display name."""
        year = self.release_year
        year_str = f" ({year})" if year else ""
        return f"{self.artist} - {self.album}{year_str}"

    def owner_fact(self, user_id: str) -> Optional[OwnershipFact]:
        """Get a user's ownership fact, if any."""
        for fact in self.owners:
            if fact.user_id == user_id:
                return fact
        return None

    def rating_fact(self, user_id: str) -> Optional[RatingFact]:
        """Get a user's rating fact, if any."""
        for fact in self.ratings:
            if fact.user_id == user_id:
                return fact
        return None

    def is_owned_by(self, user_id: str) -> bool:
        """Check whether a user owns this record (including as legacy primary owner)."""
        return self.primary_owner_id == user_id or self.owner_fact(user_id) is not None

    def touch(self) -> None:
        """Bump updated_at."""
        self.updated_at = utc_now()

    @classmethod
    def create(cls, metadata: Dict[str, Any]) -> "Record":
        """Create a new, owner-less record from descriptive metadata.

        Artist and album are mandatory. Unknown keys are rejected so a typo
        never silently drops a field.
        """
        record = cls(artist="", album="")
        record.update_details(metadata)
        return record

    def update_details(self, changes: Dict[str, Any]) -> List[str]:
        """Apply descriptive metadata changes; returns the wire names that changed.

        Keys may be wire names ("releaseDate") or attribute names
        ("release_date"). Ownership, rating, identity and timestamp fields
        are not descriptive and cannot be set here.
        """
        by_name = {}
        for attribute, wire_name in DESCRIPTIVE_FIELDS + (("track_list", "trackList"),):
            by_name[attribute] = (attribute, wire_name)
            by_name[wire_name] = (attribute, wire_name)

        unknown = sorted(key for key in changes if key not in by_name)
        if unknown:
            raise ValidationError(f"Cannot set field(s): {', '.join(unknown)}", field=unknown[0])

        changed = []
        for key, value in changes.items():
            attribute, wire_name = by_name[key]
            if attribute == "track_list":
                value = [t if isinstance(t, Track) else Track.from_dict(t) for t in value or []]
            elif isinstance(value, str):
                value = value.strip() or None
            if getattr(self, attribute) != value:
                setattr(self, attribute, value)
                changed.append(wire_name)

        for attribute in ("artist", "album"):
            if not getattr(self, attribute):
                raise ValidationError(f"{attribute.capitalize()} is required", field=attribute)
        return changed

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to its wire representation."""
        data: Dict[str, Any] = {"id": self.id}
        for attribute, wire_name in DESCRIPTIVE_FIELDS:
            value = getattr(self, attribute)
            if value is not None and value != "":
                data[wire_name] = value
        if self.track_list:
            data["trackList"] = [t.to_dict() for t in self.track_list]
        if self.primary_owner_id:
            data["primaryOwnerId"] = self.primary_owner_id
            data["primaryOwnerUsername"] = self.primary_owner_username
        data["owners"] = [o.to_dict() for o in self.owners]
        data["ratings"] = [r.to_dict() for r in self.ratings]
        data["averageRating"] = self.average_rating
        data["ratingCount"] = self.rating_count
        data["createdAt"] = format_timestamp(self.created_at)
        data["updatedAt"] = format_timestamp(self.updated_at)
        data["version"] = self.version
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Record":
        """Build a record from its wire representation.

        Legacy shapes are migrated first, so the result never needs the
        single-owner fallbacks.
        """
        from .legacy import migrate_record_dict

        data = migrate_record_dict(data)
        created_at = parse_timestamp(data.get("createdAt")) or utc_now()
        kwargs = {
            attribute: data.get(wire_name)
            for attribute, wire_name in DESCRIPTIVE_FIELDS
        }
        kwargs["artist"] = kwargs["artist"] or ""
        kwargs["album"] = kwargs["album"] or ""

        return cls(
            id=str(data["id"]) if data.get("id") else str(uuid4()),
            track_list=[Track.from_dict(t) for t in data.get("trackList") or []],
            primary_owner_id=data.get("primaryOwnerId") or None,
            primary_owner_username=data.get("primaryOwnerUsername") or None,
            owners=[OwnershipFact.from_dict(o) for o in data.get("owners") or []],
            ratings=[RatingFact.from_dict(r) for r in data.get("ratings") or []],
            created_at=created_at,
            updated_at=parse_timestamp(data.get("updatedAt")) or created_at,
            version=int(data.get("version") or 0),
            **kwargs,
        )


@dataclass(frozen=True, slots=True)
class Bookmark:
    """A user's non-ownership reference to a record (a wishlist entry)."""

    user_id: str
    record_id: str
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "recordId": self.record_id,
            "createdAt": format_timestamp(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bookmark":
        return cls(
            id=str(data["id"]),
            user_id=str(data["userId"]),
            record_id=str(data.get("recordId") or data.get("vinylId")),
            created_at=parse_timestamp(data.get("createdAt")) or utc_now(),
        )


@dataclass(frozen=True, slots=True)
class BookmarkWithRecord:
    """A bookmark joined with the record it points at."""

    bookmark: Bookmark
    record: Record

    def to_dict(self) -> Dict[str, Any]:
        data = self.bookmark.to_dict()
        data["record"] = self.record.to_dict()
        return data
