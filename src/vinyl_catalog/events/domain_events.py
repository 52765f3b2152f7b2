"""
Domain Events - Specific event implementations.

This module defines the events raised by catalogue and account commands.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .event_bus import DomainEvent


@dataclass(kw_only=True)
class RecordCreated(DomainEvent):
    """Event fired when a new shared record is created."""
    record_id: str
    artist: str
    album: str
    product_code: Optional[str] = None
    created_by: Optional[str] = None

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.record_id
        self.aggregate_type = "Record"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "artist": self.artist,
            "album": self.album,
            "product_code": self.product_code,
            "created_by": self.created_by,
        }


@dataclass(kw_only=True)
class RecordDetailsUpdated(DomainEvent):
    """Event fired when descriptive metadata of a record changes."""
    record_id: str
    user_id: Optional[str]
    changed_fields: tuple = ()

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.record_id
        self.aggregate_type = "Record"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "user_id": self.user_id,
            "changed_fields": list(self.changed_fields),
        }


@dataclass(kw_only=True)
class OwnershipAttached(DomainEvent):
    """Event fired when a user's ownership fact is added or updated."""
    record_id: str
    user_id: str
    created: bool = True

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.record_id
        self.aggregate_type = "Record"

    def _get_event_data(self) -> Dict[str, Any]:
        return {"record_id": self.record_id, "user_id": self.user_id, "created": self.created}


@dataclass(kw_only=True)
class OwnershipDetached(DomainEvent):
    """Event fired when a user's ownership fact is removed."""
    record_id: str
    user_id: str
    remaining_owners: int = 0

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.record_id
        self.aggregate_type = "Record"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "user_id": self.user_id,
            "remaining_owners": self.remaining_owners,
        }


@dataclass(kw_only=True)
class RatingChanged(DomainEvent):
    """Event fired when a user sets or clears a rating."""
    record_id: str
    user_id: str
    rating: Optional[int]
    average_rating: float
    rating_count: int

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.record_id
        self.aggregate_type = "Record"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            "record_id": self.record_id,
            "user_id": self.user_id,
            "rating": self.rating,
            "average_rating": self.average_rating,
            "rating_count": self.rating_count,
        }


@dataclass(kw_only=True)
class RecordDeleted(DomainEvent):
    """Event fired when a record is removed from the catalogue."""
    record_id: str
    deleted_by: Optional[str] = None
    reason: str = "user_deleted"  # user_deleted, orphan_purged

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.record_id
        self.aggregate_type = "Record"

    def _get_event_data(self) -> Dict[str, Any]:
        return {"record_id": self.record_id, "deleted_by": self.deleted_by, "reason": self.reason}


@dataclass(kw_only=True)
class BookmarkAdded(DomainEvent):
    """Event fired when a user bookmarks a record."""
    user_id: str
    record_id: str

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.user_id
        self.aggregate_type = "Bookmark"

    def _get_event_data(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "record_id": self.record_id}


@dataclass(kw_only=True)
class BookmarkRemoved(DomainEvent):
    """Event fired when a bookmark is removed, by the user or by claiming the record."""
    user_id: str
    record_id: str
    reason: str = "user_removed"  # user_removed, claimed

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.user_id
        self.aggregate_type = "Bookmark"

    def _get_event_data(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "record_id": self.record_id, "reason": self.reason}


@dataclass(kw_only=True)
class UserRegistered(DomainEvent):
    """Event fired when a user account is created."""
    user_id: str
    username: str

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.user_id
        self.aggregate_type = "User"

    def _get_event_data(self) -> Dict[str, Any]:
        return {"user_id": self.user_id, "username": self.username}


@dataclass(kw_only=True)
class UserDeleted(DomainEvent):
    """Event fired when a user account is removed with its facts."""
    user_id: str
    detached_records: int = 0
    removed_bookmarks: int = 0

    def __post_init__(self):
        self.aggregate_id = self.aggregate_id or self.user_id
        self.aggregate_type = "User"

    def _get_event_data(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "detached_records": self.detached_records,
            "removed_bookmarks": self.removed_bookmarks,
        }
