"""
Event System - Domain Events Architecture

This package lets listeners follow catalogue changes without coupling
them to the command handlers that make those changes.
"""

from .event_bus import DomainEvent, EventBus, EventHandler, EventPriority
from .domain_events import (
    BookmarkAdded,
    BookmarkRemoved,
    OwnershipAttached,
    OwnershipDetached,
    RatingChanged,
    RecordCreated,
    RecordDeleted,
    RecordDetailsUpdated,
    UserDeleted,
    UserRegistered,
)

__all__ = [
    # Core event system
    "EventBus",
    "DomainEvent",
    "EventHandler",
    "EventPriority",
    # Domain events
    "RecordCreated",
    "RecordDetailsUpdated",
    "RecordDeleted",
    "OwnershipAttached",
    "OwnershipDetached",
    "RatingChanged",
    "BookmarkAdded",
    "BookmarkRemoved",
    "UserRegistered",
    "UserDeleted",
]
