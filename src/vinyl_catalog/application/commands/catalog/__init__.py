"""Catalog commands."""

from .bookmarks import (
    AddBookmarkCommand,
    AddBookmarkHandler,
    RemoveBookmarkCommand,
    RemoveBookmarkHandler,
    SyncBookmarksCommand,
    SyncBookmarksHandler,
)
from .ownership import (
    AttachOwnershipCommand,
    AttachOwnershipHandler,
    DetachOwnershipCommand,
    DetachOwnershipHandler,
)
from .ratings import SetRatingCommand, SetRatingHandler
from .records import (
    CreateBookmarkTargetCommand,
    CreateBookmarkTargetHandler,
    CreateRecordCommand,
    CreateRecordHandler,
    DeleteRecordCommand,
    DeleteRecordHandler,
    PurgeOrphanRecordsCommand,
    PurgeOrphanRecordsHandler,
    UpdateRecordDetailsCommand,
    UpdateRecordDetailsHandler,
)

__all__ = [
    # Records
    "CreateRecordCommand",
    "CreateRecordHandler",
    "CreateBookmarkTargetCommand",
    "CreateBookmarkTargetHandler",
    "UpdateRecordDetailsCommand",
    "UpdateRecordDetailsHandler",
    "DeleteRecordCommand",
    "DeleteRecordHandler",
    "PurgeOrphanRecordsCommand",
    "PurgeOrphanRecordsHandler",
    # Ownership
    "AttachOwnershipCommand",
    "AttachOwnershipHandler",
    "DetachOwnershipCommand",
    "DetachOwnershipHandler",
    # Ratings
    "SetRatingCommand",
    "SetRatingHandler",
    # Bookmarks
    "AddBookmarkCommand",
    "AddBookmarkHandler",
    "RemoveBookmarkCommand",
    "RemoveBookmarkHandler",
    "SyncBookmarksCommand",
    "SyncBookmarksHandler",
]
