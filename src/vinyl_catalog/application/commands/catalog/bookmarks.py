"""Bookmark commands: add, remove and bulk-sync a user's bookmarks."""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ...commands.base import Command, CommandHandler, CommandResult, require_identity
from ....domain.catalog.repositories import BookmarkRepository, RecordRepository
from ....events import BookmarkAdded, BookmarkRemoved, EventBus
from ....exceptions import BookmarkNotFound, CatalogError, ConflictError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class AddBookmarkCommand(Command):
    """Bookmark a record the caller does not own."""

    user_id: str
    record_id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class RemoveBookmarkCommand(Command):
    """Remove one of the caller's bookmarks."""

    user_id: str
    record_id: str


@dataclass(frozen=True, slots=True, kw_only=True)
class SyncBookmarksCommand(Command):
    """Add bookmarks collected while the caller was signed out."""

    user_id: str
    record_ids: Tuple[str, ...] = ()


class AddBookmarkHandler(CommandHandler[AddBookmarkCommand, CommandResult]):
    """Handler for adding a bookmark; adding twice returns the existing one."""

    command_type = AddBookmarkCommand

    def __init__(
        self,
        record_repo: RecordRepository,
        bookmark_repo: BookmarkRepository,
        event_bus: Optional[EventBus] = None,
    ):
        super().__init__(event_bus)
        self.record_repo = record_repo
        self.bookmark_repo = bookmark_repo

    async def _add(self, user_id: str, record_id: str):
        record = await self.record_repo.get_by_id(record_id)
        if record.is_owned_by(user_id):
            raise ConflictError(f"{record.get_display_name()} is already in your collection")
        existed = await self.bookmark_repo.exists(user_id, record_id)
        bookmark = await self.bookmark_repo.add(user_id, record_id)
        return bookmark, not existed

    async def handle(self, command: AddBookmarkCommand) -> CommandResult:
        user_id = require_identity(command.user_id)
        bookmark, created = await self._add(user_id, command.record_id)

        events = [BookmarkAdded(user_id=user_id, record_id=bookmark.record_id)] if created else []
        return CommandResult(
            success=True,
            command_id=command.command_id,
            message="Bookmark added" if created else "Already bookmarked",
            result_data={"bookmark": bookmark.to_dict(), "created": created},
            events=await self._publish(events),
        )


class RemoveBookmarkHandler(CommandHandler[RemoveBookmarkCommand, CommandResult]):
    """Handler for removing a bookmark."""

    command_type = RemoveBookmarkCommand

    def __init__(self, bookmark_repo: BookmarkRepository, event_bus: Optional[EventBus] = None):
        super().__init__(event_bus)
        self.bookmark_repo = bookmark_repo

    async def handle(self, command: RemoveBookmarkCommand) -> CommandResult:
        user_id = require_identity(command.user_id)
        if not await self.bookmark_repo.remove(user_id, command.record_id):
            raise BookmarkNotFound(user_id, command.record_id)

        events = [BookmarkRemoved(user_id=user_id, record_id=command.record_id)]
        return CommandResult(
            success=True,
            command_id=command.command_id,
            message="Bookmark removed",
            result_data={"record_id": command.record_id},
            events=await self._publish(events),
        )


class SyncBookmarksHandler(AddBookmarkHandler):
    """Handler for bulk bookmark sync.

    Each id is added on its own; ids that cannot be bookmarked are reported
    back instead of failing the whole batch.
    """

    command_type = SyncBookmarksCommand

    async def handle(self, command: SyncBookmarksCommand) -> CommandResult:
        user_id = require_identity(command.user_id)

        synced = []
        failed = []
        events = []
        for record_id in dict.fromkeys(command.record_ids):
            try:
                bookmark, created = await self._add(user_id, record_id)
            except CatalogError as e:
                logger.info(f"Could not sync bookmark {record_id} for {user_id}: {e.message}")
                failed.append({"recordId": record_id, "errorKind": e.kind, "reason": e.message})
                continue
            synced.append(bookmark.record_id)
            if created:
                events.append(BookmarkAdded(user_id=user_id, record_id=record_id))

        return CommandResult(
            success=True,
            command_id=command.command_id,
            message=f"Synced {len(synced)} bookmark(s), {len(failed)} failed",
            result_data={"synced": synced, "failed": failed},
            events=await self._publish(events),
        )
