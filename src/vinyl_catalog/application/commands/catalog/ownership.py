"""Ownership commands: claim a record for a collection, or release it."""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from ...commands.base import Command, CommandHandler, CommandResult, require_identity
from ....domain.catalog.entities import OwnershipDetails, Record
from ....domain.catalog.repositories import BookmarkRepository, RecordChange, RecordRepository
from ....domain.catalog.services import OwnershipMergeEngine
from ....events import BookmarkRemoved, EventBus, OwnershipAttached, OwnershipDetached
from ....exceptions import OwnershipNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class AttachOwnershipCommand(Command):
    """Add a record to a user's collection, or update their annotations on it."""

    record_id: str
    user_id: str
    username: str
    condition: Optional[str] = None
    notes: Optional[str] = None
    purchase_price: Any = None


@dataclass(frozen=True, slots=True, kw_only=True)
class DetachOwnershipCommand(Command):
    """Remove a record from a user's collection."""

    record_id: str
    user_id: str


async def release_bookmark(bookmarks: BookmarkRepository, user_id: str, record_id: str) -> Optional[BookmarkRemoved]:
    """Drop the user's bookmark for a record they now own.

    A record is never both bookmarked and owned by the same user.
    """
    if await bookmarks.remove(user_id, record_id):
        logger.debug(f"Removed bookmark of {record_id} for {user_id}; now owned")
        return BookmarkRemoved(user_id=user_id, record_id=record_id, reason="claimed")
    return None


async def attach_ownership(
    records: RecordRepository,
    record_id: str,
    user_id: str,
    username: str,
    details: OwnershipDetails,
) -> Tuple[Record, bool]:
    """Run the ownership upsert for one user; returns the stored record and
    whether a new fact was created (as opposed to an existing one updated).
    """
    created = False

    def mutate(record: Record) -> RecordChange:
        nonlocal created
        created = not record.is_owned_by(user_id)
        OwnershipMergeEngine.attach(record, user_id, username, details)
        return RecordChange(owner_ids=(user_id,))

    stored = await records.modify(record_id, mutate)
    return stored, created


class AttachOwnershipHandler(CommandHandler[AttachOwnershipCommand, CommandResult]):
    """Handler for claiming a record."""

    command_type = AttachOwnershipCommand

    def __init__(
        self,
        record_repo: RecordRepository,
        bookmark_repo: BookmarkRepository,
        event_bus: Optional[EventBus] = None,
    ):
        super().__init__(event_bus)
        self.record_repo = record_repo
        self.bookmark_repo = bookmark_repo

    async def handle(self, command: AttachOwnershipCommand) -> CommandResult:
        user_id = require_identity(command.user_id)
        details = OwnershipDetails.create(command.condition, command.notes, command.purchase_price)

        record, created = await attach_ownership(
            self.record_repo, command.record_id, user_id, command.username, details
        )
        events = [OwnershipAttached(record_id=record.id, user_id=user_id, created=created)]
        released = await release_bookmark(self.bookmark_repo, user_id, record.id)
        if released:
            events.append(released)

        verb = "Added" if created else "Updated"
        logger.info(f"{verb} ownership of {record.id} for {user_id}")
        return CommandResult(
            success=True,
            command_id=command.command_id,
            message=f"{verb} {record.get_display_name()} in your collection",
            result_data={"record": record.to_dict(), "created": created},
            events=await self._publish(events),
        )


class DetachOwnershipHandler(CommandHandler[DetachOwnershipCommand, CommandResult]):
    """Handler for releasing a record.

    Only the caller's own fact is removed. The record stays in the
    catalogue even when no owner is left.
    """

    command_type = DetachOwnershipCommand

    def __init__(self, record_repo: RecordRepository, event_bus: Optional[EventBus] = None):
        super().__init__(event_bus)
        self.record_repo = record_repo

    async def handle(self, command: DetachOwnershipCommand) -> CommandResult:
        user_id = require_identity(command.user_id)

        def mutate(record: Record) -> RecordChange:
            if not OwnershipMergeEngine.detach(record, user_id):
                raise OwnershipNotFound(record.id, user_id)
            return RecordChange(owner_ids=(user_id,))

        record = await self.record_repo.modify(command.record_id, mutate)
        logger.info(f"Removed ownership of {record.id} for {user_id}; {record.owner_count} owner(s) left")

        events = [OwnershipDetached(record_id=record.id, user_id=user_id, remaining_owners=record.owner_count)]
        return CommandResult(
            success=True,
            command_id=command.command_id,
            message=f"Removed {record.get_display_name()} from your collection",
            result_data={"record": record.to_dict()},
            events=await self._publish(events),
        )
