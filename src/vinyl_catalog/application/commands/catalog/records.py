"""Record commands: create, edit and delete shared records."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ...commands.base import Command, CommandHandler, CommandResult, require_identity
from .ownership import attach_ownership, release_bookmark
from ....domain.catalog.entities import OwnershipDetails, OwnershipFact, Record
from ....domain.catalog.repositories import BookmarkRepository, RecordChange, RecordRepository
from ....events import EventBus, OwnershipAttached, RecordCreated, RecordDeleted, RecordDetailsUpdated
from ....exceptions import ConflictError, RecordNotFound, Unauthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class CreateRecordCommand(Command):
    """Add a release to the caller's collection.

    When a record with the same product code already exists the caller is
    attached to it as another owner instead of creating a duplicate.
    """

    user_id: str
    username: str
    details: Dict[str, Any] = field(default_factory=dict)
    condition: Optional[str] = None
    notes: Optional[str] = None
    purchase_price: Any = None


@dataclass(frozen=True, slots=True, kw_only=True)
class CreateBookmarkTargetCommand(Command):
    """Create an owner-less record that can be bookmarked."""

    user_id: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True, kw_only=True)
class UpdateRecordDetailsCommand(Command):
    """Edit descriptive metadata of a record."""

    record_id: str
    user_id: str
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True, kw_only=True)
class DeleteRecordCommand(Command):
    """Remove a record from the catalogue together with every user's facts.

    Without ``force`` only allowed when nobody but the caller owns it.
    """

    record_id: str
    user_id: str
    force: bool = False


@dataclass(frozen=True, slots=True, kw_only=True)
class PurgeOrphanRecordsCommand(Command):
    """Delete records that have no owner and no bookmark."""

    user_id: str
    dry_run: bool = False


class CreateRecordHandler(CommandHandler[CreateRecordCommand, CommandResult]):
    """Handler for the "add to my collection" path."""

    command_type = CreateRecordCommand

    def __init__(
        self,
        record_repo: RecordRepository,
        bookmark_repo: BookmarkRepository,
        event_bus: Optional[EventBus] = None,
    ):
        super().__init__(event_bus)
        self.record_repo = record_repo
        self.bookmark_repo = bookmark_repo

    async def handle(self, command: CreateRecordCommand) -> CommandResult:
        user_id = require_identity(command.user_id)
        ownership = OwnershipDetails.create(command.condition, command.notes, command.purchase_price)
        draft = Record.create(command.details)

        events = []
        stored = None
        for _ in range(2):
            existing = await self.record_repo.find_by_product_code(draft.product_code or "")
            if existing is not None:
                stored, created = await attach_ownership(
                    self.record_repo, existing.id, user_id, command.username, ownership
                )
                events.append(OwnershipAttached(record_id=stored.id, user_id=user_id, created=created))
                logger.info(f"Product code {draft.product_code} already catalogued as {stored.id}; attached {user_id}")
                break

            draft.primary_owner_id = user_id
            draft.primary_owner_username = command.username
            draft.owners = [OwnershipFact(
                user_id=user_id,
                username=command.username,
                added_at=draft.created_at,
                condition=ownership.condition,
                notes=ownership.notes,
                purchase_price=ownership.purchase_price,
            )]
            try:
                stored = await self.record_repo.put(draft)
            except ConflictError:
                # Another writer catalogued the same product code first
                logger.info(f"Product code {draft.product_code} claimed concurrently; attaching instead")
                continue
            events.append(RecordCreated(
                record_id=stored.id,
                artist=stored.artist,
                album=stored.album,
                product_code=stored.product_code,
                created_by=user_id,
            ))
            events.append(OwnershipAttached(record_id=stored.id, user_id=user_id, created=True))
            logger.info(f"Created record {stored.id} for {user_id}")
            break

        if stored is None:
            raise ConflictError(f"Could not catalogue product code {draft.product_code}; please retry")

        released = await release_bookmark(self.bookmark_repo, user_id, stored.id)
        if released:
            events.append(released)

        return CommandResult(
            success=True,
            command_id=command.command_id,
            message=f"Added {stored.get_display_name()} to your collection",
            result_data={"record": stored.to_dict()},
            events=await self._publish(events),
        )


class CreateBookmarkTargetHandler(CommandHandler[CreateBookmarkTargetCommand, CommandResult]):
    """Handler for creating owner-less records.

    An existing record with the same product code is returned as-is.
    """

    command_type = CreateBookmarkTargetCommand

    def __init__(self, record_repo: RecordRepository, event_bus: Optional[EventBus] = None):
        super().__init__(event_bus)
        self.record_repo = record_repo

    async def handle(self, command: CreateBookmarkTargetCommand) -> CommandResult:
        user_id = require_identity(command.user_id)
        draft = Record.create(command.details)

        existing = await self.record_repo.find_by_product_code(draft.product_code or "")
        if existing is not None:
            return CommandResult(
                success=True,
                command_id=command.command_id,
                message=f"{existing.get_display_name()} is already in the catalogue",
                result_data={"record": existing.to_dict(), "created": False},
            )

        stored = await self.record_repo.put(draft)
        logger.info(f"Created owner-less record {stored.id}")
        events = [RecordCreated(
            record_id=stored.id,
            artist=stored.artist,
            album=stored.album,
            product_code=stored.product_code,
            created_by=user_id,
        )]
        return CommandResult(
            success=True,
            command_id=command.command_id,
            message=f"Created {stored.get_display_name()}",
            result_data={"record": stored.to_dict(), "created": True},
            events=await self._publish(events),
        )


class UpdateRecordDetailsHandler(CommandHandler[UpdateRecordDetailsCommand, CommandResult]):
    """Handler for editing descriptive metadata.

    Any current owner may edit; an owner-less record may be edited by anyone.
    """

    command_type = UpdateRecordDetailsCommand

    def __init__(self, record_repo: RecordRepository, event_bus: Optional[EventBus] = None):
        super().__init__(event_bus)
        self.record_repo = record_repo

    async def handle(self, command: UpdateRecordDetailsCommand) -> CommandResult:
        user_id = require_identity(command.user_id)
        changed = []

        def mutate(record: Record) -> RecordChange:
            nonlocal changed
            if record.owner_count and not record.is_owned_by(user_id):
                raise Unauthorized(f"Only owners of {record.get_display_name()} can edit it")
            changed = record.update_details(command.changes)
            return RecordChange(details=True)

        record = await self.record_repo.modify(command.record_id, mutate)
        logger.info(f"Updated {', '.join(changed) or 'nothing'} on record {record.id}")

        events = [RecordDetailsUpdated(record_id=record.id, user_id=user_id, changed_fields=tuple(changed))]
        return CommandResult(
            success=True,
            command_id=command.command_id,
            message=f"Updated {record.get_display_name()}",
            result_data={"record": record.to_dict(), "changed": changed},
            events=await self._publish(events),
        )


class DeleteRecordHandler(CommandHandler[DeleteRecordCommand, CommandResult]):
    """Handler for the administrative full delete."""

    command_type = DeleteRecordCommand

    def __init__(
        self,
        record_repo: RecordRepository,
        bookmark_repo: BookmarkRepository,
        event_bus: Optional[EventBus] = None,
    ):
        super().__init__(event_bus)
        self.record_repo = record_repo
        self.bookmark_repo = bookmark_repo

    async def handle(self, command: DeleteRecordCommand) -> CommandResult:
        user_id = require_identity(command.user_id)
        record = await self.record_repo.get_by_id(command.record_id)

        others = [o for o in record.owner_ids if o != user_id]
        if others and not command.force:
            raise Unauthorized(
                f"{record.get_display_name()} is still owned by {len(others)} other user(s); "
                "remove it from your collection instead"
            )

        if not await self.record_repo.delete(record.id):
            raise RecordNotFound(record.id)
        for bookmark in await self.bookmark_repo.list_for_record(record.id):
            await self.bookmark_repo.remove(bookmark.user_id, record.id)

        logger.info(f"Deleted record {record.id} (requested by {user_id}, force={command.force})")
        events = [RecordDeleted(record_id=record.id, deleted_by=user_id)]
        return CommandResult(
            success=True,
            command_id=command.command_id,
            message=f"Deleted {record.get_display_name()}",
            result_data={"record_id": record.id},
            events=await self._publish(events),
        )


class PurgeOrphanRecordsHandler(CommandHandler[PurgeOrphanRecordsCommand, CommandResult]):
    """Handler for the explicit orphan clean-up; nothing is purged automatically."""

    command_type = PurgeOrphanRecordsCommand

    def __init__(
        self,
        record_repo: RecordRepository,
        bookmark_repo: BookmarkRepository,
        event_bus: Optional[EventBus] = None,
    ):
        super().__init__(event_bus)
        self.record_repo = record_repo
        self.bookmark_repo = bookmark_repo

    async def handle(self, command: PurgeOrphanRecordsCommand) -> CommandResult:
        user_id = require_identity(command.user_id)

        orphans = []
        for record in await self.record_repo.list_all():
            if record.owner_count:
                continue
            if await self.bookmark_repo.list_for_record(record.id):
                continue
            orphans.append(record.id)

        events = []
        if not command.dry_run:
            for record_id in orphans:
                if await self.record_repo.delete(record_id):
                    events.append(RecordDeleted(record_id=record_id, deleted_by=user_id, reason="orphan_purged"))
            logger.info(f"Purged {len(events)} orphan record(s)")

        return CommandResult(
            success=True,
            command_id=command.command_id,
            message=f"{'Would purge' if command.dry_run else 'Purged'} {len(orphans)} orphan record(s)",
            result_data={"record_ids": orphans},
            events=await self._publish(events),
        )
