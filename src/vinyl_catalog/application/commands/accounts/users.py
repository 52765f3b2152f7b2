"""User account commands."""

import logging
from dataclasses import dataclass
from typing import Optional

from ...commands.base import Command, CommandHandler, CommandResult, require_identity
from ....domain.accounts.repositories import UserRepository
from ....domain.catalog.entities import Record
from ....domain.catalog.repositories import BookmarkRepository, RecordChange, RecordRepository
from ....domain.catalog.services import OwnershipMergeEngine, RatingAggregator
from ....events import EventBus, UserDeleted, UserRegistered
from ....exceptions import RecordNotFound, UserNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, kw_only=True)
class RegisterUserCommand(Command):
    """Create an account. The credential arrives already hashed."""

    email: str
    username: str
    credential_hash: str


@dataclass(frozen=True, slots=True, kw_only=True)
class ChangeUsernameCommand(Command):
    user_id: str
    new_username: str


@dataclass(frozen=True, slots=True, kw_only=True)
class DeleteUserCommand(Command):
    """Delete an account and withdraw the user's facts from every record."""

    user_id: str


class RegisterUserHandler(CommandHandler[RegisterUserCommand, CommandResult]):
    command_type = RegisterUserCommand

    def __init__(self, user_repo: UserRepository, event_bus: Optional[EventBus] = None):
        super().__init__(event_bus)
        self.user_repo = user_repo

    async def handle(self, command: RegisterUserCommand) -> CommandResult:
        user = await self.user_repo.register(command.email, command.username, command.credential_hash)
        return CommandResult(
            success=True,
            command_id=command.command_id,
            message=f"Welcome, {user.username}",
            result_data={"user": user.to_public_dict()},
            events=await self._publish([UserRegistered(user_id=user.id, username=user.username)]),
        )


class ChangeUsernameHandler(CommandHandler[ChangeUsernameCommand, CommandResult]):
    command_type = ChangeUsernameCommand

    def __init__(self, user_repo: UserRepository, event_bus: Optional[EventBus] = None):
        super().__init__(event_bus)
        self.user_repo = user_repo

    async def handle(self, command: ChangeUsernameCommand) -> CommandResult:
        user_id = require_identity(command.user_id)
        user = await self.user_repo.change_username(user_id, command.new_username)
        return CommandResult(
            success=True,
            command_id=command.command_id,
            message=f"Username changed to {user.username}",
            result_data={"user": user.to_public_dict()},
        )


class DeleteUserHandler(CommandHandler[DeleteUserCommand, CommandResult]):
    """Handler for account deletion.

    Each affected record goes through its own fetch-mutate-commit cycle that
    touches only this user's facts; the records themselves stay.
    """

    command_type = DeleteUserCommand

    def __init__(
        self,
        user_repo: UserRepository,
        record_repo: RecordRepository,
        bookmark_repo: BookmarkRepository,
        event_bus: Optional[EventBus] = None,
    ):
        super().__init__(event_bus)
        self.user_repo = user_repo
        self.record_repo = record_repo
        self.bookmark_repo = bookmark_repo

    async def handle(self, command: DeleteUserCommand) -> CommandResult:
        user_id = require_identity(command.user_id)
        user = await self.user_repo.get_by_id(user_id)

        def mutate(record: Record) -> RecordChange:
            OwnershipMergeEngine.detach(record, user_id)
            RatingAggregator.set_rating(record, user_id, None, None)
            return RecordChange(owner_ids=(user_id,), rater_ids=(user_id,))

        detached = 0
        for record in await self.record_repo.list_all():
            if not record.is_owned_by(user_id) and record.rating_fact(user_id) is None:
                continue
            try:
                await self.record_repo.modify(record.id, mutate)
            except RecordNotFound:
                continue
            detached += 1

        bookmarks = await self.bookmark_repo.list(user_id)
        for bookmark in bookmarks:
            await self.bookmark_repo.remove(user_id, bookmark.record_id)

        if not await self.user_repo.delete(user_id):
            raise UserNotFound(user_id)

        logger.info(f"Deleted user {user.username}: {detached} record(s) detached, {len(bookmarks)} bookmark(s) removed")
        events = [UserDeleted(user_id=user_id, detached_records=detached, removed_bookmarks=len(bookmarks))]
        return CommandResult(
            success=True,
            command_id=command.command_id,
            message=f"Deleted account {user.username}",
            result_data={"detached_records": detached, "removed_bookmarks": len(bookmarks)},
            events=await self._publish(events),
        )
