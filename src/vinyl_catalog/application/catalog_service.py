"""Wiring of repositories, handlers and buses into one catalogue service."""

import logging
from typing import Optional

from .commands import CommandBus
from .commands.accounts import (
    ChangeUsernameCommand,
    ChangeUsernameHandler,
    DeleteUserCommand,
    DeleteUserHandler,
    RegisterUserCommand,
    RegisterUserHandler,
)
from .commands.catalog import (
    AddBookmarkCommand,
    AddBookmarkHandler,
    AttachOwnershipCommand,
    AttachOwnershipHandler,
    CreateBookmarkTargetCommand,
    CreateBookmarkTargetHandler,
    CreateRecordCommand,
    CreateRecordHandler,
    DeleteRecordCommand,
    DeleteRecordHandler,
    DetachOwnershipCommand,
    DetachOwnershipHandler,
    PurgeOrphanRecordsCommand,
    PurgeOrphanRecordsHandler,
    RemoveBookmarkCommand,
    RemoveBookmarkHandler,
    SetRatingCommand,
    SetRatingHandler,
    SyncBookmarksCommand,
    SyncBookmarksHandler,
    UpdateRecordDetailsCommand,
    UpdateRecordDetailsHandler,
)
from .queries import QueryBus
from .queries.catalog import (
    GetCollectionStatisticsHandler,
    GetCollectionStatisticsQuery,
    GetRecordHandler,
    GetRecordQuery,
    IsBookmarkedHandler,
    IsBookmarkedQuery,
    ListBookmarksHandler,
    ListBookmarksQuery,
    ListRecordsHandler,
    ListRecordsQuery,
)
from ..domain.catalog.statistics import CollectionAggregationEngine
from ..events import EventBus
from ..infrastructure.repositories import (
    KeyValueBookmarkRepository,
    KeyValueRecordRepository,
    KeyValueUserRepository,
)
from ..infrastructure.storage import KeyValueBackend, create_backend
from ..models.config import CatalogConfig

logger = logging.getLogger(__name__)


class CatalogService:
    """The shared record catalogue behind a command bus and a query bus."""

    def __init__(
        self,
        backend: KeyValueBackend,
        config: Optional[CatalogConfig] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.config = config or CatalogConfig.default()
        self.backend = backend
        self.event_bus = event_bus

        # Create repositories
        self.record_repo = KeyValueRecordRepository(
            backend, max_attempts=self.config.storage.max_write_attempts
        )
        self.bookmark_repo = KeyValueBookmarkRepository(backend, self.record_repo)
        self.user_repo = KeyValueUserRepository(backend)

        # Create buses
        self.command_bus = CommandBus()
        self.query_bus = QueryBus()

        self._register_command_handlers()
        self._register_query_handlers()

    @classmethod
    def from_config(cls, config: CatalogConfig, event_bus: Optional[EventBus] = None) -> "CatalogService":
        """Build the service on the backend the configuration names."""
        config.validate()
        return cls(create_backend(config.storage), config=config, event_bus=event_bus)

    def _register_command_handlers(self) -> None:
        """Register all command handlers."""
        records, bookmarks, users, bus = self.record_repo, self.bookmark_repo, self.user_repo, self.event_bus

        self.command_bus.register(CreateRecordCommand, CreateRecordHandler(records, bookmarks, bus))
        self.command_bus.register(CreateBookmarkTargetCommand, CreateBookmarkTargetHandler(records, bus))
        self.command_bus.register(UpdateRecordDetailsCommand, UpdateRecordDetailsHandler(records, bus))
        self.command_bus.register(DeleteRecordCommand, DeleteRecordHandler(records, bookmarks, bus))
        self.command_bus.register(PurgeOrphanRecordsCommand, PurgeOrphanRecordsHandler(records, bookmarks, bus))
        self.command_bus.register(AttachOwnershipCommand, AttachOwnershipHandler(records, bookmarks, bus))
        self.command_bus.register(DetachOwnershipCommand, DetachOwnershipHandler(records, bus))
        self.command_bus.register(SetRatingCommand, SetRatingHandler(records, bus))
        self.command_bus.register(AddBookmarkCommand, AddBookmarkHandler(records, bookmarks, bus))
        self.command_bus.register(RemoveBookmarkCommand, RemoveBookmarkHandler(bookmarks, bus))
        self.command_bus.register(SyncBookmarksCommand, SyncBookmarksHandler(records, bookmarks, bus))
        self.command_bus.register(RegisterUserCommand, RegisterUserHandler(users, bus))
        self.command_bus.register(ChangeUsernameCommand, ChangeUsernameHandler(users, bus))
        self.command_bus.register(DeleteUserCommand, DeleteUserHandler(users, records, bookmarks, bus))

    def _register_query_handlers(self) -> None:
        """Register all query handlers."""
        stats = self.config.statistics
        engine = CollectionAggregationEngine(
            top_n=stats.top_n,
            latest_n=stats.latest_additions,
            missing_data_n=stats.missing_data_entries,
        )

        self.query_bus.register(ListRecordsQuery, ListRecordsHandler(self.record_repo))
        self.query_bus.register(GetRecordQuery, GetRecordHandler(self.record_repo))
        self.query_bus.register(ListBookmarksQuery, ListBookmarksHandler(self.bookmark_repo))
        self.query_bus.register(IsBookmarkedQuery, IsBookmarkedHandler(self.bookmark_repo))
        self.query_bus.register(GetCollectionStatisticsQuery, GetCollectionStatisticsHandler(self.record_repo, engine))

    async def execute(self, command):
        """Dispatch a command."""
        return await self.command_bus.dispatch(command)

    async def query(self, query):
        """Dispatch a query."""
        return await self.query_bus.dispatch(query)

    async def close(self) -> None:
        await self.backend.close()

    async def __aenter__(self) -> "CatalogService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
