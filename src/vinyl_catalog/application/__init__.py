"""Application layer - CQRS pattern implementation."""

from .catalog_service import CatalogService
from .commands import Command, CommandBus, CommandHandler, CommandResult
from .queries import Query, QueryBus, QueryHandler, QueryResult

__all__ = [
    "CatalogService",
    "Command",
    "CommandHandler",
    "CommandBus",
    "CommandResult",
    "Query",
    "QueryHandler",
    "QueryBus",
    "QueryResult",
]
