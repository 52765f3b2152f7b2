"""Query side of CQRS pattern."""

from .base import Query, QueryBus, QueryHandler, QueryResult

__all__ = ["Query", "QueryHandler", "QueryBus", "QueryResult"]
