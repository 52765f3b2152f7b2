"""Base classes for CQRS query pattern."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar
from uuid import uuid4

from ...domain.catalog.value_objects import utc_now
from ...exceptions import CatalogError

logger = logging.getLogger(__name__)

# Type variables for generic query handling
Q = TypeVar("Q", bound="Query")
R = TypeVar("R")


@dataclass(frozen=True, slots=True, kw_only=True)
class Query:
    """Base query class with metadata. Results are never cached."""

    query_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert query to dictionary for serialization."""
        return {
            "query_id": self.query_id,
            "query_type": self.__class__.__name__,
            "timestamp": self.timestamp.isoformat(),
            **{
                name: getattr(self, name)
                for name in self.__dataclass_fields__
                if name not in {"query_id", "timestamp"}
            }
        }


class QueryHandler(ABC, Generic[Q, R]):
    """Abstract base class for query handlers."""

    query_type: type = None

    @abstractmethod
    async def handle(self, query: Q) -> R:
        """Handle the query and return results."""
        pass

    def can_handle(self, query_type: type) -> bool:
        """Check if this handler can handle the given query type."""
        return query_type == self.query_type


@dataclass(frozen=True, slots=True)
class QueryResult(Generic[R]):
    """Result wrapper for query responses."""

    data: Optional[R] = None
    success: bool = True
    query_id: str = ""
    message: Optional[str] = None
    error_kind: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    execution_time_ms: Optional[float] = None
    total_count: Optional[int] = None


class QueryBus:
    """Mediates queries to appropriate handlers."""

    def __init__(self):
        self._handlers: Dict[type, QueryHandler] = {}
        self._middleware: List[Callable] = []

    def register(self, query_type: type, handler: QueryHandler) -> None:
        """Register a handler for a query type."""
        self._handlers[query_type] = handler

    def register_middleware(self, middleware: Callable) -> None:
        """Register middleware for query processing pipeline."""
        self._middleware.append(middleware)

    async def dispatch(self, query: Query) -> QueryResult:
        """Dispatch a query to its registered handler."""
        query_type = type(query)
        start_time = time.perf_counter()

        if query_type not in self._handlers:
            return QueryResult(
                success=False,
                query_id=query.query_id,
                error_kind="InternalError",
                errors=[f"No handler registered for query type: {query_type.__name__}"]
            )

        handler = self._handlers[query_type]

        try:
            # Apply middleware pipeline
            current_handler = handler.handle
            for middleware in reversed(self._middleware):
                current_handler = middleware(current_handler)

            result_data = await current_handler(query)

            execution_time = (time.perf_counter() - start_time) * 1000
            return QueryResult(
                data=result_data,
                success=True,
                query_id=query.query_id,
                execution_time_ms=execution_time,
                total_count=len(result_data) if isinstance(result_data, list) else None,
            )

        except CatalogError as e:
            logger.info(f"{query_type.__name__} failed: {e.kind}: {e.message}")
            execution_time = (time.perf_counter() - start_time) * 1000
            return QueryResult(
                success=False,
                query_id=query.query_id,
                message=e.message,
                error_kind=e.kind,
                errors=[e.message],
                execution_time_ms=execution_time
            )

        except Exception:
            logger.exception(f"Unexpected error handling {query_type.__name__}")
            execution_time = (time.perf_counter() - start_time) * 1000
            return QueryResult(
                success=False,
                query_id=query.query_id,
                message="Internal error",
                error_kind="InternalError",
                errors=["Internal error"],
                execution_time_ms=execution_time
            )

    def get_registered_queries(self) -> List[type]:
        """Get list of registered query types."""
        return list(self._handlers.keys())
