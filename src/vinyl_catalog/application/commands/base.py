"""Base classes for CQRS command pattern."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar
from uuid import uuid4

from ...domain.catalog.value_objects import utc_now
from ...events import DomainEvent, EventBus
from ...exceptions import CatalogError, Unauthorized

logger = logging.getLogger(__name__)

# Type variables for generic command handling
C = TypeVar("C", bound="Command")
R = TypeVar("R", bound="CommandResult")

INTERNAL_ERROR = "InternalError"


@dataclass(frozen=True, slots=True, kw_only=True)
class Command:
    """Base command class with metadata."""

    command_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utc_now)
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert command to dictionary for serialization."""
        return {
            "command_id": self.command_id,
            "command_type": self.__class__.__name__,
            "timestamp": self.timestamp.isoformat(),
            "correlation_id": self.correlation_id,
            "metadata": self.metadata,
            **{
                name: getattr(self, name)
                for name in self.__dataclass_fields__
                if name not in {"command_id", "timestamp", "correlation_id", "metadata"}
            }
        }


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Base result class for command execution."""

    success: bool
    command_id: str
    message: Optional[str] = None
    error_kind: Optional[str] = None
    errors: List[str] = field(default_factory=list)
    events: List[DomainEvent] = field(default_factory=list)
    result_data: Dict[str, Any] = field(default_factory=dict)
    execution_time_ms: Optional[float] = None

    @classmethod
    def failure(cls, command_id: str, error: CatalogError) -> "CommandResult":
        """Failed result for a catalogue error, safe to show to the caller."""
        return cls(
            success=False,
            command_id=command_id,
            message=error.message,
            error_kind=error.kind,
            errors=[error.message],
        )


class CommandHandler(ABC, Generic[C, R]):
    """Abstract base class for command handlers.

    Handlers raise CatalogError subclasses; the bus turns them into failed
    results.
    """

    command_type: type = None

    def __init__(self, event_bus: Optional[EventBus] = None):
        self.event_bus = event_bus

    @abstractmethod
    async def handle(self, command: C) -> R:
        """Handle the command and return a result."""
        pass

    def can_handle(self, command_type: type) -> bool:
        """Check if this handler can handle the given command type."""
        return command_type == self.command_type

    async def _publish(self, events: List[DomainEvent]) -> List[DomainEvent]:
        """Publish events when an event bus is wired in; returns what was published."""
        if not self.event_bus:
            return []
        await self.event_bus.publish_batch(events)
        return events


class CommandBus:
    """Mediates commands to appropriate handlers."""

    def __init__(self):
        self._handlers: Dict[type, CommandHandler] = {}
        self._middleware: List[Callable] = []

    def register(self, command_type: type, handler: CommandHandler) -> None:
        """Register a handler for a command type."""
        self._handlers[command_type] = handler

    def register_middleware(self, middleware: Callable) -> None:
        """Register middleware for command processing pipeline."""
        self._middleware.append(middleware)

    async def dispatch(self, command: Command) -> CommandResult:
        """Dispatch a command to its registered handler."""
        command_type = type(command)

        if command_type not in self._handlers:
            return CommandResult(
                success=False,
                command_id=command.command_id,
                error_kind=INTERNAL_ERROR,
                errors=[f"No handler registered for command type: {command_type.__name__}"]
            )

        handler = self._handlers[command_type]
        start_time = time.perf_counter()

        try:
            # Apply middleware pipeline
            current_handler = handler.handle
            for middleware in reversed(self._middleware):
                current_handler = middleware(current_handler)

            result = await current_handler(command)

        except CatalogError as e:
            logger.info(f"{command_type.__name__} failed: {e.kind}: {e.message}")
            result = CommandResult.failure(command.command_id, e)

        except Exception:
            logger.exception(f"Unexpected error handling {command_type.__name__}")
            result = CommandResult(
                success=False,
                command_id=command.command_id,
                message="Internal error",
                error_kind=INTERNAL_ERROR,
                errors=["Internal error"],
            )

        execution_time = (time.perf_counter() - start_time) * 1000
        return replace(result, execution_time_ms=execution_time)

    def get_registered_commands(self) -> List[type]:
        """Get list of registered command types."""
        return list(self._handlers.keys())


def require_identity(user_id: Optional[str]) -> str:
    """Raise Unauthorized unless the command carries a caller identity."""
    if not user_id or not str(user_id).strip():
        raise Unauthorized("You must be signed in to do this")
    return user_id
