"""Command side of CQRS pattern."""

from .base import Command, CommandBus, CommandHandler, CommandResult, require_identity

__all__ = ["Command", "CommandHandler", "CommandBus", "CommandResult", "require_identity"]
