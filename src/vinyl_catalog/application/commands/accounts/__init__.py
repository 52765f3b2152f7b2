"""Account commands."""

from .users import (
    ChangeUsernameCommand,
    ChangeUsernameHandler,
    DeleteUserCommand,
    DeleteUserHandler,
    RegisterUserCommand,
    RegisterUserHandler,
)

__all__ = [
    "RegisterUserCommand",
    "RegisterUserHandler",
    "ChangeUsernameCommand",
    "ChangeUsernameHandler",
    "DeleteUserCommand",
    "DeleteUserHandler",
]
