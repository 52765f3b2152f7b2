"""Accounts Context Repository Interfaces."""

from abc import ABC, abstractmethod
from typing import Optional

from .entities import User


class UserRepository(ABC):
    """Repository for User entities."""

    @abstractmethod
    async def register(self, email: str, username: str, credential_hash: str) -> User:
        """Create a user; raises ConflictError on a taken email or username."""
        pass

    @abstractmethod
    async def get_by_id(self, user_id: str) -> User:
        """Find a user by id; raises UserNotFound."""
        pass

    @abstractmethod
    async def find_by_username(self, username: str) -> Optional[User]:
        """Find a user by username (case-insensitive)."""
        pass

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[User]:
        """Find a user by email (case-insensitive)."""
        pass

    @abstractmethod
    async def change_username(self, user_id: str, new_username: str) -> User:
        """Rename a user; raises ConflictError when the name is taken."""
        pass

    @abstractmethod
    async def delete(self, user_id: str) -> bool:
        """Delete a user and release their email and username."""
        pass
