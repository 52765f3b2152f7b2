"""
Key-value User Repository.

    user:{user_id}                      the user document
    username:{lowercased username}      {"userId": ...} uniqueness index
    email:{lowercased email}            {"userId": ...} uniqueness index

Index entries are created with a create-if-absent write, so two concurrent
registrations cannot both take the same name.
"""

import logging
from dataclasses import replace
from typing import Optional

from ...domain.accounts.entities import User, validate_email, validate_username
from ...domain.accounts.repositories import UserRepository
from ...domain.catalog.value_objects import utc_now
from ...exceptions import ConflictError, UserNotFound
from ..storage.backends import KeyValueBackend

logger = logging.getLogger(__name__)

USER_PREFIX = "user:"
USERNAME_PREFIX = "username:"
EMAIL_PREFIX = "email:"


def user_key(user_id: str) -> str:
    return f"{USER_PREFIX}{user_id}"


def username_key(username: str) -> str:
    return f"{USERNAME_PREFIX}{username.strip().lower()}"


def email_key(email: str) -> str:
    return f"{EMAIL_PREFIX}{email.strip().lower()}"


class KeyValueUserRepository(UserRepository):
    """User repository over a KeyValueBackend."""

    def __init__(self, backend: KeyValueBackend):
        self.backend = backend

    async def _claim(self, key: str, user_id: str, what: str, value: str) -> None:
        if await self.backend.compare_and_set(key, {"userId": user_id}, None):
            return
        current = await self.backend.get(key)
        holder = current.get("userId") if current else None
        if holder == user_id:
            return
        if holder and await self.backend.get(user_key(holder)) is not None:
            raise ConflictError(f"{what} {value!r} is already taken")
        logger.debug(f"Reclaiming stale index entry {key}")
        await self.backend.set(key, {"userId": user_id})

    async def _release(self, key: str, user_id: str) -> None:
        current = await self.backend.get(key)
        if current and current.get("userId") == user_id:
            await self.backend.delete(key)

    async def register(self, email: str, username: str, credential_hash: str) -> User:
        """Create a user; raises ConflictError on a taken email or username."""
        user = User(
            email=validate_email(email),
            username=validate_username(username),
            credential_hash=credential_hash,
        )

        await self._claim(email_key(user.email), user.id, "Email", user.email)
        try:
            await self._claim(username_key(user.username), user.id, "Username", user.username)
        except ConflictError:
            await self._release(email_key(user.email), user.id)
            raise

        await self.backend.set(user_key(user.id), user.to_dict())
        logger.info(f"Registered user {user.username} ({user.id})")
        return user

    async def get_by_id(self, user_id: str) -> User:
        document = await self.backend.get(user_key(user_id))
        if document is None:
            raise UserNotFound(user_id)
        return User.from_dict(document)

    async def _find_by_index(self, key: str) -> Optional[User]:
        entry = await self.backend.get(key)
        if entry is None:
            return None
        try:
            return await self.get_by_id(entry["userId"])
        except UserNotFound:
            return None

    async def find_by_username(self, username: str) -> Optional[User]:
        if not username or not username.strip():
            return None
        return await self._find_by_index(username_key(username))

    async def find_by_email(self, email: str) -> Optional[User]:
        if not email or not email.strip():
            return None
        return await self._find_by_index(email_key(email))

    async def change_username(self, user_id: str, new_username: str) -> User:
        """Rename a user; raises ConflictError when the name is taken."""
        new_username = validate_username(new_username)
        user = await self.get_by_id(user_id)
        if new_username == user.username:
            return user

        if username_key(new_username) != username_key(user.username):
            await self._claim(username_key(new_username), user.id, "Username", new_username)
            await self._release(username_key(user.username), user.id)

        renamed = replace(user, username=new_username, updated_at=utc_now())
        await self.backend.set(user_key(user.id), renamed.to_dict())
        logger.info(f"User {user.id} renamed from {user.username} to {new_username}")
        return renamed

    async def delete(self, user_id: str) -> bool:
        """Delete a user and release their email and username."""
        document = await self.backend.get(user_key(user_id))
        if document is None:
            return False
        user = User.from_dict(document)

        await self.backend.delete(user_key(user_id))
        await self._release(username_key(user.username), user_id)
        await self._release(email_key(user.email), user_id)
        logger.info(f"Deleted user {user.username} ({user_id})")
        return True
