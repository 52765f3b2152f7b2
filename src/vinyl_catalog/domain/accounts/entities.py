"""Accounts Context Entities."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict
from uuid import uuid4

from ..catalog.value_objects import format_timestamp, parse_timestamp, utc_now
from ...exceptions import ValidationError

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_username(username: str) -> str:
    username = (username or "").strip()
    if len(username) < USERNAME_MIN_LENGTH:
        raise ValidationError(f"Username must be at least {USERNAME_MIN_LENGTH} characters", field="username")
    if len(username) > USERNAME_MAX_LENGTH:
        raise ValidationError(f"Username must be at most {USERNAME_MAX_LENGTH} characters", field="username")
    return username


def validate_email(email: str) -> str:
    email = (email or "").strip()
    if not _EMAIL_PATTERN.match(email):
        raise ValidationError(f"Invalid email address: {email!r}", field="email")
    return email


@dataclass(kw_only=True)
class User:
    """A catalogue user, referenced by owners, ratings and bookmarks."""

    id: str = field(default_factory=lambda: str(uuid4()))
    email: str
    username: str
    credential_hash: str
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "credentialHash": self.credential_hash,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    def to_public_dict(self) -> Dict[str, Any]:
        """User fields safe to return to callers."""
        data = self.to_dict()
        del data["credentialHash"]
        del data["updatedAt"]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        created_at = parse_timestamp(data.get("createdAt")) or utc_now()
        return cls(
            id=str(data["id"]),
            email=data["email"],
            username=data["username"],
            credential_hash=data.get("credentialHash") or data.get("password") or "",
            created_at=created_at,
            updated_at=parse_timestamp(data.get("updatedAt")) or created_at,
        )
