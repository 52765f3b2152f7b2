"""
Accounts Context - Users referenced by catalogue facts.
"""

from .entities import User, validate_email, validate_username
from .repositories import UserRepository

__all__ = [
    "User",
    "UserRepository",
    "validate_email",
    "validate_username",
]
