"""Key-value storage backends for the catalogue."""

from .backends import (
    FileBackend,
    InMemoryBackend,
    KeyValueBackend,
    RedisBackend,
    ResilientBackend,
    create_backend,
)

__all__ = [
    "KeyValueBackend",
    "InMemoryBackend",
    "FileBackend",
    "RedisBackend",
    "ResilientBackend",
    "create_backend",
]
