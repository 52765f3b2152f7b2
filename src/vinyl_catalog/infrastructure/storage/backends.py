"""
Key-value storage backends.

Every catalogue document (record, ownership fact, rating fact, bookmark, user,
index entry) lives under its own key as a JSON object. Writes that must not
clobber a concurrent writer go through ``compare_and_set``, which compares the
stored document's ``version`` field.
"""

import asyncio
import copy
import json
import logging
import re
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar
from urllib.parse import quote, unquote
from uuid import uuid4

import aiofiles
import aiofiles.os
import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, WatchError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ...exceptions import ConfigurationError, StoreUnavailable, TransientStoreError
from ...models.config import StorageConfig

logger = logging.getLogger(__name__)

Document = Dict[str, Any]
T = TypeVar("T")


def _version_matches(current: Optional[Document], expected_version: Optional[int]) -> bool:
    """None expects an absent key; an int expects that stored version."""
    if expected_version is None:
        return current is None
    return current is not None and current.get("version", 0) == expected_version


class KeyValueBackend(ABC):
    """Abstract JSON document store keyed by string."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Document]:
        """Get a document, or None when the key is absent."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Document) -> None:
        """Unconditionally write a document."""
        pass

    @abstractmethod
    async def compare_and_set(self, key: str, value: Document, expected_version: Optional[int]) -> bool:
        """Write only if the stored version still matches.

        ``expected_version=None`` means the key must not exist yet. Returns
        False, without writing, when the check fails.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key; True if it existed."""
        pass

    @abstractmethod
    async def scan(self, prefix: str) -> Dict[str, Document]:
        """All documents whose key starts with ``prefix``."""
        pass

    async def close(self) -> None:
        """Release connections or file handles."""
        pass


class InMemoryBackend(KeyValueBackend):
    """Dictionary backend for tests and throwaway sessions.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self):
        self._data: Dict[str, Document] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Document]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Document) -> None:
        async with self._lock:
            self._data[key] = copy.deepcopy(value)

    async def compare_and_set(self, key: str, value: Document, expected_version: Optional[int]) -> bool:
        async with self._lock:
            if not _version_matches(self._data.get(key), expected_version):
                return False
            self._data[key] = copy.deepcopy(value)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def scan(self, prefix: str) -> Dict[str, Document]:
        return {
            key: copy.deepcopy(value)
            for key, value in sorted(self._data.items())
            if key.startswith(prefix)
        }

    def __len__(self) -> int:
        return len(self._data)


class FileBackend(KeyValueBackend):
    """One JSON file per key under a directory.

    Files are written to a temporary name and moved into place, so a reader
    never sees a half-written document. Compare-and-set is serialized within
    this process only.
    """

    SUFFIX = ".json"

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = asyncio.Lock()

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def _key_for(self, filename: str) -> Optional[str]:
        if not filename.endswith(self.SUFFIX):
            return None
        return unquote(filename[:-len(self.SUFFIX)])

    async def _read(self, path: Path) -> Optional[Document]:
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                content = await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise TransientStoreError(f"Cannot read {path.name}: {e}") from e
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise StoreUnavailable(f"Corrupt document {path.name}: {e}") from e

    async def _write(self, path: Path, value: Document) -> None:
        temp_path = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
        try:
            async with aiofiles.open(temp_path, 'w', encoding='utf-8') as f:
                await f.write(json.dumps(value, indent=2, sort_keys=True))
            await aiofiles.os.replace(temp_path, path)
        except OSError as e:
            raise TransientStoreError(f"Cannot write {path.name}: {e}") from e

    async def get(self, key: str) -> Optional[Document]:
        return await self._read(self._path_for(key))

    async def set(self, key: str, value: Document) -> None:
        async with self._lock:
            await self._write(self._path_for(key), value)

    async def compare_and_set(self, key: str, value: Document, expected_version: Optional[int]) -> bool:
        path = self._path_for(key)
        async with self._lock:
            if not _version_matches(await self._read(path), expected_version):
                return False
            await self._write(path, value)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            try:
                await aiofiles.os.remove(self._path_for(key))
            except FileNotFoundError:
                return False
            except OSError as e:
                raise TransientStoreError(f"Cannot delete {key}: {e}") from e
            return True

    async def scan(self, prefix: str) -> Dict[str, Document]:
        try:
            filenames = await aiofiles.os.listdir(self.directory)
        except OSError as e:
            raise TransientStoreError(f"Cannot list {self.directory}: {e}") from e

        results: Dict[str, Document] = {}
        for filename in sorted(filenames):
            key = self._key_for(filename)
            if key is None or filename.startswith(".") or not key.startswith(prefix):
                continue
            value = await self._read(self.directory / filename)
            if value is not None:
                results[key] = value
        return results


class RedisBackend(KeyValueBackend):
    """Redis backend using one string key per document.

    Compare-and-set uses WATCH/MULTI, so it is safe across processes.
    """

    def __init__(self, url: str = "redis://localhost:6379/0", key_prefix: str = "", client=None):
        self.url = url
        self.key_prefix = key_prefix
        self._client = client if client is not None else aioredis.Redis.from_url(url, decode_responses=True)

    def _full_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    @asynccontextmanager
    async def _errors(self, operation: str):
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as e:
            raise TransientStoreError(f"Redis {operation} failed: {e}") from e
        except WatchError:
            raise
        except RedisError as e:
            raise StoreUnavailable(f"Redis {operation} failed: {e}") from e

    @staticmethod
    def _decode(raw: Optional[str]) -> Optional[Document]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StoreUnavailable(f"Corrupt document in Redis: {e}") from e

    async def get(self, key: str) -> Optional[Document]:
        async with self._errors("GET"):
            raw = await self._client.get(self._full_key(key))
        return self._decode(raw)

    async def set(self, key: str, value: Document) -> None:
        async with self._errors("SET"):
            await self._client.set(self._full_key(key), json.dumps(value, sort_keys=True))

    async def compare_and_set(self, key: str, value: Document, expected_version: Optional[int]) -> bool:
        full_key = self._full_key(key)
        payload = json.dumps(value, sort_keys=True)
        async with self._errors("compare-and-set"):
            async with self._client.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(full_key)
                    current = self._decode(await pipe.get(full_key))
                    if not _version_matches(current, expected_version):
                        await pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.set(full_key, payload)
                    await pipe.execute()
                    return True
                except WatchError:
                    logger.debug(f"WATCH on {full_key} fired; concurrent write")
                    return False

    async def delete(self, key: str) -> bool:
        async with self._errors("DEL"):
            return bool(await self._client.delete(self._full_key(key)))

    async def scan(self, prefix: str) -> Dict[str, Document]:
        pattern = re.sub(r"([*?\[\]\\])", r"\\\1", self._full_key(prefix)) + "*"
        async with self._errors("SCAN"):
            keys = sorted([key async for key in self._client.scan_iter(match=pattern)])
            values = await self._client.mget(keys) if keys else []

        results: Dict[str, Document] = {}
        for full_key, raw in zip(keys, values):
            document = self._decode(raw)
            if document is not None:
                results[full_key[len(self.key_prefix):]] = document
        return results

    async def close(self) -> None:
        async with self._errors("close"):
            await self._client.aclose()


class ResilientBackend(KeyValueBackend):
    """Bound every call with a timeout and retry transient failures once.

    A call that still fails surfaces as StoreUnavailable.
    """

    def __init__(self, inner: KeyValueBackend, timeout_seconds: float = 5.0, backoff_seconds: float = 0.1):
        self.inner = inner
        self.timeout_seconds = timeout_seconds
        self.backoff_seconds = backoff_seconds

    async def _call(self, operation: str, key: str, make_call: Callable[[], Awaitable[T]]) -> T:
        attempts = 2
        for attempt in range(1, attempts + 1):
            try:
                return await asyncio.wait_for(make_call(), timeout=self.timeout_seconds)
            except (TransientStoreError, asyncio.TimeoutError) as e:
                reason = str(e) or f"timed out after {self.timeout_seconds}s"
                if attempt == attempts:
                    raise StoreUnavailable(f"Store {operation} of {key!r} failed: {reason}") from e
                logger.warning(f"Store {operation} of {key!r} failed ({reason}); retrying")
                await asyncio.sleep(self.backoff_seconds)
        raise AssertionError("unreachable")

    async def get(self, key: str) -> Optional[Document]:
        return await self._call("get", key, lambda: self.inner.get(key))

    async def set(self, key: str, value: Document) -> None:
        await self._call("set", key, lambda: self.inner.set(key, value))

    async def compare_and_set(self, key: str, value: Document, expected_version: Optional[int]) -> bool:
        return await self._call(
            "compare-and-set", key, lambda: self.inner.compare_and_set(key, value, expected_version)
        )

    async def delete(self, key: str) -> bool:
        return await self._call("delete", key, lambda: self.inner.delete(key))

    async def scan(self, prefix: str) -> Dict[str, Document]:
        return await self._call("scan", prefix, lambda: self.inner.scan(prefix))

    async def close(self) -> None:
        await self.inner.close()


def create_backend(config: StorageConfig) -> KeyValueBackend:
    """Build the configured backend wrapped with timeout and retry."""
    if config.backend == "memory":
        inner: KeyValueBackend = InMemoryBackend()
    elif config.backend == "file":
        inner = FileBackend(config.data_directory)
    elif config.backend == "redis":
        inner = RedisBackend(config.redis_url, key_prefix=config.key_prefix)
    else:
        raise ConfigurationError(f"Unknown storage backend: {config.backend!r}")

    logger.info(f"Using {config.backend} storage backend")
    return ResilientBackend(
        inner,
        timeout_seconds=config.operation_timeout_seconds,
        backoff_seconds=config.retry_backoff_seconds,
    )
