"""Key/value storage with TTL expiry.

Two interchangeable backends implement :class:`KVStore`: a Redis-backed store
and an in-process dictionary store. :func:`connect_store` picks one at startup
and the choice holds for the lifetime of the process.
"""

from __future__ import annotations

import fnmatch
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Protocol, Set, Union, runtime_checkable

import redis

from newsrag.errors import StoreUnavailableError

LOGGER = logging.getLogger(__name__)

Value = Union[str, List[str]]


@runtime_checkable
class KVStore(Protocol):
    """Operations the session layer relies on."""

    backend_name: str

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool: ...

    def append(self, list_key: str, *values: str) -> int: ...

    def range(self, list_key: str, start: int, end: int) -> List[str]: ...

    def refresh_ttl(self, key: str, ttl_seconds: int) -> bool: ...

    def exists(self, key: str) -> bool: ...

    def delete(self, key: str) -> int: ...

    def keys_matching(self, pattern: str) -> Set[str]: ...

    def close(self) -> None: ...


def _inclusive_slice(items: List[str], start: int, end: int) -> List[str]:
    """Slice with Redis LRANGE semantics: negative indices count from the tail, end inclusive."""
    length = len(items)
    if start < 0:
        start = max(length + start, 0)
    if end < 0:
        end = length + end
    if start >= length or end < start:
        return []
    return items[start : min(end, length - 1) + 1]


class InMemoryKVStore:
    """Dictionary-backed store with lazy expiry.

    Values live in one mapping and absolute expiry instants in another. Every
    read path evicts an expired key before looking at it, so no background
    sweeper is needed.
    """

    backend_name = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._values: Dict[str, Value] = {}
        self._expiry: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _evict_if_expired(self, key: str) -> None:
        deadline = self._expiry.get(key)
        if deadline is not None and self._clock() >= deadline:
            self._values.pop(key, None)
            self._expiry.pop(key, None)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            self._evict_if_expired(key)
            value = self._values.get(key)
            if isinstance(value, list):
                raise TypeError(f"Key {key!r} holds a list, not a string")
            return value

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        with self._lock:
            self._values[key] = value
            if ttl_seconds is not None:
                self._expiry[key] = self._clock() + ttl_seconds
            else:
                self._expiry.pop(key, None)
        return True

    def append(self, list_key: str, *values: str) -> int:
        with self._lock:
            self._evict_if_expired(list_key)
            current = self._values.get(list_key)
            if current is None:
                current = []
                self._values[list_key] = current
            elif not isinstance(current, list):
                raise TypeError(f"Key {list_key!r} holds a string, not a list")
            current.extend(values)
            return len(current)

    def range(self, list_key: str, start: int, end: int) -> List[str]:
        with self._lock:
            self._evict_if_expired(list_key)
            current = self._values.get(list_key)
            if current is None:
                return []
            if not isinstance(current, list):
                raise TypeError(f"Key {list_key!r} holds a string, not a list")
            return _inclusive_slice(current, start, end)

    def refresh_ttl(self, key: str, ttl_seconds: int) -> bool:
        with self._lock:
            self._evict_if_expired(key)
            if key not in self._values:
                return False
            self._expiry[key] = self._clock() + ttl_seconds
            return True

    def exists(self, key: str) -> bool:
        with self._lock:
            self._evict_if_expired(key)
            return key in self._values

    def delete(self, key: str) -> int:
        with self._lock:
            self._evict_if_expired(key)
            self._expiry.pop(key, None)
            return 1 if self._values.pop(key, None) is not None else 0

    def keys_matching(self, pattern: str) -> Set[str]:
        with self._lock:
            for key in list(self._expiry):
                self._evict_if_expired(key)
            return {key for key in self._values if fnmatch.fnmatchcase(key, pattern)}

    def close(self) -> None:
        with self._lock:
            self._values.clear()
            self._expiry.clear()


class RedisKVStore:
    """Redis-backed store. Connection errors surface as :class:`StoreUnavailableError`."""

    backend_name = "redis"

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, timeout: float = 2.0) -> "RedisKVStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
            retry_on_timeout=False,
        )
        return cls(client)

    def _run(self, operation: str, func: Callable, *args, **kwargs):
        try:
            return func(*args, **kwargs)
        except redis.RedisError as exc:
            raise StoreUnavailableError(
                f"Redis command failed: {exc}", operation=operation
            ) from exc

    def ping(self) -> bool:
        return bool(self._run("ping", self._client.ping))

    def get(self, key: str) -> Optional[str]:
        return self._run("get", self._client.get, key)

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        return bool(self._run("set", self._client.set, key, value, ex=ttl_seconds))

    def append(self, list_key: str, *values: str) -> int:
        if not values:
            return int(self._run("llen", self._client.llen, list_key))
        return int(self._run("rpush", self._client.rpush, list_key, *values))

    def range(self, list_key: str, start: int, end: int) -> List[str]:
        return list(self._run("lrange", self._client.lrange, list_key, start, end))

    def refresh_ttl(self, key: str, ttl_seconds: int) -> bool:
        return bool(self._run("expire", self._client.expire, key, ttl_seconds))

    def exists(self, key: str) -> bool:
        return bool(self._run("exists", self._client.exists, key))

    def delete(self, key: str) -> int:
        return int(self._run("delete", self._client.delete, key))

    def keys_matching(self, pattern: str) -> Set[str]:
        return set(self._run("scan", lambda: list(self._client.scan_iter(match=pattern))))

    def close(self) -> None:
        try:
            self._client.close()
        except redis.RedisError as exc:
            LOGGER.debug("Error while closing Redis client: %s", exc)


def connect_store(url: str | None, *, timeout: float = 2.0) -> KVStore:
    """Select the key/value backend for this process.

    ``None``, an empty string or ``memory://`` select the in-memory store
    directly. Otherwise Redis is pinged once; if it does not answer within
    ``timeout`` seconds the in-memory store is used instead.
    """
    if not url or url.startswith("memory://"):
        LOGGER.info("Using in-memory key/value store")
        return InMemoryKVStore()

    store = RedisKVStore.from_url(url, timeout=timeout)
    try:
        store.ping()
    except StoreUnavailableError as exc:
        LOGGER.warning("Redis unavailable at %s (%s), using in-memory store", url, exc.message)
        store.close()
        return InMemoryKVStore()

    LOGGER.info("Connected to Redis at %s", url)
    return store
