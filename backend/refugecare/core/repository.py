"""
RefugeCare Triage - Repository Interface

Keyed storage used by the Facility Directory, Ticket Lifecycle Manager and
Session Accumulator. Each engine instance owns its repositories, so tests
and multiple engines never share state.

The in-memory implementation keeps insertion order. A durable store only
needs to implement the same four coroutines.
"""

from __future__ import annotations

import asyncio
import logging
from abc import abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Generic, List, Optional, Protocol, TypeVar, runtime_checkable

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Protocol
# =============================================================================

@runtime_checkable
class Repository(Protocol[T]):
    """Capability set {get, list, put, delete} over records keyed by id."""

    @abstractmethod
    async def get(self, key: str) -> Optional[T]:
        ...

    @abstractmethod
    async def list(self) -> List[T]:
        """All records in insertion order."""
        ...

    @abstractmethod
    async def put(self, key: str, value: T) -> None:
        """Insert or replace. Replacing keeps the original position."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a record. Returns False if it did not exist."""
        ...


# =============================================================================
# In-Memory Implementation
# =============================================================================

class InMemoryRepository(Generic[T]):
    """
    Dict-backed repository.

    Reads and writes are plain dict operations with no await in between,
    so they are atomic with respect to other coroutines on the loop.
    """

    def __init__(self, name: str = "records"):
        self._name = name
        self._items: Dict[str, T] = {}

    async def get(self, key: str) -> Optional[T]:
        return self._items.get(key)

    async def list(self) -> List[T]:
        return list(self._items.values())

    async def put(self, key: str, value: T) -> None:
        self._items[key] = value

    async def delete(self, key: str) -> bool:
        existed = self._items.pop(key, None) is not None
        if existed:
            logger.debug("Deleted %s from %s", key, self._name)
        return existed

    def __len__(self) -> int:
        return len(self._items)


# =============================================================================
# Per-Id Locking
# =============================================================================

class KeyedLocks:
    """
    One asyncio.Lock per id, held through `async with locks.hold(id)`.

    Writes to the same ticket or session are serialized in arrival order
    (asyncio.Lock is FIFO); different ids never contend. An id's lock only
    exists while some coroutine holds or waits for it, so lookups of
    unknown ids leave nothing behind.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
