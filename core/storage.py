# core/storage.py
"""
Key-value storage seam for the pipeline's mutable state (active crises,
sessions, handoff queues, audit events).

Business logic only talks to `KeyValueStore`; `InMemoryStore` is the default
backend. A durable backend (Redis, a database table) implements the same five
coroutines. Iteration order of `keys()`/`values()` is insertion order, which
the handoff queues rely on for FIFO semantics.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class KeyValueStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Value for `key`, or None."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Insert or overwrite `key`. Overwrites keep the original position."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove `key`; True if it existed."""

    @abstractmethod
    async def keys(self) -> List[str]:
        """All keys in insertion order."""

    @abstractmethod
    async def values(self) -> List[Any]:
        """All values in insertion order."""

    async def clear(self) -> None:
        for key in await self.keys():
            await self.delete(key)

    async def size(self) -> int:
        return len(await self.keys())


class InMemoryStore(KeyValueStore):
    """Dict-backed store. State is lost on restart."""

    def __init__(self, name: str = "memory"):
        self.name = name
        self._data: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        if key not in self._data:
            return False
        del self._data[key]
        return True

    async def keys(self) -> List[str]:
        return list(self._data)

    async def values(self) -> List[Any]:
        return list(self._data.values())

    async def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"InMemoryStore(name={self.name!r}, size={len(self._data)})"
