"""
Protocol definitions for the storage collaborators.

- KeyValueStoreProtocol: synchronous string store with a byte quota
  (SQLite on disk, in-memory for tests)
- BulkStoreProtocol: anything holding non key-value data that the purge
  must be able to clear asynchronously
"""

from typing import Iterable, Optional, Protocol, runtime_checkable


@runtime_checkable
class KeyValueStoreProtocol(Protocol):
    """
    String key-value store.

    ``set`` raises ``QuotaExceededError`` when the store's own quota would
    be exceeded; any other exception is an opaque write failure.
    """

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> Iterable[str]: ...


@runtime_checkable
class BulkStoreProtocol(Protocol):
    """Bulk data store cleared as a whole."""

    async def clear(self) -> None: ...
