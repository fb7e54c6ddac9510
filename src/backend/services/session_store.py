"""
Key-value store behind replay protection and redemption rate limiting.

The in-memory implementation is process-local: it does not survive restarts
and is not shared between replicas. Multi-instance deployments should provide
a store backed by a shared cache (Redis SET NX / DEL / SCAN) implementing the
same protocol.
"""

import threading
from typing import Optional, Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class SessionStoreProtocol(Protocol):
    """Protocol defining timestamp store operations. Values are epoch millis."""

    def get(self, key: str) -> Optional[int]: ...
    def set(self, key: str, value: int) -> None: ...
    def set_if_absent(self, key: str, value: int) -> bool: ...
    def delete(self, key: str) -> bool: ...
    def sweep(self, older_than: int) -> int: ...


class InMemorySessionStore:
    """Thread-safe dict-backed store for a single process."""

    def __init__(self) -> None:
        self._data: dict[str, int] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[int]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: int) -> None:
        with self._lock:
            self._data[key] = value

    def set_if_absent(self, key: str, value: int) -> bool:
        """
        Insert only if the key is missing.

        Returns:
            True if the value was stored, False if the key already existed
        """
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = value
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def sweep(self, older_than: int) -> int:
        """Delete every entry whose timestamp is before `older_than`."""
        with self._lock:
            expired = [key for key, ts in self._data.items() if ts < older_than]
            for key in expired:
                del self._data[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
