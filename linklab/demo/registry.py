"""
Registry for anonymous links that were not written to the durable store.

Consulted by the redirect path only after the Link Store misses.
"""

import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

from .models import DemoLinkEntry


class DemoRegistryStrategy(ABC):
    """Keyed store of DemoLinkEntry by short code"""

    @abstractmethod
    def put(self, code: str, entry: DemoLinkEntry) -> bool:
        """
        Store an entry.

        Returns:
            False if the code is already registered (entry not stored)
        """
        pass

    @abstractmethod
    def get(self, code: str) -> Optional[DemoLinkEntry]:
        """Return a copy of the entry, or None"""
        pass

    @abstractmethod
    def increment_clicks(self, code: str) -> int:
        """Bump the coarse click counter; returns the new value (0 if absent)"""
        pass

    @abstractmethod
    def pop(self, code: str) -> Optional[DemoLinkEntry]:
        """Remove and return an entry (used when promoting it to a durable link)"""
        pass

    def contains(self, code: str) -> bool:
        return self.get(code) is not None


class InMemoryDemoRegistry(DemoRegistryStrategy):
    """
    Dict guarded by a lock.

    Route handlers run both on the event loop and in the threadpool, so
    every read and mutation goes through the same threading.Lock.
    Entries are handed out as copies; callers cannot mutate shared state.
    """

    def __init__(self):
        self._entries: Dict[str, DemoLinkEntry] = {}
        self._lock = threading.Lock()

    def put(self, code: str, entry: DemoLinkEntry) -> bool:
        with self._lock:
            if code in self._entries:
                return False
            self._entries[code] = entry.model_copy()
            return True

    def get(self, code: str) -> Optional[DemoLinkEntry]:
        with self._lock:
            entry = self._entries.get(code)
            return entry.model_copy() if entry else None

    def increment_clicks(self, code: str) -> int:
        with self._lock:
            entry = self._entries.get(code)
            if entry is None:
                return 0
            entry.clicks += 1
            return entry.clicks

    def pop(self, code: str) -> Optional[DemoLinkEntry]:
        with self._lock:
            return self._entries.pop(code, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
