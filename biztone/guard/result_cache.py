"""
Result cache: normalized text -> recent guard verdict.

Entries live for a fixed TTL (90s by default). An entry written at T is
still valid at T + ttl and expired strictly after it. ``warningAcknowledged``
entries are single-use and consumed atomically.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from .normalizer import normalize

logger = logging.getLogger(__name__)


class CacheMode(Enum):
    SEND = "send"
    CONVERT = "convert"
    WARNING_ACKNOWLEDGED = "warningAcknowledged"


@dataclass(frozen=True)
class CacheEntry:
    key: str
    mode: CacheMode
    timestamp: float
    converted_text: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        data = {"key": self.key, "mode": self.mode.value, "timestamp": self.timestamp}
        if self.converted_text is not None:
            data["convertedText"] = self.converted_text
        return data


class ResultCache:
    """TTL-bounded, size-bounded verdict cache keyed by normalized text."""

    def __init__(
        self,
        ttl_seconds: float = 90.0,
        max_entries: int = 2048,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def key_for(text: str) -> str:
        return normalize(text)

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.timestamp > self.ttl_seconds

    def get(self, text: str) -> Optional[CacheEntry]:
        """Return a live entry without consuming it."""
        key = self.key_for(text)
        if not key:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del self._entries[key]
                return None
            return entry

    def take(self, text: str) -> Optional[CacheEntry]:
        """
        Look up an entry, consuming it if it is single-use.

        The check and the delete happen under one lock, so two callers can
        never both receive the same ``warningAcknowledged`` entry.
        """
        key = self.key_for(text)
        if not key:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del self._entries[key]
                return None
            if entry.mode == CacheMode.WARNING_ACKNOWLEDGED:
                del self._entries[key]
            return entry

    def put(self, text: str, mode: CacheMode, converted_text: Optional[str] = None) -> Optional[CacheEntry]:
        key = self.key_for(text)
        if not key:
            return None
        entry = CacheEntry(key=key, mode=mode, timestamp=self._clock(), converted_text=converted_text)
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        logger.debug(f"Cached {mode.value} entry ({len(key)} chars)")
        return entry

    def invalidate(self, text: str) -> None:
        with self._lock:
            self._entries.pop(self.key_for(text), None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            stale = [key for key, entry in self._entries.items() if self._expired(entry, now)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
