"""Guard mode setting with a short read cache."""

import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Optional

from ..errors import StorageError, ValidationError
from .kv_store import SettingsStore

logger = logging.getLogger(__name__)

GUARD_MODE_KEY = "GUARD_MODE"


class GuardMode(Enum):
    WARN = "warn"
    CONVERT = "convert"


DEFAULT_GUARD_MODE = GuardMode.WARN


class GuardModeProvider:
    """
    Reads the externally mutable guard mode.

    The value is cached for ``cache_seconds`` and re-read afterwards, so a
    change made elsewhere is picked up within that window. Storage failures
    and unknown values resolve to ``warn``.
    """

    def __init__(
        self,
        store: SettingsStore,
        cache_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.cache_seconds = cache_seconds
        self._clock = clock
        self._cached: Optional[GuardMode] = None
        self._cached_at = 0.0

    def _fresh(self, now: float) -> bool:
        return self._cached is not None and now - self._cached_at < self.cache_seconds

    def get_sync(self) -> GuardMode:
        now = self._clock()
        if self._fresh(now):
            return self._cached

        try:
            raw = self.store.get_json(GUARD_MODE_KEY, default=DEFAULT_GUARD_MODE.value)
            mode = GuardMode(raw)
        except StorageError as e:
            logger.warning(f"Guard mode unavailable, using {DEFAULT_GUARD_MODE.value}: {e}")
            return DEFAULT_GUARD_MODE
        except ValueError:
            logger.warning(f"Unknown stored guard mode {raw!r}, using {DEFAULT_GUARD_MODE.value}")
            mode = DEFAULT_GUARD_MODE

        self._cached = mode
        self._cached_at = now
        return mode

    async def get(self) -> GuardMode:
        """Cached value, or a store read off the event loop."""
        if self._fresh(self._clock()):
            return self._cached
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get_sync)

    def set(self, mode) -> GuardMode:
        try:
            mode = GuardMode(mode)
        except ValueError:
            raise ValidationError(f"Guard mode must be 'warn' or 'convert', got {mode!r}")
        self.store.set_json(GUARD_MODE_KEY, mode.value)
        self._cached = mode
        self._cached_at = self._clock()
        return mode

    def invalidate(self) -> None:
        self._cached = None
