"""
Per-input-context guard state.

Each input surface (text field, chat box, API session) owns its pending
flag, debounce timestamp and in-flight enhancement task, so concurrent
surfaces never block each other. A context's ``generation`` changes when
the surface is cancelled; results computed for an older generation are
discarded.
"""

import asyncio
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class GuardState(Enum):
    IDLE = "idle"
    QUICK_ASSESSED = "quick_assessed"
    SENT = "sent"
    BLOCKED_PENDING_ENHANCEMENT = "blocked_pending_enhancement"
    CONVERTING = "converting"
    DECIDING = "deciding"
    TERMINAL = "terminal"


@dataclass
class InputContext:
    context_id: str
    state: GuardState = GuardState.IDLE
    pending: bool = False
    last_started: Optional[float] = None
    generation: int = 0
    task: Optional[asyncio.Task] = None


class ContextRegistry:
    """Arena of input contexts keyed by id."""

    def __init__(
        self,
        debounce_ms: float = 350.0,
        max_contexts: int = 4096,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.debounce_ms = debounce_ms
        self.max_contexts = max_contexts
        self._clock = clock
        self._contexts: "OrderedDict[str, InputContext]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, context_id: str) -> InputContext:
        with self._lock:
            return self._get_locked(context_id)

    def _get_locked(self, context_id: str) -> InputContext:
        context = self._contexts.get(context_id)
        if context is None:
            context = InputContext(context_id=context_id)
            self._contexts[context_id] = context
            self._evict_idle()
        else:
            self._contexts.move_to_end(context_id)
        return context

    def _evict_idle(self) -> None:
        if len(self._contexts) <= self.max_contexts:
            return
        for context_id in list(self._contexts):
            if len(self._contexts) <= self.max_contexts:
                break
            if not self._contexts[context_id].pending:
                del self._contexts[context_id]

    def try_acquire(self, context_id: str) -> Optional[InputContext]:
        """
        Start an evaluation for a context.

        Returns None (the intent is dropped, not queued) while another
        evaluation is pending or within the debounce window of the last one.
        """
        with self._lock:
            context = self._get_locked(context_id)
            now = self._clock()
            if context.pending:
                logger.debug(f"Context {context_id}: evaluation pending, intent ignored")
                return None
            if context.last_started is not None and (now - context.last_started) * 1000 < self.debounce_ms:
                logger.debug(f"Context {context_id}: within debounce window, intent ignored")
                return None
            context.pending = True
            context.last_started = now
            context.state = GuardState.IDLE
            return context

    def release(self, context: InputContext, state: GuardState = GuardState.TERMINAL) -> None:
        with self._lock:
            context.pending = False
            context.task = None
            context.state = state

    def cancel(self, context_id: str) -> bool:
        """
        Invalidate a context (focus lost, navigation).

        Any in-flight enhancement is cancelled and its result discarded.
        Returns True if an evaluation was in flight.
        """
        with self._lock:
            context = self._contexts.get(context_id)
            if context is None:
                return False
            context.generation += 1
            task = context.task
            in_flight = context.pending
        if task is not None and not task.done():
            task.cancel()
        if in_flight:
            logger.info(f"Context {context_id}: in-flight evaluation cancelled")
        return in_flight

    def remove(self, context_id: str) -> None:
        self.cancel(context_id)
        with self._lock:
            self._contexts.pop(context_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._contexts)
