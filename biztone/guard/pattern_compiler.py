"""
Pattern Compiler: lexicon -> noise-tolerant matchers.

Every lexicon word becomes two regexes: one over its normalized form and
one over its consonant skeleton. A noise class is interleaved between each
character so inserted punctuation, symbols, spaces and invisible marks
("s.i.b.a.l", "씨·발") do not break the match.

Compilation is memoized per compiler instance. Synchronous callers are
serialized by a lock; async callers share one executor future.
"""

import asyncio
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import LexiconLoadError
from .lexicon import Category, EmergencySource, LexiconEntry, LexiconSource, Locale
from .normalizer import normalize
from .skeleton import skeleton

logger = logging.getLogger(__name__)

# Any non-word character (spaces, punctuation, symbols, format/bidi marks)
# plus underscore, which re treats as a word character.
NOISE = r"[\W_\u200b-\u200f\u202a-\u202e\u2060\ufeff]*"


@dataclass(frozen=True)
class CompiledPattern:
    """Matchers for one lexicon entry."""
    word: str
    original: str
    skeleton: str
    pattern: "re.Pattern[str]"
    skeleton_pattern: "re.Pattern[str]"
    category: Category
    locale: Locale
    weight: int


def noise_tolerant(text: str) -> "re.Pattern[str]":
    """Build a regex matching text with arbitrary noise between characters."""
    return re.compile(NOISE.join(re.escape(char) for char in text), re.IGNORECASE)


def compile_entry(entry: LexiconEntry, weights: Dict[str, int]) -> Optional[CompiledPattern]:
    """Compile a single entry; returns None if the word normalizes to nothing."""
    word = normalize(entry.word)
    if not word:
        return None
    word_skeleton = skeleton(word)
    return CompiledPattern(
        word=word,
        original=entry.word,
        skeleton=word_skeleton,
        pattern=noise_tolerant(word),
        skeleton_pattern=noise_tolerant(word_skeleton),
        category=entry.category,
        locale=entry.locale,
        weight=weights.get(entry.category.value, 1),
    )


class PatternCompiler:
    """
    Memoized lexicon compiler with a staged fallback chain.

    The last stage must always be able to produce patterns; an
    EmergencySource is appended if the caller did not include one.
    """

    def __init__(self, sources: Sequence[LexiconSource], weights: Dict[str, int], name: str = "prefilter"):
        self.name = name
        self.weights = dict(weights)
        self.sources = list(sources)
        if not self.sources or not isinstance(self.sources[-1], EmergencySource):
            self.sources.append(EmergencySource())

        self._patterns: Optional[List[CompiledPattern]] = None
        self._stage: Optional[str] = None
        self._compiled_at = 0.0
        self._lock = threading.Lock()
        self._pending: Optional[asyncio.Future] = None

    @property
    def stage(self) -> Optional[str]:
        """Name of the source the current patterns came from."""
        return self._stage

    @property
    def is_compiled(self) -> bool:
        return self._patterns is not None

    @property
    def degraded(self) -> bool:
        return self._stage == EmergencySource.name

    def compile(self) -> List[CompiledPattern]:
        """Return compiled patterns, compiling on first use."""
        if self._patterns is not None:
            return self._patterns

        with self._lock:
            if self._patterns is None:
                start = time.time()
                patterns, stage = self._compile_with_fallback()
                self._patterns = patterns
                self._stage = stage
                self._compiled_at = time.time()
                logger.info(
                    f"[{self.name}] compiled {len(patterns)} patterns from '{stage}' "
                    f"in {(self._compiled_at - start) * 1000:.1f}ms"
                )
        return self._patterns

    async def compile_async(self) -> List[CompiledPattern]:
        """Compile off the event loop; concurrent callers await one job."""
        if self._patterns is not None:
            return self._patterns

        if self._pending is None or self._pending.get_loop() is not asyncio.get_running_loop():
            loop = asyncio.get_running_loop()
            self._pending = loop.run_in_executor(None, self.compile)
        return await self._pending

    def invalidate(self) -> None:
        """Drop compiled patterns so the next call reloads the lexicon."""
        with self._lock:
            self._patterns = None
            self._stage = None
            self._pending = None

    def _compile_with_fallback(self) -> Tuple[List[CompiledPattern], str]:
        for source in self.sources:
            try:
                entries = source.load()
            except LexiconLoadError as e:
                logger.warning(f"[{self.name}] lexicon source '{source.name}' failed: {e}")
                continue

            patterns = [p for p in (compile_entry(e, self.weights) for e in entries) if p]
            if patterns:
                if source.name == EmergencySource.name:
                    logger.warning(f"[{self.name}] running on emergency lexicon ({len(patterns)} entries)")
                return patterns, source.name

            logger.warning(f"[{self.name}] lexicon source '{source.name}' produced no patterns")

        # Reached only when an overridden emergency source yields nothing
        emergency = EmergencySource()
        patterns = [p for p in (compile_entry(e, self.weights) for e in emergency.load()) if p]
        return patterns, emergency.name

    def status(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "compiled": self.is_compiled,
            "stage": self._stage,
            "pattern_count": len(self._patterns or []),
            "compiled_at": self._compiled_at,
        }
