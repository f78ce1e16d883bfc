"""
Lexicon records and the sources they are loaded from.

Sources are tried in order by the pattern compiler:
  1. Categorized JSON lexicon ([{"word", "category", "locale"}, ...])
  2. Flat legacy word list, one word per line, classified strong/weak
  3. Hardcoded emergency list
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List

from ..errors import LexiconLoadError
from .normalizer import normalize

logger = logging.getLogger(__name__)


class Category(str, Enum):
    STRONG = "strong"
    WEAK = "weak"
    ADULT = "adult"
    SLUR = "slur"


class Locale(str, Enum):
    KO = "ko"
    EN = "en"
    ALL = "all"


@dataclass(frozen=True)
class LexiconEntry:
    """A single curated lexicon word."""
    word: str
    category: Category
    locale: Locale = Locale.ALL


# High-confidence stems; legacy words containing one of these are "strong"
STRONG_STEMS = ("씨발", "시발", "좆", "병신", "개새끼", "꺼져")

EMERGENCY_ENTRIES = (
    LexiconEntry("씨발", Category.STRONG, Locale.KO),
    LexiconEntry("시발", Category.STRONG, Locale.KO),
    LexiconEntry("좆", Category.STRONG, Locale.KO),
    LexiconEntry("병신", Category.STRONG, Locale.KO),
    LexiconEntry("개새끼", Category.STRONG, Locale.KO),
    LexiconEntry("미친", Category.WEAK, Locale.KO),
)


def classify_strength(word: str) -> Category:
    """Classify a legacy (uncategorized) word as strong or weak."""
    normalized = normalize(word)
    if any(normalize(stem) in normalized for stem in STRONG_STEMS):
        return Category.STRONG
    return Category.WEAK


class LexiconSource:
    """Base class for lexicon sources."""

    name = "source"

    def load(self) -> List[LexiconEntry]:
        raise NotImplementedError


class JsonLexiconSource(LexiconSource):
    """Categorized lexicon stored as a JSON array."""

    name = "categorized"

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> List[LexiconEntry]:
        try:
            records = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise LexiconLoadError(f"Cannot read lexicon {self.path}: {e}") from e

        if not isinstance(records, list):
            raise LexiconLoadError(f"Lexicon {self.path} is not a JSON array")

        entries = list(self._parse(records))
        if not entries:
            raise LexiconLoadError(f"Lexicon {self.path} has no usable entries")
        return entries

    def _parse(self, records: Iterable) -> Iterable[LexiconEntry]:
        skipped = 0
        for record in records:
            try:
                word = record["word"]
                category = Category(record["category"])
                locale = Locale(record.get("locale", Locale.ALL.value))
            except (TypeError, KeyError, ValueError):
                skipped += 1
                continue
            if not isinstance(word, str) or not word.strip():
                skipped += 1
                continue
            yield LexiconEntry(word.strip(), category, locale)
        if skipped:
            logger.debug(f"Skipped {skipped} malformed lexicon records in {self.path}")


class WordListSource(LexiconSource):
    """Legacy flat word list; '#' starts a comment line."""

    name = "legacy"

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> List[LexiconEntry]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise LexiconLoadError(f"Cannot read word list {self.path}: {e}") from e

        words = []
        seen = set()
        for line in raw.splitlines():
            word = line.strip()
            if not word or word.startswith("#") or word in seen:
                continue
            seen.add(word)
            words.append(word)

        if not words:
            raise LexiconLoadError(f"Word list {self.path} is empty")

        return [LexiconEntry(word, classify_strength(word), Locale.KO) for word in words]


class EmergencySource(LexiconSource):
    """Last-resort hardcoded entries; never fails."""

    name = "emergency"

    def load(self) -> List[LexiconEntry]:
        return list(EMERGENCY_ENTRIES)
