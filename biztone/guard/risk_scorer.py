"""
Risk Scorer: lexicon + context + list overrides -> capped risk score.

Score composition (0-10):
  lexicon  - sum of category weights of every matched pattern
  context  - structural heuristics over the raw text (punctuation, caps,
             aggressive vocabulary, imperative endings, urgency)
  blacklist - user-defined weights, added after the first clamp

A whitelist hit short-circuits everything with a score of 0.
Latency: sub-millisecond per pattern set, no I/O.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .lexicon import Category
from .list_override import BlacklistMatch, ListOverride
from .normalizer import normalize
from .pattern_compiler import PatternCompiler
from .skeleton import skeleton

logger = logging.getLogger(__name__)


class RiskLevel(Enum):
    """Risk tier derived from the final score."""
    LOW = "LOW"        # < 2
    MEDIUM = "MEDIUM"  # 2 - <4
    HIGH = "HIGH"      # >= 4


class MatchSource(Enum):
    DIRECT = "direct"
    SKELETON = "skeleton"


@dataclass
class PatternMatch:
    """A lexicon entry that fired."""
    word: str
    original: str
    category: Category
    locale: str
    weight: int
    match_type: MatchSource

    def to_dict(self) -> Dict[str, Any]:
        return {
            "word": self.original,
            "normalized": self.word,
            "category": self.category.value,
            "locale": self.locale,
            "weight": self.weight,
            "matchType": self.match_type.value,
        }


@dataclass
class ContextualRisk:
    score: float = 0.0
    factors: List[str] = field(default_factory=list)


@dataclass
class RiskAssessment:
    """Final scoring result."""
    score: float
    risk_level: RiskLevel
    matches: List[PatternMatch] = field(default_factory=list)
    contextual: ContextualRisk = field(default_factory=ContextualRisk)
    whitelisted: bool = False
    category_stats: Dict[str, int] = field(default_factory=dict)
    blacklist_matches: List[BlacklistMatch] = field(default_factory=list)

    # Breakdown
    pattern_score: float = 0.0
    blacklist_score: float = 0.0

    @property
    def contextual_factors(self) -> List[str]:
        return self.contextual.factors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "riskLevel": self.risk_level.value,
            "whitelisted": self.whitelisted,
            "matches": [m.to_dict() for m in self.matches],
            "contextualFactors": list(self.contextual.factors),
            "categoryStats": dict(self.category_stats),
            "blacklistMatches": [
                {"id": m.item.id, "text": m.item.text, "weight": m.weight}
                for m in self.blacklist_matches
            ],
            "breakdown": {
                "patternScore": self.pattern_score,
                "contextScore": self.contextual.score,
                "blacklistScore": self.blacklist_score,
            },
        }


def empty_category_stats() -> Dict[str, int]:
    return {category.value: 0 for category in Category}


def risk_level_for(score: float) -> RiskLevel:
    if score >= 4:
        return RiskLevel.HIGH
    elif score >= 2:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def clamp(score: float, max_score: float = 10.0) -> float:
    return max(0.0, min(score, max_score))


# Contextual heuristics (raw text, never normalized)
EXCLAMATION_RUN = re.compile(r"!+")
QUESTION_RUN = re.compile(r"\?+")
LATIN_LETTER = re.compile(r"[A-Za-z]")
UPPER_LETTER = re.compile(r"[A-Z]")
CAPS_RUN = re.compile(r"\b[A-Z]{4,}\b")
IMPERATIVE_ENDING = re.compile(r"[가-힣]{2,}(해라|하라)")

AGGRESSIVE_WORDS = ("당장", "빨리", "책임져", "최악", "짜증", "열받", "죽을")
URGENCY_WORDS = ("지금 당장", "즉시", "급함", "급해", "asap", "urgent", "immediately")

MIN_LETTERS_FOR_CAPS = 6
CAPS_RATIO = 0.5


def contextual_risk(text: str) -> ContextualRisk:
    """Score structural signals of hostility in the raw text."""
    score = 0.0
    factors = []

    if len(EXCLAMATION_RUN.findall(text)) >= 2:
        score += 0.5
        factors.append("excessive_exclamation")

    if len(QUESTION_RUN.findall(text)) >= 2:
        score += 0.5
        factors.append("excessive_question")

    if "?!" in text or "!?" in text:
        score += 0.5
        factors.append("mixed_punctuation")

    for word in AGGRESSIVE_WORDS:
        if word in text:
            score += 0.3
            factors.append(f"aggressive_{word}")

    letters = LATIN_LETTER.findall(text)
    if len(letters) >= MIN_LETTERS_FOR_CAPS:
        uppercase = UPPER_LETTER.findall(text)
        if len(uppercase) / len(letters) >= CAPS_RATIO:
            score += 0.5
            factors.append("excessive_caps")

    if CAPS_RUN.search(text):
        score += 1.0
        factors.append("caps_run")

    if IMPERATIVE_ENDING.search(text):
        score += 1.0
        factors.append("imperative_ending")

    lowered = text.lower()
    if any(word in lowered for word in URGENCY_WORDS):
        score += 0.5
        factors.append("urgency")

    return ContextualRisk(score=round(score, 2), factors=factors)


class RiskScorer:
    """
    Weighted risk scoring over a compiled lexicon.

    One scorer per weight table: the engine holds a prefilter scorer for the
    synchronous quick pass and an enhanced scorer for the async pass.
    """

    def __init__(
        self,
        compiler: PatternCompiler,
        overrides: Optional[ListOverride] = None,
        max_score: float = 10.0,
    ):
        """
        Args:
            compiler: Pattern compiler supplying weighted matchers
            overrides: Whitelist/blacklist matcher (None disables lists)
            max_score: Score ceiling
        """
        self.compiler = compiler
        self.overrides = overrides
        self.max_score = max_score

    @property
    def name(self) -> str:
        return self.compiler.name

    def score(self, text: str) -> RiskAssessment:
        """
        Score raw text.

        Args:
            text: Raw user text

        Returns:
            RiskAssessment with score in [0, max_score]
        """
        normalized = normalize(text or "")
        if not normalized or not text.strip():
            return RiskAssessment(score=0.0, risk_level=RiskLevel.LOW, category_stats=empty_category_stats())

        if self.overrides is not None and self.overrides.is_whitelisted(text):
            return RiskAssessment(
                score=0.0,
                risk_level=RiskLevel.LOW,
                whitelisted=True,
                category_stats=empty_category_stats(),
            )

        matches, category_stats, pattern_score = self._match_patterns(normalized)
        context = contextual_risk(text)
        score = clamp(pattern_score + context.score, self.max_score)

        blacklist_matches: List[BlacklistMatch] = []
        blacklist_score = 0
        if self.overrides is not None:
            blacklist_matches = self.overrides.blacklist_matches(text)
            blacklist_score = sum(m.weight for m in blacklist_matches)
            score = clamp(score + blacklist_score, self.max_score)

        assessment = RiskAssessment(
            score=round(score, 2),
            risk_level=risk_level_for(score),
            matches=matches,
            contextual=context,
            category_stats=category_stats,
            blacklist_matches=blacklist_matches,
            pattern_score=pattern_score,
            blacklist_score=blacklist_score,
        )

        logger.debug(
            f"[{self.name}] score={assessment.score} level={assessment.risk_level.value} "
            f"matches={len(matches)} context={context.score} blacklist={blacklist_score}"
        )
        return assessment

    def _match_patterns(self, normalized: str) -> Tuple[List[PatternMatch], Dict[str, int], float]:
        text_skeleton = skeleton(normalized)
        matches = []
        stats = empty_category_stats()
        subtotal = 0.0

        for pattern in self.compiler.compile():
            if pattern.pattern.search(normalized):
                match_type = MatchSource.DIRECT
            elif pattern.skeleton_pattern.search(text_skeleton):
                match_type = MatchSource.SKELETON
            else:
                continue

            subtotal += pattern.weight
            stats[pattern.category.value] += 1
            matches.append(PatternMatch(
                word=pattern.word,
                original=pattern.original,
                category=pattern.category,
                locale=pattern.locale.value,
                weight=pattern.weight,
                match_type=match_type,
            ))

            # Further hits cannot move a clamped score
            if subtotal >= self.max_score:
                break

        return matches, stats, subtotal
