"""
Guard engine: normalization, lexicon matching, risk scoring and the
two-stage decision state machine.
"""

from .normalizer import normalize
from .skeleton import skeleton
from .lexicon import Category, LexiconEntry, Locale
from .pattern_compiler import CompiledPattern, PatternCompiler
from .list_override import ListItem, ListKind, ListOverride, MatchType
from .risk_scorer import RiskAssessment, RiskLevel, RiskScorer
from .result_cache import CacheEntry, CacheMode, ResultCache
from .domain_policy import DomainPolicy, DomainRule
from .contexts import ContextRegistry, GuardState
from .decision_engine import GuardAction, GuardDecisionEngine, GuardOutcome, Verdict

__all__ = [
    "normalize",
    "skeleton",
    "Category",
    "LexiconEntry",
    "Locale",
    "CompiledPattern",
    "PatternCompiler",
    "ListItem",
    "ListKind",
    "ListOverride",
    "MatchType",
    "RiskAssessment",
    "RiskLevel",
    "RiskScorer",
    "CacheEntry",
    "CacheMode",
    "ResultCache",
    "DomainPolicy",
    "DomainRule",
    "ContextRegistry",
    "GuardState",
    "GuardAction",
    "GuardDecisionEngine",
    "GuardOutcome",
    "Verdict",
]
