"""Engine assembly."""

import logging
from typing import Optional

from .config import GuardConfig
from .guard.decision_engine import GuardDecisionEngine
from .guard.domain_policy import DomainPolicy
from .guard.lexicon import JsonLexiconSource, WordListSource
from .guard.list_override import ListOverride
from .guard.pattern_compiler import PatternCompiler
from .guard.risk_scorer import RiskScorer
from .llm.base import ToneBackend
from .llm.openai_backend import OpenAIToneBackend
from .logging.metrics import MetricsExporter
from .storage.kv_store import SettingsStore
from .storage.list_store import ListStore
from .storage.settings import GuardModeProvider

logger = logging.getLogger(__name__)


def build_compilers(config: GuardConfig):
    """Prefilter and enhanced compilers, each with its own weight table."""
    primary = [JsonLexiconSource(config.lexicon_path), WordListSource(config.wordlist_path)]
    quick = PatternCompiler(primary, config.prefilter_weights, name="prefilter")

    enhanced_sources = list(primary)
    if config.enhanced_lexicon_path is not None:
        enhanced_sources.insert(0, JsonLexiconSource(config.enhanced_lexicon_path))
    enhanced = PatternCompiler(enhanced_sources, config.enhanced_weights, name="enhanced")
    return quick, enhanced


def build_engine(
    config: Optional[GuardConfig] = None,
    store: Optional[SettingsStore] = None,
    tone_backend: Optional[ToneBackend] = None,
    metrics: Optional[MetricsExporter] = None,
    warm_up: bool = False,
) -> GuardDecisionEngine:
    """
    Build a fully wired engine.

    Args:
        config: Tunables (defaults, or GuardConfig.from_env() in the server)
        store: Settings store (Redis when config.redis_url is set, else in-memory)
        tone_backend: Remote tone service (OpenAI-compatible when a key is configured)
        metrics: Metrics exporter (process-wide exporter if None)
        warm_up: Compile both lexicons before returning

    Returns:
        GuardDecisionEngine owning its compilers, cache and contexts
    """
    config = config or GuardConfig()
    store = store or SettingsStore(url=config.redis_url)

    lists = ListStore(store, cache_seconds=config.list_cache_seconds)
    overrides = ListOverride(lists, seeds=config.whitelist_seeds)
    quick_compiler, enhanced_compiler = build_compilers(config)

    if tone_backend is None and config.llm_api_key:
        tone_backend = OpenAIToneBackend(
            api_key=config.llm_api_key,
            model_name=config.llm_model,
            base_url=config.llm_base_url,
            timeout=config.llm_timeout_seconds,
            max_retries=config.llm_max_retries,
        )
    if tone_backend is None:
        logger.warning("No tone backend configured; convert/decide will use the failure policy")

    engine = GuardDecisionEngine(
        config=config,
        quick_scorer=RiskScorer(quick_compiler, overrides, max_score=config.max_score),
        enhanced_scorer=RiskScorer(enhanced_compiler, overrides, max_score=config.max_score),
        domain_policy=DomainPolicy(store),
        mode_provider=GuardModeProvider(store, cache_seconds=config.guard_mode_cache_seconds),
        tone_backend=tone_backend,
        metrics=metrics,
        lists=lists,
    )
    if warm_up:
        engine.warm_up()
    return engine
