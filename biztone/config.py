"""
Guard configuration.

Every threshold, weight table, TTL and failure policy used by the engine
lives here so that it can be tuned without touching the algorithms.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


DATA_DIR = Path(__file__).parent / "data"

# Used by the synchronous prefilter (quick assessment)
PREFILTER_WEIGHTS = {"strong": 5, "adult": 4, "slur": 4, "weak": 2}

# Used by the enhanced (asynchronous) assessment
ENHANCED_WEIGHTS = {"strong": 4, "adult": 2, "slur": 4, "weak": 1}

DEFAULT_WHITELIST_SEEDS = [
    "시발점", "始發", "시발역", "출발점", "미친 듯이", "미친 척", "개발자", "개같이", "열받아",
]


class GuardConfig(BaseModel):
    """Tunables for scoring, caching and the decision state machine."""

    # Verdict thresholds
    pass_max: float = 1
    convert_min: float = 4
    max_score: float = 10

    # Category weight tables (kept separate on purpose, see DESIGN.md)
    prefilter_weights: Dict[str, int] = Field(default_factory=lambda: dict(PREFILTER_WEIGHTS))
    enhanced_weights: Dict[str, int] = Field(default_factory=lambda: dict(ENHANCED_WEIGHTS))

    # Timing
    cache_ttl_seconds: float = 90.0
    cache_max_entries: int = 2048
    guard_mode_cache_seconds: float = 30.0
    list_cache_seconds: float = 30.0
    debounce_ms: float = 350.0
    enhanced_timeout_seconds: float = 2.5

    # Failure policy
    fail_open_on_convert_error: bool = False
    fail_open_on_decision_error: bool = True
    auto_send_converted: bool = False

    # Lexicon sources (primary, legacy, optional extra for enhanced scoring)
    lexicon_path: Path = DATA_DIR / "lexicon.json"
    wordlist_path: Path = DATA_DIR / "wordlist.txt"
    enhanced_lexicon_path: Optional[Path] = None

    whitelist_seeds: List[str] = Field(default_factory=lambda: list(DEFAULT_WHITELIST_SEEDS))

    # Settings store
    redis_url: Optional[str] = None

    # Remote tone service
    llm_base_url: str = "https://api.openai.com/v1"
    llm_model: str = "gpt-4o-mini"
    llm_api_key: Optional[str] = None
    llm_timeout_seconds: float = 15.0
    llm_max_retries: int = 3

    @classmethod
    def from_env(cls, prefix: str = "BIZTONE_") -> "GuardConfig":
        """Build a config, overriding scalar fields from environment variables.

        ``BIZTONE_PASS_MAX=2`` overrides ``pass_max`` and so on. Weight tables
        and seed lists are not read from the environment.
        """
        overrides = {}
        for name in cls.model_fields:
            if name.endswith(("_weights", "_seeds")):
                continue
            raw = os.environ.get(f"{prefix}{name.upper()}")
            if raw is not None:
                overrides[name] = raw
        # pydantic coerces the strings to the annotated types
        return cls(**overrides)

    def guard_settings(self) -> Dict[str, object]:
        """Subset exposed to the host for display."""
        return {
            "pass_max": self.pass_max,
            "convert_min": self.convert_min,
            "cache_ttl_seconds": self.cache_ttl_seconds,
            "debounce_ms": self.debounce_ms,
            "fail_open_on_convert_error": self.fail_open_on_convert_error,
            "fail_open_on_decision_error": self.fail_open_on_decision_error,
            "auto_send_converted": self.auto_send_converted,
        }
