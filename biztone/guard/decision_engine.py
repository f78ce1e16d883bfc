"""
Guard Decision Engine: two-stage send guard.

Flow per submit intent:
  1. Domain gate       - disabled/paused domains skip the guard
  2. Result cache      - recent verdicts for the same normalized text
  3. Quick assessment  - synchronous prefilter scoring, no I/O
  4. Block             - decided before the first suspension point
  5. Enhanced pass     - richer scoring + guard mode, bounded by a timeout
  6. Verdict           - pass / convert / prompt, resolved against the
                         guard mode and the remote tone service

``intercept`` is plain synchronous code and returns the block decision;
``resolve`` is the only coroutine and owns the single enhancement task of
the input context.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ..config import GuardConfig
from ..errors import RemoteServiceError
from ..llm.base import DecisionAction, ToneBackend
from ..logging.metrics import MetricsExporter, get_metrics
from ..logging.structured import get_logger
from ..storage.settings import GuardMode, GuardModeProvider
from .contexts import ContextRegistry, GuardState, InputContext
from .domain_policy import DomainPolicy
from .result_cache import CacheEntry, CacheMode, ResultCache
from .risk_scorer import RiskAssessment, RiskScorer

logger = logging.getLogger(__name__)


class Verdict(Enum):
    PASS = "pass"
    CONVERT = "convert"
    PROMPT = "prompt"


class GuardAction(Enum):
    SEND = "send"                      # let the submit through
    REPLACE = "replace"                # replace the text with converted_text
    NEEDS_DECISION = "needs_decision"  # ask the user (warn mode)
    BLOCK = "block"                    # stay blocked, retryable error
    IGNORED = "ignored"                # duplicate intent, dropped
    DISCARDED = "discarded"            # context changed before the verdict


@dataclass
class QuickAssessment:
    block: bool
    verdict: Verdict
    assessment: RiskAssessment
    cache_entry: Optional[CacheEntry] = None


@dataclass
class GuardOutcome:
    """Final action for one submit intent."""
    action: GuardAction
    stage: str
    verdict: Optional[Verdict] = None
    assessment: Optional[RiskAssessment] = None
    converted_text: Optional[str] = None
    auto_send: bool = False
    guard_mode: Optional[GuardMode] = None
    error: Optional[str] = None
    retryable: bool = False

    @property
    def allows_send(self) -> bool:
        return self.action == GuardAction.SEND

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "stage": self.stage,
            "verdict": self.verdict.value if self.verdict else None,
            "assessment": self.assessment.to_dict() if self.assessment else None,
            "convertedText": self.converted_text,
            "autoSend": self.auto_send,
            "guardMode": self.guard_mode.value if self.guard_mode else None,
            "error": self.error,
            "retryable": self.retryable,
        }


@dataclass
class Interception:
    """Result of the synchronous half of an evaluation."""
    context_id: str
    text: str
    block: bool
    outcome: Optional[GuardOutcome] = None
    quick: Optional[QuickAssessment] = None
    context: Optional[InputContext] = None
    generation: int = 0
    started_at: float = 0.0


async def _resolved(value):
    return value


class LocalScoringBackend:
    """Enhanced scoring in-process, with the enhanced weight table."""

    def __init__(self, scorer: RiskScorer):
        self.scorer = scorer

    async def assess(self, text: str) -> RiskAssessment:
        await self.scorer.compiler.compile_async()
        return self.scorer.score(text)


class GuardDecisionEngine:
    """
    Send guard for one host integration.

    Features:
    - Synchronous block decision before any await
    - One in-flight evaluation per input context, 350ms debounce
    - Enhanced assessment bounded by a timeout, falling back to the quick result
    - Configurable fail-open/fail-closed policy for remote failures
    """

    def __init__(
        self,
        config: GuardConfig,
        quick_scorer: RiskScorer,
        enhanced_scorer: RiskScorer,
        domain_policy: DomainPolicy,
        mode_provider: GuardModeProvider,
        tone_backend: Optional[ToneBackend] = None,
        cache: Optional[ResultCache] = None,
        contexts: Optional[ContextRegistry] = None,
        scoring_backend=None,
        metrics: Optional[MetricsExporter] = None,
        lists=None,
    ):
        self.config = config
        self.quick_scorer = quick_scorer
        self.enhanced_scorer = enhanced_scorer
        self.domain_policy = domain_policy
        self.mode_provider = mode_provider
        self.tone_backend = tone_backend
        self.cache = cache or ResultCache(config.cache_ttl_seconds, config.cache_max_entries)
        self.contexts = contexts or ContextRegistry(config.debounce_ms)
        self.scoring_backend = scoring_backend or LocalScoringBackend(enhanced_scorer)
        self.metrics = metrics or get_metrics()
        # ListStore behind the scorers, exposed for list management
        self.lists = lists
        self.events = get_logger(__name__)

    # ------------------------------------------------------------------
    # Scoring accessors
    # ------------------------------------------------------------------

    def warm_up(self) -> None:
        """Compile both pattern sets up front."""
        for scorer in (self.quick_scorer, self.enhanced_scorer):
            scorer.compiler.compile()
            self.metrics.set_lexicon_degraded(scorer.compiler.name, scorer.compiler.degraded)

    def score(self, text: str) -> RiskAssessment:
        """Advisory score (enhanced weights), no side effects."""
        return self.enhanced_scorer.score(text)

    def verdict_for(self, assessment: RiskAssessment) -> Verdict:
        if assessment.whitelisted or assessment.score <= self.config.pass_max:
            return Verdict.PASS
        if assessment.score >= self.config.convert_min:
            return Verdict.CONVERT
        return Verdict.PROMPT

    def quick_assess(self, text: str) -> QuickAssessment:
        """
        Synchronous prefilter.

        A pass verdict caches ``send`` and does not block; anything else
        must be blocked by the caller before awaiting the enhanced pass.
        """
        start = time.perf_counter()
        assessment = self.quick_scorer.score(text)
        verdict = self.verdict_for(assessment)
        self.metrics.record_latency("quick", (time.perf_counter() - start) * 1000)
        self.metrics.record_risk_score("quick", assessment.score)

        if verdict == Verdict.PASS:
            entry = self.cache.put(text, CacheMode.SEND)
            return QuickAssessment(block=False, verdict=verdict, assessment=assessment, cache_entry=entry)
        return QuickAssessment(block=True, verdict=verdict, assessment=assessment)

    async def enhanced_assess(
        self,
        text: str,
        guard_mode: Optional[GuardMode] = None,
        fallback: Optional[RiskAssessment] = None,
        context_id: str = "-",
    ) -> GuardOutcome:
        """Enhanced scoring followed by the verdict and its remote action."""
        assessment, mode = await self._enhanced_score_and_mode(text, guard_mode, fallback, context_id)
        verdict = self.verdict_for(assessment)
        return await self._apply_verdict(text, verdict, assessment, mode, context_id)

    # ------------------------------------------------------------------
    # Full evaluation
    # ------------------------------------------------------------------

    def intercept(self, context_id: str, text: str, domain: Optional[str] = None) -> Interception:
        """
        Synchronous half of an evaluation: gate, cache and quick verdict.

        When the returned interception has ``block`` set and no outcome,
        the caller must hold the submit and await ``resolve``.
        """
        started_at = time.perf_counter()
        context = self.contexts.try_acquire(context_id)
        if context is None:
            outcome = GuardOutcome(action=GuardAction.IGNORED, stage="debounce")
            return Interception(context_id, text, block=True, outcome=outcome, started_at=started_at)

        def finish(outcome: GuardOutcome, block: bool = False) -> Interception:
            self.contexts.release(context, GuardState.SENT if outcome.allows_send else GuardState.TERMINAL)
            self._record(context_id, text, outcome, started_at)
            return Interception(context_id, text, block=block, outcome=outcome, started_at=started_at)

        if not self.domain_policy.is_enabled(domain):
            return finish(GuardOutcome(action=GuardAction.SEND, stage="domain"))

        if not text or not text.strip():
            return finish(GuardOutcome(action=GuardAction.SEND, stage="empty"))

        entry = self.cache.take(text)
        if entry is not None:
            self.metrics.record_cache_hit(entry.mode.value)
            if entry.mode == CacheMode.CONVERT:
                return finish(GuardOutcome(
                    action=GuardAction.REPLACE,
                    stage="cache",
                    converted_text=entry.converted_text,
                    auto_send=self.config.auto_send_converted,
                ))
            return finish(GuardOutcome(action=GuardAction.SEND, stage="cache"))

        quick = self.quick_assess(text)
        context.state = GuardState.QUICK_ASSESSED
        if not quick.block:
            return finish(GuardOutcome(
                action=GuardAction.SEND,
                stage="quick",
                verdict=quick.verdict,
                assessment=quick.assessment,
            ))

        context.state = GuardState.BLOCKED_PENDING_ENHANCEMENT
        return Interception(
            context_id,
            text,
            block=True,
            quick=quick,
            context=context,
            generation=context.generation,
            started_at=started_at,
        )

    async def resolve(self, interception: Interception) -> GuardOutcome:
        """Asynchronous half: run the enhancement task for a blocked submit."""
        if interception.outcome is not None:
            return interception.outcome

        context = interception.context
        task = asyncio.ensure_future(self.enhanced_assess(
            interception.text,
            fallback=interception.quick.assessment,
            context_id=interception.context_id,
        ))
        context.task = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            self.contexts.release(context)

        if task.cancelled() or context.generation != interception.generation:
            outcome = GuardOutcome(action=GuardAction.DISCARDED, stage="enhanced")
        else:
            outcome = task.result()

        self._record(interception.context_id, interception.text, outcome, interception.started_at)
        return outcome

    async def evaluate(self, context_id: str, text: str, domain: Optional[str] = None) -> GuardOutcome:
        """Run a full evaluation for one submit intent."""
        interception = self.intercept(context_id, text, domain)
        if interception.outcome is not None:
            return interception.outcome
        return await self.resolve(interception)

    def cancel(self, context_id: str) -> bool:
        """Discard any in-flight evaluation of a context."""
        return self.contexts.cancel(context_id)

    def acknowledge_warning(self, text: str) -> Optional[CacheEntry]:
        """Let the next identical submit through once (user chose "send anyway")."""
        return self.cache.put(text, CacheMode.WARNING_ACKNOWLEDGED)

    async def convert_text(self, text: str) -> str:
        """Manual conversion; remote failures propagate to the caller."""
        if self.tone_backend is None:
            raise RemoteServiceError("No tone backend configured")
        try:
            return await self.tone_backend.convert(text)
        except RemoteServiceError:
            self.metrics.record_remote_failure("convert")
            raise

    def status(self) -> Dict[str, Any]:
        return {
            "compilers": [self.quick_scorer.compiler.status(), self.enhanced_scorer.compiler.status()],
            "cache_entries": len(self.cache),
            "contexts": len(self.contexts),
            "tone_backend": self.tone_backend.get_info() if self.tone_backend else None,
            "settings": self.config.guard_settings(),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _enhanced_score_and_mode(
        self,
        text: str,
        guard_mode: Optional[GuardMode],
        fallback: Optional[RiskAssessment],
        context_id: str,
    ):
        start = time.perf_counter()
        timeout = self.config.enhanced_timeout_seconds
        scoring = asyncio.wait_for(self.scoring_backend.assess(text), timeout)
        if guard_mode is None:
            mode_lookup = asyncio.wait_for(self.mode_provider.get(), timeout)
        else:
            mode_lookup = _resolved(guard_mode)
        score_result, mode_result = await asyncio.gather(scoring, mode_lookup, return_exceptions=True)

        if isinstance(score_result, BaseException):
            if isinstance(score_result, asyncio.CancelledError):
                raise score_result
            reason = "timeout" if isinstance(score_result, asyncio.TimeoutError) else repr(score_result)
            self.events.log_fallback(context_id, reason)
            assessment = fallback if fallback is not None else self.quick_scorer.score(text)
        else:
            assessment = score_result
            self.metrics.record_latency("enhanced", (time.perf_counter() - start) * 1000)
            self.metrics.record_risk_score("enhanced", assessment.score)

        if isinstance(mode_result, BaseException):
            if isinstance(mode_result, asyncio.CancelledError):
                raise mode_result
            logger.warning(f"Guard mode lookup failed, using warn: {mode_result!r}")
            mode_result = GuardMode.WARN

        return assessment, mode_result

    async def _apply_verdict(
        self,
        text: str,
        verdict: Verdict,
        assessment: RiskAssessment,
        mode: GuardMode,
        context_id: str,
    ) -> GuardOutcome:
        if verdict == Verdict.PASS:
            self.cache.put(text, CacheMode.SEND)
            return GuardOutcome(action=GuardAction.SEND, stage="enhanced", verdict=verdict,
                                assessment=assessment, guard_mode=mode)

        if mode == GuardMode.WARN:
            return GuardOutcome(action=GuardAction.NEEDS_DECISION, stage="enhanced", verdict=verdict,
                                assessment=assessment, guard_mode=mode)

        if verdict == Verdict.CONVERT:
            self._set_state(context_id, GuardState.CONVERTING)
            try:
                converted = await self._remote("convert", text)
            except Exception as e:
                return self._remote_failed("convert", e, self.config.fail_open_on_convert_error,
                                           verdict, assessment, mode, context_id)
            return self._replace(text, converted, verdict, assessment, mode)

        self._set_state(context_id, GuardState.DECIDING)
        try:
            decision = await self._remote("decide", text)
        except Exception as e:
            return self._remote_failed("decide", e, self.config.fail_open_on_decision_error,
                                       verdict, assessment, mode, context_id)

        if decision.action == DecisionAction.SEND:
            self.cache.put(text, CacheMode.SEND)
            return GuardOutcome(action=GuardAction.SEND, stage="enhanced", verdict=verdict,
                                assessment=assessment, guard_mode=mode)
        return self._replace(text, decision.converted_text or text, verdict, assessment, mode)

    async def _remote(self, operation: str, text: str):
        if self.tone_backend is None:
            raise RemoteServiceError("No tone backend configured")
        if operation == "convert":
            return await self.tone_backend.convert(text)
        return await self.tone_backend.decide(text)

    def _replace(self, text, converted, verdict, assessment, mode) -> GuardOutcome:
        # Converted text is cached only when it will be sent without review
        if self.config.auto_send_converted:
            self.cache.put(text, CacheMode.CONVERT, converted_text=converted)
        return GuardOutcome(
            action=GuardAction.REPLACE,
            stage="enhanced",
            verdict=verdict,
            assessment=assessment,
            converted_text=converted,
            auto_send=self.config.auto_send_converted,
            guard_mode=mode,
        )

    def _remote_failed(self, operation, error, fail_open, verdict, assessment, mode, context_id) -> GuardOutcome:
        self.metrics.record_remote_failure(operation)
        self.events.log_remote_failure(context_id, operation, str(error), fail_open)
        return GuardOutcome(
            action=GuardAction.SEND if fail_open else GuardAction.BLOCK,
            stage="enhanced",
            verdict=verdict,
            assessment=assessment,
            guard_mode=mode,
            error=str(error),
            retryable=not fail_open,
        )

    def _set_state(self, context_id: str, state: GuardState) -> None:
        if context_id != "-":
            self.contexts.get(context_id).state = state

    def _record(self, context_id: str, text: str, outcome: GuardOutcome, started_at: float) -> None:
        latency_ms = (time.perf_counter() - started_at) * 1000
        self.metrics.record_evaluation(outcome.action.value)
        self.events.log_verdict(
            context_id=context_id,
            text=text,
            stage=outcome.stage,
            score=outcome.assessment.score if outcome.assessment else 0.0,
            verdict=outcome.verdict.value if outcome.verdict else "-",
            action=outcome.action.value,
            latency_ms=latency_ms,
        )
