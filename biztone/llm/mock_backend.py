"""
Mock tone backend for testing.

Returns canned conversions and decisions, records every call, and can be
told to fail or stall so the guard's timeout and fail-open paths can be
exercised without a network.
"""

import asyncio
from typing import Any

from biztone.errors import RemoteServiceError
from biztone.llm.base import Decision, DecisionAction, ToneBackend


class MockToneBackend(ToneBackend):
    """Deterministic in-process tone backend."""

    def __init__(
        self,
        model_name: str = "mock-tone",
        converted_text: str = "확인 부탁드립니다.",
        decision: Decision | None = None,
        fail_convert: bool = False,
        fail_decide: bool = False,
        latency_ms: float = 0.0,
        **kwargs: Any
    ):
        """Initialize the mock backend.

        Args:
            model_name: Name reported by get_info.
            converted_text: Text returned by convert.
            decision: Decision returned by decide (defaults to SEND).
            fail_convert: Raise RemoteServiceError from convert.
            fail_decide: Raise RemoteServiceError from decide.
            latency_ms: Simulated latency per call.
        """
        super().__init__(model_name, **kwargs)
        self.converted_text = converted_text
        self.decision = decision or Decision(action=DecisionAction.SEND)
        self.fail_convert = fail_convert
        self.fail_decide = fail_decide
        self.latency_ms = latency_ms
        self.calls: list[tuple[str, str]] = []

    async def convert(self, text: str) -> str:
        self.calls.append(("convert", text))
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)
        if self.fail_convert:
            raise RemoteServiceError("mock convert failure", status_code=503)
        return self.converted_text

    async def decide(self, text: str) -> Decision:
        self.calls.append(("decide", text))
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)
        if self.fail_decide:
            raise RemoteServiceError("mock decide failure", status_code=503)
        return self.decision

    async def health_check(self) -> bool:
        """Check health (always healthy for mock)."""
        return True

    async def shutdown(self) -> None:
        """Shutdown (no-op for mock)."""
        pass
