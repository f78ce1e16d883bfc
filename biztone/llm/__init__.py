"""Tone backend interface module."""

from biztone.llm.base import Decision, DecisionAction, ToneBackend
from biztone.llm.mock_backend import MockToneBackend
from biztone.llm.openai_backend import OpenAIToneBackend

__all__ = [
    "Decision",
    "DecisionAction",
    "ToneBackend",
    "MockToneBackend",
    "OpenAIToneBackend",
]
