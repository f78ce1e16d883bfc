"""
Abstract base class for tone backends.

A tone backend is the remote language-model collaborator of the guard:
it rewrites text into a business tone and judges ambiguous text. Any
failure is reported as RemoteServiceError; retries belong to the backend,
the guard only applies its fail-open/fail-closed policy.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any


class DecisionAction(Enum):
    SEND = "send"
    CONVERT = "convert"


@dataclass
class Decision:
    """Judgment returned by ``decide``.

    ``converted_text`` is set only when the action is CONVERT.
    """
    action: DecisionAction
    converted_text: str | None = None
    label: str = ""
    rationale: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "convertedText": self.converted_text,
            "label": self.label,
            "rationale": self.rationale,
        }


class ToneBackend(ABC):
    """Abstract base class for tone backends.

    Implementations must raise RemoteServiceError (never return a partial
    result) when the remote side fails.
    """

    def __init__(self, model_name: str, **kwargs: Any):
        """Initialize the backend.

        Args:
            model_name: Name of the remote model.
            **kwargs: Backend-specific configuration.
        """
        self.model_name = model_name

    @abstractmethod
    async def convert(self, text: str) -> str:
        """Rewrite text in a polite business tone.

        Args:
            text: Raw user text.

        Returns:
            Converted text.
        """
        pass

    @abstractmethod
    async def decide(self, text: str) -> Decision:
        """Decide whether text can be sent as-is.

        Args:
            text: Raw user text.

        Returns:
            Decision with the chosen action.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the backend is reachable.

        Returns:
            True if healthy, False otherwise.
        """
        pass

    @abstractmethod
    async def shutdown(self) -> None:
        """Release network resources."""
        pass

    def get_info(self) -> dict[str, Any]:
        return {"backend": type(self).__name__, "model_name": self.model_name}
