"""
BizTone Guard - business tone send guard
Obfuscation-tolerant profanity scoring with a two-stage, race-free
submit guard.
"""

from .config import GuardConfig
from .factory import build_engine

__version__ = "1.0.0"

__all__ = ["GuardConfig", "build_engine", "__version__"]
