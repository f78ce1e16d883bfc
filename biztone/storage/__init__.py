"""Persistence for lists, domain rules and settings."""

from .kv_store import SettingsStore
from .list_store import ListStore
from .settings import GuardMode, GuardModeProvider

__all__ = ["SettingsStore", "ListStore", "GuardMode", "GuardModeProvider"]
