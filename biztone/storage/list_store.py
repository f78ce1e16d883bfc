"""
Persistence for whitelist / blacklist items.

Items are validated at this boundary; nothing malformed reaches scoring.
Reads are cached briefly and degrade to an empty list when the settings
store fails.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

from ..errors import DuplicateItemError, StorageError, ValidationError
from ..guard.list_override import ListItem, ListKind, validate_list_item
from .kv_store import SettingsStore

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

STORAGE_KEYS = {
    ListKind.WHITELIST: "BIZTONE_WHITELIST",
    ListKind.BLACKLIST: "BIZTONE_BLACKLIST",
}


def export_type(kind: ListKind) -> str:
    return STORAGE_KEYS[kind]


class ListStore:
    """Whitelist/blacklist CRUD with validation and a short read cache."""

    def __init__(
        self,
        store: SettingsStore,
        cache_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.cache_seconds = cache_seconds
        self._clock = clock
        self._cache: Dict[ListKind, Tuple[float, List[ListItem]]] = {}
        self._lock = threading.Lock()

    def get(self, kind: ListKind) -> List[ListItem]:
        """Current items; empty on storage failure."""
        kind = ListKind(kind)
        now = self._clock()
        cached = self._cache.get(kind)
        if cached is not None and now - cached[0] < self.cache_seconds:
            return list(cached[1])

        try:
            raw = self.store.get_json(STORAGE_KEYS[kind], default=[])
        except StorageError as e:
            logger.warning(f"Reading {kind.value} failed, treating as empty: {e}")
            return []

        items = self._parse_stored(kind, raw)
        self._cache[kind] = (now, items)
        return list(items)

    def set(self, kind: ListKind, items: Sequence[Mapping[str, Any]]) -> List[ListItem]:
        """Replace a list; every item is validated and duplicates are rejected."""
        kind = ListKind(kind)
        validated: List[ListItem] = []
        seen = set()
        for data in items:
            item = data if isinstance(data, ListItem) else validate_list_item(data, kind)
            if item.key() in seen:
                raise DuplicateItemError(f"Duplicate {kind.value} item: {item.text!r}")
            seen.add(item.key())
            validated.append(item)

        with self._lock:
            self._save(kind, validated)
        return validated

    def add(self, kind: ListKind, data: Mapping[str, Any]) -> ListItem:
        kind = ListKind(kind)
        item = validate_list_item(data, kind)
        with self._lock:
            items = self._load_fresh(kind)
            if any(existing.key() == item.key() for existing in items):
                raise DuplicateItemError(f"'{item.text}' is already in the {kind.value}")
            items.append(item)
            self._save(kind, items)
        logger.info(f"Added {kind.value} item {item.id}")
        return item

    def remove(self, kind: ListKind, item_id: str) -> bool:
        """Remove by id; False when no item has that id."""
        kind = ListKind(kind)
        with self._lock:
            items = self._load_fresh(kind)
            remaining = [item for item in items if item.id != item_id]
            if len(remaining) == len(items):
                return False
            self._save(kind, remaining)
        logger.info(f"Removed {kind.value} item {item_id}")
        return True

    def export_list(self, kind: ListKind) -> Dict[str, Any]:
        kind = ListKind(kind)
        return {
            "type": export_type(kind),
            "version": EXPORT_VERSION,
            "exportDate": datetime.now(timezone.utc).isoformat(),
            "items": [item.to_dict() for item in self.get(kind)],
        }

    def import_list(self, kind: ListKind, document: Mapping[str, Any]) -> List[ListItem]:
        """Replace a list from an exported document."""
        kind = ListKind(kind)
        if not isinstance(document, Mapping) or document.get("type") != export_type(kind):
            raise ValidationError(f"Not a {kind.value} export document")
        items = document.get("items")
        if not isinstance(items, list):
            raise ValidationError("Export document has no item list")
        return self.set(kind, items)

    def invalidate(self) -> None:
        self._cache.clear()

    def _load_fresh(self, kind: ListKind) -> List[ListItem]:
        # Writes must see the stored list, not the read cache
        raw = self.store.get_json(STORAGE_KEYS[kind], default=[])
        return self._parse_stored(kind, raw)

    def _save(self, kind: ListKind, items: List[ListItem]) -> None:
        self.store.set_json(STORAGE_KEYS[kind], [item.to_dict() for item in items])
        self._cache[kind] = (self._clock(), list(items))

    def _parse_stored(self, kind: ListKind, raw: Any) -> List[ListItem]:
        if not isinstance(raw, list):
            logger.warning(f"Stored {kind.value} is not a list, ignoring")
            return []
        items = []
        for data in raw:
            try:
                items.append(validate_list_item(data, kind))
            except ValidationError as e:
                logger.warning(f"Dropping invalid stored {kind.value} item: {e}")
        return items
