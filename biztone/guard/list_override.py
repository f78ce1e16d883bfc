"""
Whitelist / blacklist override.

A whitelist hit forces the risk score to zero. Blacklist hits add their
weight on top of the lexicon score. Items are user-curated and scoped by
locale; matching runs on the composed, whitespace-collapsed lowercase form
of the text so multi-word items ("미친 듯이") keep their spaces.
"""

import functools
import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..errors import ValidationError
from .lexicon import Locale
from .normalizer import list_form

logger = logging.getLogger(__name__)

HANGUL = re.compile(r"[가-힣ㄱ-ㅣ\u1100-\u11ff]")
LATIN = re.compile(r"[A-Za-z]")


class MatchType(str, Enum):
    EXACT = "exact"
    CONTAINS = "contains"
    REGEX = "regex"


class ListKind(str, Enum):
    WHITELIST = "whitelist"
    BLACKLIST = "blacklist"


BLACKLIST_WEIGHTS = (1, 2, 3, 4)


@dataclass
class ListItem:
    """A whitelist or blacklist entry."""
    text: str
    match: MatchType = MatchType.CONTAINS
    locale: Locale = Locale.ALL
    weight: Optional[int] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: int = field(default_factory=lambda: int(time.time() * 1000))

    def key(self) -> tuple:
        """Identity used for duplicate detection (same form the matcher sees)."""
        return (list_form(self.text), self.match, self.locale)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "text": self.text,
            "match": self.match.value,
            "locale": self.locale.value,
            "createdAt": self.created_at,
        }
        if self.weight is not None:
            data["weight"] = self.weight
        return data


@dataclass
class BlacklistMatch:
    item: ListItem
    weight: int


def validate_list_item(data: Mapping[str, Any], kind: ListKind) -> ListItem:
    """
    Validate a raw list item and build a ListItem.

    Missing id/createdAt are generated. Raises ValidationError on blank text,
    unknown match type or locale, a blacklist item without a weight from
    BLACKLIST_WEIGHTS, or a regex item that does not compile.
    """
    if not isinstance(data, Mapping):
        raise ValidationError("List item must be an object")

    text = data.get("text")
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("List item text is required")

    try:
        match = MatchType(data.get("match", MatchType.CONTAINS.value))
    except ValueError:
        raise ValidationError(f"Unknown match type: {data.get('match')!r}")

    try:
        locale = Locale(data.get("locale", Locale.ALL.value))
    except ValueError:
        raise ValidationError(f"Unknown locale: {data.get('locale')!r}")

    weight = data.get("weight")
    if kind == ListKind.BLACKLIST:
        if isinstance(weight, bool) or weight not in BLACKLIST_WEIGHTS:
            raise ValidationError(f"Blacklist weight must be one of {BLACKLIST_WEIGHTS}")
    else:
        weight = None

    if match == MatchType.REGEX and compile_user_regex(text.strip()) is None:
        raise ValidationError(f"Invalid regular expression: {text!r}")

    item = ListItem(text=text.strip(), match=match, locale=locale, weight=weight)
    if data.get("id"):
        item.id = str(data["id"])
    if isinstance(data.get("createdAt"), (int, float)):
        item.created_at = int(data["createdAt"])
    return item


@functools.lru_cache(maxsize=512)
def compile_user_regex(pattern: str) -> Optional["re.Pattern[str]"]:
    """Compile a user-supplied pattern; None when it is invalid."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return None


def detect_locale(text: str) -> Locale:
    """Hangul anywhere -> ko, otherwise Latin letters -> en, else all."""
    if HANGUL.search(text):
        return Locale.KO
    if LATIN.search(text):
        return Locale.EN
    return Locale.ALL


def locale_applies(item: ListItem, locale: Locale) -> bool:
    return item.locale == Locale.ALL or item.locale == locale


def item_matches(item: ListItem, text: str, bidirectional: bool) -> bool:
    """
    Match a single item against text already in list form.

    ``bidirectional`` makes ``contains`` also accept text that is a
    fragment of the item (whitelist semantics).
    """
    item_text = list_form(item.text)
    if item.match == MatchType.EXACT:
        return text == item_text
    if item.match == MatchType.CONTAINS:
        return item_text in text or (bidirectional and text in item_text)
    if item.match == MatchType.REGEX:
        regex = compile_user_regex(item.text)
        return bool(regex and regex.search(text))
    return False


def seed_items(seeds: Sequence[str]) -> List[ListItem]:
    """Built-in whitelist entries (contains match, any locale)."""
    return [
        ListItem(text=seed, match=MatchType.CONTAINS, locale=Locale.ALL, id=f"seed-{index}", created_at=0)
        for index, seed in enumerate(seeds)
    ]


class ListOverride:
    """
    Whitelist/blacklist matcher over a ListStore.

    Storage failures are handled by the store (empty list); seeds always apply.
    """

    def __init__(self, store, seeds: Sequence[str] = ()):
        """
        Args:
            store: ListStore providing user items
            seeds: Built-in whitelist phrases merged ahead of user items
        """
        self.store = store
        self._seed_items = seed_items(seeds)

    def blacklist(self) -> List[ListItem]:
        return self.store.get(ListKind.BLACKLIST)

    def is_whitelisted(self, text: str, locale: Optional[Locale] = None) -> bool:
        """
        Seeds match only when the text contains them; user items also match
        text that is a fragment of the item.
        """
        form = list_form(text)
        if not form:
            return False
        locale = locale or detect_locale(form)
        candidates = [(item, False) for item in self._seed_items]
        candidates += [(item, True) for item in self.store.get(ListKind.WHITELIST)]
        for item, bidirectional in candidates:
            if locale_applies(item, locale) and item_matches(item, form, bidirectional=bidirectional):
                logger.debug(f"Whitelist hit: item={item.id}")
                return True
        return False

    def blacklist_matches(self, text: str, locale: Optional[Locale] = None) -> List[BlacklistMatch]:
        form = list_form(text)
        if not form:
            return []
        locale = locale or detect_locale(form)
        return [
            BlacklistMatch(item=item, weight=item.weight or 0)
            for item in self.blacklist()
            if locale_applies(item, locale) and item_matches(item, form, bidirectional=False)
        ]
