"""
Text normalization for lexicon matching.

normalize() produces the canonical form every matcher runs against:
lowercased, canonically decomposed (NFD), with zero-width characters,
combining diacritics and the separator set removed. Hangul syllables
decompose into conjoining jamo (U+1100 block), which are letters and are
kept, so lexicon words and input text always meet in the same form.
"""

import re
import unicodedata

ZERO_WIDTH = re.compile(r"[\u200b-\u200d\ufeff]")
COMBINING_MARKS = re.compile(r"[\u0300-\u036f]")
SEPARATORS = re.compile(r"[\s\-_.~!@#$%^&*()+={}\[\]|\\:;\"'<>,?/]")
WHITESPACE_RUN = re.compile(r"\s+")


def normalize(text: str) -> str:
    """
    Canonicalize text for matching.

    Decomposition runs before stripping so that marks split off from
    precomposed letters are removed in the same pass; this keeps the
    function idempotent.

    Args:
        text: Raw text (may be empty)

    Returns:
        Normalized text
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = ZERO_WIDTH.sub("", decomposed)
    stripped = COMBINING_MARKS.sub("", stripped)
    return SEPARATORS.sub("", stripped)


def collapse_whitespace(text: str) -> str:
    """Trim and collapse whitespace runs to single spaces."""
    return WHITESPACE_RUN.sub(" ", text or "").strip()


def list_form(text: str) -> str:
    """Form used for whitelist/blacklist comparison (composed, lowercase, spaced)."""
    return unicodedata.normalize("NFC", collapse_whitespace(text)).lower()
