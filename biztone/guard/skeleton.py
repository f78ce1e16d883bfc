"""
Hangul consonant skeleton extraction.

A skeleton keeps only the initial and final consonants of each syllable
block, so vowel substitutions and separators inserted between syllables
collapse to the same consonant string (e.g. "시발" -> "ㅅㅂㄹ").
"""

SYLLABLE_FIRST = 0xAC00
SYLLABLE_LAST = 0xD7A3

# 21 medials * 28 finals
SYLLABLES_PER_INITIAL = 588
FINALS_PER_MEDIAL = 28

INITIALS = (
    "ㄱ", "ㄲ", "ㄴ", "ㄷ", "ㄸ", "ㄹ", "ㅁ", "ㅂ", "ㅃ", "ㅅ",
    "ㅆ", "ㅇ", "ㅈ", "ㅉ", "ㅊ", "ㅋ", "ㅌ", "ㅍ", "ㅎ",
)

# Compound finals are spelled out as two consonants
FINALS = (
    "", "ㄱ", "ㄲ", "ㄱㅅ", "ㄴ", "ㄴㅈ", "ㄴㅎ", "ㄷ", "ㄹ", "ㄹㄱ",
    "ㄹㅁ", "ㄹㅂ", "ㄹㅅ", "ㄹㅌ", "ㄹㅍ", "ㄹㅎ", "ㅁ", "ㅂ", "ㅂㅅ", "ㅅ",
    "ㅆ", "ㅇ", "ㅈ", "ㅊ", "ㅋ", "ㅌ", "ㅍ", "ㅎ",
)


def is_syllable(char: str) -> bool:
    return SYLLABLE_FIRST <= ord(char) <= SYLLABLE_LAST


def skeleton(text: str) -> str:
    """
    Reduce Hangul syllables to their consonant skeleton.

    Standalone compatibility jamo (U+3131-U+3163) and every non-Hangul
    character pass through unchanged, so mixed Korean/Latin/digit text
    can still be matched as a whole.
    """
    result = []
    for char in text:
        if is_syllable(char):
            index = ord(char) - SYLLABLE_FIRST
            result.append(INITIALS[index // SYLLABLES_PER_INITIAL])
            final = FINALS[index % FINALS_PER_MEDIAL]
            if final:
                result.append(final)
        else:
            result.append(char)
    return "".join(result)
