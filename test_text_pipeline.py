"""Tests for normalization, skeletons, lexicon sources and pattern compilation.

Run:
    pytest test_text_pipeline.py -v
"""

import asyncio
import json
import threading

import pytest

from biztone.config import DATA_DIR, PREFILTER_WEIGHTS
from biztone.errors import LexiconLoadError
from biztone.guard.lexicon import (
    Category,
    EmergencySource,
    JsonLexiconSource,
    LexiconEntry,
    Locale,
    WordListSource,
    classify_strength,
)
from biztone.guard.normalizer import collapse_whitespace, list_form, normalize
from biztone.guard.pattern_compiler import PatternCompiler, compile_entry
from biztone.guard.skeleton import skeleton


class TestNormalizer:
    """Test canonical text normalization."""

    SAMPLES = [
        "",
        "안녕하세요",
        "씨발 이자식아",
        "s.i.b.a.l",
        "Ｆｕｌｌ-width ÀÉÎ",
        "씨\u200b발\ufeff",
        "e\u0301cole",
        "İstanbul ΣΊΣΥΦΟΣ",
        "  tabs\tand\nnewlines  ",
        "ㅅ ㅂ!!",
        "混合 text 123 ~!@#",
    ]

    @pytest.mark.parametrize("text", SAMPLES)
    def test_idempotent(self, text):
        """normalize(normalize(x)) == normalize(x)."""
        once = normalize(text)
        assert normalize(once) == once

    def test_strips_separators_and_case(self):
        assert normalize("S.I.B.A.L") == "sibal"
        assert normalize("f u c k!") == "fuck"

    def test_strips_zero_width_and_marks(self):
        assert normalize("씨\u200b발") == normalize("씨발")
        assert normalize("café") == "cafe"

    def test_hangul_is_decomposed(self):
        # Syllables become conjoining jamo
        assert normalize("가") == "\u1100\u1161"

    def test_empty_is_total(self):
        assert normalize("") == ""
        assert normalize("   ") == ""

    def test_list_form_keeps_single_spaces(self):
        assert collapse_whitespace("  미친   듯이 ") == "미친 듯이"
        assert list_form(" Hello   WORLD ") == "hello world"


class TestSkeleton:
    """Test Hangul consonant skeleton extraction."""

    def test_initials_and_finals(self):
        assert skeleton("시발") == "ㅅㅂㄹ"
        assert skeleton("씨바") == "ㅆㅂ"

    def test_compound_final_expands(self):
        assert skeleton("닭") == "ㄷㄹㄱ"

    def test_passthrough(self):
        assert skeleton("ㅋㅋ") == "ㅋㅋ"
        assert skeleton("abc 123") == "abc 123"
        assert skeleton("a시b") == "aㅅb"


class TestLexiconSources:
    """Test lexicon loading and legacy classification."""

    def test_packaged_lexicon_loads(self):
        entries = JsonLexiconSource(DATA_DIR / "lexicon.json").load()
        words = {entry.word for entry in entries}
        assert "씨발" in words
        assert all(isinstance(entry.category, Category) for entry in entries)

    def test_malformed_records_are_skipped(self, tmp_path):
        path = tmp_path / "lexicon.json"
        path.write_text(json.dumps([
            {"word": "fuck", "category": "strong", "locale": "en"},
            {"word": "", "category": "weak"},
            {"word": "x", "category": "unknown"},
            "not a record",
        ]), encoding="utf-8")
        entries = JsonLexiconSource(path).load()
        assert entries == [LexiconEntry("fuck", Category.STRONG, Locale.EN)]

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(LexiconLoadError):
            JsonLexiconSource(tmp_path / "missing.json").load()

    def test_empty_array_raises(self, tmp_path):
        path = tmp_path / "lexicon.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(LexiconLoadError):
            JsonLexiconSource(path).load()

    def test_word_list_classification(self, tmp_path):
        path = tmp_path / "words.txt"
        path.write_text("# comment\n씨발놈\n바보\n바보\n\n", encoding="utf-8")
        entries = WordListSource(path).load()
        assert [(e.word, e.category) for e in entries] == [
            ("씨발놈", Category.STRONG),
            ("바보", Category.WEAK),
        ]

    def test_classify_strength(self):
        assert classify_strength("개새끼야") == Category.STRONG
        assert classify_strength("멍청이") == Category.WEAK


class CountingSource(JsonLexiconSource):
    """JSON source that counts loads."""

    def __init__(self, path):
        super().__init__(path)
        self.loads = 0
        self._lock = threading.Lock()

    def load(self):
        with self._lock:
            self.loads += 1
        return super().load()


class TestPatternCompiler:
    """Test compilation, fallback chain and memoization."""

    def test_noise_tolerant_match(self):
        pattern = compile_entry(LexiconEntry("sibal", Category.STRONG), PREFILTER_WEIGHTS)
        assert pattern.weight == 5
        assert pattern.pattern.search(normalize("s.i.b.a.l"))
        assert pattern.pattern.search("s_i_b_a_l")
        assert pattern.pattern.search("s\u200bibal")

    def test_noise_between_hangul(self):
        pattern = compile_entry(LexiconEntry("씨발", Category.STRONG), PREFILTER_WEIGHTS)
        assert pattern.pattern.search(normalize("씨·발"))

    def test_primary_stage(self):
        compiler = PatternCompiler(
            [JsonLexiconSource(DATA_DIR / "lexicon.json"), WordListSource(DATA_DIR / "wordlist.txt")],
            PREFILTER_WEIGHTS,
        )
        assert compiler.compile()
        assert compiler.stage == "categorized"
        assert not compiler.degraded

    def test_falls_back_to_legacy(self, tmp_path):
        compiler = PatternCompiler(
            [JsonLexiconSource(tmp_path / "missing.json"), WordListSource(DATA_DIR / "wordlist.txt")],
            PREFILTER_WEIGHTS,
        )
        assert compiler.compile()
        assert compiler.stage == "legacy"

    def test_falls_back_to_emergency(self, tmp_path):
        compiler = PatternCompiler(
            [JsonLexiconSource(tmp_path / "missing.json"), WordListSource(tmp_path / "missing.txt")],
            PREFILTER_WEIGHTS,
        )
        patterns = compiler.compile()
        assert compiler.stage == EmergencySource.name
        assert compiler.degraded
        assert len(patterns) == 6

    def test_never_empty(self):
        compiler = PatternCompiler([], PREFILTER_WEIGHTS)
        assert len(compiler.compile()) > 0

    def test_memoized_across_threads(self):
        source = CountingSource(DATA_DIR / "lexicon.json")
        compiler = PatternCompiler([source], PREFILTER_WEIGHTS)
        results = []

        def worker():
            results.append(compiler.compile())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert source.loads == 1
        assert all(result is results[0] for result in results)

    def test_concurrent_async_callers_share_one_compilation(self):
        source = CountingSource(DATA_DIR / "lexicon.json")
        compiler = PatternCompiler([source], PREFILTER_WEIGHTS)

        async def run():
            return await asyncio.gather(*(compiler.compile_async() for _ in range(5)))

        results = asyncio.run(run())
        assert source.loads == 1
        assert all(result is results[0] for result in results)

    def test_invalidate_reloads(self):
        source = CountingSource(DATA_DIR / "lexicon.json")
        compiler = PatternCompiler([source], PREFILTER_WEIGHTS)
        compiler.compile()
        compiler.invalidate()
        compiler.compile()
        assert source.loads == 2
