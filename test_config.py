"""Tests for configuration loading and engine assembly."""

from biztone import GuardConfig, build_engine
from biztone.config import ENHANCED_WEIGHTS, PREFILTER_WEIGHTS
from biztone.llm.openai_backend import OpenAIToneBackend


def test_defaults():
    config = GuardConfig()
    assert config.pass_max == 1
    assert config.convert_min == 4
    assert config.cache_ttl_seconds == 90
    assert config.debounce_ms == 350
    assert config.prefilter_weights == PREFILTER_WEIGHTS
    assert config.enhanced_weights == ENHANCED_WEIGHTS
    assert config.fail_open_on_decision_error is True
    assert config.fail_open_on_convert_error is False


def test_from_env(monkeypatch):
    monkeypatch.setenv("BIZTONE_PASS_MAX", "2")
    monkeypatch.setenv("BIZTONE_AUTO_SEND_CONVERTED", "true")
    monkeypatch.setenv("BIZTONE_LLM_MODEL", "gpt-4o")
    monkeypatch.setenv("BIZTONE_PREFILTER_WEIGHTS", "ignored")
    config = GuardConfig.from_env()
    assert config.pass_max == 2
    assert config.auto_send_converted is True
    assert config.llm_model == "gpt-4o"
    assert config.prefilter_weights == PREFILTER_WEIGHTS


def test_engine_uses_remote_backend_when_key_set(store, metrics):
    engine = build_engine(GuardConfig(llm_api_key="sk-test"), store=store, metrics=metrics)
    assert isinstance(engine.tone_backend, OpenAIToneBackend)
    assert engine.tone_backend.get_info()["configured"] is True


def test_engine_without_key_has_no_backend(store, metrics):
    engine = build_engine(GuardConfig(), store=store, metrics=metrics)
    assert engine.tone_backend is None
