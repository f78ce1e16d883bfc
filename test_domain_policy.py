"""Tests for per-domain rules and the guard mode setting.

Run:
    pytest test_domain_policy.py -v
"""

import asyncio

import pytest

from biztone.errors import ValidationError
from biztone.guard.domain_policy import DOMAIN_RULES_KEY, DomainPolicy, clean_domain, domain_from_url
from biztone.storage.settings import GUARD_MODE_KEY, GuardMode, GuardModeProvider

from conftest import FailingStore


@pytest.fixture
def policy(store, clock):
    return DomainPolicy(store, clock=clock)


class TestDomainPolicy:
    """Test enable, pause and toggle semantics."""

    def test_no_rule_means_enabled(self, policy):
        assert policy.is_enabled("mail.example.com")
        assert policy.is_enabled(None)
        status = policy.status("mail.example.com")
        assert status["enabled"] and status["rule"] is None

    def test_disabled_rule(self, policy):
        policy.set_rule("Mail.Example.com", enabled=False)
        assert not policy.is_enabled("mail.example.com")
        assert policy.is_enabled("other.example.com")

    def test_pause_expires(self, policy, clock):
        policy.pause("mail.example.com", 10)
        assert not policy.is_enabled("mail.example.com")
        assert policy.status("mail.example.com")["pauseRemaining"] == 10

        clock.advance(30)
        assert policy.status("mail.example.com")["pauseRemaining"] == 10
        clock.advance(31)
        assert policy.status("mail.example.com")["pauseRemaining"] == 9

        clock.advance(540)
        assert policy.is_enabled("mail.example.com")
        status = policy.status("mail.example.com")
        assert not status["paused"]
        assert status["pauseRemaining"] == 0

    @pytest.mark.parametrize("minutes", [0, -5, True, "10"])
    def test_pause_rejects_bad_duration(self, policy, minutes):
        with pytest.raises(ValidationError):
            policy.pause("mail.example.com", minutes)

    def test_resume(self, policy):
        policy.pause("mail.example.com", 30)
        policy.resume("mail.example.com")
        assert policy.is_enabled("mail.example.com")

    def test_toggle_clears_pause(self, policy):
        assert policy.toggle("mail.example.com") is False
        assert not policy.is_enabled("mail.example.com")

        policy.pause("mail.example.com", 30)
        assert policy.toggle("mail.example.com") is False
        rule = policy.get_rule("mail.example.com")
        assert rule.pauseUntil == 0

        assert policy.toggle("mail.example.com") is True
        assert policy.is_enabled("mail.example.com")

    def test_remove_rule(self, policy):
        policy.set_rule("mail.example.com", enabled=False)
        assert policy.remove_rule("mail.example.com") is True
        assert policy.remove_rule("mail.example.com") is False
        assert policy.is_enabled("mail.example.com")

    def test_rule_timestamps(self, policy, clock):
        rule = policy.set_rule("mail.example.com", enabled=False)
        assert rule.createdAt == rule.updatedAt == 1_000_000
        clock.advance(5)
        rule = policy.set_rule("mail.example.com", enabled=True)
        assert rule.createdAt == 1_000_000
        assert rule.updatedAt == 1_005_000

    def test_stored_shape(self, policy, store):
        policy.set_rule("mail.example.com", enabled=False)
        stored = store.get_json(DOMAIN_RULES_KEY)
        assert stored["mail.example.com"]["enabled"] is False
        assert "domain" not in stored["mail.example.com"]

    def test_unknown_fields_rejected(self, policy):
        with pytest.raises(ValidationError):
            policy.set_rule("mail.example.com", color="red")

    def test_storage_failure_keeps_guard_on(self, clock):
        assert DomainPolicy(FailingStore(), clock=clock).is_enabled("mail.example.com")

    def test_malformed_rule_is_dropped(self, policy, store):
        store.set_json(DOMAIN_RULES_KEY, {
            "mail.example.com": {"enabled": True, "pauseUntil": "soon"},
            "chat.example.com": {"enabled": False},
        })
        assert policy.is_enabled("mail.example.com")
        assert "mail.example.com" not in policy.get_rules()
        assert policy.status("mail.example.com")["rule"] is None
        assert not policy.is_enabled("chat.example.com")


class TestDomainHelpers:
    def test_domain_from_url(self):
        assert domain_from_url("https://Mail.Example.com:8443/inbox?x=1") == "mail.example.com"
        assert domain_from_url("not a url") is None

    def test_clean_domain(self):
        assert clean_domain(" Example.COM ") == "example.com"
        assert clean_domain("https://chat.example.com/room") == "chat.example.com"
        for bad in ["", "   ", "a b.com", "example.com/path"]:
            with pytest.raises(ValidationError):
                clean_domain(bad)


class TestGuardModeProvider:
    """Test the cached guard mode setting."""

    def test_defaults_to_warn(self, store):
        assert GuardModeProvider(store).get_sync() == GuardMode.WARN

    def test_set_and_get(self, store):
        provider = GuardModeProvider(store)
        provider.set("convert")
        assert asyncio.run(provider.get()) == GuardMode.CONVERT

    def test_external_change_after_cache_window(self, store, clock):
        provider = GuardModeProvider(store, cache_seconds=30, clock=clock)
        assert provider.get_sync() == GuardMode.WARN
        store.set_json(GUARD_MODE_KEY, "convert")
        assert provider.get_sync() == GuardMode.WARN
        clock.advance(30)
        assert provider.get_sync() == GuardMode.CONVERT

    def test_async_get_reads_store_after_cache_window(self, store, clock):
        provider = GuardModeProvider(store, cache_seconds=30, clock=clock)
        assert asyncio.run(provider.get()) == GuardMode.WARN
        store.set_json(GUARD_MODE_KEY, "convert")
        assert asyncio.run(provider.get()) == GuardMode.WARN
        clock.advance(30)
        assert asyncio.run(provider.get()) == GuardMode.CONVERT

    def test_unknown_stored_value(self, store):
        store.set_json(GUARD_MODE_KEY, "shout")
        assert GuardModeProvider(store).get_sync() == GuardMode.WARN

    def test_invalid_set(self, store):
        with pytest.raises(ValidationError):
            GuardModeProvider(store).set("shout")

    def test_storage_failure(self):
        assert GuardModeProvider(FailingStore()).get_sync() == GuardMode.WARN
