"""
Per-domain guard policy.

A domain without a rule is fully guarded. A rule disables the guard while
``enabled`` is false or while ``pauseUntil`` (epoch ms) lies in the future.
Rules are read from the settings store on every check so changes apply to
the next evaluation.
"""

import logging
import math
import time
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit

from ..errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

DOMAIN_RULES_KEY = "BIZTONE_DOMAIN_RULES"


@dataclass
class DomainRule:
    domain: str
    enabled: bool = True
    pauseUntil: int = 0
    createdAt: int = 0
    updatedAt: int = 0

    def is_paused(self, now_ms: int) -> bool:
        return bool(self.pauseUntil) and self.pauseUntil > now_ms

    def allows_guard(self, now_ms: int) -> bool:
        return self.enabled and not self.is_paused(now_ms)

    @classmethod
    def from_dict(cls, domain: str, data: Dict[str, Any]) -> "DomainRule":
        return cls(
            domain=domain,
            enabled=data.get("enabled") is not False,
            pauseUntil=int(data.get("pauseUntil") or 0),
            createdAt=int(data.get("createdAt") or 0),
            updatedAt=int(data.get("updatedAt") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def domain_from_url(url: str) -> Optional[str]:
    """Lowercase hostname of an absolute URL, or None if it has none."""
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


def clean_domain(domain: str) -> str:
    if not isinstance(domain, str) or not domain.strip():
        raise ValidationError("Domain is required")
    domain = domain.strip().lower()
    if "://" in domain:
        host = domain_from_url(domain)
        if not host:
            raise ValidationError(f"Cannot extract a domain from {domain!r}")
        return host
    if any(char.isspace() or char == "/" for char in domain):
        raise ValidationError(f"Invalid domain: {domain!r}")
    return domain


class DomainPolicy:
    """Domain rule storage semantics over the settings store."""

    def __init__(self, store, clock: Callable[[], float] = time.time):
        """
        Args:
            store: SettingsStore holding the rule map
            clock: Wall clock in seconds
        """
        self.store = store
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def get_rules(self) -> Dict[str, DomainRule]:
        raw = self.store.get_json(DOMAIN_RULES_KEY, default={})
        if not isinstance(raw, dict):
            logger.warning("Stored domain rules are not a mapping, ignoring")
            return {}
        rules = {}
        for domain, data in raw.items():
            if not isinstance(data, dict):
                continue
            try:
                rules[domain] = DomainRule.from_dict(domain, data)
            except (TypeError, ValueError) as e:
                logger.warning(f"Dropping malformed domain rule for {domain}: {e}")
        return rules

    def _save_rules(self, rules: Dict[str, DomainRule]) -> None:
        payload = {}
        for domain, rule in rules.items():
            data = rule.to_dict()
            data.pop("domain")
            payload[domain] = data
        self.store.set_json(DOMAIN_RULES_KEY, payload)

    def get_rule(self, domain: str) -> Optional[DomainRule]:
        return self.get_rules().get(clean_domain(domain))

    def set_rule(self, domain: str, **options) -> DomainRule:
        """Create or update a rule, keeping fields not named in ``options``."""
        domain = clean_domain(domain)
        unknown = set(options) - {"enabled", "pauseUntil"}
        if unknown:
            raise ValidationError(f"Unknown domain rule fields: {sorted(unknown)}")

        now = self._now_ms()
        rules = self.get_rules()
        rule = rules.get(domain) or DomainRule(domain=domain, createdAt=now)
        if "enabled" in options:
            rule.enabled = bool(options["enabled"])
        if "pauseUntil" in options:
            rule.pauseUntil = int(options["pauseUntil"] or 0)
        rule.updatedAt = now
        rules[domain] = rule
        self._save_rules(rules)
        logger.info(f"Domain rule for {domain}: enabled={rule.enabled} pauseUntil={rule.pauseUntil}")
        return rule

    def remove_rule(self, domain: str) -> bool:
        domain = clean_domain(domain)
        rules = self.get_rules()
        if domain not in rules:
            return False
        del rules[domain]
        self._save_rules(rules)
        return True

    def pause(self, domain: str, minutes: float) -> DomainRule:
        if isinstance(minutes, bool) or not isinstance(minutes, (int, float)) or minutes <= 0:
            raise ValidationError("Pause duration must be a positive number of minutes")
        return self.set_rule(domain, enabled=True, pauseUntil=self._now_ms() + int(minutes * 60 * 1000))

    def resume(self, domain: str) -> DomainRule:
        return self.set_rule(domain, pauseUntil=0)

    def toggle(self, domain: str) -> bool:
        """Flip ``enabled`` (clearing any pause) and return the new value."""
        rule = self.get_rule(domain)
        enabled = not (rule.enabled if rule else True)
        self.set_rule(domain, enabled=enabled, pauseUntil=0)
        return enabled

    def is_enabled(self, domain: Optional[str]) -> bool:
        """Guard state for a domain; storage failures leave the guard on."""
        if not domain:
            return True
        try:
            rule = self.get_rule(domain)
        except StorageError as e:
            logger.warning(f"Domain rules unavailable, guard stays enabled: {e}")
            return True
        except ValidationError:
            return True
        if rule is None:
            return True
        return rule.allows_guard(self._now_ms())

    def status(self, domain: Optional[str]) -> Dict[str, Any]:
        if not domain:
            return {"enabled": True, "paused": False, "pauseRemaining": 0, "rule": None, "domain": None}

        domain = clean_domain(domain)
        rule = self.get_rules().get(domain)
        if rule is None:
            return {"enabled": True, "paused": False, "pauseRemaining": 0, "rule": None, "domain": domain}

        now = self._now_ms()
        paused = rule.is_paused(now)
        remaining = math.ceil((rule.pauseUntil - now) / 60000) if paused else 0
        return {
            "enabled": rule.enabled,
            "paused": paused,
            "pauseRemaining": remaining,
            "rule": rule.to_dict(),
            "domain": domain,
        }
