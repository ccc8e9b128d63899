"""
Harbor Policy
=============

The trust policy that decides which tool calls run without asking.

A policy has three parts:

    trusted_sites   per-domain SiteTrust records (trust level, explicit
                    auto-approve / require-confirm tool lists, expiry)
    tool_overrides  per-tool switches (disable everywhere, or approve
                    everywhere)
    defaults        the stance for each permission tier when nothing more
                    specific applies

Persisted documents use the camelCase keys of the browser extension
(trustLevel, autoApprove, requireConfirm, expiresAt, globalAutoApprove,
readOnly) so the extension and the agent can share one policy file.
expiresAt is stored in epoch milliseconds like the extension writes it;
in memory SiteTrust.expires_at is epoch seconds.

Loading is lenient: entries of the wrong JSON type are skipped rather
than failing the whole document.

Everything in this module is plain data plus in-place mutation helpers.
Storage and locking live in src.harbor.store.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class PermissionTier(str, Enum):
    """Risk classification of a tool, lowest to highest."""
    READ_ONLY = "read-only"
    NAVIGATE = "navigate"
    INTERACT = "interact"
    SUBMIT = "submit"


class TrustLevel(str, Enum):
    """Per-site trust, lowest to highest."""
    BLOCKED = "blocked"
    READ_ONLY = "read-only"
    NAVIGATE = "navigate"
    INTERACT = "interact"
    FULL = "full"


class Decision(str, Enum):
    """Outcome of policy evaluation; also used as a per-tier default stance."""
    AUTO_APPROVE = "auto-approve"
    ASK = "ask"
    DENY = "deny"


class UserDecision(str, Enum):
    """What the human answered to a permission prompt."""
    ALLOW_ONCE = "allow-once"
    ALLOW_SITE = "allow-site"
    ALLOW_SESSION = "allow-session"
    DENY = "deny"
    DENY_ALL = "deny-all"

    @property
    def allows(self) -> bool:
        return self.value.startswith("allow")

    @property
    def persists(self) -> bool:
        """Whether this answer changes the stored policy."""
        return self in (UserDecision.ALLOW_SITE, UserDecision.ALLOW_SESSION, UserDecision.DENY_ALL)


TRUST_ORDER: tuple[str, ...] = tuple(level.value for level in TrustLevel)
TIER_ORDER: tuple[str, ...] = tuple(tier.value for tier in PermissionTier)

CRITICAL_ACTION_KEYWORDS = [
    "checkout",
    "purchase",
    "buy now",
    "order",
    "pay",
    "payment",
    "delete",
    "remove",
    "cancel",
    "send",
    "submit",
    "confirm",
    "approve",
    "sign up",
    "register",
    "subscribe",
    "transfer",
    "withdraw",
    "deposit",
]

DEFAULT_STANCES: dict[str, str] = {
    PermissionTier.READ_ONLY.value: Decision.AUTO_APPROVE.value,
    PermissionTier.NAVIGATE.value: Decision.ASK.value,
    PermissionTier.INTERACT.value: Decision.ASK.value,
    PermissionTier.SUBMIT.value: Decision.ASK.value,
}

# The extension stores defaults under camelCase names
_DEFAULT_KEY_ALIASES = {"readOnly": PermissionTier.READ_ONLY.value}
_DEFAULT_KEY_NAMES = {tier: key for key, tier in _DEFAULT_KEY_ALIASES.items()}

SESSION_GRANT_HOURS = 24


def _as_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _as_names(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(name) for name in value if isinstance(name, (str, int, float))]


@dataclass
class SiteTrust:
    """
    Trust granted to one site.

    trust_level is kept as the raw stored string; values outside
    TrustLevel are tolerated and simply never grant anything.
    """
    trust_level: str = TrustLevel.READ_ONLY.value
    auto_approve: list[str] = field(default_factory=list)
    require_confirm: list[str] = field(default_factory=list)
    expires_at: float | None = None  # epoch seconds

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current > self.expires_at

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "trustLevel": self.trust_level,
            "autoApprove": list(self.auto_approve),
            "requireConfirm": list(self.require_confirm),
        }
        if self.expires_at is not None:
            data["expiresAt"] = round(self.expires_at * 1000)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SiteTrust":
        expires_at = data.get("expiresAt")
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            expires_at = None
        return cls(
            # A record without a level must not grant more than read-only
            trust_level=str(data.get("trustLevel", TrustLevel.READ_ONLY.value)),
            auto_approve=_as_names(data.get("autoApprove")),
            require_confirm=_as_names(data.get("requireConfirm")),
            expires_at=expires_at / 1000 if expires_at is not None else None,
        )


@dataclass
class ToolOverride:
    """Per-tool switch. enabled=False beats every other signal."""
    enabled: bool = True
    global_auto_approve: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "globalAutoApprove": self.global_auto_approve}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolOverride":
        return cls(
            enabled=_as_bool(data.get("enabled"), default=True),
            global_auto_approve=_as_bool(data.get("globalAutoApprove"), default=False),
        )


@dataclass
class PermissionPolicy:
    """The complete Harbor policy."""
    trusted_sites: dict[str, SiteTrust] = field(default_factory=dict)
    tool_overrides: dict[str, ToolOverride] = field(default_factory=dict)
    defaults: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_STANCES))
    critical_actions: list[str] = field(default_factory=lambda: list(CRITICAL_ACTION_KEYWORDS))

    def to_dict(self) -> dict[str, Any]:
        defaults: dict[str, Any] = {
            _DEFAULT_KEY_NAMES.get(tier, tier): stance for tier, stance in self.defaults.items()
        }
        defaults["criticalActions"] = list(self.critical_actions)
        return {
            "trustedSites": {site: trust.to_dict() for site, trust in self.trusted_sites.items()},
            "toolOverrides": {name: o.to_dict() for name, o in self.tool_overrides.items()},
            "defaults": defaults,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "PermissionPolicy":
        """
        Build a policy from a stored document.

        A missing document yields the default policy. A document whose
        defaults omit a tier keeps that tier missing; the decision engine
        then falls back to asking.
        """
        if not data:
            return default_policy()

        raw_defaults = data.get("defaults")
        if isinstance(raw_defaults, dict):
            defaults = {}
            for key, value in raw_defaults.items():
                if key == "criticalActions" or not isinstance(value, str):
                    continue
                defaults[_DEFAULT_KEY_ALIASES.get(key, key)] = value
            critical = raw_defaults.get("criticalActions")
            critical_actions = (
                _as_names(critical) if isinstance(critical, list)
                else list(CRITICAL_ACTION_KEYWORDS)
            )
        else:
            defaults = dict(DEFAULT_STANCES)
            critical_actions = list(CRITICAL_ACTION_KEYWORDS)

        sites = data.get("trustedSites")
        if not isinstance(sites, dict):
            sites = {}
        overrides = data.get("toolOverrides")
        if not isinstance(overrides, dict):
            overrides = {}

        return cls(
            trusted_sites={
                str(site): SiteTrust.from_dict(trust)
                for site, trust in sites.items() if isinstance(trust, dict)
            },
            tool_overrides={
                str(name): ToolOverride.from_dict(override)
                for name, override in overrides.items() if isinstance(override, dict)
            },
            defaults=defaults,
            critical_actions=critical_actions,
        )


def default_policy() -> PermissionPolicy:
    """Read-only tools run freely, everything else asks."""
    return PermissionPolicy()


# ==============================================================================
# Mutations
# ==============================================================================
# Each helper mutates the policy in place and returns it, so callers can
# pass them straight to PolicyStore.update().

def _site_record(policy: PermissionPolicy, site: str) -> SiteTrust:
    trust = policy.trusted_sites.get(site)
    if trust is None:
        trust = SiteTrust(trust_level=TrustLevel.READ_ONLY.value)
        policy.trusted_sites[site] = trust
    return trust


def grant_site_tool(
    policy: PermissionPolicy,
    site: str,
    tool_name: str,
    expires_at: float | None = None
) -> PermissionPolicy:
    """Add a tool to a site's auto-approve list, creating the record if needed."""
    trust = _site_record(policy, site)
    if tool_name not in trust.auto_approve:
        trust.auto_approve.append(tool_name)
    if tool_name in trust.require_confirm:
        trust.require_confirm.remove(tool_name)
    if expires_at is not None:
        trust.expires_at = expires_at
    return policy


def require_confirmation(policy: PermissionPolicy, site: str, tool_name: str) -> PermissionPolicy:
    """Always ask before running a tool on a site."""
    trust = _site_record(policy, site)
    if tool_name not in trust.require_confirm:
        trust.require_confirm.append(tool_name)
    if tool_name in trust.auto_approve:
        trust.auto_approve.remove(tool_name)
    return policy


def set_site_trust(
    policy: PermissionPolicy,
    site: str,
    trust_level: TrustLevel | str,
    expires_at: float | None = None
) -> PermissionPolicy:
    trust = _site_record(policy, site)
    trust.trust_level = TrustLevel(trust_level).value
    trust.expires_at = expires_at
    return policy


def remove_site(policy: PermissionPolicy, site: str) -> PermissionPolicy:
    policy.trusted_sites.pop(site, None)
    return policy


def set_tool_override(
    policy: PermissionPolicy,
    tool_name: str,
    enabled: bool = True,
    global_auto_approve: bool = False
) -> PermissionPolicy:
    policy.tool_overrides[tool_name] = ToolOverride(
        enabled=enabled,
        global_auto_approve=global_auto_approve,
    )
    return policy


def clear_tool_override(policy: PermissionPolicy, tool_name: str) -> PermissionPolicy:
    policy.tool_overrides.pop(tool_name, None)
    return policy


def set_default_stance(
    policy: PermissionPolicy,
    tier: PermissionTier | str,
    stance: Decision | str
) -> PermissionPolicy:
    policy.defaults[PermissionTier(tier).value] = Decision(stance).value
    return policy


def apply_user_decision(
    policy: PermissionPolicy,
    tool_name: str,
    site: str,
    decision: UserDecision,
    now: float | None = None,
    session_hours: int = SESSION_GRANT_HOURS
) -> PermissionPolicy:
    """
    Record a remembered answer from the permission prompt.

    allow-site      tool joins the site's auto-approve list
    allow-session   same, and the site record expires after session_hours
    deny-all        tool is disabled everywhere
    Other answers leave the policy untouched.
    """
    if decision == UserDecision.ALLOW_SITE:
        grant_site_tool(policy, site, tool_name)
    elif decision == UserDecision.ALLOW_SESSION:
        current = time.time() if now is None else now
        grant_site_tool(policy, site, tool_name, expires_at=current + session_hours * 3600)
    elif decision == UserDecision.DENY_ALL:
        set_tool_override(policy, tool_name, enabled=False, global_auto_approve=False)
    return policy


def purge_expired(policy: PermissionPolicy, now: float | None = None) -> int:
    """Drop expired site records. Returns how many were removed."""
    expired = [site for site, trust in policy.trusted_sites.items() if trust.is_expired(now)]
    for site in expired:
        del policy.trusted_sites[site]
    return len(expired)
