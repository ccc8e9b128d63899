"""
Harbor Decision Engine
======================

Decides, for one tool call on one site, whether to run it, ask the user,
or refuse. The engine is a pure function of its inputs: no storage, no
clock unless one is passed in, and it never raises.

Evaluation order (first match wins):

    1. Tool override disabled                    -> deny
    2. Tool override with global auto-approve    -> auto-approve
    3. Unexpired site record:
         blocked                                 -> deny
         tool in the site's auto-approve list    -> auto-approve
         tool in the site's require-confirm list -> ask
         site trust strictly above tool tier     -> auto-approve
    4. Default stance for the tool's tier        (unknown stance -> ask)

Trust and tier live on different scales:

    trust:  blocked(0)  read-only(1)  navigate(2)  interact(3)  full(4)
    tier:               read-only(0)  navigate(1)  interact(2)  submit(3)

"Strictly above" compares the raw indexes, so a site trusted at
"navigate" auto-approves read-only and navigate tools, and "full" covers
every tier including submit.

Anything the engine does not recognise (a tier, a trust level, a stance)
pushes the result toward asking, never toward auto-approval.
"""

from typing import Any

from src.harbor.policy import (
    CRITICAL_ACTION_KEYWORDS,
    Decision,
    PermissionPolicy,
    PermissionTier,
    TIER_ORDER,
    TRUST_ORDER,
    TrustLevel,
)
from src.utils.logger import Logger

logger = Logger("Harbor").child("Engine")

_CRITICAL_URL_PATHS = ("/checkout", "/payment", "/purchase", "/order")


def _index(order: tuple[str, ...], value: Any) -> int | None:
    raw = value.value if isinstance(value, (PermissionTier, TrustLevel)) else value
    try:
        return order.index(raw)
    except ValueError:
        return None


def decide(
    policy: PermissionPolicy,
    tool_name: str,
    tier: PermissionTier | str | None,
    site: str,
    now: float | None = None
) -> Decision:
    """
    Evaluate the policy for one tool call.

    Args:
        policy: The current Harbor policy
        tool_name: Registered tool name
        tier: The tool's permission tier
        site: Hostname of the active tab ("unknown" when there is none)
        now: Epoch seconds for expiry checks (defaults to the current time)

    Returns:
        Decision.AUTO_APPROVE, Decision.ASK or Decision.DENY
    """
    try:
        return _decide(policy, tool_name, tier, site, now)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        # Malformed policy objects end up here
        logger.error(f"Policy evaluation failed for {tool_name} on {site}, asking", e)
        return Decision.ASK


def _decide(
    policy: PermissionPolicy,
    tool_name: str,
    tier: PermissionTier | str | None,
    site: str,
    now: float | None
) -> Decision:
    tier_idx = _index(TIER_ORDER, tier)

    # 1-2. Tool-level overrides
    override = policy.tool_overrides.get(tool_name)
    if override is not None:
        if not override.enabled:
            return Decision.DENY
        if override.global_auto_approve and tier_idx is not None:
            return Decision.AUTO_APPROVE

    # 3. Site-level trust; an expired record counts as no record
    trust = policy.trusted_sites.get(site)
    if trust is not None and not trust.is_expired(now):
        if trust.trust_level == TrustLevel.BLOCKED.value:
            return Decision.DENY

        if tier_idx is None:
            return Decision.ASK

        if tool_name in trust.auto_approve:
            return Decision.AUTO_APPROVE
        if tool_name in trust.require_confirm:
            return Decision.ASK

        trust_idx = _index(TRUST_ORDER, trust.trust_level)
        if trust_idx is not None and trust_idx > tier_idx:
            return Decision.AUTO_APPROVE

    if tier_idx is None:
        return Decision.ASK

    # 4. Global default for the tier
    stance = policy.defaults.get(TIER_ORDER[tier_idx])
    if stance == Decision.AUTO_APPROVE.value:
        return Decision.AUTO_APPROVE
    if stance == Decision.DENY.value:
        return Decision.DENY
    return Decision.ASK


def is_critical_action(
    text: str,
    url: str = "",
    keywords: list[str] | None = None
) -> bool:
    """
    Detect whether an action looks irreversible: paying, deleting,
    sending, confirming, or anything on a checkout-style URL.
    """
    lower_text = (text or "").lower()
    lower_url = (url or "").lower()
    words = CRITICAL_ACTION_KEYWORDS if keywords is None else keywords

    return (
        any(kw.lower() in lower_text for kw in words)
        or any(path in lower_url for path in _CRITICAL_URL_PATHS)
    )


def escalate_critical(
    decision: Decision,
    policy: PermissionPolicy,
    tool_name: str,
    tier: PermissionTier | str | None,
    args: dict[str, Any],
    url: str
) -> Decision:
    """
    Turn an auto-approval into a question when an interact/submit tool
    targets something that looks critical.

    Tools the user approved globally are left alone.
    """
    if decision != Decision.AUTO_APPROVE:
        return decision
    if _index(TIER_ORDER, tier) is None or _index(TIER_ORDER, tier) < TIER_ORDER.index("interact"):
        return decision

    override = policy.tool_overrides.get(tool_name)
    if override is not None and override.global_auto_approve:
        return decision

    text = " ".join(str(value) for value in args.values() if isinstance(value, str))
    if is_critical_action(text, url, policy.critical_actions):
        logger.info(f"Critical action detected for {tool_name}, asking instead of auto-approving")
        return Decision.ASK
    return decision
