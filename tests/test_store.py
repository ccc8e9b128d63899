from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path

from src.harbor.policy import UserDecision, default_policy, set_site_trust
from src.harbor.store import PolicyStore


def test_missing_file_loads_default_policy(policy_store: PolicyStore) -> None:
    policy = asyncio.run(policy_store.load())

    assert policy == default_policy()


def test_corrupt_file_loads_default_policy(tmp_path: Path) -> None:
    path = tmp_path / "policy.json"
    path.write_text("{ not json", encoding="utf-8")

    policy = asyncio.run(PolicyStore(path).load())

    assert policy == default_policy()


def test_non_object_file_loads_default_policy(tmp_path: Path) -> None:
    path = tmp_path / "policy.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    assert asyncio.run(PolicyStore(path).load()) == default_policy()


def test_save_then_load(policy_store: PolicyStore) -> None:
    policy = set_site_trust(default_policy(), "example.com", "full")

    async def scenario():
        await policy_store.save(policy)
        return await policy_store.load()

    assert asyncio.run(scenario()) == policy
    stored = json.loads(policy_store.path.read_text(encoding="utf-8"))
    assert stored["trustedSites"]["example.com"]["trustLevel"] == "full"
    assert not policy_store.path.with_suffix(".json.tmp").exists()


def test_record_allow_site(policy_store: PolicyStore) -> None:
    async def scenario():
        await policy_store.record_user_decision("click_element", "shop.example", UserDecision.ALLOW_SITE)
        return await policy_store.load()

    policy = asyncio.run(scenario())

    assert policy.trusted_sites["shop.example"].auto_approve == ["click_element"]


def test_record_allow_session_expires_later(policy_store: PolicyStore) -> None:
    before = time.time()

    async def scenario():
        await policy_store.record_user_decision(
            "click_element", "shop.example", UserDecision.ALLOW_SESSION, session_hours=2
        )
        return await policy_store.load()

    expires_at = asyncio.run(scenario()).trusted_sites["shop.example"].expires_at

    assert expires_at is not None
    assert before + 2 * 3600 <= expires_at <= time.time() + 2 * 3600


def test_one_off_decisions_are_not_written(policy_store: PolicyStore) -> None:
    asyncio.run(policy_store.record_user_decision("click_element", "shop.example", UserDecision.ALLOW_ONCE))
    asyncio.run(policy_store.record_user_decision("click_element", "shop.example", UserDecision.DENY))

    assert not policy_store.path.exists()


def test_concurrent_decisions_do_not_clobber_each_other(policy_store: PolicyStore) -> None:
    sites = [f"site{i}.example" for i in range(10)]

    async def scenario():
        await asyncio.gather(*[
            policy_store.record_user_decision("click_element", site, UserDecision.ALLOW_SITE)
            for site in sites
        ])
        return await policy_store.load()

    policy = asyncio.run(scenario())

    assert set(policy.trusted_sites) == set(sites)


def test_purge_expired_persists(policy_store: PolicyStore) -> None:
    policy = default_policy()
    set_site_trust(policy, "old.example", "full", expires_at=time.time() - 10)
    set_site_trust(policy, "kept.example", "navigate")

    async def scenario():
        await policy_store.save(policy)
        removed = await policy_store.purge_expired()
        return removed, await policy_store.load()

    removed, reloaded = asyncio.run(scenario())

    assert removed == 1
    assert set(reloaded.trusted_sites) == {"kept.example"}


def test_wrongly_shaped_sections_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "policy.json"
    path.write_text(json.dumps({
        "trustedSites": ["shop.example"],
        "toolOverrides": {"read_page": "yes"},
        "defaults": {"navigate": 5, "submit": "deny", "criticalActions": "pay"},
    }), encoding="utf-8")

    policy = asyncio.run(PolicyStore(path).load())

    assert policy.trusted_sites == {}
    assert policy.tool_overrides == {}
    assert policy.defaults == {"submit": "deny"}
    assert policy.critical_actions == default_policy().critical_actions


def test_wrongly_typed_site_lists_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "policy.json"
    path.write_text(json.dumps({
        "trustedSites": {
            "shop.example": {"trustLevel": "interact", "autoApprove": 5, "requireConfirm": ["fill_form", {}]},
        },
    }), encoding="utf-8")

    trust = asyncio.run(PolicyStore(path).load()).trusted_sites["shop.example"]

    assert trust.trust_level == "interact"
    assert trust.auto_approve == []
    assert trust.require_confirm == ["fill_form"]


def test_saved_document_matches_extension_format(policy_store: PolicyStore) -> None:
    policy = set_site_trust(default_policy(), "shop.example", "full", expires_at=1_700_000_000.0)

    asyncio.run(policy_store.save(policy))
    stored = json.loads(policy_store.path.read_text(encoding="utf-8"))

    assert stored["trustedSites"]["shop.example"]["expiresAt"] == 1_700_000_000_000
    assert stored["defaults"]["readOnly"] == "auto-approve"
    assert "read-only" not in stored["defaults"]
