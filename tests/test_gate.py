from __future__ import annotations

import asyncio

import pytest

from src.harbor.gate import (
    ConsolePrompter,
    PendingPermissions,
    PermissionGate,
    PermissionRequest,
    parse_user_decision,
)
from src.harbor.policy import PermissionTier, UserDecision
from src.utils.console import ConsoleReader
from tests.fakes import ScriptedPrompter, SilentPrompter


def test_gate_returns_user_answer() -> None:
    prompter = ScriptedPrompter("allow-site")
    gate = PermissionGate(prompter, timeout_seconds=1)

    answer = asyncio.run(gate.request("click_element", {"selector": "#go"}, "shop.example", PermissionTier.INTERACT))

    assert answer is UserDecision.ALLOW_SITE
    request = prompter.requests[0]
    assert request.tool_name == "click_element"
    assert request.site == "shop.example"
    assert request.tier == "interact"
    assert request.reason == "FoxAgent wants to use 'click_element' on shop.example"


def test_gate_times_out_to_deny() -> None:
    prompter = SilentPrompter()
    gate = PermissionGate(prompter, timeout_seconds=0.05)

    answer = asyncio.run(gate.request("click_element", {}, "shop.example", PermissionTier.INTERACT))

    assert answer is UserDecision.DENY
    assert len(prompter.requests) == 1


def test_gate_denies_when_prompter_crashes() -> None:
    class Broken:
        async def ask(self, request: PermissionRequest) -> UserDecision:
            raise ConnectionError("ui went away")

    gate = PermissionGate(Broken(), timeout_seconds=1)

    assert asyncio.run(gate.request("navigate", {}, "x.example", "navigate")) is UserDecision.DENY


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("allow-once", UserDecision.ALLOW_ONCE),
        (" Allow-Session ", UserDecision.ALLOW_SESSION),
        (UserDecision.DENY_ALL, UserDecision.DENY_ALL),
        ("yes please", UserDecision.DENY),
        (None, UserDecision.DENY),
    ],
)
def test_parse_user_decision(raw: object, expected: UserDecision) -> None:
    assert parse_user_decision(raw) is expected


def test_pending_permissions_resolve() -> None:
    published: list[PermissionRequest] = []
    pending = PendingPermissions(publish=published.append)
    gate = PermissionGate(pending, timeout_seconds=1)

    async def scenario():
        task = asyncio.create_task(gate.request("fill_form", {"text": "hi"}, "a.example", "interact"))
        while not published:
            await asyncio.sleep(0)
        assert pending.pending_ids() == [published[0].id]
        assert pending.resolve(published[0].id, "allow-once") is True
        return await task

    assert asyncio.run(scenario()) is UserDecision.ALLOW_ONCE
    assert pending.pending_ids() == []


def test_pending_permissions_ignore_late_answers() -> None:
    published: list[PermissionRequest] = []
    pending = PendingPermissions(publish=published.append)
    gate = PermissionGate(pending, timeout_seconds=0.05)

    answer = asyncio.run(gate.request("fill_form", {}, "a.example", "interact"))

    assert answer is UserDecision.DENY
    assert pending.pending_ids() == []
    assert pending.resolve(published[0].id, "allow-once") is False


def test_pending_permissions_accept_async_publisher() -> None:
    seen: list[str] = []

    async def publish(request: PermissionRequest) -> None:
        seen.append(request.id)
        pending.resolve(request.id, "deny-all")

    pending = PendingPermissions(publish=publish)
    gate = PermissionGate(pending, timeout_seconds=1)

    assert asyncio.run(gate.request("navigate", {}, "b.example", "navigate")) is UserDecision.DENY_ALL
    assert len(seen) == 1


@pytest.mark.parametrize(
    ("typed", "expected"),
    [
        ("o", UserDecision.ALLOW_ONCE),
        ("S", UserDecision.ALLOW_SITE),
        ("t", UserDecision.ALLOW_SESSION),
        ("n", UserDecision.DENY_ALL),
        ("", UserDecision.DENY),
        ("whatever", UserDecision.DENY),
    ],
)
def test_console_prompter(typed: str, expected: UserDecision, capsys: pytest.CaptureFixture[str]) -> None:
    prompter = ConsolePrompter(ConsoleReader(input_func=lambda prompt: typed))
    request = PermissionRequest("click_element", {"selector": "#buy"}, "shop.example", "interact", "why")

    assert asyncio.run(prompter.ask(request)) is expected
    assert "Permission request" in capsys.readouterr().out
