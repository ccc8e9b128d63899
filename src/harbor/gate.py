"""
Permission Gate
===============

The human in the loop. When the decision engine says "ask", the agent
suspends on the gate until the user answers or the timeout fires.

    agent ──request()──▶ gate ──ask()──▶ prompter (console, UI channel)
                           │
                           └── timeout ──▶ deny

The prompt and the timer race; whichever finishes first wins and the
other is discarded (asyncio.wait_for cancels the pending prompt).
Anything other than a recognised answer in time is treated as a deny.

Prompters:
    PendingPermissions  request-id keyed futures, for a UI that answers
                        asynchronously (the sidebar, a web socket...)
    ConsolePrompter     asks on the terminal; used by the CLI
"""

import asyncio
import inspect
import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

from src.harbor.policy import PermissionTier, UserDecision
from src.utils.console import ConsoleReader
from src.utils.logger import Logger

logger = Logger("Harbor").child("Gate")

DEFAULT_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class PermissionRequest:
    """A question shown to the user."""
    tool_name: str
    args: dict[str, Any]
    site: str
    tier: str
    reason: str
    id: str = field(default_factory=lambda: f"perm_{uuid.uuid4().hex[:12]}")
    timestamp: float = field(default_factory=time.time)


class PermissionPrompter(Protocol):
    """Something that can put a question to the user."""

    async def ask(self, request: PermissionRequest) -> UserDecision | str:
        ...


def parse_user_decision(raw: Any) -> UserDecision:
    """Map a prompter answer to a UserDecision; anything unknown is a deny."""
    if isinstance(raw, UserDecision):
        return raw
    try:
        return UserDecision(str(raw).strip().lower())
    except ValueError:
        logger.warning(f"Unrecognised permission answer {raw!r}, treating as deny")
        return UserDecision.DENY


class PermissionGate:
    """
    Ask the user, fail closed.

    Example:
        gate = PermissionGate(ConsolePrompter(), timeout_seconds=60)
        answer = await gate.request("click_element", {"selector": "#buy"},
                                    "shop.example", PermissionTier.INTERACT)
        if answer.allows:
            ...
    """

    def __init__(
        self,
        prompter: PermissionPrompter,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    ):
        self.prompter = prompter
        self.timeout_seconds = timeout_seconds

    async def request(
        self,
        tool_name: str,
        args: dict[str, Any],
        site: str,
        tier: PermissionTier | str
    ) -> UserDecision:
        """
        Ask for permission to run a tool.

        Returns:
            The user's decision, or UserDecision.DENY on timeout or failure
        """
        tier_value = tier.value if isinstance(tier, PermissionTier) else str(tier)
        request = PermissionRequest(
            tool_name=tool_name,
            args=dict(args),
            site=site,
            tier=tier_value,
            reason=f"FoxAgent wants to use '{tool_name}' on {site}",
        )

        logger.info(f"Asking permission for {tool_name} on {site} ({tier_value})")

        try:
            raw = await asyncio.wait_for(self.prompter.ask(request), self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"No answer for {tool_name} within {self.timeout_seconds:g}s, denying"
            )
            return UserDecision.DENY
        except Exception as e:
            logger.error(f"Permission prompt failed for {tool_name}, denying", e)
            return UserDecision.DENY

        decision = parse_user_decision(raw)
        logger.info(f"User answered {decision.value} for {tool_name}")
        return decision


class PendingPermissions:
    """
    Prompter for asynchronous UIs.

    ask() publishes the request and waits on a future; the UI later calls
    resolve() with the request id. Answers arriving after the gate gave
    up are ignored.

    Example:
        pending = PendingPermissions(publish=sidebar.send_permission_request)
        gate = PermissionGate(pending, timeout_seconds=60)

        # from the UI handler:
        pending.resolve(request_id, "allow-once")
    """

    def __init__(
        self,
        publish: Callable[[PermissionRequest], Awaitable[None] | None] | None = None
    ):
        self._publish = publish
        self._pending: dict[str, asyncio.Future] = {}

    async def ask(self, request: PermissionRequest) -> UserDecision | str:
        future = asyncio.get_running_loop().create_future()
        self._pending[request.id] = future

        try:
            if self._publish is not None:
                published = self._publish(request)
                if inspect.isawaitable(published):
                    await published
            return await future
        finally:
            self._pending.pop(request.id, None)

    def resolve(self, request_id: str, decision: UserDecision | str) -> bool:
        """
        Deliver the user's answer.

        Returns:
            True if a request was waiting for it
        """
        future = self._pending.pop(request_id, None)
        if future is None or future.done():
            logger.debug(f"Ignoring answer for unknown or expired request {request_id}")
            return False
        future.set_result(decision)
        return True

    def pending_ids(self) -> list[str]:
        return list(self._pending)


class ConsolePrompter:
    """Asks on the terminal."""

    CHOICES = {
        "o": UserDecision.ALLOW_ONCE,
        "s": UserDecision.ALLOW_SITE,
        "t": UserDecision.ALLOW_SESSION,
        "d": UserDecision.DENY,
        "n": UserDecision.DENY_ALL,
    }

    PROMPT = "[o] allow once  [s] allow site  [t] allow 24h  [d] deny  [n] never > "

    def __init__(self, reader: ConsoleReader | None = None):
        self._reader = reader or ConsoleReader()

    async def ask(self, request: PermissionRequest) -> UserDecision:
        print(f"\n⚠ Permission request: {request.reason}")
        print(f"  Level: {request.tier}")
        if request.args:
            print(f"  Details: {json.dumps(request.args, ensure_ascii=False, default=str)}")

        # On timeout the read stays pending and its line goes to the next reader
        answer = await self._reader.read(self.PROMPT)
        return self.CHOICES.get(answer.strip().lower()[:1], UserDecision.DENY)
