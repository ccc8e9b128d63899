"""Fakes for the model, the browser context and the human."""

from __future__ import annotations

import asyncio
from typing import Any

from src.agent.extractor import RawToolCall
from src.agent.llm import ModelReply
from src.browser.bridge import ExecutionContext
from src.harbor.gate import PermissionRequest
from src.harbor.policy import PermissionTier, UserDecision
from src.tools import ToolDefinition, ToolParameter, ToolRegistry

SHOP_CONTEXT = ExecutionContext.for_tab(7, "https://shop.example/p/1")


class FakeTransport:
    """Returns scripted replies; repeats the last one when the script runs out."""

    def __init__(self, replies: list[ModelReply | None]) -> None:
        self.replies = list(replies)
        self.calls: list[tuple[list[dict[str, Any]], list[dict[str, Any]] | None]] = []

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        max_tokens: int | None = None,
    ) -> ModelReply | None:
        self.calls.append((messages, tools))
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0] if self.replies else None

    async def complete_text(self, messages: list[dict[str, Any]], max_tokens: int | None = None) -> str | None:
        reply = await self.complete(messages, None, max_tokens)
        return reply.content if reply else None


class SequenceContextProvider:
    """Yields the given contexts in order, then keeps returning the last."""

    def __init__(self, *contexts: ExecutionContext) -> None:
        self.contexts = list(contexts) or [ExecutionContext()]
        self.calls = 0

    async def current_context(self) -> ExecutionContext:
        self.calls += 1
        if len(self.contexts) > 1:
            return self.contexts.pop(0)
        return self.contexts[0]


class ScriptedPrompter:
    def __init__(self, answer: UserDecision | str = UserDecision.ALLOW_ONCE) -> None:
        self.answer = answer
        self.requests: list[PermissionRequest] = []

    async def ask(self, request: PermissionRequest) -> UserDecision | str:
        self.requests.append(request)
        return self.answer


class SilentPrompter:
    """Never answers."""

    def __init__(self) -> None:
        self.requests: list[PermissionRequest] = []

    async def ask(self, request: PermissionRequest) -> UserDecision:
        self.requests.append(request)
        await asyncio.Event().wait()
        return UserDecision.ALLOW_ONCE


def structured(*calls: tuple[str, str], content: str | None = None) -> ModelReply:
    return ModelReply(
        content=content,
        tool_calls=[
            RawToolCall(id=f"call_{i}", name=name, arguments=arguments)
            for i, (name, arguments) in enumerate(calls)
        ],
    )


def text(content: str) -> ModelReply:
    return ModelReply(content=content)


def make_registry(calls: list[tuple[str, dict[str, Any], ExecutionContext]] | None = None) -> ToolRegistry:
    """Small registry of fake tools that record their invocations."""
    record = calls if calls is not None else []

    def recorder(name: str):
        async def invoke(args: dict[str, Any], context: ExecutionContext) -> Any:
            record.append((name, dict(args), context))
            return {"success": True, "tool": name}
        return invoke

    async def explode(args: dict[str, Any], context: ExecutionContext) -> Any:
        record.append(("explode", dict(args), context))
        raise RuntimeError("boom")

    return ToolRegistry([
        ToolDefinition("read_page", "Read the page", {}, PermissionTier.READ_ONLY, recorder("read_page")),
        ToolDefinition(
            "click_element",
            "Click",
            {"selector": ToolParameter("string", "Selector", required=True)},
            PermissionTier.INTERACT,
            recorder("click_element"),
        ),
        ToolDefinition(
            "search_web",
            "Search",
            {"query": ToolParameter("string", "Query", required=True)},
            PermissionTier.NAVIGATE,
            recorder("search_web"),
            requires_tab=False,
        ),
        ToolDefinition(
            "fill_form",
            "Fill",
            {
                "selector": ToolParameter("string", "Selector", required=True),
                "text": ToolParameter("string", "Text", required=True),
                "submit": ToolParameter("boolean", "Submit"),
            },
            PermissionTier.INTERACT,
            recorder("fill_form"),
        ),
        ToolDefinition("explode", "Always fails", {}, PermissionTier.READ_ONLY, explode),
    ])

