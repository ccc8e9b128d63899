"""
Conversation
============

The message list for one agent run. The caller builds it, hands it to
Agent.run(), and gets it back with every assistant turn and tool result
appended. Nothing else holds a reference while the loop runs.

Message roles:
- system: instructions and page context
- user: the user's request, or "Tool results:" summaries for tag-based calls
- assistant: model output, with tool_calls on the structured path
- tool: one JSON result per structured call, keyed by tool_call_id
"""

import json
from dataclasses import dataclass, field
from typing import Any, Iterator

from src.agent.extractor import ToolInvocation


@dataclass(frozen=True)
class Message:
    """
    One conversation turn.

    Attributes:
        role: system, user, assistant or tool
        content: Text (None for assistant turns that only call tools)
        tool_calls: Structured calls made by an assistant turn
        tool_call_id: The call a tool-role message answers
    """
    role: str
    content: str | None
    tool_calls: tuple[ToolInvocation, ...] = ()
    tool_call_id: str | None = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str | None, tool_calls: list[ToolInvocation] | None = None) -> "Message":
        return cls(role="assistant", content=content, tool_calls=tuple(tool_calls or ()))

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> "Message":
        return cls(role="tool", content=content, tool_call_id=tool_call_id)

    def to_openai(self) -> dict[str, Any]:
        """Format for the chat-completions API."""
        message: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.arguments, default=str),
                    },
                }
                for call in self.tool_calls
            ]
        if self.tool_call_id is not None:
            message["tool_call_id"] = self.tool_call_id
        return message


@dataclass
class Conversation:
    """
    Append-only list of messages.

    Example:
        conversation = Conversation.start(system_prompt, history, "Find me cheaper shoes")
        result = await agent.run(conversation)
        conversation.to_openai_messages()
    """
    messages: list[Message] = field(default_factory=list)

    @classmethod
    def start(
        cls,
        system_prompt: str,
        history: list[Message] | None = None,
        user_message: str | None = None
    ) -> "Conversation":
        conversation = cls([Message.system(system_prompt)])
        for message in history or []:
            conversation.append(message)
        if user_message is not None:
            conversation.append(Message.user(user_message))
        return conversation

    def append(self, message: Message) -> None:
        self.messages.append(message)

    def to_openai_messages(self) -> list[dict[str, Any]]:
        return [message.to_openai() for message in self.messages]

    @property
    def last(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages)

    def __len__(self) -> int:
        return len(self.messages)
