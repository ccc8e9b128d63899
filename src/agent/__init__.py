"""
Agent System
============

The agent is the part that talks to the model. It:
1. Builds the conversation (system prompt, page context, history)
2. Calls the model with the tool schemas
3. Extracts tool invocations (structured calls or inline tags)
4. Runs each one through Harbor and the executor
5. Loops until the model answers in plain text

This module provides:
- Agent: the tool-calling loop
- ChatSession: multi-turn chat on top of the loop
- ContextAssembler: system prompt and page context
- ModelClient: OpenAI-compatible model transport
- ToolExecutor: dispatch to tool implementations
"""

from src.agent.context import ContextAssembler
from src.agent.conversation import Conversation, Message
from src.agent.core import Agent, AgentRunResult, AgentState, StopReason
from src.agent.llm import LLMTransportError, ModelClient, ModelReply
from src.agent.session import ChatSession
from src.agent.tools_executor import ToolExecutor

__all__ = [
    "Agent",
    "AgentRunResult",
    "AgentState",
    "ChatSession",
    "ContextAssembler",
    "Conversation",
    "LLMTransportError",
    "Message",
    "ModelClient",
    "ModelReply",
    "StopReason",
    "ToolExecutor",
]
