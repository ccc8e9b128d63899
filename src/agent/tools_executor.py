"""
Tool Executor
=============

Runs approved tool calls.

The executor:
1. Looks the tool up in the registry
2. Checks it can run here (active tab, required parameters)
3. Invokes it with the current execution context
4. Wraps whatever happened in a ToolResult

It never raises. Unknown tools, missing tabs, bad arguments and
exceptions inside a tool all come back as failed results, which the
agent feeds to the model like any other result so it can try something
else.
"""

from dataclasses import dataclass
from typing import Any

from src.agent.conversation import Message
from src.agent.extractor import ToolInvocation
from src.browser.bridge import ExecutionContext
from src.tools import ToolRegistry, ToolResult, tool_registry
from src.utils.logger import Logger

logger = Logger("ToolExecutor")

NO_ACTIVE_TAB = "No active tab available"


def unknown_tool_error(name: str) -> str:
    return f"unknown tool: {name}"


@dataclass
class ToolCallResult:
    """
    Result of executing one invocation.

    Attributes:
        tool_call_id: The original call id
        name: The tool name
        result: The tool result
    """
    tool_call_id: str
    name: str
    result: ToolResult

    @classmethod
    def for_invocation(cls, invocation: ToolInvocation, result: ToolResult) -> "ToolCallResult":
        return cls(tool_call_id=invocation.id, name=invocation.name, result=result)

    def to_message(self) -> Message:
        """The tool-role message answering a structured call."""
        return Message.tool(self.tool_call_id, self.result.to_message())

    def summary(self) -> str:
        """One line for the "Tool results:" turn on the tag path."""
        return f"[{self.name}] {self.result.to_message()}"


class ToolExecutor:
    """
    Dispatches invocations to their implementations.

    Example:
        executor = ToolExecutor(registry)
        result = await executor.execute("read_page", {}, context)
        if not result.success:
            print(result.error)
    """

    def __init__(self, registry: ToolRegistry | None = None):
        self.registry = registry if registry is not None else tool_registry

    async def execute(
        self,
        tool_name: str,
        args: dict[str, Any],
        context: ExecutionContext
    ) -> ToolResult:
        """
        Execute one tool.

        Args:
            tool_name: Registered tool name
            args: Parsed arguments
            context: Active tab and site, refreshed by the caller

        Returns:
            ToolResult; failures carry {"error": ...}
        """
        tool = self.registry.get(tool_name)
        if tool is None:
            logger.warning(f"Unknown tool requested: {tool_name}")
            return ToolResult.fail(unknown_tool_error(tool_name))

        if tool.requires_tab and context.tab_id is None:
            return ToolResult.fail(NO_ACTIVE_TAB)

        problem = tool.validate_arguments(args)
        if problem:
            return ToolResult.fail(problem)

        logger.info(f"Executing tool: {tool_name}")

        try:
            value = await tool.invoke(args, context)
        except Exception as e:
            logger.error(f"Tool {tool_name} raised", e)
            return ToolResult.fail(f"Tool execution failed: {e}")

        result = ToolResult.from_value(value)
        if result.success:
            logger.debug(f"Tool {tool_name} succeeded")
        else:
            logger.warning(f"Tool {tool_name} failed: {result.error}")
        return result
