"""
Browser Tools
=============

Tools are the actions the model can ask for: read the page, click,
fill a form, navigate, search. Each tool has:

- a name and a description (shown to the model)
- a parameter schema (name -> type, required, enum)
- a permission tier (read-only, navigate, interact, submit) that Harbor
  uses to decide whether the call may run without asking
- an async invoke(args, context) that performs it

How Tools Work:
1. The model requests a tool (structured call or inline tag)
2. Harbor decides auto-approve / ask / deny for the tier and site
3. The executor looks the tool up here and invokes it
4. The result (or error) goes back to the model

The registry is filled once at startup by register_all_tools() and is
only read afterwards.
"""

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from src.harbor.policy import PermissionTier
from src.utils.logger import Logger

if TYPE_CHECKING:
    from src.browser.bridge import ExecutionContext

logger = Logger("Tools")


@dataclass
class ToolResult:
    """
    Standardized result from tool execution.

    Attributes:
        success: Whether the tool ran and reported no error
        data: The result data (varies by tool)
        error: Error message if success is False
    """
    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "ToolResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ToolResult":
        return cls(success=False, error=error)

    @classmethod
    def from_value(cls, value: Any) -> "ToolResult":
        """
        Wrap whatever a tool implementation returned.

        Implementations report soft failures as {"error": "..."}; those
        become failed results.
        """
        if isinstance(value, ToolResult):
            return value
        if isinstance(value, dict) and value.get("error"):
            return cls(success=False, data=value, error=str(value["error"]))
        return cls(success=True, data=value)

    def to_dict(self) -> dict:
        """The outcome as fed back to the model."""
        if self.success:
            return self.data if isinstance(self.data, dict) else {"result": self.data}
        return {"error": self.error}

    def to_message(self) -> str:
        """JSON-serialized outcome for a tool-role message."""
        return json.dumps(self.to_dict(), default=str, ensure_ascii=False)


@dataclass(frozen=True)
class ToolParameter:
    """One parameter in a tool's schema."""
    type: str
    description: str
    required: bool = False
    enum: tuple[str, ...] | None = None

    def to_json_schema(self) -> dict:
        schema: dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            schema["enum"] = list(self.enum)
        return schema


ToolInvoke = Callable[[dict[str, Any], "ExecutionContext"], Awaitable[Any]]


@dataclass(frozen=True)
class ToolDefinition:
    """
    A tool the model can call.

    Attributes:
        name: Unique identifier for the tool
        description: What the tool does (shown to the model)
        parameters: Parameter schema keyed by parameter name
        tier: Permission tier used by Harbor
        invoke: Async implementation, called as invoke(args, context)
        requires_tab: Whether the tool needs an active tab to run

    Example:
        async def _scroll(args, context):
            return await require_bridge().send_to_tab(
                context.tab_id, {"type": "SCROLL_PAGE", "payload": args}
            )

        scroll_tool = ToolDefinition(
            name="scroll_page",
            description="Scroll the current page up or down.",
            parameters={
                "direction": ToolParameter("string", "up or down",
                                           required=True, enum=("up", "down")),
            },
            tier=PermissionTier.READ_ONLY,
            invoke=_scroll,
        )
    """
    name: str
    description: str
    parameters: dict[str, ToolParameter]
    tier: PermissionTier
    invoke: ToolInvoke
    requires_tab: bool = True

    def to_openai_function(self) -> dict:
        """Convert to the OpenAI function-calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        key: param.to_json_schema() for key, param in self.parameters.items()
                    },
                    "required": [key for key, param in self.parameters.items() if param.required],
                },
            },
        }

    def validate_arguments(self, args: dict[str, Any]) -> str | None:
        """
        Check required parameters and enum values.

        Returns:
            An error message, or None when the arguments are acceptable
        """
        missing = [
            key for key, param in self.parameters.items()
            if param.required and (args.get(key) is None or args.get(key) == "")
        ]
        if missing:
            return f"Missing required parameter(s) for {self.name}: {', '.join(missing)}"

        for key, param in self.parameters.items():
            if param.enum and key in args and str(args[key]) not in param.enum:
                return f"Invalid value for {key}: {args[key]!r} (expected one of {', '.join(param.enum)})"
        return None


class ToolRegistry:
    """
    Static map from tool name to definition.

    Example:
        registry = ToolRegistry()
        registry.register(scroll_tool)

        registry.get("scroll_page").tier   # PermissionTier.READ_ONLY
        registry.get_openai_functions()    # schemas for the model
    """

    def __init__(self, tools: list[ToolDefinition] | None = None):
        self._tools: dict[str, ToolDefinition] = {}
        # Lowercase lookup for inline tags, which models write in any case
        self._by_lower: dict[str, str] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        """
        Register a tool.

        Raises:
            ValueError: If a tool with this name already exists
        """
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")

        self._tools[tool.name] = tool
        self._by_lower[tool.name.lower()] = tool.name
        logger.debug(f"Registered tool: {tool.name} ({tool.tier.value})")

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def resolve_name(self, name: str, case_sensitive: bool = True) -> str | None:
        """Canonical registered name for a (possibly differently cased) name."""
        if name in self._tools:
            return name
        if case_sensitive:
            return None
        return self._by_lower.get(name.lower())

    def get_all(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def get_openai_functions(self) -> list[dict]:
        return [tool.to_openai_function() for tool in self._tools.values()]

    def list_names(self) -> list[str]:
        return list(self._tools.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)


# Global tool registry instance
tool_registry = ToolRegistry()


def register_all_tools() -> ToolRegistry:
    """
    Register the built-in browser tools into the global registry.

    Safe to call more than once.
    """
    if len(tool_registry) == 0:
        from src.tools.page_tools import PAGE_TOOLS
        from src.tools.navigation_tools import NAVIGATION_TOOLS
        from src.tools.utility_tools import UTILITY_TOOLS

        for tool in [*PAGE_TOOLS, *NAVIGATION_TOOLS, *UTILITY_TOOLS]:
            tool_registry.register(tool)

        logger.info(f"Registered {len(tool_registry)} tools")

    return tool_registry


__all__ = [
    "ToolDefinition",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
    "register_all_tools",
    "tool_registry",
]
