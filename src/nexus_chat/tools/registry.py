"""Tool registry for tool discovery and registration.

This module provides the ToolRegistry class that manages tool definitions,
their argument schemas and their executor functions. The name → argument
model map is the tagged union the execution layer validates against.
"""

from typing import Any, Callable

from pydantic import BaseModel

from nexus_chat.telemetry import get_logger
from nexus_chat.tools.types import ToolDefinition

log = get_logger(__name__)

RegisteredTool = tuple[ToolDefinition, type[BaseModel], Callable[..., Any]]


class ToolRegistry:
    """Central registry of available tools.

    The registry stores tool definitions along with their argument models and
    executor functions, enabling tools to be discovered, validated and executed.
    """

    def __init__(self) -> None:
        """Initialize empty tool registry."""
        self._tools: dict[str, RegisteredTool] = {}
        log.debug("tool_registry_initialized")

    def register(
        self,
        tool_def: ToolDefinition,
        args_model: type[BaseModel],
        executor: Callable[..., Any],
    ) -> None:
        """Register a tool with its definition, argument model and executor.

        Args:
            tool_def: Tool definition with metadata.
            args_model: Pydantic model the raw arguments are validated against.
            executor: Callable taking (validated arguments, ToolContext) and
                returning a JSON-serializable result. May be sync or async.

        Raises:
            ValueError: If tool name already registered.
        """
        if tool_def.name in self._tools:
            raise ValueError(f"Tool '{tool_def.name}' is already registered")

        self._tools[tool_def.name] = (tool_def, args_model, executor)
        log.debug("tool_registered", tool_name=tool_def.name, category=tool_def.category)

    def get_tool(self, name: str) -> RegisteredTool | None:
        """Retrieve tool definition, argument model and executor.

        Args:
            name: Tool name to retrieve.

        Returns:
            Tuple of (ToolDefinition, args model, executor) if found, None otherwise.
        """
        return self._tools.get(name)

    def list_tools(self, category: str | None = None) -> list[ToolDefinition]:
        """List registered tools in registration order.

        Args:
            category: Only return tools of this category. If None, returns all tools.

        Returns:
            List of tool definitions.
        """
        return [
            tool_def
            for tool_def, _, _ in self._tools.values()
            if category is None or tool_def.category == category
        ]

    def list_tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def get_tool_definitions_for_llm(self, category: str | None = None) -> list[dict[str, Any]]:
        """Get tool definitions in OpenAI function calling format.

        Args:
            category: Only include tools of this category. If None, includes all.

        Returns:
            List of tool definitions in OpenAI format (for function calling).
        """
        return [
            {
                "type": "function",
                "function": {
                    "name": tool_def.name,
                    "description": tool_def.description,
                    "parameters": tool_def.parameters,
                },
            }
            for tool_def in self.list_tools(category=category)
        ]
