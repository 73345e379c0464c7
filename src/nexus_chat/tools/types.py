"""Type definitions for the tool execution layer.

This module defines the Pydantic models for tool definitions, the execution
context handed to every tool, and the results fed back to the model.
"""

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, Field

from nexus_chat.tools.crm_models import CRMData


def parameters_schema(args_model: type[BaseModel]) -> dict[str, Any]:
    """Build the JSON schema advertised to the model for an argument model.

    Pydantic titles are dropped; they only add noise to the prompt.

    Args:
        args_model: Pydantic model describing the tool arguments.

    Returns:
        JSON schema of type ``object``.
    """
    schema = args_model.model_json_schema(by_alias=True)
    return _strip_titles(schema)


def _strip_titles(node: Any) -> Any:
    if isinstance(node, dict):
        return {
            key: _strip_titles(value)
            for key, value in node.items()
            if not (key == "title" and isinstance(value, str))
        }
    if isinstance(node, list):
        return [_strip_titles(item) for item in node]
    return node


class ToolDefinition(BaseModel):
    """OpenAI-style tool definition for LLM function calling."""

    name: str = Field(..., description="Tool name (e.g., 'searchContacts')")
    description: str = Field(..., description="Clear description for LLM")
    category: Literal["query", "write"] = Field(
        ..., description="Whether the tool mutates CRM data"
    )
    parameters: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        description="JSON schema of the tool arguments",
    )


class ToolContext(BaseModel):
    """Context passed to every tool executor.

    Attributes:
        user_id: Owner of the CRM data.
        data: Snapshot of the user's CRM data for the current tool round.
            Write tools apply their changes to it.
        today: Reference date for "overdue" and "upcoming" computations.
    """

    user_id: str
    data: CRMData = Field(default_factory=CRMData)
    today: date = Field(default_factory=date.today)


class ToolResult(BaseModel):
    """Result from tool execution.

    ``success=False`` carries the failure in ``error``; it is never raised.
    """

    tool_call_id: str = Field("", description="Id of the tool call this result answers")
    name: str = Field(..., description="Name of the executed tool")
    success: bool = Field(..., description="Whether tool execution succeeded")
    result: Any = Field(None, description="Tool-specific output")
    error: str | None = Field(None, description="Error message if failed")
    latency_ms: float = Field(0.0, ge=0, description="Execution latency in milliseconds")
