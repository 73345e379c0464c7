"""Type definitions for the model stream client layer.

This module defines the core types exchanged with model providers:
- ToolCall: A tool invocation requested by the model (immutable once emitted)
- ChatMessage: One entry of a conversation history
- StreamRequest: Everything a provider needs to start a streamed reply
- StreamChunk: Tagged union of text / tool_call / error / done chunks
- Error classes: Hierarchy of provider and configuration errors
"""

import uuid
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from nexus_chat.tools.types import ToolResult

MessageRole = Literal["user", "assistant", "tool"]


def new_message_id() -> str:
    """Generate a message id that is unique within a session."""
    return f"msg_{uuid.uuid4().hex}"


class ToolCall(BaseModel):
    """Tool call requested by the model.

    Attributes:
        id: Provider-assigned identifier, echoed back in the matching ToolResult.
        name: Name of the tool to call.
        arguments: Decoded tool arguments (opaque to the orchestrator).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ChatMessage(BaseModel):
    """One message of a chat session.

    ``is_streaming`` may only be true on the newest message of an in-flight
    render snapshot; session stores refuse to persist it.
    """

    id: str = Field(default_factory=new_message_id)
    role: MessageRole
    content: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    is_streaming: bool = False
    tool_calls: list[ToolCall] | None = None
    tool_results: list[ToolResult] | None = None


class StreamRequest(BaseModel):
    """Input for a single streamed model call."""

    messages: list[ChatMessage]
    tools: list[dict[str, Any]] = Field(default_factory=list)
    system_prompt: str = ""


class TextChunk(BaseModel):
    """A fragment of assistant text."""

    type: Literal["text"] = "text"
    content: str


class ToolCallChunk(BaseModel):
    """A fully assembled tool call."""

    type: Literal["tool_call"] = "tool_call"
    tool_call: ToolCall


class ErrorChunk(BaseModel):
    """Provider or transport failure; the stream ends after it."""

    type: Literal["error"] = "error"
    error: str


class DoneChunk(BaseModel):
    """End of the model reply."""

    type: Literal["done"] = "done"


StreamChunk = Annotated[
    TextChunk | ToolCallChunk | ErrorChunk | DoneChunk, Field(discriminator="type")
]


# Error hierarchy


class ConfigurationError(Exception):
    """Raised when no usable provider or credentials are configured."""

    pass


class LLMClientError(Exception):
    """Base exception for all model client errors."""

    pass


class LLMTimeout(LLMClientError):
    """Raised when a model request times out."""

    pass


class LLMConnectionError(LLMClientError):
    """Raised when the connection to the provider fails."""

    pass


class LLMRateLimit(LLMClientError):
    """Raised when the provider returns a rate limit error."""

    pass


class LLMServerError(LLMClientError):
    """Raised when the provider returns a 5xx error."""

    pass


class LLMInvalidResponse(LLMClientError):
    """Raised when the provider returns an unexpected payload."""

    pass
