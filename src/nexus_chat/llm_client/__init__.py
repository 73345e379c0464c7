"""Model stream client layer.

Provides the provider-agnostic streaming protocol used by the conversation
orchestrator, the chunk and message types it exchanges, cooperative
cancellation, and the provider registry.
"""

from nexus_chat.llm_client.base import ModelStreamClient
from nexus_chat.llm_client.cancellation import CancellationToken, TurnCancelledError
from nexus_chat.llm_client.gemini_stream import GeminiStreamClient
from nexus_chat.llm_client.openai_stream import OpenAIStreamClient
from nexus_chat.llm_client.registry import (
    ProviderFactory,
    ProviderRegistry,
    default_provider_registry,
)
from nexus_chat.llm_client.types import (
    ChatMessage,
    ConfigurationError,
    DoneChunk,
    ErrorChunk,
    LLMClientError,
    LLMConnectionError,
    LLMInvalidResponse,
    LLMRateLimit,
    LLMServerError,
    LLMTimeout,
    MessageRole,
    StreamChunk,
    StreamRequest,
    TextChunk,
    ToolCall,
    ToolCallChunk,
    new_message_id,
)

__all__ = [
    "ModelStreamClient",
    "OpenAIStreamClient",
    "GeminiStreamClient",
    "ProviderFactory",
    "ProviderRegistry",
    "default_provider_registry",
    "CancellationToken",
    "TurnCancelledError",
    "ChatMessage",
    "MessageRole",
    "ToolCall",
    "StreamRequest",
    "StreamChunk",
    "TextChunk",
    "ToolCallChunk",
    "ErrorChunk",
    "DoneChunk",
    "new_message_id",
    "ConfigurationError",
    "LLMClientError",
    "LLMConnectionError",
    "LLMInvalidResponse",
    "LLMRateLimit",
    "LLMServerError",
    "LLMTimeout",
]
