"""Adapters between chat history and the OpenAI chat-completions wire format.

Outbound: ChatMessage history → ``messages`` payload, registry tool schemas →
``tools`` payload. Inbound: server-sent event lines → stream chunks, with
tool-call fragments accumulated by index until the stream finishes. The SSE
line parser and HTTP error mapping are shared with the other providers.
"""

import json
from typing import Any

from nexus_chat.llm_client.types import (
    ChatMessage,
    LLMClientError,
    LLMInvalidResponse,
    LLMRateLimit,
    LLMServerError,
    TextChunk,
    ToolCall,
)
from nexus_chat.telemetry import get_logger

log = get_logger(__name__)

SSE_DONE = "[DONE]"


def format_messages_for_openai(
    messages: list[ChatMessage], system_prompt: str | None = None
) -> list[dict[str, Any]]:
    """Convert chat history into chat-completions messages.

    Each ToolResult of a ``tool`` message becomes its own ``role=tool`` entry
    keyed by ``tool_call_id``; assistant messages keep their tool calls with
    JSON-encoded arguments.

    Args:
        messages: Conversation history, oldest first.
        system_prompt: Optional system prompt, prepended when non-empty.

    Returns:
        List of message dicts ready for the request payload.
    """
    formatted: list[dict[str, Any]] = []
    if system_prompt:
        formatted.append({"role": "system", "content": system_prompt})

    for msg in messages:
        if msg.role == "user":
            formatted.append({"role": "user", "content": msg.content})
        elif msg.role == "assistant":
            # content may only be null alongside tool_calls
            entry: dict[str, Any] = {
                "role": "assistant",
                "content": msg.content or (None if msg.tool_calls else ""),
            }
            if msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.arguments)},
                    }
                    for tc in msg.tool_calls
                ]
            formatted.append(entry)
        elif msg.role == "tool" and msg.tool_results:
            for result in msg.tool_results:
                payload = result.result if result.success else {"error": result.error}
                if not isinstance(payload, str):
                    payload = json.dumps(payload, default=str)
                formatted.append(
                    {"role": "tool", "tool_call_id": result.tool_call_id, "content": payload}
                )
    return formatted


def build_chat_completions_request(
    messages: list[ChatMessage],
    model: str,
    tools: list[dict[str, Any]] | None = None,
    system_prompt: str | None = None,
) -> dict[str, Any]:
    """Build a streaming chat-completions payload."""
    payload: dict[str, Any] = {
        "model": model,
        "messages": format_messages_for_openai(messages, system_prompt),
        "stream": True,
    }
    if tools:
        payload["tools"] = tools
        payload["tool_choice"] = "auto"
    return payload


def parse_sse_line(line: str) -> dict[str, Any] | str | None:
    """Parse one server-sent event line.

    Returns:
        The decoded JSON object, ``SSE_DONE`` for the terminator, or None for
        blank lines, comments and non-data fields.

    Raises:
        LLMInvalidResponse: If a data line does not contain valid JSON.
    """
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[len("data:") :].strip()
    if data == SSE_DONE:
        return SSE_DONE
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError as e:
        raise LLMInvalidResponse(f"Invalid JSON in stream event: {e}") from None
    if not isinstance(parsed, dict):
        raise LLMInvalidResponse(f"Unexpected stream event type: {type(parsed).__name__}")
    return parsed


class ToolCallAccumulator:
    """Collects streamed tool-call fragments by index."""

    def __init__(self) -> None:
        self._buffers: dict[int, dict[str, str]] = {}

    def add(self, fragment: dict[str, Any]) -> None:
        index = fragment.get("index", len(self._buffers))
        buffer = self._buffers.setdefault(index, {"id": "", "name": "", "arguments": ""})
        if fragment.get("id"):
            buffer["id"] = fragment["id"]
        function = fragment.get("function") or {}
        if function.get("name"):
            buffer["name"] = function["name"]
        if function.get("arguments"):
            buffer["arguments"] += function["arguments"]

    def finish(self) -> list[ToolCall]:
        """Return completed tool calls in index order."""
        calls: list[ToolCall] = []
        for index in sorted(self._buffers):
            buffer = self._buffers[index]
            if not buffer["name"]:
                log.warning("tool_call_fragment_without_name", index=index)
                continue
            try:
                arguments = json.loads(buffer["arguments"] or "{}")
            except json.JSONDecodeError:
                log.warning(
                    "tool_call_arguments_undecodable",
                    tool_name=buffer["name"],
                    arguments_length=len(buffer["arguments"]),
                )
                arguments = {}
            if not isinstance(arguments, dict):
                arguments = {}
            calls.append(
                ToolCall(
                    id=buffer["id"] or f"call_{index}", name=buffer["name"], arguments=arguments
                )
            )
        self._buffers.clear()
        return calls


def text_chunks_from_event(
    event: dict[str, Any], accumulator: ToolCallAccumulator
) -> list[TextChunk]:
    """Extract text from a chat-completions delta and feed tool-call fragments.

    Args:
        event: Decoded stream event.
        accumulator: Receives any ``delta.tool_calls`` fragments.

    Returns:
        Text chunks found in the event (zero or one).
    """
    if event.get("error"):
        error_obj = event["error"]
        if isinstance(error_obj, dict):
            message = error_obj.get("message", str(error_obj))
        else:
            message = str(error_obj)
        raise LLMInvalidResponse(f"API returned error: {message}")

    choices = event.get("choices") or []
    if not choices:
        return []
    delta = choices[0].get("delta") or {}
    for fragment in delta.get("tool_calls") or []:
        accumulator.add(fragment)
    content = delta.get("content")
    if content:
        return [TextChunk(content=content)]
    return []


def _error_detail(body: bytes) -> str:
    """Pull the provider's error message out of an error response body."""
    try:
        data = json.loads(body)
    except ValueError:
        return body.decode("utf-8", errors="replace")[:200] or "no response body"
    error_obj = data.get("error") if isinstance(data, dict) else None
    if isinstance(error_obj, dict) and error_obj.get("message"):
        return str(error_obj["message"])
    return str(data)[:200]


def classify_http_error(status_code: int, body: bytes) -> LLMClientError:
    """Map an HTTP error response to the client error hierarchy.

    OpenAI and Gemini both wrap failures as ``{"error": {"message": ...}}``.
    """
    detail = _error_detail(body)
    if status_code == 429:
        return LLMRateLimit(f"Rate limit exceeded: {detail}")
    if status_code >= 500:
        return LLMServerError(f"Server error {status_code}: {detail}")
    return LLMClientError(f"HTTP error {status_code}: {detail}")
