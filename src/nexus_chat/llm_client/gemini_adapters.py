"""Adapters between chat history and the Gemini ``generateContent`` wire format.

Gemini calls the assistant role ``model``, carries tool calls as
``functionCall`` parts and expects tool results back as ``functionResponse``
parts of a user turn, matched by function name rather than by call id. Tool
schemas are declared under ``functionDeclarations`` in Gemini's OpenAPI
subset, so the JSON schemas built from the argument models are rewritten:
``$ref`` and single-entry ``allOf`` are inlined, optional unions become
``nullable`` and unsupported keywords are dropped.
"""

import uuid
from typing import Any

from nexus_chat.llm_client.types import (
    ChatMessage,
    LLMInvalidResponse,
    TextChunk,
    ToolCall,
)
from nexus_chat.telemetry import get_logger

log = get_logger(__name__)

_SCHEMA_KEYS = {
    "type",
    "format",
    "description",
    "nullable",
    "enum",
    "properties",
    "required",
    "items",
    "minItems",
    "maxItems",
    "minimum",
    "maximum",
}


def format_contents_for_gemini(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    """Convert chat history into Gemini ``contents``.

    Assistant messages without text or tool calls are skipped; Gemini rejects
    a content entry with no parts.

    Args:
        messages: Conversation history, oldest first.

    Returns:
        List of content dicts ready for the request payload.
    """
    contents: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == "user":
            contents.append({"role": "user", "parts": [{"text": msg.content}]})
        elif msg.role == "assistant":
            parts: list[dict[str, Any]] = []
            if msg.content:
                parts.append({"text": msg.content})
            for tc in msg.tool_calls or []:
                parts.append({"functionCall": {"name": tc.name, "args": tc.arguments}})
            if parts:
                contents.append({"role": "model", "parts": parts})
        elif msg.role == "tool" and msg.tool_results:
            contents.append(
                {
                    "role": "user",
                    "parts": [
                        {
                            "functionResponse": {
                                "name": result.name,
                                "response": (
                                    {"result": result.result}
                                    if result.success
                                    else {"error": result.error}
                                ),
                            }
                        }
                        for result in msg.tool_results
                    ],
                }
            )
    return contents


def to_gemini_schema(schema: dict[str, Any], defs: dict[str, Any] | None = None) -> dict[str, Any]:
    """Rewrite a JSON schema into the subset Gemini accepts.

    Args:
        schema: JSON schema node.
        defs: ``$defs`` of the root schema, used to inline references.

    Returns:
        Schema with references inlined and unsupported keywords removed.
    """
    if defs is None:
        defs = schema.get("$defs", {})

    if "$ref" in schema:
        target = defs.get(schema["$ref"].rsplit("/", 1)[-1], {})
        merged = {**target, **{k: v for k, v in schema.items() if k != "$ref"}}
        return to_gemini_schema(merged, defs)

    all_of = schema.get("allOf")
    if all_of and len(all_of) == 1:
        merged = {**all_of[0], **{k: v for k, v in schema.items() if k != "allOf"}}
        return to_gemini_schema(merged, defs)

    any_of = schema.get("anyOf")
    if any_of:
        options = [option for option in any_of if option.get("type") != "null"]
        rest = {k: v for k, v in schema.items() if k != "anyOf"}
        if len(options) == 1:
            collapsed = to_gemini_schema({**options[0], **rest}, defs)
            if len(options) < len(any_of):
                collapsed["nullable"] = True
            return collapsed

    converted: dict[str, Any] = {}
    for key, value in schema.items():
        if key not in _SCHEMA_KEYS:
            continue
        if key == "type":
            converted["type"] = value.upper()
        elif key == "properties":
            converted["properties"] = {
                name: to_gemini_schema(prop, defs) for name, prop in value.items()
            }
        elif key == "items":
            converted["items"] = to_gemini_schema(value, defs)
        else:
            converted[key] = value
    return converted


def format_tools_for_gemini(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert OpenAI-style tool definitions into one Gemini tool entry."""
    declarations = []
    for tool in tools:
        function = tool.get("function", tool)
        declaration: dict[str, Any] = {
            "name": function["name"],
            "description": function.get("description", ""),
        }
        parameters = to_gemini_schema(function.get("parameters") or {})
        if parameters.get("properties"):
            declaration["parameters"] = parameters
        declarations.append(declaration)
    return [{"functionDeclarations": declarations}]


def build_generate_content_request(
    messages: list[ChatMessage],
    tools: list[dict[str, Any]] | None = None,
    system_prompt: str | None = None,
) -> dict[str, Any]:
    """Build a ``streamGenerateContent`` payload. The model goes in the URL."""
    payload: dict[str, Any] = {"contents": format_contents_for_gemini(messages)}
    if system_prompt:
        payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
    if tools:
        payload["tools"] = format_tools_for_gemini(tools)
        payload["toolConfig"] = {"functionCallingConfig": {"mode": "AUTO"}}
    return payload


def parse_gemini_event(event: dict[str, Any]) -> tuple[list[TextChunk], list[ToolCall]]:
    """Extract text and complete function calls from one stream event.

    Gemini sends each function call whole, so no accumulation is needed. Calls
    without a provider id get a generated one.

    Returns:
        Tuple of (text chunks, tool calls) found in the event.

    Raises:
        LLMInvalidResponse: If the event is an error or the prompt was blocked.
    """
    if event.get("error"):
        error_obj = event["error"]
        if isinstance(error_obj, dict):
            message = error_obj.get("message", str(error_obj))
        else:
            message = str(error_obj)
        raise LLMInvalidResponse(f"API returned error: {message}")

    block_reason = (event.get("promptFeedback") or {}).get("blockReason")
    if block_reason:
        raise LLMInvalidResponse(f"Prompt blocked by the provider: {block_reason}")

    texts: list[TextChunk] = []
    calls: list[ToolCall] = []
    candidates = event.get("candidates") or []
    if not candidates:
        return texts, calls
    for part in (candidates[0].get("content") or {}).get("parts") or []:
        if part.get("thought"):
            continue
        if part.get("text"):
            texts.append(TextChunk(content=part["text"]))
        function_call = part.get("functionCall")
        if function_call:
            if not function_call.get("name"):
                log.warning("tool_call_fragment_without_name", provider="gemini")
                continue
            arguments = function_call.get("args")
            calls.append(
                ToolCall(
                    id=function_call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
                    name=function_call["name"],
                    arguments=arguments if isinstance(arguments, dict) else {},
                )
            )
    return texts, calls
