"""Gemini streaming client.

Streams ``models/{model}:streamGenerateContent?alt=sse`` over httpx. Each
server-sent event is a partial ``GenerateContentResponse``; text parts are
yielded as they arrive and function calls are collected and emitted after the
text, the same chunk order the chat-completions client produces.
"""

import time
from typing import AsyncIterator

import httpx

from nexus_chat.llm_client.adapters import SSE_DONE, classify_http_error, parse_sse_line
from nexus_chat.llm_client.cancellation import CancellationToken
from nexus_chat.llm_client.gemini_adapters import (
    build_generate_content_request,
    parse_gemini_event,
)
from nexus_chat.llm_client.types import (
    DoneChunk,
    ErrorChunk,
    LLMClientError,
    LLMConnectionError,
    LLMTimeout,
    StreamChunk,
    StreamRequest,
    ToolCall,
    ToolCallChunk,
)
from nexus_chat.telemetry import (
    MODEL_CALL_COMPLETED,
    MODEL_CALL_ERROR,
    MODEL_CALL_STARTED,
    get_logger,
)

log = get_logger(__name__)


class GeminiStreamClient:
    """Streaming client for the Gemini API.

    Attributes:
        name: Provider name used in logs and the provider registry.
        base_url: API base URL including the version segment.
        model: Model identifier placed in the request path.
        timeout_seconds: Read timeout while waiting for the next event.
    """

    name = "gemini"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        model: str = "gemini-2.5-flash",
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:streamGenerateContent"

    async def stream(
        self, request: StreamRequest, token: CancellationToken
    ) -> AsyncIterator[StreamChunk]:
        """Stream a model reply.

        Args:
            request: History, tool catalog and system prompt.
            token: Cancellation token; reading stops once it is set.

        Yields:
            Text chunks as they arrive, then one tool_call chunk per function
            call, then ``done``. A failure yields a single ``error`` chunk.
        """
        payload = build_generate_content_request(
            messages=request.messages,
            tools=request.tools,
            system_prompt=request.system_prompt,
        )
        timeout_config = httpx.Timeout(
            connect=10.0, read=self.timeout_seconds, write=10.0, pool=10.0
        )
        headers = {"x-goog-api-key": self.api_key}
        tool_calls: list[ToolCall] = []
        start_time = time.time()
        text_chunks = 0

        log.info(
            MODEL_CALL_STARTED,
            provider=self.name,
            model_id=self.model,
            endpoint=self.endpoint,
            message_count=len(payload["contents"]),
            tools_count=len(request.tools),
        )

        error: LLMClientError | None = None
        try:
            async with httpx.AsyncClient(
                timeout=timeout_config, transport=self._transport
            ) as client:
                async with client.stream(
                    "POST",
                    self.endpoint,
                    params={"alt": "sse"},
                    json=payload,
                    headers=headers,
                ) as response:
                    if response.status_code >= 400:
                        body = await response.aread()
                        error = classify_http_error(response.status_code, body)
                    else:
                        async for line in response.aiter_lines():
                            if token.cancelled:
                                log.info("model_stream_cancelled", provider=self.name)
                                return
                            event = parse_sse_line(line)
                            if event is None:
                                continue
                            if event == SSE_DONE:
                                break
                            texts, calls = parse_gemini_event(event)
                            tool_calls.extend(calls)
                            for chunk in texts:
                                text_chunks += 1
                                yield chunk
        except httpx.TimeoutException:
            error = LLMTimeout(
                f"Request to {self.endpoint} timed out after {self.timeout_seconds}s"
            )
        except httpx.ConnectError as e:
            error = LLMConnectionError(f"Failed to connect to {self.endpoint}: {e}")
        except httpx.HTTPError as e:
            error = LLMConnectionError(f"Request error: {e}")
        except LLMClientError as e:
            error = e

        duration_ms = int((time.time() - start_time) * 1000)
        if error is not None:
            log.error(
                MODEL_CALL_ERROR,
                provider=self.name,
                model_id=self.model,
                error_type=type(error).__name__,
                error=str(error),
                latency_ms=duration_ms,
            )
            yield ErrorChunk(error=str(error))
            return

        for tool_call in tool_calls:
            yield ToolCallChunk(tool_call=tool_call)

        log.info(
            MODEL_CALL_COMPLETED,
            provider=self.name,
            model_id=self.model,
            latency_ms=duration_ms,
            text_chunks=text_chunks,
            tool_calls=len(tool_calls),
        )
        yield DoneChunk()
