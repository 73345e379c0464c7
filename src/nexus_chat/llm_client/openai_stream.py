"""OpenAI-compatible streaming client.

Streams ``/chat/completions`` with ``stream: true`` over httpx and converts the
server-sent events into stream chunks. Transport and HTTP failures are reported
as a single ``error`` chunk; this client never raises into the orchestrator.
"""

import time
from typing import AsyncIterator

import httpx

from nexus_chat.llm_client.adapters import (
    SSE_DONE,
    ToolCallAccumulator,
    build_chat_completions_request,
    classify_http_error,
    parse_sse_line,
    text_chunks_from_event,
)
from nexus_chat.llm_client.cancellation import CancellationToken
from nexus_chat.llm_client.types import (
    DoneChunk,
    ErrorChunk,
    LLMClientError,
    LLMConnectionError,
    LLMTimeout,
    StreamChunk,
    StreamRequest,
    ToolCallChunk,
)
from nexus_chat.telemetry import (
    MODEL_CALL_COMPLETED,
    MODEL_CALL_ERROR,
    MODEL_CALL_STARTED,
    get_logger,
)

log = get_logger(__name__)


class OpenAIStreamClient:
    """Streaming client for OpenAI-compatible chat-completions endpoints.

    Attributes:
        name: Provider name used in logs and the provider registry.
        base_url: API base URL (e.g. "https://api.openai.com/v1").
        model: Model identifier sent with every request.
        timeout_seconds: Read timeout while waiting for the next event.
    """

    name = "openai"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4o-mini",
        timeout_seconds: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: Bearer token for the provider.
            base_url: API base URL.
            model: Model identifier.
            timeout_seconds: Read timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    async def stream(
        self, request: StreamRequest, token: CancellationToken
    ) -> AsyncIterator[StreamChunk]:
        """Stream a model reply.

        Args:
            request: History, tool catalog and system prompt.
            token: Cancellation token; reading stops once it is set.

        Yields:
            Text chunks as they arrive, then one tool_call chunk per requested
            tool call, then ``done``. A failure yields a single ``error`` chunk.
        """
        payload = build_chat_completions_request(
            messages=request.messages,
            model=self.model,
            tools=request.tools,
            system_prompt=request.system_prompt,
        )
        timeout_config = httpx.Timeout(
            connect=10.0, read=self.timeout_seconds, write=10.0, pool=10.0
        )
        headers = {"Authorization": f"Bearer {self.api_key}"}
        accumulator = ToolCallAccumulator()
        start_time = time.time()
        text_chunks = 0

        log.info(
            MODEL_CALL_STARTED,
            provider=self.name,
            model_id=self.model,
            endpoint=self.endpoint,
            message_count=len(payload["messages"]),
            tools_count=len(request.tools),
        )

        error: LLMClientError | None = None
        try:
            async with httpx.AsyncClient(
                timeout=timeout_config, transport=self._transport
            ) as client:
                async with client.stream(
                    "POST", self.endpoint, json=payload, headers=headers
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
                            for chunk in text_chunks_from_event(event, accumulator):
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

        tool_calls = accumulator.finish()
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
