"""Tool execution layer with validation and telemetry.

This module provides the ToolExecutionLayer class that handles tool invocation:
lookup, argument validation against the tool's schema, execution, and
telemetry. Failures come back as ``ToolResult(success=False)`` so the model can
react to them in its next round.
"""

import asyncio
import inspect
import time
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from nexus_chat.telemetry import (
    TOOL_ARGUMENTS_INVALID,
    TOOL_CALL_COMPLETED,
    TOOL_CALL_FAILED,
    TOOL_CALL_STARTED,
    TraceContext,
    get_logger,
)
from nexus_chat.tools.registry import ToolRegistry
from nexus_chat.tools.types import ToolContext, ToolResult

log = get_logger(__name__)


class ToolExecutionError(Exception):
    """Raised when a tool cannot complete for a domain reason.

    The execution layer turns it into a failed ToolResult; it never escapes
    ``execute_tool``.
    """

    pass


class UnknownToolError(ToolExecutionError):
    """Raised when the model asks for a tool that is not registered."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class InvalidToolArgumentsError(ToolExecutionError):
    """Raised when tool arguments fail schema validation."""

    def __init__(self, tool_name: str, errors: list[str]) -> None:
        super().__init__(f"Invalid arguments for {tool_name}: {'; '.join(errors)}")
        self.tool_name = tool_name
        self.errors = errors


def _summarize_validation_error(exc: ValidationError) -> list[str]:
    summary = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "arguments"
        summary.append(f"{location}: {error['msg']}")
    return summary


class ToolExecutionLayer:
    """Handles tool invocation with validation and telemetry."""

    def __init__(self, registry: ToolRegistry) -> None:
        """Initialize tool execution layer.

        Args:
            registry: Tool registry containing registered tools.
        """
        self.registry = registry
        log.debug("tool_execution_layer_initialized")

    def validate(
        self, tool_name: str, arguments: dict[str, Any]
    ) -> tuple[BaseModel, Callable[..., Any]]:
        """Resolve a tool and validate its arguments.

        Args:
            tool_name: Name of the tool.
            arguments: Raw arguments from the model.

        Returns:
            Tuple of (validated argument model, executor).

        Raises:
            UnknownToolError: If the tool is not registered.
            InvalidToolArgumentsError: If the arguments do not match the schema.
        """
        registered = self.registry.get_tool(tool_name)
        if registered is None:
            raise UnknownToolError(tool_name)
        _, args_model, executor = registered
        try:
            return args_model.model_validate(arguments or {}), executor
        except ValidationError as e:
            raise InvalidToolArgumentsError(tool_name, _summarize_validation_error(e)) from e

    async def execute_tool(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        context: ToolContext,
        trace_ctx: TraceContext | None = None,
        tool_call_id: str = "",
    ) -> ToolResult:
        """Execute a tool with validation and observability.

        Args:
            tool_name: Name of the tool to execute.
            arguments: Raw tool arguments from the model.
            context: User id and CRM data the tool runs against.
            trace_ctx: Trace context for telemetry. A new trace is started if None.
            tool_call_id: Id of the originating tool call, echoed in the result.

        Returns:
            ToolResult with execution outcome.
        """
        trace_ctx = trace_ctx or TraceContext.new_trace()

        # 1. Resolve and validate
        try:
            validated, executor = self.validate(tool_name, arguments)
        except InvalidToolArgumentsError as e:
            log.warning(
                TOOL_ARGUMENTS_INVALID,
                tool_name=tool_name,
                errors=e.errors,
                trace_id=trace_ctx.trace_id,
            )
            return ToolResult(
                tool_call_id=tool_call_id, name=tool_name, success=False, error=str(e)
            )
        except UnknownToolError as e:
            log.warning(
                TOOL_CALL_FAILED,
                tool_name=tool_name,
                error=str(e),
                available_tools=self.registry.list_tool_names(),
                trace_id=trace_ctx.trace_id,
            )
            return ToolResult(
                tool_call_id=tool_call_id, name=tool_name, success=False, error=str(e)
            )

        # 2. Emit telemetry (start)
        _, span_id = trace_ctx.new_span()
        log.info(
            TOOL_CALL_STARTED,
            tool_name=tool_name,
            argument_names=sorted(validated.model_fields_set),
            trace_id=trace_ctx.trace_id,
            span_id=span_id,
        )

        # 3. Execute
        start_time = time.time()
        try:
            if inspect.iscoroutinefunction(executor):
                result = await executor(validated, context)
            else:
                # Sync executor - run in thread pool to avoid blocking
                loop = asyncio.get_running_loop()
                result = await loop.run_in_executor(None, lambda: executor(validated, context))
        except ToolExecutionError as e:
            latency_ms = (time.time() - start_time) * 1000
            log.warning(
                TOOL_CALL_FAILED,
                tool_name=tool_name,
                error=str(e),
                latency_ms=latency_ms,
                trace_id=trace_ctx.trace_id,
                span_id=span_id,
            )
            return ToolResult(
                tool_call_id=tool_call_id,
                name=tool_name,
                success=False,
                error=str(e),
                latency_ms=latency_ms,
            )
        except Exception as e:
            latency_ms = (time.time() - start_time) * 1000
            log.error(
                TOOL_CALL_FAILED,
                tool_name=tool_name,
                error=str(e),
                latency_ms=latency_ms,
                trace_id=trace_ctx.trace_id,
                span_id=span_id,
                exc_info=True,
            )
            return ToolResult(
                tool_call_id=tool_call_id,
                name=tool_name,
                success=False,
                error=str(e) or type(e).__name__,
                latency_ms=latency_ms,
            )

        latency_ms = (time.time() - start_time) * 1000

        # 4. Emit telemetry (complete)
        log.info(
            TOOL_CALL_COMPLETED,
            tool_name=tool_name,
            success=True,
            latency_ms=latency_ms,
            trace_id=trace_ctx.trace_id,
            span_id=span_id,
        )
        return ToolResult(
            tool_call_id=tool_call_id,
            name=tool_name,
            success=True,
            result=result,
            latency_ms=latency_ms,
        )
