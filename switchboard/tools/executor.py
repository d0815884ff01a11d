"""
Tool Executor — Runs the Caller's Tool Handlers.

When the model asks for a tool, this module looks the tool up among the
turn's custom tools, runs its handler under a timeout, and turns the outcome into
a ``toolResult`` transcript message.  Blocking handlers run on a daemon thread
so the event loop keeps turning while they work.  Handler failures never
escape: the model sees them as error results and can decide what to do next.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import threading
import time
from typing import Any, Callable, Optional, Sequence

import structlog

from switchboard.tools.registry import ToolDefinition

logger = structlog.get_logger(__name__)


class ToolExecutionResult:
    """The outcome of one tool call, ready to become a ``toolResult`` message."""

    def __init__(
        self,
        tool_call_id: str,
        tool_name: str,
        success: bool,
        result: Any = None,
        error: Optional[str] = None,
        execution_time: float = 0.0,
    ):
        self.tool_call_id = tool_call_id
        self.tool_name = tool_name
        self.success = success
        self.result = result
        self.error = error
        self.execution_time = execution_time

    def to_message(self) -> dict[str, Any]:
        text = serialize_tool_output(self.result) if self.success else f"Error: {self.error}"
        return {
            "role": "toolResult",
            "toolCallId": self.tool_call_id,
            "toolName": self.tool_name,
            "content": [{"type": "text", "text": text}],
            "isError": not self.success,
            "timestamp": int(time.time() * 1000),
        }


def serialize_tool_output(result: Any) -> str:
    """Serialize handler output for the tool result text."""
    if isinstance(result, str):
        return result
    if isinstance(result, (dict, list, tuple, int, float, bool)) or result is None:
        try:
            return json.dumps(result, ensure_ascii=False, separators=(",", ":"), default=str)
        except (TypeError, ValueError):
            pass
    return str(result)


class ToolExecutor:
    """Dispatches tool calls to the handlers of a fixed set of tools."""

    def __init__(
        self,
        tools: Sequence[ToolDefinition],
        default_timeout: float = 60.0,
        max_concurrent_sync: int = 8,
    ):
        self._tools = {tool.name: tool for tool in tools}
        self._default_timeout = default_timeout
        self._sync_slots = asyncio.Semaphore(max(1, max_concurrent_sync))
        self._total_executions = 0
        self._total_failures = 0

    @property
    def tools(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    async def execute(
        self,
        tool_call_id: str,
        tool_name: str,
        arguments: dict[str, Any],
    ) -> ToolExecutionResult:
        start_time = time.monotonic()
        self._total_executions += 1

        logger.info(
            "tool_executor.executing",
            tool_name=tool_name,
            tool_call_id=tool_call_id,
            argument_keys=list(arguments.keys()),
        )

        tool = self._tools.get(tool_name)
        if tool is None:
            self._total_failures += 1
            return ToolExecutionResult(
                tool_call_id=tool_call_id,
                tool_name=tool_name,
                success=False,
                error=f"Unknown tool: {tool_name}",
            )
        if tool.handler is None:
            self._total_failures += 1
            return ToolExecutionResult(
                tool_call_id=tool_call_id,
                tool_name=tool_name,
                success=False,
                error=f"Tool '{tool_name}' has no handler.",
            )

        timeout = tool.timeout if tool.timeout is not None else self._default_timeout
        try:
            if inspect.iscoroutinefunction(tool.handler):
                outcome = await asyncio.wait_for(tool.handler(**arguments), timeout=timeout)
            else:
                outcome = await self._run_sync_handler(tool.handler, arguments, timeout)
                if inspect.isawaitable(outcome):
                    outcome = await asyncio.wait_for(outcome, timeout=timeout)
        except asyncio.TimeoutError:
            self._total_failures += 1
            logger.warning("tool_executor.timeout", tool_name=tool_name, timeout=timeout)
            return ToolExecutionResult(
                tool_call_id=tool_call_id,
                tool_name=tool_name,
                success=False,
                error=f"Tool '{tool_name}' timed out after {timeout}s",
                execution_time=time.monotonic() - start_time,
            )
        except Exception as exc:
            self._total_failures += 1
            logger.warning(
                "tool_executor.failed",
                tool_name=tool_name,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return ToolExecutionResult(
                tool_call_id=tool_call_id,
                tool_name=tool_name,
                success=False,
                error=f"{type(exc).__name__}: {exc}",
                execution_time=time.monotonic() - start_time,
            )

        elapsed = time.monotonic() - start_time
        logger.debug("tool_executor.complete", tool_name=tool_name, elapsed=round(elapsed, 3))
        return ToolExecutionResult(
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            success=True,
            result=outcome,
            execution_time=elapsed,
        )

    async def _run_sync_handler(
        self,
        handler: Callable[..., Any],
        arguments: dict[str, Any],
        timeout: float,
    ) -> Any:
        """
        Run a blocking handler on its own daemon thread.

        The event loop stays free while the handler works, so the tool
        timeout and any enclosing turn timeout can both fire.  A handler that
        overruns is abandoned, not killed: its thread finishes in the
        background and its result is dropped.
        """
        try:
            await asyncio.wait_for(self._sync_slots.acquire(), timeout=timeout)
        except asyncio.TimeoutError:
            raise RuntimeError(
                "Every sync tool slot is held by a long-running handler."
            ) from None

        loop = asyncio.get_running_loop()
        finished: asyncio.Future = loop.create_future()
        released = threading.Event()

        def _release_slot() -> None:
            if not released.is_set():
                released.set()
                self._sync_slots.release()

        def _deliver(outcome: Any, error: Optional[BaseException]) -> None:
            _release_slot()
            if finished.done():
                return
            if error is not None:
                finished.set_exception(error)
            else:
                finished.set_result(outcome)

        def _invoke() -> None:
            outcome: Any = None
            error: Optional[BaseException] = None
            try:
                outcome = handler(**arguments)
            except Exception as exc:
                error = exc
            try:
                loop.call_soon_threadsafe(_deliver, outcome, error)
            except RuntimeError:
                # Loop already closed; nobody is waiting for this result.
                pass

        try:
            threading.Thread(target=_invoke, name="switchboard-tool", daemon=True).start()
        except Exception:
            _release_slot()
            raise

        try:
            return await asyncio.wait_for(finished, timeout=timeout)
        except asyncio.TimeoutError:
            # The stuck thread may never report back.
            _release_slot()
            raise
        except asyncio.CancelledError:
            _release_slot()
            raise

    @property
    def stats(self) -> dict[str, int]:
        return {
            "total_executions": self._total_executions,
            "total_failures": self._total_failures,
        }
