"""
The Agentic Loop — One Turn of Model Calls and Tool Calls.

    while True:
        assistant = backend.complete(system_prompt, messages, tools)
        transcript.append(assistant)
        if not assistant.tool_calls:
            break
        for call in assistant.tool_calls:
            transcript.append(execute(call))

Every assistant message and tool result is appended to the transcript the
moment it exists, so a crash or timeout mid-turn leaves a transcript that
reflects exactly what happened up to that point.  Tool failures are fed back
to the model as error results; backend failures propagate to the runner.
"""

from __future__ import annotations

import inspect
import time
from typing import Any, Callable, Optional, Protocol

import structlog

from switchboard.api.base import ModelBackend, Usage, message_text, message_tool_calls
from switchboard.tools.executor import ToolExecutor

logger = structlog.get_logger(__name__)


class MessageSink(Protocol):
    def append_message(self, message: dict[str, Any]) -> str: ...


class AgenticLoop:
    """Drives a backend and a tool executor until the model stops calling tools."""

    def __init__(
        self,
        backend: ModelBackend,
        executor: ToolExecutor,
        transcript: MessageSink,
        max_iterations: int = 50,
    ):
        self._backend = backend
        self._executor = executor
        self._transcript = transcript
        self._max_iterations = max(1, max_iterations)

        self._total_runs = 0
        self._total_iterations = 0
        self._total_tool_calls = 0

    async def run(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        on_assistant_text: Optional[Callable[[str], Any]] = None,
    ) -> "LoopResult":
        """
        Run the loop to completion.

        ``messages`` must already end with the user prompt; it is copied, not
        mutated.  ``on_assistant_text`` receives each non-empty assistant text
        as soon as it arrives.
        """
        self._total_runs += 1
        start_time = time.monotonic()
        iteration = 0
        texts: list[str] = []
        all_tool_calls: list[dict[str, Any]] = []
        usage = Usage()
        truncated = False
        tools = self._executor.tools or None

        loop_messages = list(messages)

        logger.info(
            "agentic_loop.starting",
            message_count=len(loop_messages),
            tool_count=len(tools) if tools else 0,
        )

        while iteration < self._max_iterations:
            iteration += 1
            self._total_iterations += 1

            assistant = await self._backend.complete(system_prompt, loop_messages, tools)
            await self._record_assistant(assistant, loop_messages, texts, usage, on_assistant_text)

            tool_calls = message_tool_calls(assistant)
            if not tool_calls:
                logger.info(
                    "agentic_loop.complete",
                    iterations=iteration,
                    tool_calls=len(all_tool_calls),
                    stop_reason=assistant.get("stopReason"),
                )
                break

            for call in tool_calls:
                self._total_tool_calls += 1
                all_tool_calls.append(call)
                result = await self._executor.execute(
                    tool_call_id=call.get("id", ""),
                    tool_name=call.get("name", ""),
                    arguments=call.get("arguments") or {},
                )
                result_message = result.to_message()
                self._transcript.append_message(result_message)
                loop_messages.append(result_message)
                logger.debug(
                    "agentic_loop.tool_executed",
                    tool=call.get("name"),
                    success=result.success,
                    iteration=iteration,
                )
        else:
            # Out of iterations: one toolless call so the model can report progress.
            truncated = True
            logger.warning(
                "agentic_loop.max_iterations",
                max=self._max_iterations,
                tool_calls=len(all_tool_calls),
            )
            nudge = (
                f"\n\n[SYSTEM: You have reached the tool iteration limit after "
                f"{len(all_tool_calls)} tool calls. Briefly summarize what you "
                f"have done so far.]"
            )
            assistant = await self._backend.complete(system_prompt + nudge, loop_messages, None)
            await self._record_assistant(assistant, loop_messages, texts, usage, on_assistant_text)

        return LoopResult(
            texts=texts,
            tool_calls=all_tool_calls,
            iterations=iteration,
            elapsed_seconds=time.monotonic() - start_time,
            messages=loop_messages,
            usage=usage,
            was_truncated=truncated,
        )

    async def _record_assistant(
        self,
        assistant: dict[str, Any],
        loop_messages: list[dict[str, Any]],
        texts: list[str],
        usage: Usage,
        on_assistant_text: Optional[Callable[[str], Any]],
    ) -> None:
        self._transcript.append_message(assistant)
        loop_messages.append(assistant)
        usage.add(Usage.from_message(assistant))
        text = message_text(assistant).strip()
        if text:
            texts.append(text)
            await self._invoke_callback("on_assistant_text", on_assistant_text, text)

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_runs": self._total_runs,
            "total_iterations": self._total_iterations,
            "total_tool_calls": self._total_tool_calls,
        }

    @staticmethod
    async def _invoke_callback(name: str, callback: Optional[Any], *args: Any) -> None:
        """Run callback hooks without letting callback failures crash the loop."""
        if callback is None:
            return
        try:
            outcome = callback(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as callback_error:
            logger.warning(
                "agentic_loop.callback_failed",
                callback=name,
                error=str(callback_error),
            )


class LoopResult:
    """Everything one loop run produced."""

    def __init__(
        self,
        texts: Optional[list[str]] = None,
        tool_calls: Optional[list[dict[str, Any]]] = None,
        iterations: int = 0,
        elapsed_seconds: float = 0.0,
        messages: Optional[list[dict[str, Any]]] = None,
        usage: Optional[Usage] = None,
        was_truncated: bool = False,
    ):
        self.texts = texts or []
        self.tool_calls = tool_calls or []
        self.iterations = iterations
        self.elapsed_seconds = elapsed_seconds
        self.messages = messages or []
        self.usage = usage or Usage()
        self.was_truncated = was_truncated

    @property
    def text(self) -> str:
        return "\n\n".join(self.texts)

    @property
    def used_tools(self) -> bool:
        return len(self.tool_calls) > 0
