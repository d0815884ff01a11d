"""
Embedded Turn Runner — One Inbound Message In, Replies Out.

``run_embedded_agent`` is the single entry point channel adapters call.  A
turn goes through these steps, in this order:

1. Resolve which agent owns the session and where its files live.
2. Materialise ``models.json`` into the agent directory, then resolve the
   requested model against it.  An unknown model is a configuration error
   and is raised, but only after the catalog has been written.
3. Open (or create) the session transcript and load its history.
4. Window the history for DMs and repair provider turn-ordering quirks.
   Both act on the in-memory copy only.
5. Persist the user prompt.  This happens before any model call, so the
   prompt survives timeouts and backend failures.
6. Run the model/tool loop under the turn timeout.  Every assistant message
   is persisted after the user prompt as it arrives.
7. Turn the outcome into payloads.  Timeouts and backend failures become a
   single error payload; no assistant entry is invented for them.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import anthropic
import structlog

from switchboard.api import ModelRegistry, create_backend, get_backend_class
from switchboard.api.base import ModelBackend
from switchboard.config import RunnerSettings, SwitchboardConfig
from switchboard.harness.loop import AgenticLoop
from switchboard.harness.retry import RetryConfig, error_status_code
from switchboard.models_config import ensure_models_json
from switchboard.prompt import build_agent_system_prompt
from switchboard.quirks import apply_google_turn_ordering_fix
from switchboard.sandbox import ElevationPolicy, SandboxContext, build_embedded_sandbox_info
from switchboard.sessions.history import get_dm_history_limit, limit_history_turns
from switchboard.sessions.keys import resolve_session_agent_ids
from switchboard.sessions.transcript import TranscriptStore
from switchboard.tools.executor import ToolExecutor
from switchboard.tools.registry import ToolDefinition, filter_tools_by_policy, split_sdk_tools
from switchboard.types import (
    EmbeddedAgentMeta,
    EmbeddedRunError,
    EmbeddedRunMeta,
    EmbeddedRunPayload,
    EmbeddedRunResult,
)

logger = structlog.get_logger(__name__)

TIMEOUT_ERROR_TEXT = (
    "Request timed out before a response was generated. "
    "Please try again, or increase the agent timeout."
)
RATE_LIMIT_ERROR_TEXT = "API rate limit reached. Please try again later."


def create_system_prompt_override(text: str) -> Callable[[str], str]:
    """
    Return a prompt hook that replaces the default system prompt with ``text``.

    The override is trimmed; whitespace-only text yields an empty prompt.
    """
    trimmed = (text or "").strip()

    def _override(_default_prompt: str = "") -> str:
        return trimmed

    return _override


def format_error_text(error: BaseException) -> str:
    """User-facing text for a failed model invocation."""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return TIMEOUT_ERROR_TEXT
    status = getattr(error, "status_code", None) or error_status_code(error)
    if isinstance(error, anthropic.RateLimitError) or status == 429:
        return RATE_LIMIT_ERROR_TEXT
    message = str(error).strip() or type(error).__name__
    return f"LLM request failed: {message}"


def _user_message(prompt: str) -> dict[str, Any]:
    return {
        "role": "user",
        "content": [{"type": "text", "text": prompt}],
        "timestamp": int(time.time() * 1000),
    }


async def run_embedded_agent(
    *,
    session_id: str,
    session_key: Optional[str] = None,
    session_file: Path | str,
    workspace_dir: Path | str,
    config: Optional[SwitchboardConfig] = None,
    prompt: str,
    provider: str,
    model: str,
    timeout_ms: Optional[int] = None,
    agent_dir: Optional[Path | str] = None,
    tools: Optional[Sequence[ToolDefinition]] = None,
    sandbox: Optional[SandboxContext] = None,
    elevated: Optional[ElevationPolicy] = None,
    system_prompt: Optional[str] = None,
    extra_system_prompt: Optional[str] = None,
    settings: Optional[RunnerSettings] = None,
    on_assistant_text: Optional[Callable[[str], Any]] = None,
) -> EmbeddedRunResult:
    """
    Run one conversational turn and return its payloads and metadata.

    Raises ``UnknownModelError`` / ``AgentConfigError`` for configuration
    problems and ``UnsupportedModelApiError`` when no backend serves the
    model's API.  Model invocation failures never raise; they come back as an
    error payload.
    """
    started = time.monotonic()
    config = config or SwitchboardConfig()
    settings = settings or RunnerSettings()
    timeout_ms = timeout_ms if timeout_ms is not None else settings.timeout_ms

    agent_ids = resolve_session_agent_ids(session_key, config=config)
    agent_id = agent_ids.session_agent_id
    resolved_agent_dir = Path(agent_dir) if agent_dir else settings.agent_dir_for(agent_id)

    ensure_models_json(config, resolved_agent_dir)
    resolved_model = ModelRegistry.from_agent_dir(resolved_agent_dir).resolve(provider, model)
    get_backend_class(resolved_model.api)

    log = logger.bind(session_id=session_id, agent_id=agent_id, provider=provider, model=model)
    log.info("runner.turn_starting", session_key=session_key, timeout_ms=timeout_ms)

    workspace = str(Path(workspace_dir).expanduser())
    transcript = TranscriptStore.open(Path(session_file), cwd=workspace)
    history = transcript.build_session_messages()
    history = limit_history_turns(history, get_dm_history_limit(session_key, config))
    history = apply_google_turn_ordering_fix(
        messages=history,
        model_api=resolved_model.api,
        session_manager=transcript,
        session_id=session_id,
    ).messages

    sandbox_info = build_embedded_sandbox_info(sandbox, elevated)
    sandbox_enabled = bool(sandbox is not None and sandbox.enabled)
    available_tools = list(tools or [])
    if sandbox_enabled:
        available_tools = filter_tools_by_policy(
            available_tools, sandbox.tools.allow, sandbox.tools.deny
        )
    routed = split_sdk_tools(available_tools, sandbox_enabled)

    default_prompt = build_agent_system_prompt(
        agent_id=agent_id,
        workspace_dir=workspace,
        tool_names=[tool.name for tool in routed.custom_tools],
        provider=provider,
        model=model,
        sandbox_info=sandbox_info,
        extra_system_prompt=extra_system_prompt,
    )
    agent_entry = config.agent(agent_id)
    override_text = system_prompt
    if override_text is None and agent_entry is not None:
        override_text = agent_entry.system_prompt
    if override_text is not None:
        effective_prompt = create_system_prompt_override(override_text)(default_prompt)
    else:
        effective_prompt = default_prompt

    user_message = _user_message(prompt)
    transcript.append_message(user_message)

    agent_meta = EmbeddedAgentMeta(session_id=session_id, provider=provider, model=model)
    backend: Optional[ModelBackend] = None

    try:
        backend = create_backend(
            resolved_model,
            max_tokens=settings.max_tokens,
            request_timeout_seconds=settings.request_timeout_seconds,
            retry_config=RetryConfig.from_settings(settings),
        )
        loop = AgenticLoop(
            backend=backend,
            executor=ToolExecutor(routed.custom_tools, default_timeout=settings.tool_timeout_seconds),
            transcript=transcript,
            max_iterations=settings.max_tool_iterations,
        )
        loop_result = await asyncio.wait_for(
            loop.run(effective_prompt, [*history, user_message], on_assistant_text),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError as exc:
        log.warning("runner.turn_timed_out", timeout_ms=timeout_ms)
        return _failure_result(exc, aborted=True, agent_meta=agent_meta, started=started)
    except Exception as exc:
        log.error(
            "runner.model_failed",
            error_type=type(exc).__name__,
            error=str(exc)[:500],
        )
        return _failure_result(exc, aborted=False, agent_meta=agent_meta, started=started)
    finally:
        if backend is not None:
            try:
                await backend.aclose()
            except Exception as close_error:
                log.debug("runner.backend_close_failed", error=str(close_error))

    duration_ms = int((time.monotonic() - started) * 1000)
    agent_meta.usage = loop_result.usage.to_dict()
    log.info(
        "runner.turn_complete",
        duration_ms=duration_ms,
        iterations=loop_result.iterations,
        tool_calls=len(loop_result.tool_calls),
        payloads=len(loop_result.texts),
    )
    return EmbeddedRunResult(
        payloads=[EmbeddedRunPayload(text=text) for text in loop_result.texts],
        meta=EmbeddedRunMeta(duration_ms=duration_ms, agent_meta=agent_meta),
    )


def _failure_result(
    failure: BaseException,
    *,
    aborted: bool,
    agent_meta: EmbeddedAgentMeta,
    started: float,
) -> EmbeddedRunResult:
    """A single error payload; ``aborted`` marks a turn cut off by its timeout."""
    return EmbeddedRunResult(
        payloads=[EmbeddedRunPayload(text=format_error_text(failure), is_error=True)],
        meta=EmbeddedRunMeta(
            duration_ms=int((time.monotonic() - started) * 1000),
            agent_meta=agent_meta,
            aborted=aborted,
            error=EmbeddedRunError(
                kind="timeout" if aborted else "model_error",
                message=str(failure) or type(failure).__name__,
            ),
        ),
    )


__all__ = [
    "create_system_prompt_override",
    "format_error_text",
    "run_embedded_agent",
]
