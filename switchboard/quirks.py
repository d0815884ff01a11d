"""
Model Quirks — Provider-Specific Turn Repairs.

Google's Gemini APIs reject a conversation whose first turn is not a user
turn.  Transcripts can legitimately start with an assistant entry (history
windows, imported sessions, tool-first automations), so before every Google
call we prepend a fixed bootstrap user message to the *in-memory* copy sent
to the model.

The durable transcript is never rewritten.  The first repair for a session
appends a ``google-turn-ordering-bootstrap`` custom marker and emits one
operational warning; the marker is what makes later repairs silent, and it
survives process restarts because it lives in the transcript itself.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

import structlog

logger = structlog.get_logger(__name__)

GOOGLE_TURN_ORDERING_CUSTOM_TYPE = "google-turn-ordering-bootstrap"
GOOGLE_TURN_ORDER_BOOTSTRAP_TEXT = "(session bootstrap)"

GOOGLE_MODEL_APIS = frozenset({
    "google-generative-ai",
    "google-gemini-cli",
    "google-antigravity",
})


class MarkerStore(Protocol):
    def has_custom_entry(self, custom_type: str) -> bool: ...

    def append_custom_entry(self, custom_type: str, data: Any = None) -> str: ...


@dataclass
class TurnOrderingFixResult:
    messages: list[dict[str, Any]]
    did_prepend: bool = False


def is_google_model_api(api: Optional[str]) -> bool:
    return api in GOOGLE_MODEL_APIS


def apply_google_turn_ordering_fix(
    *,
    messages: list[dict[str, Any]],
    model_api: Optional[str],
    session_manager: MarkerStore,
    session_id: str,
    warn: Optional[Callable[[str], Any]] = None,
) -> TurnOrderingFixResult:
    """
    Ensure a Google-bound history opens with a user turn.

    Non-Google APIs, empty histories, and histories that already start with a
    user message come back untouched (same list object).
    """
    if not is_google_model_api(model_api):
        return TurnOrderingFixResult(messages=messages)
    if not messages or messages[0].get("role") == "user":
        return TurnOrderingFixResult(messages=messages)

    bootstrap = {
        "role": "user",
        "content": [{"type": "text", "text": GOOGLE_TURN_ORDER_BOOTSTRAP_TEXT}],
        "timestamp": int(time.time() * 1000),
    }
    repaired = [bootstrap, *messages]

    if not session_manager.has_custom_entry(GOOGLE_TURN_ORDERING_CUSTOM_TYPE):
        session_manager.append_custom_entry(
            GOOGLE_TURN_ORDERING_CUSTOM_TYPE,
            {"timestamp": int(time.time() * 1000), "sessionId": session_id},
        )
        notice = (
            "google turn ordering fixup: prepended user bootstrap "
            f"(sessionId={session_id})"
        )
        if warn is not None:
            warn(notice)
        else:
            logger.warning(
                "quirks.google_turn_ordering_fixup",
                session_id=session_id,
                model_api=model_api,
            )

    return TurnOrderingFixResult(messages=repaired, did_prepend=True)
