"""
Core data types shared across Switchboard subsystems.

Transcript messages themselves stay plain dicts (``{"role": ..., "content":
[...]}``) because that is what the JSONL transcript and the model backends
exchange.  The containers here describe what a turn hands back to the
channel adapter that asked for it.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Optional


@dataclass
class EmbeddedRunPayload:
    """One reply the channel adapter should deliver."""

    text: str
    is_error: bool = False


@dataclass
class EmbeddedAgentMeta:
    session_id: str
    provider: str
    model: str
    usage: Optional[dict[str, int]] = None


@dataclass
class EmbeddedRunError:
    kind: Literal["timeout", "model_error"]
    message: str


@dataclass
class EmbeddedRunMeta:
    duration_ms: int
    agent_meta: EmbeddedAgentMeta
    # True when the turn was cut short by its timeout.
    aborted: bool = False
    error: Optional[EmbeddedRunError] = None


@dataclass
class EmbeddedRunResult:
    """Outcome of ``run_embedded_agent()``: payloads plus run metadata."""

    payloads: list[EmbeddedRunPayload] = field(default_factory=list)
    meta: Optional[EmbeddedRunMeta] = None

    @property
    def is_error(self) -> bool:
        return any(p.is_error for p in self.payloads)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
