"""
Transcript Store — The Durable, Append-Only Record of a Session.

Each session lives in one JSONL file.  The first line is a ``session`` header;
every following line is either a conversational ``message`` entry or a
``custom`` bookkeeping marker:

    {"type": "session", "id": "...", "timestamp": "...", "cwd": "..."}
    {"type": "message", "id": "...", "parentId": "...", "message": {"role": "user", ...}}
    {"type": "custom", "id": "...", "customType": "google-turn-ordering-bootstrap", "data": {...}}

Nothing in this module rewrites or deletes a line.  Appends are written and
flushed one line at a time, so a crash can lose at most the line in flight.
Custom markers are never replayed to a model.

Only uses: pathlib, json, os, uuid, datetime, structlog. No switchboard imports.
"""

from __future__ import annotations

import json
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)

TRANSCRIPT_VERSION = 1


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


def _new_entry_id() -> str:
    return uuid.uuid4().hex[:8]


class TranscriptStore:
    """
    Append-only transcript backed by a JSONL file (or by memory alone).

    Use ``TranscriptStore.open(path)`` for the durable form and
    ``TranscriptStore.in_memory()`` for tests and scratch runs.
    """

    def __init__(
        self,
        path: Optional[Path],
        header: dict[str, Any],
        entries: Optional[list[dict[str, Any]]] = None,
    ) -> None:
        self._path = path
        self._header = header
        self._entries: list[dict[str, Any]] = list(entries or [])

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def open(cls, path: Path | str, *, cwd: Optional[str] = None) -> "TranscriptStore":
        """
        Open the transcript at ``path``, creating it (with a header) if absent.

        Existing entries are loaded in file order.  Lines that are not valid
        JSON objects are skipped with a warning but left on disk untouched.
        """
        path = Path(path)
        header: Optional[dict[str, Any]] = None
        entries: list[dict[str, Any]] = []

        if path.exists():
            skipped = 0
            with path.open("r", encoding="utf-8") as fh:
                for line in fh:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        record = json.loads(line)
                    except json.JSONDecodeError:
                        skipped += 1
                        continue
                    if not isinstance(record, dict):
                        skipped += 1
                        continue
                    if record.get("type") == "session" and header is None:
                        header = record
                        continue
                    entries.append(record)
            if skipped:
                logger.warning(
                    "transcript.malformed_lines_skipped",
                    path=str(path),
                    skipped=skipped,
                )

        store = cls(path, header or cls._make_header(cwd), entries)
        if header is None:
            # New (or empty) file: the header must be the first line.  A file
            # that has entries but lost its header keeps them; the header is
            # appended so every later reader still finds one.
            path.parent.mkdir(parents=True, exist_ok=True)
            created = not path.exists()
            store._write_line(store._header)
            if created:
                cls._best_effort_chmod(path, 0o600)
            logger.info("transcript.created", path=str(path), session_id=store.session_id)
        else:
            logger.debug("transcript.opened", path=str(path), entries=len(entries))
        return store

    @classmethod
    def in_memory(cls, *, cwd: Optional[str] = None) -> "TranscriptStore":
        return cls(None, cls._make_header(cwd))

    @staticmethod
    def _make_header(cwd: Optional[str]) -> dict[str, Any]:
        return {
            "type": "session",
            "version": TRANSCRIPT_VERSION,
            "id": uuid.uuid4().hex,
            "timestamp": _now_iso(),
            "cwd": cwd or os.getcwd(),
        }

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def session_id(self) -> str:
        return str(self._header.get("id", ""))

    @property
    def header(self) -> dict[str, Any]:
        return dict(self._header)

    def get_entries(self) -> list[dict[str, Any]]:
        """All non-header entries in append order (a shallow copy)."""
        return list(self._entries)

    def has_custom_entry(self, custom_type: str) -> bool:
        return any(
            entry.get("type") == "custom" and entry.get("customType") == custom_type
            for entry in self._entries
        )

    def build_session_messages(self) -> list[dict[str, Any]]:
        """The conversational messages to replay to a model, in order."""
        messages: list[dict[str, Any]] = []
        for entry in self._entries:
            if entry.get("type") != "message":
                continue
            message = entry.get("message")
            if isinstance(message, dict) and message.get("role"):
                messages.append(message)
        return messages

    # ------------------------------------------------------------------
    # Append API
    # ------------------------------------------------------------------

    def append_message(self, message: dict[str, Any]) -> str:
        """Append a user/assistant/toolResult message; returns the entry id."""
        if not isinstance(message, dict) or not message.get("role"):
            raise ValueError("Transcript messages must be dicts with a 'role'")
        return self._append({"type": "message", "message": message})

    def append_custom_entry(self, custom_type: str, data: Any = None) -> str:
        """Append an out-of-band bookkeeping marker; returns the entry id."""
        entry: dict[str, Any] = {"type": "custom", "customType": custom_type}
        if data is not None:
            entry["data"] = data
        return self._append(entry)

    def _append(self, body: dict[str, Any]) -> str:
        entry_id = _new_entry_id()
        parent_id = self._entries[-1].get("id") if self._entries else None
        entry = {
            "type": body["type"],
            "id": entry_id,
            "parentId": parent_id,
            "timestamp": _now_iso(),
            **{k: v for k, v in body.items() if k != "type"},
        }
        if self._path is not None:
            self._write_line(entry)
        self._entries.append(entry)
        logger.debug(
            "transcript.appended",
            entry_type=entry["type"],
            role=(body.get("message") or {}).get("role"),
            custom_type=body.get("customType"),
        )
        return entry_id

    def _write_line(self, record: dict[str, Any]) -> None:
        assert self._path is not None
        line = json.dumps(record, ensure_ascii=False, default=str)
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(line + "\n")
            fh.flush()

    @staticmethod
    def _best_effort_chmod(path: Path, mode: int) -> None:
        """Attempt to harden permissions without failing on unsupported filesystems."""
        try:
            path.chmod(mode)
        except OSError:
            logger.debug("transcript.chmod_skipped", path=str(path), mode=oct(mode))
