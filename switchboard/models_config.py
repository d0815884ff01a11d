"""
models.json — The Provider Catalog an Agent Runs Against.

Every turn first materialises the configured providers into
``<agent_dir>/models.json``; the model registry reads only that file.  In
``merge`` mode providers already in the file (added by hand or by another
tool) survive and configured providers overwrite them by name.  In
``replace`` mode the file holds exactly the configured providers.

The file is rewritten only when its content would change, and is written
atomically with owner-only permissions since it may carry API keys.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog

from switchboard.config import SwitchboardConfig
from switchboard.config_file import atomic_write

logger = structlog.get_logger(__name__)

MODELS_JSON_FILENAME = "models.json"


def models_json_path(agent_dir: Path) -> Path:
    return Path(agent_dir) / MODELS_JSON_FILENAME


def read_models_json(agent_dir: Path) -> dict[str, Any]:
    """Return the parsed catalog, or an empty one when missing or unreadable."""
    path = models_json_path(agent_dir)
    if not path.exists():
        return {"providers": {}}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("models_config.unreadable", path=str(path), error=str(e))
        return {"providers": {}}
    if not isinstance(data, dict) or not isinstance(data.get("providers"), dict):
        return {"providers": {}}
    return data


def _write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    atomic_write(path, text.encode("utf-8"), prefix=".models-", mode=0o600)


def ensure_models_json(config: SwitchboardConfig, agent_dir: Path) -> tuple[Path, bool]:
    """
    Materialise the configured providers into ``<agent_dir>/models.json``.

    Returns ``(agent_dir, wrote)``; ``wrote`` is False when nothing is
    configured or the file already holds the same catalog.
    """
    agent_dir = Path(agent_dir)
    configured = {
        name: provider.model_dump(mode="json", by_alias=True, exclude_none=True)
        for name, provider in config.models.providers.items()
    }
    if not configured:
        return agent_dir, False

    path = models_json_path(agent_dir)
    existing = read_models_json(agent_dir)

    if config.models.mode == "merge":
        providers = dict(existing.get("providers", {}))
        providers.update(configured)
    else:
        providers = configured

    payload = {"providers": providers}
    if path.exists() and existing == payload:
        logger.debug("models_config.unchanged", path=str(path))
        return agent_dir, False

    _write_json_atomic(path, payload)
    logger.info(
        "models_config.written",
        path=str(path),
        providers=sorted(providers),
        mode=config.models.mode,
    )
    return agent_dir, True
