"""
switchboard.toml — Reading, Editing and Validating the Deployment File.

The file is plain TOML (read with tomllib, written with tomli-w) whose
structure is ``SwitchboardConfig``.  Dotted keys address it the way the CLI
does (``telegram.dms.42.historyLimit``).  Each segment that names a config
field is matched in either spelling (``dm_history_limit`` finds
``dmHistoryLimit``) and new fields are written in the camelCase the loader
documents.  Segments that are free-form names, such as provider ids or DM
peer ids, are used verbatim.

Edits are checked against ``SwitchboardConfig`` before they land, so a bad
value is rejected with the path of the offending field instead of surfacing
on the next turn.
"""

from __future__ import annotations

import copy
import os
import tempfile
import tomllib
import types
from pathlib import Path
from typing import Any, Optional, Union, get_args, get_origin

import structlog
import tomli_w
from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from switchboard.config import SwitchboardConfig

logger = structlog.get_logger(__name__)

CONFIG_FILENAME = "switchboard.toml"

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


class ConfigValidationError(ValueError):
    """The document does not fit ``SwitchboardConfig``; ``problems`` maps field path to message."""

    def __init__(self, problems: list[tuple[str, str]]):
        self.problems = problems
        detail = "; ".join(f"{path}: {message}" for path, message in problems)
        super().__init__(f"Invalid {CONFIG_FILENAME}: {detail}")


# ---------------------------------------------------------------------------
# Locating, reading, writing
# ---------------------------------------------------------------------------


def config_search_paths() -> list[Path]:
    """Candidate locations, highest priority first: cwd, ~/.config/switchboard, project root."""
    return [
        Path.cwd() / CONFIG_FILENAME,
        Path.home() / ".config" / "switchboard" / CONFIG_FILENAME,
        _PROJECT_ROOT / CONFIG_FILENAME,
    ]


def find_config() -> Optional[Path]:
    for candidate in config_search_paths():
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path) -> dict[str, Any]:
    """Parse ``path`` as TOML without validating it."""
    with open(path, "rb") as fh:
        return tomllib.load(fh)


def validate_config(data: dict[str, Any]) -> SwitchboardConfig:
    """Validate a raw document, reporting each problem by its dotted field path."""
    try:
        return SwitchboardConfig.model_validate(data)
    except ValidationError as e:
        problems = [
            (".".join(str(part) for part in err["loc"]) or "(root)", err["msg"])
            for err in e.errors()
        ]
        raise ConfigValidationError(problems) from None


def write_config(path: Path, data: dict[str, Any]) -> None:
    """Replace ``path`` with ``data`` as TOML; readers never see a half-written file."""
    atomic_write(path, tomli_w.dumps(data).encode("utf-8"), prefix=".switchboard_config_")


def atomic_write(path: Path, payload: bytes, *, prefix: str, mode: Optional[int] = None) -> None:
    """Write ``payload`` to a temp file beside ``path`` and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=prefix, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(payload)
        if mode is not None:
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, str(path))
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


# ---------------------------------------------------------------------------
# Dotted keys
# ---------------------------------------------------------------------------


def _split_dotted_key(dotted_key: str) -> list[str]:
    if not dotted_key or not dotted_key.strip():
        raise ValueError("Key must not be empty")
    segments = dotted_key.split(".")
    if any(not s for s in segments):
        raise ValueError(f"Key contains empty segments: {dotted_key!r}")
    return segments


def _field_target(annotation: Any) -> tuple[Optional[type[BaseModel]], bool]:
    """
    What a field holds: ``(model, keyed)``.

    ``keyed`` is True for ``dict[str, Model]`` fields, whose next segment is
    a free-form name.  ``model`` is None when nothing below is schema-checked.
    """
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        for arg in get_args(annotation):
            if arg is not type(None):
                return _field_target(arg)
        return None, False
    if origin is dict:
        value_model, _ = _field_target(get_args(annotation)[1])
        return value_model, True
    if origin is None and isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation, False
    return None, False


def _spellings(dotted_key: str) -> list[tuple[str, ...]]:
    """
    Accepted spellings for every segment of ``dotted_key``.

    The first spelling of a field segment is its on-disk alias, which is
    what ``set_value`` writes when none of them exist yet.
    """
    result: list[tuple[str, ...]] = []
    model: Optional[type[BaseModel]] = SwitchboardConfig
    keyed = False
    for segment in _split_dotted_key(dotted_key):
        if keyed:
            result.append((segment,))
            keyed = False
            continue
        if model is None:
            result.append((segment,))
            continue
        for name, field in model.model_fields.items():
            alias = field.alias or to_camel(name)
            if segment in (name, alias):
                result.append(tuple(dict.fromkeys((alias, name))))
                model, keyed = _field_target(field.annotation)
                break
        else:
            result.append((segment,))
            model = None
    return result


def _pick(table: dict[str, Any], spellings: tuple[str, ...]) -> Optional[str]:
    for spelling in spellings:
        if spelling in table:
            return spelling
    return None


def get_value(data: dict[str, Any], dotted_key: str) -> Any:
    """Return the value at ``dotted_key``; raises KeyError when absent."""
    current: Any = data
    for spellings in _spellings(dotted_key):
        key = _pick(current, spellings) if isinstance(current, dict) else None
        if key is None:
            raise KeyError(dotted_key)
        current = current[key]
    return current


def _assign(data: dict[str, Any], path: list[tuple[str, ...]], value: Any) -> str:
    current = data
    written: list[str] = []
    for spellings in path[:-1]:
        key = _pick(current, spellings) or spellings[0]
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]
        written.append(key)
    last = _pick(current, path[-1]) or path[-1][0]
    current[last] = value
    written.append(last)
    return ".".join(written)


def set_value(data: dict[str, Any], dotted_key: str, value: Any) -> dict[str, Any]:
    """
    Set ``dotted_key`` to ``value``, creating intermediate tables.

    The edit is tried on a copy first; if the result no longer validates,
    ``ConfigValidationError`` is raised and ``data`` is left untouched.
    """
    path = _spellings(dotted_key)
    trial = copy.deepcopy(data)
    _assign(trial, path, value)
    validate_config(trial)
    written = _assign(data, path, value)
    logger.debug("config_file.value_set", key=written)
    return data


def resolve_key(data: dict[str, Any], dotted_key: str) -> str:
    """The spelling of ``dotted_key`` that ``set_value`` would write into ``data``."""
    return _assign(copy.deepcopy(data), _spellings(dotted_key), None)


def delete_value(data: dict[str, Any], dotted_key: str) -> dict[str, Any]:
    """Remove ``dotted_key``; raises KeyError when absent."""
    path = _spellings(dotted_key)
    current: Any = data
    for spellings in path[:-1]:
        key = _pick(current, spellings) if isinstance(current, dict) else None
        if key is None:
            raise KeyError(dotted_key)
        current = current[key]
    last = _pick(current, path[-1]) if isinstance(current, dict) else None
    if last is None:
        raise KeyError(dotted_key)
    del current[last]
    return data


def generate_template() -> str:
    """Generate an annotated switchboard.toml template."""
    return '''\
# Switchboard deployment configuration.
# Process-level knobs (data dir, timeouts) live in SWITCHBOARD_* env vars.

[agents]
# list = [{ id = "main", default = true, model = "anthropic/claude-sonnet-4-5" }]

[agents.defaults]
# model = "anthropic/claude-sonnet-4-5"
# timeoutMs = 600000

[models]
# mode = "merge"   # or "replace"

# [models.providers.anthropic]
# api = "anthropic-messages"
# apiKey = "sk-ant-..."
# models = [{ id = "claude-sonnet-4-5", contextWindow = 200000, maxTokens = 8192 }]

[telegram]
# dmHistoryLimit = 20
# [telegram.dms."123456"]
# historyLimit = 5

[whatsapp]
# dmHistoryLimit = 20

[discord]
# dmHistoryLimit = 20

[slack]
# dmHistoryLimit = 20

[signal]
# dmHistoryLimit = 20

[imessage]
# dmHistoryLimit = 20

[msteams]
# dmHistoryLimit = 20
'''
