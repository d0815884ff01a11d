"""Tests for switchboard/config_file.py — TOML configuration utilities."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest


# ---------------------------------------------------------------------------
# find_config
# ---------------------------------------------------------------------------

class TestFindConfig:
    """Tests for find_config() search order."""

    def test_finds_in_cwd(self, tmp_path, monkeypatch):
        from switchboard.config_file import find_config

        toml = tmp_path / "switchboard.toml"
        toml.write_text("[telegram]\ndmHistoryLimit = 20\n")
        monkeypatch.chdir(tmp_path)
        assert find_config() == toml

    def test_finds_in_xdg_config(self, tmp_path, monkeypatch):
        from switchboard.config_file import find_config

        xdg_dir = tmp_path / ".config" / "switchboard"
        xdg_dir.mkdir(parents=True)
        toml = xdg_dir / "switchboard.toml"
        toml.write_text("[telegram]\ndmHistoryLimit = 20\n")
        (tmp_path / "elsewhere").mkdir()
        monkeypatch.chdir(tmp_path / "elsewhere")
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
        assert find_config() == toml

    def test_finds_in_project_root(self, tmp_path, monkeypatch):
        import switchboard.config_file as cf

        project_root = tmp_path / "project"
        project_root.mkdir()
        toml_path = project_root / "switchboard.toml"
        toml_path.write_text("[slack]\ndmHistoryLimit = 5\n")
        other = tmp_path / "other"
        other.mkdir()
        monkeypatch.chdir(other)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path / "nohome"))
        monkeypatch.setattr(cf, "_PROJECT_ROOT", project_root)

        assert cf.find_config() == toml_path

    def test_returns_none_when_not_found(self, tmp_path, monkeypatch):
        import switchboard.config_file as cf

        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
        monkeypatch.setattr(cf, "_PROJECT_ROOT", tmp_path)
        assert cf.find_config() is None

    def test_cwd_takes_priority_over_xdg(self, tmp_path, monkeypatch):
        from switchboard.config_file import find_config

        (tmp_path / "switchboard.toml").write_text("[agents.defaults]\nmodel = 'a/cwd'\n")
        xdg_dir = tmp_path / ".config" / "switchboard"
        xdg_dir.mkdir(parents=True)
        (xdg_dir / "switchboard.toml").write_text("[agents.defaults]\nmodel = 'a/xdg'\n")

        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(Path, "home", classmethod(lambda cls: tmp_path))
        assert find_config() == tmp_path / "switchboard.toml"


# ---------------------------------------------------------------------------
# load_config / write_config
# ---------------------------------------------------------------------------

class TestLoadConfig:
    def test_load_valid_toml(self, tmp_path):
        from switchboard.config_file import load_config

        toml = tmp_path / "switchboard.toml"
        toml.write_text(textwrap.dedent("""\
            [telegram]
            dmHistoryLimit = 20

            [telegram.dms."123"]
            historyLimit = 3

            [models.providers.local]
            api = "openai-completions"
            baseUrl = "http://localhost:11434/v1"
        """))
        data = load_config(toml)
        assert data["telegram"]["dmHistoryLimit"] == 20
        assert data["telegram"]["dms"]["123"]["historyLimit"] == 3
        assert data["models"]["providers"]["local"]["api"] == "openai-completions"

    def test_load_empty_toml(self, tmp_path):
        from switchboard.config_file import load_config

        toml = tmp_path / "switchboard.toml"
        toml.write_text("")
        assert load_config(toml) == {}

    def test_load_invalid_toml_raises(self, tmp_path):
        import tomllib

        from switchboard.config_file import load_config

        toml = tmp_path / "switchboard.toml"
        toml.write_text("this is not valid [toml = = =")
        with pytest.raises(tomllib.TOMLDecodeError):
            load_config(toml)

    def test_load_nonexistent_raises(self, tmp_path):
        from switchboard.config_file import load_config

        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nonexistent.toml")


class TestWriteConfig:
    """Tests for write_config() atomic write."""

    def test_write_then_read(self, tmp_path):
        from switchboard.config_file import load_config, write_config

        dest = tmp_path / "switchboard.toml"
        write_config(dest, {"discord": {"dmHistoryLimit": 10}})
        write_config(dest, {"discord": {"dmHistoryLimit": 0}})
        assert load_config(dest) == {"discord": {"dmHistoryLimit": 0}}

    def test_write_creates_parent_directories(self, tmp_path):
        from switchboard.config_file import write_config

        dest = tmp_path / "a" / "b" / "switchboard.toml"
        write_config(dest, {"models": {"mode": "replace"}})
        assert dest.exists()

    def test_failed_write_leaves_original_and_no_temp_files(self, tmp_path):
        from switchboard.config_file import load_config, write_config

        dest = tmp_path / "switchboard.toml"
        write_config(dest, {"original": True})

        with pytest.raises(TypeError):
            write_config(dest, {"bad": object()})

        assert load_config(dest) == {"original": True}
        assert list(tmp_path.glob(".switchboard_config_*")) == []


# ---------------------------------------------------------------------------
# get_value / set_value / delete_value
# ---------------------------------------------------------------------------

class TestDottedKeys:
    def test_get_nested(self):
        from switchboard.config_file import get_value

        data = {"telegram": {"dms": {"42": {"historyLimit": 2}}}}
        assert get_value(data, "telegram.dms.42.historyLimit") == 2

    @pytest.mark.parametrize("key", ["telegram.missing", "missing.dmHistoryLimit", "telegram.dmHistoryLimit.x"])
    def test_get_missing_raises_key_error(self, key):
        from switchboard.config_file import get_value

        with pytest.raises(KeyError):
            get_value({"telegram": {"dmHistoryLimit": 5}}, key)

    @pytest.mark.parametrize("key", ["", "   ", "telegram..dmHistoryLimit", ".x"])
    def test_bad_keys_raise_value_error(self, key):
        from switchboard.config_file import delete_value, get_value, set_value

        with pytest.raises(ValueError):
            get_value({}, key)
        with pytest.raises(ValueError):
            set_value({}, key, 1)
        with pytest.raises(ValueError):
            delete_value({}, key)

    def test_set_creates_and_replaces_intermediate_tables(self):
        from switchboard.config_file import set_value

        data = {"slack": 42}
        result = set_value(data, "slack.dmHistoryLimit", 7)
        assert result is data
        assert data == {"slack": {"dmHistoryLimit": 7}}

        set_value(data, "agents.defaults.model", "anthropic/claude-sonnet-4-5")
        assert data["agents"]["defaults"]["model"] == "anthropic/claude-sonnet-4-5"

    def test_delete_nested(self):
        from switchboard.config_file import delete_value

        data = {"whatsapp": {"dmHistoryLimit": 15, "dms": {}}}
        result = delete_value(data, "whatsapp.dmHistoryLimit")
        assert result is data
        assert data == {"whatsapp": {"dms": {}}}

    def test_delete_missing_raises(self):
        from switchboard.config_file import delete_value

        with pytest.raises(KeyError):
            delete_value({"whatsapp": {}}, "whatsapp.dmHistoryLimit")
        with pytest.raises(KeyError):
            delete_value({}, "whatsapp.dmHistoryLimit")


# ---------------------------------------------------------------------------
# Field spellings and validation
# ---------------------------------------------------------------------------

class TestFieldSpellings:
    def test_snake_case_finds_camel_case_key(self):
        from switchboard.config_file import get_value

        data = {"telegram": {"dmHistoryLimit": 5, "dms": {"42": {"historyLimit": 2}}}}
        assert get_value(data, "telegram.dm_history_limit") == 5
        assert get_value(data, "telegram.dms.42.history_limit") == 2

    def test_camel_case_finds_snake_case_key(self):
        from switchboard.config_file import get_value

        assert get_value({"slack": {"dm_history_limit": 3}}, "slack.dmHistoryLimit") == 3

    def test_new_fields_are_written_camel_case(self):
        from switchboard.config_file import set_value

        data = set_value({}, "telegram.dm_history_limit", 9)
        assert data == {"telegram": {"dmHistoryLimit": 9}}

    def test_existing_spelling_is_overwritten_in_place(self):
        from switchboard.config_file import set_value

        data = set_value({"telegram": {"dm_history_limit": 1}}, "telegram.dmHistoryLimit", 4)
        assert data == {"telegram": {"dm_history_limit": 4}}

    def test_free_form_names_kept_verbatim(self):
        from switchboard.config_file import set_value

        data = set_value({}, "models.providers.my_local.base_url", "http://localhost:11434/v1")
        assert data == {"models": {"providers": {"my_local": {"baseUrl": "http://localhost:11434/v1"}}}}

    def test_entries_field_uses_list_alias(self):
        from switchboard.config_file import resolve_key

        assert resolve_key({}, "agents.entries") == "agents.list"
        assert resolve_key({}, "agents.defaults.timeout_ms") == "agents.defaults.timeoutMs"

    def test_unknown_sections_untouched(self):
        from switchboard.config_file import resolve_key

        assert resolve_key({}, "gateway.bind_host") == "gateway.bind_host"

    def test_delete_by_other_spelling(self):
        from switchboard.config_file import delete_value

        data = {"discord": {"dmHistoryLimit": 2, "dms": {}}}
        assert delete_value(data, "discord.dm_history_limit") == {"discord": {"dms": {}}}


class TestValidation:
    def test_bad_history_limit_rejected_with_field_path(self):
        from switchboard.config_file import ConfigValidationError, set_value

        data = {"telegram": {"dmHistoryLimit": 5}}
        with pytest.raises(ConfigValidationError) as exc_info:
            set_value(data, "telegram.dmHistoryLimit", "lots")
        assert "telegram.dmHistoryLimit" in str(exc_info.value)
        assert exc_info.value.problems[0][0] == "telegram.dmHistoryLimit"
        assert data == {"telegram": {"dmHistoryLimit": 5}}

    def test_bad_agents_list_rejected(self):
        from switchboard.config_file import set_value

        with pytest.raises(ValueError, match=r"agents\.list"):
            set_value({}, "agents.list", "ops")

    def test_nested_problem_reports_full_path(self):
        from switchboard.config_file import ConfigValidationError, validate_config

        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config({"models": {"providers": {"p": {"models": [{"id": "m", "maxTokens": "many"}]}}}})
        assert exc_info.value.problems[0][0] == "models.providers.p.models.0.maxTokens"

    def test_valid_document_returns_config(self):
        from switchboard.config_file import validate_config

        config = validate_config({"telegram": {"dm_history_limit": 7}})
        assert config.telegram.dm_history_limit == 7

    def test_models_mode_checked_on_set(self):
        from switchboard.config_file import set_value

        assert set_value({}, "models.mode", "replace") == {"models": {"mode": "replace"}}
        with pytest.raises(ValueError, match=r"models\.mode"):
            set_value({}, "models.mode", "sometimes")


# ---------------------------------------------------------------------------
# generate_template
# ---------------------------------------------------------------------------

class TestGenerateTemplate:
    def test_sections_present(self):
        from switchboard.config_file import generate_template

        template = generate_template()
        for section in ("[agents]", "[models]", "[telegram]", "[slack]", "[msteams]"):
            assert section in template

    def test_all_values_commented_out(self):
        from switchboard.config_file import generate_template

        for line in generate_template().splitlines():
            stripped = line.strip()
            if stripped and not stripped.startswith("[") and not stripped.startswith("#"):
                pytest.fail(f"Uncommented config line: {line!r}")

    def test_template_validates_as_is_and_uncommented(self):
        import tomllib

        from switchboard.config import SwitchboardConfig
        from switchboard.config_file import generate_template

        template = generate_template()
        assert SwitchboardConfig.model_validate(tomllib.loads(template)).telegram is not None

        lines = []
        for line in template.splitlines():
            stripped = line.strip()
            if stripped.startswith("# ") and "=" in stripped and not stripped.startswith("# ["):
                lines.append(stripped[2:])
            else:
                lines.append(line)
        config = SwitchboardConfig.model_validate(tomllib.loads("\n".join(lines)))
        assert config.telegram.dm_history_limit == 20
        assert config.agents.defaults.timeout_ms == 600000
        assert config.agents.entries[0].id == "main"
