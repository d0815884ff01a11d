"""Tests for switchboard.models_config — materialising models.json."""

from __future__ import annotations

import json
import os
import stat

import pytest

from switchboard.config import SwitchboardConfig
from switchboard.models_config import ensure_models_json, models_json_path, read_models_json


class TestEnsureModelsJson:
    def test_writes_configured_providers(self, tmp_path, config):
        agent_dir = tmp_path / "agent"
        returned_dir, wrote = ensure_models_json(config, agent_dir)
        assert returned_dir == agent_dir
        assert wrote is True
        data = json.loads(models_json_path(agent_dir).read_text())
        mock = data["providers"]["mock"]
        assert mock["api"] == "openai-responses"
        assert mock["apiKey"] == "test-key"
        assert mock["baseUrl"] == "https://example.invalid/v1"
        assert mock["models"][0]["id"] == "mock-1"
        assert mock["models"][0]["maxTokens"] == 1024
        assert mock["models"][0]["contextWindow"] == 128000

    def test_second_call_is_noop(self, tmp_path, config):
        ensure_models_json(config, tmp_path)
        _, wrote = ensure_models_json(config, tmp_path)
        assert wrote is False

    def test_nothing_configured(self, tmp_path):
        _, wrote = ensure_models_json(SwitchboardConfig(), tmp_path / "agent")
        assert wrote is False
        assert not models_json_path(tmp_path / "agent").exists()

    def test_merge_keeps_existing_providers(self, tmp_path, config):
        path = models_json_path(tmp_path)
        path.write_text(json.dumps({
            "providers": {
                "local": {"api": "openai-completions", "baseUrl": "http://localhost:11434/v1", "models": []},
                "mock": {"api": "anthropic-messages", "models": []},
            }
        }))
        _, wrote = ensure_models_json(config, tmp_path)
        assert wrote is True
        providers = read_models_json(tmp_path)["providers"]
        assert set(providers) == {"local", "mock", "google"}
        assert providers["mock"]["api"] == "openai-responses"

    def test_replace_drops_existing_providers(self, tmp_path, config):
        models_json_path(tmp_path).write_text(json.dumps({"providers": {"local": {"models": []}}}))
        config.models.mode = "replace"
        ensure_models_json(config, tmp_path)
        assert set(read_models_json(tmp_path)["providers"]) == {"mock", "google"}

    def test_unreadable_file_is_replaced(self, tmp_path, config):
        models_json_path(tmp_path).write_text("{broken")
        _, wrote = ensure_models_json(config, tmp_path)
        assert wrote is True
        assert "mock" in read_models_json(tmp_path)["providers"]

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_file_is_private(self, tmp_path, config):
        ensure_models_json(config, tmp_path)
        assert stat.S_IMODE(models_json_path(tmp_path).stat().st_mode) == 0o600


class TestReadModelsJson:
    def test_missing_file(self, tmp_path):
        assert read_models_json(tmp_path) == {"providers": {}}

    def test_wrong_shape(self, tmp_path):
        models_json_path(tmp_path).write_text(json.dumps({"providers": []}))
        assert read_models_json(tmp_path) == {"providers": {}}
