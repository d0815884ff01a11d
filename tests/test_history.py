"""Tests for switchboard.sessions.history — turn windows and DM limits."""

from __future__ import annotations

import pytest

from switchboard.config import SwitchboardConfig
from switchboard.sessions.history import get_dm_history_limit, limit_history_turns


def _msg(role: str, text: str) -> dict:
    return {"role": role, "content": [{"type": "text", "text": text}]}


@pytest.fixture()
def alternating() -> list[dict]:
    return [
        _msg("user", "first"),
        _msg("assistant", "1"),
        _msg("user", "second"),
        _msg("assistant", "2"),
        _msg("user", "third"),
        _msg("assistant", "3"),
    ]


class TestLimitHistoryTurns:
    @pytest.mark.parametrize("limit", [None, 0, -1, 3, 10])
    def test_returns_same_object_when_nothing_trimmed(self, alternating, limit):
        assert limit_history_turns(alternating, limit) is alternating

    def test_empty_list(self):
        messages: list[dict] = []
        assert limit_history_turns(messages, 2) is messages

    def test_keeps_last_two_turns(self, alternating):
        limited = limit_history_turns(alternating, 2)
        assert len(limited) == 4
        assert limited[0]["content"][0]["text"] == "second"
        assert limited == alternating[2:]

    def test_keeps_last_turn(self, alternating):
        limited = limit_history_turns(alternating, 1)
        assert [m["content"][0]["text"] for m in limited] == ["third", "3"]

    def test_counts_user_turns_not_messages(self):
        messages = [
            _msg("user", "a"),
            _msg("assistant", "calling tools"),
            {"role": "toolResult", "toolCallId": "t1", "content": []},
            _msg("assistant", "done"),
            _msg("user", "b"),
            _msg("assistant", "ok"),
        ]
        limited = limit_history_turns(messages, 1)
        assert limited == messages[4:]
        assert limit_history_turns(messages, 2) is messages

    def test_leading_assistant_kept_when_within_limit(self):
        messages = [_msg("assistant", "hi"), _msg("user", "a"), _msg("assistant", "b")]
        assert limit_history_turns(messages, 1) is messages

    def test_leading_assistant_dropped_when_trimmed(self):
        messages = [
            _msg("assistant", "hi"),
            _msg("user", "a"),
            _msg("assistant", "b"),
            _msg("user", "c"),
        ]
        assert limit_history_turns(messages, 1) == messages[3:]

    def test_does_not_mutate_input(self, alternating):
        before = list(alternating)
        limit_history_turns(alternating, 1)
        assert alternating == before


class TestGetDmHistoryLimit:
    @pytest.fixture()
    def config(self) -> SwitchboardConfig:
        return SwitchboardConfig.model_validate({
            "telegram": {"dmHistoryLimit": 15, "dms": {"123": {"historyLimit": 5}}},
            "msteams": {"dmHistoryLimit": 7, "dms": {"user@example.com": {"historyLimit": 2}}},
        })

    def test_per_user_override_wins(self, config):
        assert get_dm_history_limit("telegram:dm:123", config) == 5

    def test_falls_back_to_channel_limit(self, config):
        assert get_dm_history_limit("telegram:dm:456", config) == 15

    def test_agent_prefix_is_stripped(self, config):
        assert get_dm_history_limit("agent:main:telegram:dm:123", config) == 5

    def test_identifier_with_special_characters(self, config):
        assert get_dm_history_limit("msteams:dm:user@example.com", config) == 2

    def test_explicit_zero_is_returned(self):
        config = SwitchboardConfig.model_validate({
            "telegram": {"dmHistoryLimit": 15, "dms": {"123": {"historyLimit": 0}}},
        })
        assert get_dm_history_limit("telegram:dm:123", config) == 0

    def test_channel_zero_is_returned(self):
        config = SwitchboardConfig.model_validate({"slack": {"dmHistoryLimit": 0}})
        assert get_dm_history_limit("slack:dm:U1", config) == 0

    def test_override_without_limit_falls_back(self):
        config = SwitchboardConfig.model_validate({
            "discord": {"dmHistoryLimit": 9, "dms": {"42": {}}},
        })
        assert get_dm_history_limit("discord:dm:42", config) == 9

    @pytest.mark.parametrize(
        "key",
        [None, "", "global", "telegram:group:123", "matrix:dm:123", "telegram:dm", "whatever"],
    )
    def test_none_when_not_applicable(self, config, key):
        assert get_dm_history_limit(key, config) is None

    def test_none_without_config(self):
        assert get_dm_history_limit("telegram:dm:123", None) is None

    def test_none_when_channel_not_configured(self, config):
        assert get_dm_history_limit("whatsapp:dm:123", config) is None
