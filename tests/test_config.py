"""Tests for environment parsing in config."""

import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import config
from bot.bot import BotOptions
from bot.update_loop import UpdateLoopOptions


class TestParsers:
    """Validate the private parsing helpers."""

    def test_parse_int(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("POLL_TIME", " 25 ")
        assert config._parse_int("POLL_TIME", 50) == 25

    def test_parse_int_invalid_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("POLL_TIME", "soon")
        assert config._parse_int("POLL_TIME", 50) == 50

    def test_parse_int_unset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("POLL_TIME", raising=False)
        assert config._parse_int("POLL_TIME", 50) == 50

    @pytest.mark.parametrize("raw, expected", [("1", True), ("Yes", True), ("off", False), ("", False), ("maybe", True)])
    def test_parse_bool(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
        monkeypatch.setenv("ALWAYS_RETRY", raw)
        assert config._parse_bool("ALWAYS_RETRY", True) is expected

    @pytest.mark.parametrize("raw, expected", [
        (None, False),
        ("true", True),
        ("no", False),
        ("20", 20),
        ("-4", False),
        ("lots", False),
    ])
    def test_parse_discard(self, raw, expected) -> None:
        assert config._parse_discard(raw) == expected
        assert type(config._parse_discard(raw)) is type(expected)

    def test_parse_list(self) -> None:
        assert config._parse_list("message, callback_query,,") == ("message", "callback_query")
        assert config._parse_list(None) == ()


class TestBuilders:
    """Validate option construction from the resolved constants."""

    def test_update_loop_options(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config, "POLL_TIME", 5)
        monkeypatch.setattr(config, "DISCARD", 3)
        monkeypatch.setattr(config, "ALLOWED_UPDATES", ("message",))
        options = config.update_loop_options()
        assert isinstance(options, UpdateLoopOptions)
        assert options.poll_time == 5
        assert options.discard_offset == -3
        assert options.allowed_updates == ("message",)

    def test_bot_options(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(config, "STRICT", True)
        options = config.bot_options()
        assert isinstance(options, BotOptions)
        assert options.strict is True
