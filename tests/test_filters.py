"""Tests for command/mention parsing and handler predicates."""

import sys
import os
import re

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from bot.classifier import UpdateKind, classify
from bot.filters import (
    all_of,
    any_of,
    command_named,
    command_of,
    has_text,
    is_command,
    is_message,
    is_text,
    kind_is,
    mentioning,
    negate,
)
from bot.text import Command, entity_text, format_command, match_command, mentions, parse_command
from sdk.models import Message, MessageEntity, Update


def _message(text=None, entities=(), caption=None, caption_entities=()) -> Message:
    return Message.model_validate({
        "message_id": 1,
        "date": 0,
        "chat": {"id": 1, "type": "group"},
        "text": text,
        "entities": list(entities) or None,
        "caption": caption,
        "caption_entities": list(caption_entities) or None,
    })


def _entity(type_: str, offset: int, length: int, **extra) -> dict:
    return {"type": type_, "offset": offset, "length": length, **extra}


def _event(message: Message, kind: str = "message"):
    return classify(Update.model_validate({"update_id": 1, kind: message.model_dump(by_alias=True, exclude_none=True)}))


def _command_event(text: str, length: int, *more_entities):
    return _event(_message(text, [_entity("bot_command", 0, length), *more_entities]))


# ── Text helpers ─────────────────────────────────────────────────────────────


class TestParseCommand:
    """Validate command extraction from message entities."""

    def test_plain_command(self) -> None:
        assert parse_command(_message("/start", [_entity("bot_command", 0, 6)])) == Command("start")

    def test_command_with_args(self) -> None:
        cmd = parse_command(_message("/echo  hello world ", [_entity("bot_command", 0, 5)]))
        assert cmd == Command("echo", None, "hello world")

    def test_addressed_command(self) -> None:
        cmd = parse_command(_message("/help@my_bot topic", [_entity("bot_command", 0, 12)]))
        assert cmd == Command("help", "my_bot", "topic")

    def test_mention_glued_to_command(self) -> None:
        msg = _message("/help@my_bot", [_entity("bot_command", 0, 5), _entity("mention", 5, 7)])
        assert parse_command(msg) == Command("help", "my_bot", "")

    def test_command_not_at_start(self) -> None:
        assert parse_command(_message("say /start", [_entity("bot_command", 4, 6)])) is None

    def test_no_entities(self) -> None:
        assert parse_command(_message("/start")) is None

    def test_no_text(self) -> None:
        assert parse_command(_message(caption="/start")) is None

    def test_utf16_offsets(self) -> None:
        # "😀" is two UTF-16 code units.
        msg = _message("/go 😀 @someone", [_entity("bot_command", 0, 3), _entity("mention", 7, 8)])
        assert entity_text(msg.text, msg.entities[1]) == "@someone"
        assert parse_command(msg).args == "😀 @someone"


class TestMatchAndFormat:
    """Validate name matching and formatting."""

    def test_case_insensitive(self) -> None:
        assert match_command("Start", ["start"])
        assert not match_command("stop", ["start"])

    def test_pattern(self) -> None:
        assert match_command("help_me", [re.compile(r"^help")])
        assert not match_command("nohelp", [re.compile(r"^help")])

    def test_format(self) -> None:
        assert format_command(Command("help", "my_bot", "topic")) == "/help@my_bot topic"
        assert format_command(Command("start")) == "/start"


class TestMentions:
    """Validate mention detection."""

    def test_text_mention_entity(self) -> None:
        msg = _message("hey @My_Bot", [_entity("mention", 4, 7)])
        assert mentions(msg, "my_bot")
        assert mentions(msg, "@my_bot")
        assert not mentions(msg, "other_bot")

    def test_caption(self) -> None:
        msg = _message(caption="look @my_bot", caption_entities=[_entity("mention", 5, 7)])
        assert mentions(msg, "my_bot")

    def test_text_mention_with_user(self) -> None:
        user = {"id": 2, "is_bot": True, "first_name": "Bot", "username": "my_bot"}
        msg = _message("hey Bot", [_entity("text_mention", 4, 3, user=user)])
        assert mentions(msg, "my_bot")


# ── Predicates ───────────────────────────────────────────────────────────────


class TestPredicates:
    """Validate predicates over classified updates."""

    def test_kind_is(self) -> None:
        event = _event(_message("hi"), kind="edited_message")
        assert kind_is(UpdateKind.EDITED_MESSAGE)(event)
        assert kind_is("message", "edited_message")(event)
        assert not kind_is("message")(event)

    def test_is_message_and_has_text(self) -> None:
        event = _event(_message("hi"), kind="channel_post")
        assert is_message(event)
        assert has_text(event)
        assert not has_text(_event(_message(caption="pic")))

    def test_combinators(self) -> None:
        event = _event(_message("hi"))
        yes, no = (lambda e: True), (lambda e: False)
        assert all_of(yes, yes)(event)
        assert not all_of(yes, no)(event)
        assert any_of(no, yes)(event)
        assert not any_of(no, no)(event)
        assert negate(no)(event)

    def test_is_command_and_is_text(self) -> None:
        command = _command_event("/start", 6)
        text = _event(_message("hello"))
        assert is_command()(command)
        assert not is_command()(text)
        assert is_text()(text)
        assert not is_text()(command)

    def test_command_for_other_bot_is_text(self) -> None:
        event = _command_event("/start@other_bot", 16)
        assert command_of(event) == Command("start", "other_bot")
        assert command_of(event, "my_bot") is None
        assert not is_command("my_bot")(event)
        assert is_text("my_bot")(event)

    def test_command_for_this_bot(self) -> None:
        event = _command_event("/start@My_Bot", 13)
        assert is_command("my_bot")(event)

    def test_username_callable(self) -> None:
        name = {"value": None}
        predicate = is_command(lambda: name["value"])
        event = _command_event("/start@other_bot", 16)
        assert predicate(event)
        name["value"] = "my_bot"
        assert not predicate(event)

    def test_command_named(self) -> None:
        event = _command_event("/Help", 5)
        assert command_named("help")(event)
        assert command_named("start", re.compile("^he"))(event)
        assert not command_named("start")(event)

    def test_mentioning(self) -> None:
        event = _event(_message("hey @my_bot", [_entity("mention", 4, 7)]))
        assert mentioning("my_bot")(event)
        assert not mentioning(lambda: None)(event)
