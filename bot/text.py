"""Command and mention parsing for text messages.

Entity offsets in the Bot API count UTF-16 code units, so every slice of
message text goes through :func:`entity_text`.
"""

from __future__ import annotations

import dataclasses
import re
from typing import Iterable, Optional, Union

from sdk.models import Message, MessageEntity


@dataclasses.dataclass(frozen=True, slots=True)
class Command:
    """A parsed bot command such as ``/help@my_bot topic``."""

    name: str                       # without the leading slash
    username: Optional[str] = None  # target bot, without the "@"
    args: str = ""                  # rest of the text, stripped


def _utf16_slice(text: str, start: int, end: Optional[int] = None) -> str:
    raw = text.encode("utf-16-le")
    chunk = raw[start * 2:] if end is None else raw[start * 2:end * 2]
    return chunk.decode("utf-16-le")


def entity_text(text: str, entity: MessageEntity) -> str:
    """Return the part of *text* covered by *entity*."""
    return _utf16_slice(text, entity.offset, entity.offset + entity.length)


def parse_command(message: Message) -> Optional[Command]:
    """Parse *message* into a :class:`Command` if it starts with one.

    The first entity must be a ``bot_command`` at offset 0.  The target bot
    is taken either from an ``@name`` inside that entity or from a ``mention``
    entity glued right after it.
    """
    text, entities = message.text, message.entities
    if not text or not entities:
        return None
    first = entities[0]
    if not (first.type == "bot_command" and first.offset == 0 and first.length > 1):
        return None

    name, _, username = entity_text(text, first)[1:].partition("@")
    end = first.length
    if len(entities) > 1:
        second = entities[1]
        if second.type == "mention" and second.offset == first.length and second.length > 1:
            username = entity_text(text, second)[1:]
            end = second.offset + second.length

    return Command(name=name, username=username or None, args=_utf16_slice(text, end).strip())


def match_command(name: str, names: Iterable[Union[str, re.Pattern[str]]]) -> bool:
    """Return ``True`` if *name* matches one of *names*.

    Strings compare case-insensitively; compiled patterns use ``search``.
    """
    for candidate in names:
        if isinstance(candidate, re.Pattern):
            if candidate.search(name):
                return True
        elif candidate.casefold() == name.casefold():
            return True
    return False


def format_command(command: Command) -> str:
    """Inverse of :func:`parse_command`.  Names are not validated."""
    target = f"@{command.username}" if command.username else ""
    args = f" {command.args}" if command.args else ""
    return f"/{command.name}{target}{args}"


def mentions(message: Message, username: str) -> bool:
    """Return ``True`` if *message* mentions *username* (with or without ``@``).

    Looks at both text and caption entities, covering ``mention`` and
    ``text_mention`` entities.
    """
    wanted = username.lstrip("@").casefold()
    for text, entities in ((message.text, message.entities), (message.caption, message.caption_entities)):
        if not text or not entities:
            continue
        for entity in entities:
            if entity.type == "mention" and entity_text(text, entity)[1:].casefold() == wanted:
                return True
            if entity.type == "text_mention" and entity.user and (entity.user.username or "").casefold() == wanted:
                return True
    return False
