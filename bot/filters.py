"""Predicates over classified updates, and the filtering handler wrapper.

Predicates are plain ``IncomingUpdate -> bool`` callables and compose with
:func:`all_of`, :func:`any_of` and :func:`negate`.  Pair one with a handler
via :func:`filter_handler` (or ``Dispatcher.register(..., predicate=...)``)::

    text_not_command = all_of(has_text, negate(is_command()))
    dispatcher.register(echo, predicate=text_not_command)
"""

from __future__ import annotations

import re
from typing import Any, Callable, Optional, Union

from bot.classifier import IncomingUpdate, UpdateKind
from bot.dispatcher import Predicate, filter_handler
from bot.text import Command, match_command, mentions, parse_command

UsernameSource = Union[str, Callable[[], Optional[str]], None]

__all__ = [
    "filter_handler",
    "kind_is",
    "is_message",
    "has_text",
    "is_command",
    "is_text",
    "command_named",
    "mentioning",
    "all_of",
    "any_of",
    "negate",
    "command_of",
]


def _resolve(username: UsernameSource) -> Optional[str]:
    return username() if callable(username) else username


# ── Combinators ──────────────────────────────────────────────────────────────


def all_of(*predicates: Predicate) -> Predicate:
    return lambda event: all(p(event) for p in predicates)


def any_of(*predicates: Predicate) -> Predicate:
    return lambda event: any(p(event) for p in predicates)


def negate(predicate: Predicate) -> Predicate:
    return lambda event: not predicate(event)


# ── Kind predicates ──────────────────────────────────────────────────────────


def kind_is(*kinds: Union[UpdateKind, str]) -> Predicate:
    """Match updates of any of *kinds* (enum members or their string values)."""
    wanted = frozenset(UpdateKind(k) for k in kinds)
    return lambda event: event.kind in wanted


def is_message(event: IncomingUpdate[Any]) -> bool:
    """Any message or channel post, edited or not."""
    return event.is_message


def has_text(event: IncomingUpdate[Any]) -> bool:
    return event.text is not None


# ── Commands and mentions ────────────────────────────────────────────────────


def command_of(event: IncomingUpdate[Any], username: UsernameSource = None) -> Optional[Command]:
    """Return the command in *event*, or ``None``.

    When *username* resolves to a name, commands explicitly addressed to a
    different bot (``/cmd@other_bot``) are treated as not being commands.
    """
    msg = event.message
    if msg is None:
        return None
    command = parse_command(msg)
    if command is None:
        return None
    own = _resolve(username)
    if own and command.username and command.username.casefold() != own.lstrip("@").casefold():
        return None
    return command


def is_command(username: UsernameSource = None) -> Predicate:
    return lambda event: command_of(event, username) is not None


def is_text(username: UsernameSource = None) -> Predicate:
    """Text messages that are not commands."""
    return all_of(has_text, negate(is_command(username)))


def command_named(*names: Union[str, re.Pattern[str]], username: UsernameSource = None) -> Predicate:
    """Commands whose name matches one of *names* (see :func:`bot.text.match_command`)."""
    def predicate(event: IncomingUpdate[Any]) -> bool:
        command = command_of(event, username)
        return command is not None and match_command(command.name, names)
    return predicate


def mentioning(username: UsernameSource) -> Predicate:
    """Messages mentioning *username* in their text or caption."""
    def predicate(event: IncomingUpdate[Any]) -> bool:
        name = _resolve(username)
        msg = event.message
        return bool(name) and msg is not None and mentions(msg, name)
    return predicate
