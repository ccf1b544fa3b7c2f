"""Telegram Bot API transport — Pydantic models, client, and exceptions.

:class:`TelegramClient` performs the remote calls the update loop relies on
(``getUpdates``) plus a few convenience wrappers.  Failures surface as
:class:`NetworkError` (transient) or :class:`TelegramError` (rejected).

Usage::

    from sdk import TelegramClient, NetworkError, TelegramError
    from sdk.models import Update, Message, User
"""

from sdk.client import TelegramClient
from sdk.exceptions import NetworkError, RequestError, TelegramError

__all__ = [
    "TelegramClient",
    "RequestError",
    "NetworkError",
    "TelegramError",
]
