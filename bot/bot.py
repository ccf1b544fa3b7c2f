"""Bot facade — wires the update loop, the classifier and the dispatcher.

Every update of every batch emitted by the :class:`~bot.update_loop.UpdateLoop`
is classified and, if recognised, dispatched through the handler chain.
Dispatches are scheduled on the event loop one per update, in batch order,
and are not awaited; the update loop goes straight on to the next fetch.

Notifications emitted by :class:`Bot`:

* ``"caught_up"()`` — the backlog has been drained.
* ``"update_error"(error)`` — a fetch failed and will be retried, or (strict
  mode) an update of unknown kind was received.
* ``"error"(error)`` — a fetch was rejected and polling has halted.
"""

from __future__ import annotations

import asyncio
import dataclasses
import re
from typing import Any, Callable, Optional, Union

from core.logger import PollgramLogger
from sdk.client import TelegramClient
from sdk.exceptions import RequestError
from sdk.models import Update, User
from bot.classifier import IncomingUpdate, UnknownUpdateError, UpdateKind, classify
from bot.dispatcher import Dispatcher, Handler
from bot.events import Emitter, Listener
from bot.filters import command_named, is_command, is_text, has_text, kind_is, mentioning
from bot.update_loop import UpdateLoop, UpdateLoopOptions, UpdateSource

logger = PollgramLogger.get_logger()


@dataclasses.dataclass(frozen=True, slots=True)
class BotOptions:
    """Options for :class:`Bot`.

    Attributes:
        update_loop: Options for every update loop the bot creates.
        strict: Report updates of unknown kind as ``"update_error"``.
    """

    update_loop: UpdateLoopOptions = dataclasses.field(default_factory=UpdateLoopOptions)
    strict: bool = False


def _kind_shortcut(kind: UpdateKind) -> Callable[["Bot", Handler], Handler]:
    def register(self: "Bot", handler: Handler) -> Handler:
        return self.use(handler, kind_is(kind))

    register.__name__ = kind.value
    register.__doc__ = f"Register *handler* for ``{kind.value}`` updates."
    return register


class Bot(Emitter):
    """A polling bot.

    Usage::

        bot = Bot.from_token(BOT_TOKEN)

        @bot.command("start")
        def on_start(event, proceed):
            bot.client.send_message(event.chat.id, "Hello!")

        @bot.text
        def echo(event, proceed):
            bot.client.send_message(event.chat.id, event.text)

        bot.start()          # inside a running event loop
        await bot.wait()
    """

    def __init__(self, client: UpdateSource, options: Optional[BotOptions] = None) -> None:
        super().__init__()
        self.client = client
        self.options = options or BotOptions()
        self.dispatcher = Dispatcher()
        self.me: Optional[User] = None
        self._loop: Optional[UpdateLoop] = None
        self._subscriptions: list[tuple[str, Listener]] = []

    @classmethod
    def from_token(cls, token: str, options: Optional[BotOptions] = None, **client_options: Any) -> "Bot":
        """Build a bot around a new :class:`~sdk.client.TelegramClient`."""
        return cls(TelegramClient(token, **client_options), options)

    # ── State ────────────────────────────────────────────────────────────

    @property
    def loop(self) -> Optional[UpdateLoop]:
        """The active update loop, if polling."""
        return self._loop

    @property
    def running(self) -> bool:
        return self._loop is not None and self._loop.running

    @property
    def caught_up(self) -> bool:
        return self._loop is not None and not self._loop.queued

    @property
    def username(self) -> Optional[str]:
        return self.me.username if self.me is not None else None

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start polling with a fresh update loop.  No-op while already polling.

        Raises:
            RuntimeError: If called outside a running event loop; the bot
                then stays idle.
        """
        if self._loop is not None:
            return
        loop = UpdateLoop(self.client, self.options.update_loop, start=False)
        # Nothing is emitted before the loop task first runs.
        loop.start()
        self._subscribe(loop, "batch", self._on_batch)
        self._subscribe(loop, "caught_up", self._on_caught_up)
        self._subscribe(loop, "error", self._on_loop_error)
        self._loop = loop

    def stop(self) -> None:
        """Stop polling.  No further updates are dispatched.  No-op when idle."""
        loop = self._loop
        if loop is None:
            return
        self._detach(loop)
        loop.stop()

    async def wait(self) -> None:
        """Wait until polling ends (after :meth:`stop` or a fatal error)."""
        loop = self._loop
        if loop is not None:
            await loop.wait()

    async def join(self) -> None:
        """Wait for every coroutine handler spawned so far to finish."""
        await self.dispatcher.join()

    async def autodetect(self) -> User:
        """Fetch the bot's own :class:`User` with ``getMe`` and remember it.

        The username is then used to ignore commands addressed to other bots
        and by :meth:`mentioned`.
        """
        self.me = await asyncio.to_thread(self.client.get_me)  # type: ignore[attr-defined]
        logger.info("Bot identity detected", extra={"bot_id": self.me.id, "username": self.me.username})
        return self.me

    def _subscribe(self, loop: UpdateLoop, name: str, listener: Listener) -> None:
        loop.on(name, listener)
        self._subscriptions.append((name, listener))

    def _detach(self, loop: UpdateLoop) -> None:
        for name, listener in self._subscriptions:
            loop.off(name, listener)
        self._subscriptions.clear()
        if self._loop is loop:
            self._loop = None

    # ── Update loop notifications ────────────────────────────────────────

    def _on_batch(self, updates: list[Update], queued: bool) -> None:
        source = self._loop
        event_loop = asyncio.get_running_loop()
        for update in updates:
            event = self._classify(update, queued)
            if event is not None:
                event_loop.call_soon(self._dispatch_polled, source, event)

    def _dispatch_polled(self, source: Optional[UpdateLoop], event: IncomingUpdate[Any]) -> None:
        # Skip dispatches scheduled before stop() detached their loop.
        if source is not None and self._loop is source:
            self.dispatcher.dispatch(event)

    def _on_caught_up(self) -> None:
        self.emit("caught_up")

    def _on_loop_error(self, error: RequestError, will_retry: bool) -> None:
        if will_retry:
            self.emit("update_error", error)
            return
        loop = self._loop
        if loop is not None:
            self._detach(loop)
        if not self.emit("error", error):
            logger.error("Polling halted by a fatal error", extra={"error": str(error)})

    def _classify(self, update: Update, queued: bool) -> Optional[IncomingUpdate[Any]]:
        event = classify(update, queued)
        if event is None and self.options.strict:
            self.emit("update_error", UnknownUpdateError(update))
        return event

    # ── Manual feeding ───────────────────────────────────────────────────

    def process_update(self, raw: Union[Update, dict, str, bytes]) -> Optional[IncomingUpdate[Any]]:
        """Classify and dispatch one update received outside the update loop.

        Accepts an :class:`Update`, a decoded JSON dict, or raw JSON.  The
        chain runs synchronously; handler exceptions reach the caller.
        Raises :class:`pydantic.ValidationError` for malformed input.
        """
        if isinstance(raw, Update):
            update = raw
        elif isinstance(raw, (str, bytes)):
            update = Update.model_validate_json(raw)
        else:
            update = Update.model_validate(raw)
        event = self._classify(update, False)
        if event is not None:
            self.dispatcher.dispatch(event)
        return event

    # ── Handler registration ─────────────────────────────────────────────

    def use(self, handler: Handler, predicate: Optional[Callable[[IncomingUpdate[Any]], bool]] = None) -> Handler:
        """Append *handler* to the chain; it sees every update matching *predicate*."""
        return self.dispatcher.register(handler, predicate)

    message = _kind_shortcut(UpdateKind.MESSAGE)
    edited_message = _kind_shortcut(UpdateKind.EDITED_MESSAGE)
    channel_post = _kind_shortcut(UpdateKind.CHANNEL_POST)
    edited_channel_post = _kind_shortcut(UpdateKind.EDITED_CHANNEL_POST)
    inline_query = _kind_shortcut(UpdateKind.INLINE_QUERY)
    chosen_inline_result = _kind_shortcut(UpdateKind.CHOSEN_INLINE_RESULT)
    callback_query = _kind_shortcut(UpdateKind.CALLBACK_QUERY)
    shipping_query = _kind_shortcut(UpdateKind.SHIPPING_QUERY)
    pre_checkout_query = _kind_shortcut(UpdateKind.PRE_CHECKOUT_QUERY)
    poll = _kind_shortcut(UpdateKind.POLL)
    poll_answer = _kind_shortcut(UpdateKind.POLL_ANSWER)

    def _own_username(self) -> Optional[str]:
        return self.username

    def command(self, *names: Any) -> Any:
        """Register a command handler.

        ``@bot.command`` handles every command; ``@bot.command("start",
        re.compile("^help"))`` only the matching ones.  Names compare
        case-insensitively.
        """
        if len(names) == 1 and callable(names[0]) and not isinstance(names[0], (str, re.Pattern)):
            return self.use(names[0], is_command(self._own_username))

        def decorator(handler: Handler) -> Handler:
            return self.use(handler, command_named(*names, username=self._own_username))
        return decorator

    def text(self, handler: Optional[Handler] = None, *, also_commands: bool = False) -> Any:
        """Register a handler for text messages (by default excluding commands)."""
        predicate = has_text if also_commands else is_text(self._own_username)

        def decorator(fn: Handler) -> Handler:
            return self.use(fn, predicate)
        return decorator(handler) if handler is not None else decorator

    def mentioned(self, handler: Optional[Handler] = None, *, username: Optional[str] = None) -> Any:
        """Register a handler for messages mentioning *username* (default: this bot)."""
        predicate = mentioning(username if username is not None else self._own_username)

        def decorator(fn: Handler) -> Handler:
            return self.use(fn, predicate)
        return decorator(handler) if handler is not None else decorator
