"""Handler chain and dispatcher.

Handlers are tried strictly in registration order.  Each one receives the
classified update and a :class:`Continuation`; calling the continuation means
"not mine, try the next handler", returning without calling it claims the
update.  An update nobody claims is dropped silently.

The chain is walked with an explicit index in a loop rather than by nesting
calls, so long chains do not grow the stack.  Each :meth:`Dispatcher.dispatch`
call owns its own index, which makes the chain safe to dispatch re-entrantly
and to extend while a dispatch is in progress.

Coroutine handlers are scheduled as tasks and never awaited by the
dispatcher.  A continuation invoked after its handler has returned (for
instance from inside such a task) resumes the chain from the next handler at
that moment.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
from typing import Any, Awaitable, Callable, Optional

from core.logger import PollgramLogger
from bot.classifier import IncomingUpdate

logger = PollgramLogger.get_logger()

Handler = Callable[[IncomingUpdate[Any], "Continuation"], Any]
Predicate = Callable[[IncomingUpdate[Any]], bool]


class _Step(enum.Enum):
    RUNNING = "running"        # handler is executing synchronously
    PROCEED = "proceed"        # continuation called while RUNNING
    RETURNED = "returned"      # handler returned without proceeding
    DONE = "done"              # continuation already consumed


class Continuation:
    """The ``next`` capability handed to a handler.

    Call it (or :meth:`proceed`) to pass the update to the next handler.
    Only the first call has an effect.
    """

    __slots__ = ("_dispatcher", "_event", "_index", "_step")

    def __init__(self, dispatcher: "Dispatcher", event: IncomingUpdate[Any], index: int) -> None:
        self._dispatcher = dispatcher
        self._event = event
        self._index = index
        self._step = _Step.RUNNING

    @property
    def index(self) -> int:
        """Position of the handler this continuation was handed to."""
        return self._index

    def proceed(self) -> None:
        step = self._step
        if step is _Step.RUNNING:
            # The trampoline in Dispatcher._run picks this up once the handler returns.
            self._step = _Step.PROCEED
        elif step is _Step.RETURNED:
            self._step = _Step.DONE
            self._dispatcher._run(self._event, self._index + 1)
        else:
            logger.warning(
                "Continuation invoked more than once",
                extra={"update_id": self._event.id, "handler_index": self._index},
            )

    __call__ = proceed


def filter_handler(predicate: Predicate, handler: Handler) -> Handler:
    """Wrap *handler* so it only sees updates matching *predicate*.

    Non-matching updates are passed straight to the continuation, so the
    wrapped handler is skipped transparently.
    """
    def filtered(event: IncomingUpdate[Any], proceed: Continuation) -> Any:
        if predicate(event):
            return handler(event, proceed)
        return proceed()

    filtered.__wrapped__ = handler  # type: ignore[attr-defined]
    filtered.__name__ = getattr(handler, "__name__", "filtered")
    return filtered


class Dispatcher:
    """Ordered, append-only chain of handlers.

    Usage::

        dispatcher = Dispatcher()

        def log_everything(event, proceed):
            logger.info("got %s", event.kind)
            proceed()

        dispatcher.register(log_everything)
        dispatcher.register(handle_text, predicate=lambda e: e.text is not None)
        dispatcher.dispatch(event)
    """

    def __init__(self) -> None:
        self._handlers: list[Handler] = []
        self._tasks: set[asyncio.Future[Any]] = set()

    def __len__(self) -> int:
        return len(self._handlers)

    @property
    def handlers(self) -> tuple[Handler, ...]:
        return tuple(self._handlers)

    def register(self, handler: Handler, predicate: Optional[Predicate] = None) -> Handler:
        """Append *handler* (optionally filtered by *predicate*) to the chain.

        Returns *handler* unchanged so this can be used as a decorator body.
        """
        self._handlers.append(filter_handler(predicate, handler) if predicate is not None else handler)
        return handler

    def dispatch(self, event: IncomingUpdate[Any]) -> None:
        """Run *event* through the chain from the first handler."""
        self._run(event, 0)

    def _run(self, event: IncomingUpdate[Any], index: int) -> None:
        while index < len(self._handlers):
            proceed = Continuation(self, event, index)
            result = self._handlers[index](event, proceed)
            if inspect.isawaitable(result):
                self._spawn(result)
            if proceed._step is _Step.PROCEED:
                proceed._step = _Step.DONE
                index += 1
                continue
            proceed._step = _Step.RETURNED
            return
        logger.debug("No handler claimed update", extra={"update_id": event.id, "kind": event.kind.value})

    def _spawn(self, awaitable: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(awaitable, loop=asyncio.get_running_loop())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def pending(self) -> int:
        """Number of coroutine handlers still running."""
        return len(self._tasks)

    async def join(self) -> None:
        """Wait until every scheduled coroutine handler has finished.

        Handler exceptions are left on their tasks for the event loop's
        exception handler to report.
        """
        while self._tasks:
            await asyncio.wait(set(self._tasks))
