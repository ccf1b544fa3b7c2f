"""Long-polling update loop.

:class:`UpdateLoop` repeatedly calls ``getUpdates`` on a transport client and
emits what it receives:

* ``"batch"(updates, queued)`` for every non-empty batch,
* ``"caught_up"()`` once, when the backlog has been drained,
* ``"error"(error, will_retry)`` for every failed fetch.

The loop starts in the *draining-backlog* phase, short-polling (timeout 0)
and marking batches as queued.  The first batch smaller than the requested
limit switches it to the *live* phase, where it long-polls with
``poll_time``.  It never switches back.

Only one fetch is ever in flight.  The blocking transport call runs in a
daemon worker thread; awaiting it (and the retry delay) are the only points
where the loop yields to the event loop.  :meth:`UpdateLoop.stop` abandons
that call, asking the client to abort it when the client supports it.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import inspect
import threading
from typing import Any, Callable, List, Optional, Protocol, Sequence, Union

from core.logger import PollgramLogger
from sdk.exceptions import NetworkError, RequestError, TelegramError
from sdk.models import Update
from bot.classifier import UpdateKind
from bot.events import Emitter

logger = PollgramLogger.get_logger()


def _current_task() -> Optional["asyncio.Task[Any]"]:
    try:
        return asyncio.current_task()
    except RuntimeError:  # no running event loop
        return None


def _run_in_thread(func: Callable[..., Any], /, *args: Any, **kwargs: Any) -> "asyncio.Future[Any]":
    """Run blocking *func* in a daemon thread and return a future for its result.

    Unlike :func:`asyncio.to_thread` the thread is not part of the default
    executor, so shutting the event loop down never waits for an abandoned
    call.  Cancelling the future drops the eventual result.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[Any] = loop.create_future()

    def deliver(result: Any, error: Optional[BaseException]) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def worker() -> None:
        result: Any = None
        error: Optional[BaseException] = None
        try:
            result = func(*args, **kwargs)
        except Exception as exc:  # noqa: BLE001  handed to the awaiting task
            error = exc
        try:
            loop.call_soon_threadsafe(deliver, result, error)
        except RuntimeError:  # event loop already closed
            logger.debug("Worker result dropped after event loop shutdown", extra={"error": str(error) if error else None})

    threading.Thread(target=worker, name="pollgram-fetch", daemon=True).start()
    return future


class UpdateSource(Protocol):
    """What the loop needs from a transport client.

    ``get_updates`` may be a plain method (run in a worker thread) or a
    coroutine function (awaited directly).  A client may also offer an
    ``abort()`` method; :meth:`UpdateLoop.stop` calls it to abandon a fetch
    that is in flight.
    """

    def get_updates(
        self,
        offset: Optional[int] = None,
        limit: Optional[int] = 100,
        timeout: Optional[int] = 0,
        allowed_updates: Optional[List[str]] = None,
    ) -> Any: ...  # noqa: E704


class LoopPhase(str, enum.Enum):
    DRAINING_BACKLOG = "draining-backlog"
    LIVE = "live"


class LoopState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclasses.dataclass(frozen=True, slots=True)
class UpdateLoopOptions:
    """Tuning knobs for :class:`UpdateLoop`.

    Attributes:
        poll_time: Long-poll timeout in seconds once live.
        discard: ``False`` to deliver the backlog, ``True`` to skip it
            entirely, or an integer *N* to deliver only its last *N* updates.
        batch_size: ``limit`` sent with every fetch (1..100).
        allowed_updates: Kinds to receive; empty means all.
        retry_time: Fixed delay in seconds before retrying a failed fetch.
        always_retry: Also retry when Telegram rejects the request.
    """

    poll_time: int = 50
    discard: Union[bool, int] = False
    batch_size: int = 100
    allowed_updates: Sequence[str] = ()
    retry_time: float = 10
    always_retry: bool = False

    def __post_init__(self) -> None:
        if not 1 <= self.batch_size <= 100:
            raise ValueError(f"batch_size must be within 1..100, got {self.batch_size}")
        if self.poll_time < 0:
            raise ValueError(f"poll_time must not be negative, got {self.poll_time}")
        if self.retry_time < 0:
            raise ValueError(f"retry_time must not be negative, got {self.retry_time}")
        if not isinstance(self.discard, bool) and self.discard < 1:
            raise ValueError(f"discard must be a boolean or a positive integer, got {self.discard}")
        try:
            kinds = tuple(UpdateKind(kind).value for kind in self.allowed_updates)
        except ValueError as exc:
            raise ValueError(f"Unknown kind in allowed_updates: {exc}") from None
        object.__setattr__(self, "allowed_updates", kinds)

    @property
    def discard_offset(self) -> Optional[int]:
        """Negative offset for the first fetch, or ``None`` when not discarding."""
        if self.discard is False:
            return None
        if self.discard is True:
            return -1
        return -self.discard


@dataclasses.dataclass(slots=True)
class _Cursor:
    """Mutable loop state, touched only by the loop's own task."""

    offset: Optional[int] = None
    phase: LoopPhase = LoopPhase.DRAINING_BACKLOG
    fetched: bool = False  # a fetch has succeeded at least once


class UpdateLoop(Emitter):
    """Fetch-and-emit cycle over an :class:`UpdateSource`.

    Started on construction unless ``start=False``; construction then needs a
    running event loop.  A stopped loop cannot be restarted; build a new one.

    Usage::

        loop = UpdateLoop(client, UpdateLoopOptions(poll_time=30))
        loop.on("batch", lambda updates, queued: ...)
        ...
        loop.stop()
    """

    def __init__(self, client: UpdateSource, options: Optional[UpdateLoopOptions] = None, *, start: bool = True) -> None:
        super().__init__()
        self.client = client
        self.options = options or UpdateLoopOptions()
        self._cursor = _Cursor()
        self._state = LoopState.IDLE
        self._task: Optional[asyncio.Task[None]] = None
        self._fetching = False
        if start:
            self.start()

    # ── Read-only view of the loop state ─────────────────────────────────

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state is LoopState.RUNNING

    @property
    def offset(self) -> Optional[int]:
        """ID of the last received update + 1, if any was received."""
        return self._cursor.offset

    @property
    def phase(self) -> LoopPhase:
        return self._cursor.phase

    @property
    def queued(self) -> bool:
        """``True`` until the backlog has been drained."""
        return self._cursor.phase is LoopPhase.DRAINING_BACKLOG

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        """Begin polling.  No-op unless the loop is idle."""
        if self._state is not LoopState.IDLE:
            return
        # Raises RuntimeError outside an event loop; the loop then stays idle.
        self._task = asyncio.get_running_loop().create_task(self._run(), name="pollgram-update-loop")
        self._state = LoopState.RUNNING
        logger.info("Update loop started", extra={"batch_size": self.options.batch_size, "discard": self.options.discard})

    def stop(self) -> None:
        """Stop polling and abort the in-flight fetch, if any.

        No further fetches are made.  A batch already received when this is
        called may or may not still be emitted.  No-op unless running.
        """
        if self._state is not LoopState.RUNNING:
            return
        self._state = LoopState.STOPPED
        task = self._task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        if self._fetching:
            self._abort_fetch()
        logger.info("Update loop stopped", extra={"offset": self._cursor.offset})

    async def wait(self) -> None:
        """Wait for the loop to terminate (stopped, or halted by a fatal error)."""
        task = self._task
        if task is None:
            return
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            raise task.exception()  # type: ignore[misc]

    # ── Tick ─────────────────────────────────────────────────────────────

    def _fetch_params(self) -> dict[str, Any]:
        cursor = self._cursor
        offset = cursor.offset
        discard_offset = self.options.discard_offset
        if not cursor.fetched and discard_offset is not None:
            offset = discard_offset
        return {
            "offset": offset,
            "timeout": 0 if cursor.phase is LoopPhase.DRAINING_BACKLOG else self.options.poll_time,
            "limit": self.options.batch_size,
            "allowed_updates": list(self.options.allowed_updates),
        }

    async def _fetch(self, params: dict[str, Any]) -> List[Update]:
        get_updates = self.client.get_updates
        self._fetching = True
        try:
            if inspect.iscoroutinefunction(get_updates):
                return await get_updates(**params)
            return await _run_in_thread(get_updates, **params)
        finally:
            self._fetching = False

    def _abort_fetch(self) -> None:
        abort = getattr(self.client, "abort", None)
        if callable(abort):
            logger.debug("Aborting in-flight fetch")
            abort()

    async def _run(self) -> None:
        cursor = self._cursor
        try:
            while self._state is LoopState.RUNNING:
                params = self._fetch_params()
                try:
                    updates = await self._fetch(params)
                except asyncio.CancelledError:
                    raise
                except Exception as exc:  # noqa: BLE001
                    error = exc if isinstance(exc, RequestError) else NetworkError(exc, "getUpdates", params)
                    if not await self._on_error(error):
                        return
                    continue
                self._on_batch(cursor, list(updates))
        finally:
            if self._state is LoopState.RUNNING:
                self._state = LoopState.STOPPED

    def _on_batch(self, cursor: _Cursor, updates: List[Update]) -> None:
        queued = cursor.phase is LoopPhase.DRAINING_BACKLOG
        discarding = not cursor.fetched and self.options.discard is True
        cursor.fetched = True
        if updates:
            next_offset = max(update.update_id for update in updates) + 1
            if cursor.offset is None or next_offset > cursor.offset:
                cursor.offset = next_offset
            logger.debug(
                "Batch received",
                extra={"count": len(updates), "offset": cursor.offset, "queued": queued},
            )
            if not (queued and self.options.discard is True):
                self.emit("batch", updates, queued)
            elif discarding:
                logger.info("Discarded backlog", extra={"offset": cursor.offset})
        if queued and len(updates) < self.options.batch_size:
            cursor.phase = LoopPhase.LIVE
            logger.info("Backlog drained, switching to long polling", extra={"offset": cursor.offset})
            self.emit("caught_up")

    async def _on_error(self, error: RequestError) -> bool:
        """Report *error*; sleep and return ``True`` if the loop should retry."""
        will_retry = isinstance(error, NetworkError) or self.options.always_retry
        extra = {"api_method": error.method, "error": str(error), "will_retry": will_retry}
        if isinstance(error, TelegramError):
            extra["status_code"] = error.status_code
        if will_retry:
            logger.warning("getUpdates failed, retrying", extra={**extra, "retry_time": self.options.retry_time})
        else:
            logger.error("getUpdates rejected, stopping update loop", extra=extra)
            self._state = LoopState.STOPPED
        self.emit("error", error, will_retry)
        if not will_retry or self._state is not LoopState.RUNNING:
            return False
        await asyncio.sleep(self.options.retry_time)
        return self._state is LoopState.RUNNING
