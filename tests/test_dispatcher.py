"""Tests for the handler chain and dispatcher."""

import sys
import os
import asyncio
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from bot.classifier import IncomingUpdate, UpdateKind, classify
from bot.dispatcher import Continuation, Dispatcher, filter_handler
from sdk.models import Update


def _event(update_id: int = 1, text: str = "hi") -> IncomingUpdate:
    return classify(Update.model_validate({
        "update_id": update_id,
        "message": {"message_id": update_id, "date": 0, "chat": {"id": 1, "type": "private"}, "text": text},
    }))


def _recorder(calls: list, name: str, *, proceed: bool):
    def handler(event, next_: Continuation) -> None:
        calls.append((name, event.id))
        if proceed:
            next_()
    return handler


# ── Chain order ──────────────────────────────────────────────────────────────


class TestChainOrder:
    """Validate fallthrough semantics."""

    def test_first_handler_claims(self) -> None:
        calls = []
        d = Dispatcher()
        d.register(_recorder(calls, "h1", proceed=False))
        d.register(_recorder(calls, "h2", proceed=True))
        d.dispatch(_event())
        assert calls == [("h1", 1)]

    def test_proceed_passes_to_next(self) -> None:
        calls = []
        d = Dispatcher()
        d.register(_recorder(calls, "h1", proceed=True))
        d.register(_recorder(calls, "h2", proceed=False))
        d.register(_recorder(calls, "h3", proceed=True))
        d.dispatch(_event())
        assert calls == [("h1", 1), ("h2", 1)]

    def test_unclaimed_update_dropped(self) -> None:
        calls = []
        d = Dispatcher()
        d.register(_recorder(calls, "h1", proceed=True))
        d.register(_recorder(calls, "h2", proceed=True))
        d.dispatch(_event())
        assert calls == [("h1", 1), ("h2", 1)]

    def test_empty_chain(self) -> None:
        Dispatcher().dispatch(_event())

    def test_same_event_object_everywhere(self) -> None:
        seen = []
        d = Dispatcher()
        d.register(lambda event, next_: (seen.append(event), next_()))
        d.register(lambda event, next_: seen.append(event))
        event = _event()
        d.dispatch(event)
        assert seen == [event, event]

    def test_register_returns_handler(self) -> None:
        d = Dispatcher()
        handler = MagicMock()
        assert d.register(handler) is handler
        assert len(d) == 1

    def test_long_chain_does_not_recurse(self) -> None:
        d = Dispatcher()
        for _ in range(5000):
            d.register(lambda event, next_: next_())
        last = MagicMock()
        d.register(last)
        d.dispatch(_event())
        last.assert_called_once()


# ── Continuations ────────────────────────────────────────────────────────────


class TestContinuation:
    """Validate late and repeated continuation calls."""

    def test_late_proceed_resumes_chain(self) -> None:
        calls = []
        saved = []
        d = Dispatcher()
        d.register(lambda event, next_: saved.append(next_))
        d.register(_recorder(calls, "h2", proceed=False))
        d.dispatch(_event())
        assert calls == []
        saved[0]()
        assert calls == [("h2", 1)]

    def test_late_proceed_sees_handlers_registered_since(self) -> None:
        calls = []
        saved = []
        d = Dispatcher()
        d.register(lambda event, next_: saved.append(next_))
        d.dispatch(_event())
        d.register(_recorder(calls, "late", proceed=False))
        saved[0]()
        assert calls == [("late", 1)]

    def test_double_proceed_runs_next_once(self) -> None:
        calls = []
        d = Dispatcher()

        def twice(event, next_: Continuation) -> None:
            next_()
            next_()

        d.register(twice)
        d.register(_recorder(calls, "h2", proceed=False))
        d.dispatch(_event())
        assert calls == [("h2", 1)]

    def test_double_late_proceed_runs_next_once(self) -> None:
        calls = []
        saved = []
        d = Dispatcher()
        d.register(lambda event, next_: saved.append(next_))
        d.register(_recorder(calls, "h2", proceed=False))
        d.dispatch(_event())
        saved[0].proceed()
        saved[0].proceed()
        assert calls == [("h2", 1)]

    def test_index(self) -> None:
        indexes = []
        d = Dispatcher()
        d.register(lambda event, next_: (indexes.append(next_.index), next_()))
        d.register(lambda event, next_: indexes.append(next_.index))
        d.dispatch(_event())
        assert indexes == [0, 1]


# ── Re-entrancy ──────────────────────────────────────────────────────────────


class TestReentrancy:
    """Validate dispatches started from inside handlers."""

    def test_nested_dispatch_is_independent(self) -> None:
        calls = []
        d = Dispatcher()

        def first(event, next_: Continuation) -> None:
            calls.append(("first", event.id))
            if event.id == 1:
                d.dispatch(_event(2))
            next_()

        d.register(first)
        d.register(_recorder(calls, "second", proceed=False))
        d.dispatch(_event(1))
        assert calls == [("first", 1), ("first", 2), ("second", 2), ("second", 1)]

    def test_registration_during_dispatch(self) -> None:
        calls = []
        d = Dispatcher()

        def adder(event, next_: Continuation) -> None:
            d.register(_recorder(calls, "added", proceed=False))
            next_()

        d.register(adder)
        d.dispatch(_event())
        assert calls == [("added", 1)]


# ── Errors ───────────────────────────────────────────────────────────────────


class TestHandlerErrors:
    """Handler exceptions are not caught by the dispatcher."""

    def test_exception_propagates(self) -> None:
        d = Dispatcher()

        def broken(event, next_):
            raise RuntimeError("boom")

        d.register(broken)
        with pytest.raises(RuntimeError, match="boom"):
            d.dispatch(_event())

    def test_later_handlers_not_run_after_exception(self) -> None:
        d = Dispatcher()
        after = MagicMock()

        def broken(event, next_):
            raise RuntimeError("boom")

        d.register(broken)
        d.register(after)
        with pytest.raises(RuntimeError):
            d.dispatch(_event())
        after.assert_not_called()


# ── Filtering ────────────────────────────────────────────────────────────────


class TestFilterHandler:
    """Validate predicate wrapping."""

    def test_non_matching_skipped(self) -> None:
        calls = []
        d = Dispatcher()
        d.register(_recorder(calls, "only_bye", proceed=False), predicate=lambda e: e.text == "bye")
        d.register(_recorder(calls, "fallback", proceed=False))
        d.dispatch(_event(text="hi"))
        d.dispatch(_event(2, text="bye"))
        assert calls == [("fallback", 1), ("only_bye", 2)]

    def test_wrapper_keeps_name(self) -> None:
        def on_text(event, next_):
            pass

        wrapped = filter_handler(lambda e: True, on_text)
        assert wrapped.__name__ == "on_text"
        assert wrapped.__wrapped__ is on_text


# ── Coroutine handlers ───────────────────────────────────────────────────────


class TestAsyncHandlers:
    """Validate coroutine handlers scheduled as tasks."""

    @pytest.mark.asyncio
    async def test_coroutine_handler_runs_as_task(self) -> None:
        calls = []
        d = Dispatcher()

        async def handler(event, next_):
            await asyncio.sleep(0)
            calls.append(event.id)

        d.register(handler)
        d.dispatch(_event(3))
        assert calls == []
        assert d.pending == 1
        await d.join()
        assert calls == [3]
        assert d.pending == 0

    @pytest.mark.asyncio
    async def test_coroutine_claims_unless_it_proceeds(self) -> None:
        calls = []
        d = Dispatcher()

        async def maybe(event, next_):
            await asyncio.sleep(0)
            if event.text == "pass":
                next_()

        d.register(maybe)
        d.register(_recorder(calls, "fallback", proceed=False))
        d.dispatch(_event(1, text="keep"))
        d.dispatch(_event(2, text="pass"))
        await d.join()
        assert calls == [("fallback", 2)]

    @pytest.mark.asyncio
    async def test_join_waits_for_chained_tasks(self) -> None:
        calls = []
        d = Dispatcher()

        async def first(event, next_):
            await asyncio.sleep(0)
            next_()

        async def second(event, next_):
            await asyncio.sleep(0)
            calls.append("second")

        d.register(first)
        d.register(second)
        d.dispatch(_event())
        await d.join()
        assert calls == ["second"]

    @pytest.mark.asyncio
    async def test_dispatch_does_not_wait_for_tasks(self) -> None:
        started = asyncio.Event()
        release = asyncio.Event()
        d = Dispatcher()

        async def slow(event, next_):
            started.set()
            await release.wait()

        d.register(slow)
        d.dispatch(_event())
        await started.wait()
        assert d.pending == 1
        release.set()
        await d.join()

    @pytest.mark.asyncio
    async def test_kind_available_in_handler(self) -> None:
        kinds = []
        d = Dispatcher()

        async def handler(event, next_):
            kinds.append(event.kind)

        d.register(handler)
        d.dispatch(_event())
        await d.join()
        assert kinds == [UpdateKind.MESSAGE]
