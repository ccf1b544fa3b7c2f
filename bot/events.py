"""Named-notification emitter shared by the update loop and the bot facade.

Listeners are plain callables stored per notification name in registration
order.  :meth:`Emitter.emit` calls them synchronously; a notification nobody
listens to is simply dropped.
"""

from __future__ import annotations

from typing import Any, Callable

Listener = Callable[..., Any]


class Emitter:
    """Minimal synchronous event emitter.

    Usage::

        loop.on("batch", lambda updates, queued: ...)
        loop.off("batch", listener)
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, name: str, listener: Listener) -> Listener:
        """Subscribe *listener* to *name* and return it (decorator friendly)."""
        self._listeners.setdefault(name, []).append(listener)
        return listener

    def off(self, name: str, listener: Listener) -> None:
        """Unsubscribe one registration of *listener*; unknown ones are ignored."""
        listeners = self._listeners.get(name)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def remove_all_listeners(self, name: str | None = None) -> None:
        if name is None:
            self._listeners.clear()
        else:
            self._listeners.pop(name, None)

    def listeners(self, name: str) -> list[Listener]:
        return list(self._listeners.get(name, ()))

    def emit(self, name: str, *args: Any) -> bool:
        """Call every listener of *name* with *args*.

        Returns ``True`` if at least one listener was called.  Iterates over a
        snapshot, so listeners may unsubscribe while being notified.
        """
        listeners = self.listeners(name)
        for listener in listeners:
            listener(*args)
        return bool(listeners)
