"""Cancellation tokens threaded through every suspension point of a run."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from threading import Lock
from typing import TypeVar

from refmt.lib.errors import ErrorKind, FormatError

T = TypeVar("T")


class CancellationToken:
    """Thread-safe cancellation flag with callbacks.

    A blocking run lives on its own event loop and may cancel a run owned by a
    different loop, so callbacks hop loops through ``call_soon_threadsafe``.
    """

    def __init__(self, label: str = "") -> None:
        self.label = label
        self._lock = Lock()
        self._cancelled = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> bool:
        """Cancel the token; returns False when it was already cancelled."""

        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            self._reason = reason
            callbacks = tuple(self._callbacks)
            self._callbacks.clear()
        for callback in callbacks:
            callback()
        return True

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback; returns a function unregistering it."""

        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                registered = True
            else:
                registered = False
        if not registered:
            callback()

        def _remove() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return _remove

    @contextmanager
    def bind_current_task(self) -> Iterator[None]:
        """Cancel the current asyncio task while bound if the token is cancelled."""

        loop = asyncio.get_running_loop()
        task = asyncio.current_task()
        if task is None:
            raise RuntimeError("bind_current_task() requires a running task.")
        bound = True

        def _cancel_task() -> None:
            # Runs on the task's loop; the scope may have exited meanwhile.
            if bound:
                task.cancel()

        def _on_cancel() -> None:
            try:
                loop.call_soon_threadsafe(_cancel_task)
            except RuntimeError:
                # Loop already closed: the task is gone too.
                return

        remove = self.add_callback(_on_cancel)
        try:
            yield
        finally:
            bound = False
            remove()

    def error(self, what: str) -> FormatError:
        reason = self._reason or "cancelled"
        return FormatError(ErrorKind.CANCELLED, f"{what} {reason}")


async def run_cancellable(token: CancellationToken, awaitable: Awaitable[T], *, what: str) -> T:
    """Await ``awaitable`` unless ``token`` is cancelled first.

    Cancellation through the token surfaces as a ``cancelled`` FormatError;
    any other task cancellation (timeouts, shutdown) propagates unchanged.
    """

    if token.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise token.error(what)
    try:
        with token.bind_current_task():
            return await awaitable
    except asyncio.CancelledError:
        if not token.cancelled:
            raise
        task = asyncio.current_task()
        if task is not None:
            task.uncancel()
        raise token.error(what) from None
