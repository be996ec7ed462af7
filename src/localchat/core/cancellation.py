"""Composable cancellation tokens.

A ``CancellationToken`` can be cancelled from any thread and awaited from
asyncio code.  It must not be cancelled directly inside a signal handler
(the handler may interrupt a thread holding the token's lock); use
``loop.add_signal_handler`` or hand off to another thread.

Tokens can be linked so that a child fires as soon as any of its parents
fires; this is how the transport merges a caller's stop signal with its
own first-byte timeout.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable

_logger = logging.getLogger(__name__)

Callback = Callable[["CancellationToken"], None]


class CancellationToken:
    """Thread-safe, one-shot cancellation signal."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._reason: str | None = None
        self._callbacks: list[Callback] = []
        self._detach: list[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        """Why the token was cancelled (``None`` while still live)."""
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the token.  Later calls are no-ops."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._reason = reason
            callbacks = list(self._callbacks)
            self._callbacks.clear()

        for cb in callbacks:
            try:
                cb(self)
            except Exception:
                _logger.exception("Cancellation callback %r raised", cb)

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    def add_callback(self, callback: Callback) -> Callable[[], None]:
        """Run *callback* when the token fires.

        If the token already fired, *callback* runs immediately.  Returns a
        function that removes the callback again.
        """
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        callback(self)
        return _noop

    def _remove_callback(self, callback: Callback) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

    async def wait(self) -> None:
        """Suspend until the token fires."""
        loop = asyncio.get_running_loop()
        fired = loop.create_future()

        def _resolve() -> None:
            if not fired.done():
                fired.set_result(None)

        def _wake(_token: CancellationToken) -> None:
            loop.call_soon_threadsafe(_resolve)

        remove = self.add_callback(_wake)
        try:
            await fired
        finally:
            remove()

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    @classmethod
    def linked(cls, *parents: CancellationToken | None) -> CancellationToken:
        """Return a token that fires when *any* parent fires.

        ``None`` parents are ignored.  A parent that already fired cancels
        the child immediately.  Call ``dispose()`` on the child when done so
        long-lived parents do not keep references to it.
        """
        child = cls()
        for parent in parents:
            if parent is None:
                continue
            remove = parent.add_callback(
                lambda p, c=child: c.cancel(p.reason or "cancelled"),
            )
            child._detach.append(remove)
        return child

    def cancel_after(self, delay: float, reason: str = "timeout") -> asyncio.TimerHandle:
        """Schedule ``cancel(reason)`` after *delay* seconds on the running loop."""
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, self.cancel, reason)

    def dispose(self) -> None:
        """Detach this token from the parents it was linked to."""
        detach, self._detach = self._detach, []
        for remove in detach:
            remove()

    def __repr__(self) -> str:
        state = f"cancelled reason={self._reason!r}" if self._cancelled else "live"
        return f"<CancellationToken {state}>"


def _noop() -> None:
    return None
