"""Application lifecycle pub/sub.

When a host (phone OS, desktop window manager, job control) suspends the
process, any open HTTP stream is frozen with it and is almost certainly dead
by the time the process resumes.  This module publishes active/inactive
transitions so the chat session can abort such streams on resume.

A registry attaches to exactly one transition *source*, chosen lazily on the
first ``subscribe()`` from an ordered list of candidates:

- ``HostStateSource``: the embedding application pushes state itself.
- ``VisibilitySource``: adapts an existing visibility-change hook, e.g. a Qt
  ``applicationStateChanged.connect``.
- ``SignalResumeSource``: POSIX ``SIGCONT``, delivered when a stopped
  process is continued.
"""

from __future__ import annotations

import logging
import queue
import signal
import threading
from typing import Any, Callable, Protocol, Sequence

_logger = logging.getLogger(__name__)

LifecycleCallback = Callable[[bool], Any]
Emit = Callable[[bool], None]


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------

class LifecycleSource(Protocol):
    name: str

    def is_available(self) -> bool:
        ...

    def attach(self, emit: Emit) -> None:
        """Start delivering transitions to *emit*."""
        ...


class HostStateSource:
    """Push-based source driven by the host application."""

    name = "host"

    def __init__(self) -> None:
        self._emit: Emit | None = None

    def is_available(self) -> bool:
        return True

    def attach(self, emit: Emit) -> None:
        self._emit = emit

    def set_active(self, is_active: bool) -> None:
        """Report a foreground (True) / background (False) change."""
        if self._emit is None:
            _logger.debug("Host state %s reported before attach; ignored", is_active)
            return
        self._emit(is_active)


class VisibilitySource:
    """Adapt a ``connect(handler)`` style visibility hook.

    *connect* registers a handler that is called with a truthy value when the
    application becomes visible and a falsy one when it is hidden.
    """

    name = "visibility"

    def __init__(self, connect: Callable[[Callable[[Any], None]], Any] | None) -> None:
        self._connect = connect

    def is_available(self) -> bool:
        return self._connect is not None

    def attach(self, emit: Emit) -> None:
        if self._connect is None:
            raise RuntimeError("No visibility hook configured")
        self._connect(lambda visible: emit(bool(visible)))


class SignalResumeSource:
    """Treat ``SIGCONT`` as a freeze/resume cycle.

    The process cannot observe being stopped (``SIGSTOP`` is not
    catchable), so on continue it reports inactive then active.

    The handler interrupts the main thread at an arbitrary point, possibly
    while it holds a lock a subscriber needs.  It only queues the
    transitions; a dispatcher thread delivers them.
    """

    name = "sigcont"

    def is_available(self) -> bool:
        return (
            hasattr(signal, "SIGCONT")
            and threading.current_thread() is threading.main_thread()
        )

    def attach(self, emit: Emit) -> None:
        previous = signal.getsignal(signal.SIGCONT)
        # SimpleQueue.put is reentrant, so it is safe inside a signal handler
        pending: queue.SimpleQueue[bool] = queue.SimpleQueue()

        def _dispatch() -> None:
            while True:
                emit(pending.get())

        def _on_continue(signum: int, frame: Any) -> None:
            pending.put(False)
            pending.put(True)
            if callable(previous):
                previous(signum, frame)

        threading.Thread(target=_dispatch, name="localchat-sigcont", daemon=True).start()
        signal.signal(signal.SIGCONT, _on_continue)


def default_sources() -> list[LifecycleSource]:
    return [SignalResumeSource()]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class Subscription:
    """Handle returned by ``LifecycleRegistry.subscribe``."""

    def __init__(self, registry: LifecycleRegistry, callback: LifecycleCallback) -> None:
        self._registry = registry
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        """Detach this callback.  Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._registry._remove(self)

    __call__ = unsubscribe


class LifecycleRegistry:
    """Publish active/inactive transitions to independent subscribers.

    Features:
    - The first ``subscribe()`` attaches one source (first available wins).
    - Callbacks fire only when the state actually changes.
    - A callback that raises is logged; the others still run.
    - Thread-safe subscribe/unsubscribe.
    """

    def __init__(self, sources: Sequence[LifecycleSource] | None = None) -> None:
        self._sources = list(sources) if sources is not None else None
        self._subscriptions: list[Subscription] = []
        self._lock = threading.RLock()
        self._active = True  # assume foreground at startup
        self._initialized = False
        self._source: LifecycleSource | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def subscribe(self, callback: LifecycleCallback) -> Subscription:
        """Register *callback* ``(is_active) -> None``."""
        sub = Subscription(self, callback)
        with self._lock:
            self._subscriptions.append(sub)
        self._ensure_initialized()
        return sub

    @property
    def is_active(self) -> bool:
        """Last known state (True until a transition says otherwise)."""
        return self._active

    @property
    def source(self) -> LifecycleSource | None:
        """The attached source, if any."""
        return self._source

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, is_active: bool) -> None:
        """Record a state and notify subscribers if it changed."""
        with self._lock:
            if is_active == self._active:
                return
            self._active = is_active
            subscriptions = list(self._subscriptions)

        for sub in subscriptions:
            try:
                sub._callback(is_active)
            except Exception:
                _logger.exception(
                    "Lifecycle callback %s raised (is_active=%s)",
                    getattr(sub._callback, "__name__", sub._callback),
                    is_active,
                )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            try:
                self._subscriptions.remove(sub)
            except ValueError:
                pass

    def _ensure_initialized(self) -> None:
        with self._lock:
            if self._initialized:
                return
            self._initialized = True
            candidates = self._sources if self._sources is not None else default_sources()

            for source in candidates:
                if not source.is_available():
                    continue
                try:
                    source.attach(self.publish)
                except Exception:
                    _logger.warning(
                        "Lifecycle source %s failed to attach; trying next",
                        source.name, exc_info=True,
                    )
                    continue
                self._source = source
                _logger.debug("Lifecycle source: %s", source.name)
                return
            _logger.info("No lifecycle source available; transitions come from publish() only")


# ---------------------------------------------------------------------------
# Process-wide registry
# ---------------------------------------------------------------------------

_default_registry: LifecycleRegistry | None = None
_default_lock = threading.Lock()


def get_lifecycle_registry() -> LifecycleRegistry:
    """Return the process-wide registry, creating it on first use."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = LifecycleRegistry()
        return _default_registry
