"""Tests for the lifecycle registry and its transition sources."""

from __future__ import annotations

import os
import signal
import subprocess
import sys
import textwrap
import time
from pathlib import Path

import pytest

from localchat.events import lifecycle as lifecycle_mod
from localchat.events.lifecycle import (
    HostStateSource,
    LifecycleRegistry,
    SignalResumeSource,
    VisibilitySource,
    get_lifecycle_registry,
)


class _BrokenSource:
    name = "broken"

    def __init__(self) -> None:
        self.attempts = 0

    def is_available(self) -> bool:
        return True

    def attach(self, emit) -> None:
        self.attempts += 1
        raise OSError("no hook")


class _UnavailableSource(_BrokenSource):
    name = "unavailable"

    def is_available(self) -> bool:
        return False


class TestRegistry:
    def test_delivers_transitions_in_order(self):
        host = HostStateSource()
        registry = LifecycleRegistry([host])
        seen = []
        registry.subscribe(seen.append)

        host.set_active(False)
        host.set_active(True)
        assert seen == [False, True]
        assert registry.is_active

    def test_repeated_state_not_redelivered(self):
        host = HostStateSource()
        registry = LifecycleRegistry([host])
        seen = []
        registry.subscribe(seen.append)

        host.set_active(True)  # initial state is active
        host.set_active(False)
        host.set_active(False)
        assert seen == [False]
        assert not registry.is_active

    def test_every_subscriber_notified(self):
        registry = LifecycleRegistry([])
        a, b = [], []
        registry.subscribe(a.append)
        registry.subscribe(b.append)
        registry.publish(False)
        assert a == b == [False]

    def test_raising_subscriber_isolated(self, caplog):
        registry = LifecycleRegistry([])
        seen = []

        def bad(is_active: bool) -> None:
            raise RuntimeError("boom")

        registry.subscribe(bad)
        registry.subscribe(seen.append)
        registry.publish(False)
        assert seen == [False]
        assert "Lifecycle callback" in caplog.text

    def test_unsubscribe(self):
        registry = LifecycleRegistry([])
        seen = []
        sub = registry.subscribe(seen.append)
        sub.unsubscribe()
        sub.unsubscribe()
        registry.publish(False)
        assert seen == []
        assert not sub.active
        assert registry.subscriber_count == 0

    def test_subscription_is_callable(self):
        registry = LifecycleRegistry([])
        sub = registry.subscribe(lambda a: None)
        sub()
        assert registry.subscriber_count == 0

    def test_unsubscribe_during_publish(self):
        registry = LifecycleRegistry([])
        seen = []
        subs = []

        def first(is_active: bool) -> None:
            seen.append("first")
            subs[1].unsubscribe()

        subs.append(registry.subscribe(first))
        subs.append(registry.subscribe(lambda a: seen.append("second")))
        registry.publish(False)
        # The snapshot taken before delivery still includes "second"
        assert seen == ["first", "second"]
        registry.publish(True)
        assert seen == ["first", "second", "first"]


class TestSourceSelection:
    def test_no_source_until_first_subscribe(self):
        host = HostStateSource()
        registry = LifecycleRegistry([host])
        assert registry.source is None
        host.set_active(False)  # ignored: not attached yet
        registry.subscribe(lambda a: None)
        assert registry.source is host
        assert registry.is_active

    def test_attaches_once(self):
        broken = _BrokenSource()
        registry = LifecycleRegistry([broken])
        registry.subscribe(lambda a: None)
        registry.subscribe(lambda a: None)
        assert broken.attempts == 1

    def test_falls_through_to_next_source(self, caplog):
        broken, unavailable, host = _BrokenSource(), _UnavailableSource(), HostStateSource()
        registry = LifecycleRegistry([unavailable, broken, host])
        registry.subscribe(lambda a: None)
        assert registry.source is host
        assert unavailable.attempts == 0
        assert "broken failed to attach" in caplog.text

    def test_no_source_available(self):
        registry = LifecycleRegistry([_UnavailableSource()])
        seen = []
        registry.subscribe(seen.append)
        assert registry.source is None
        registry.publish(False)
        assert seen == [False]

    def test_visibility_source(self):
        handlers = []
        registry = LifecycleRegistry([VisibilitySource(None), VisibilitySource(handlers.append)])
        seen = []
        registry.subscribe(seen.append)

        assert registry.source.name == "visibility"
        handlers[0](0)
        handlers[0](1)
        assert seen == [False, True]

    def test_visibility_source_without_hook_unavailable(self):
        assert not VisibilitySource(None).is_available()


@pytest.mark.skipif(not hasattr(signal, "SIGCONT"), reason="POSIX only")
class TestSignalResumeSource:
    def test_sigcont_reports_freeze_and_resume(self):
        previous = signal.getsignal(signal.SIGCONT)
        try:
            registry = LifecycleRegistry([SignalResumeSource()])
            seen = []
            registry.subscribe(seen.append)
            assert registry.source.name == "sigcont"

            os.kill(os.getpid(), signal.SIGCONT)
            deadline = time.monotonic() + 1
            while len(seen) < 2 and time.monotonic() < deadline:
                time.sleep(0.01)
            assert seen == [False, True]
        finally:
            signal.signal(signal.SIGCONT, previous)

    def test_previous_handler_chained(self):
        previous = signal.getsignal(signal.SIGCONT)
        calls = []
        try:
            signal.signal(signal.SIGCONT, lambda s, f: calls.append(s))
            SignalResumeSource().attach(lambda active: None)
            os.kill(os.getpid(), signal.SIGCONT)
            deadline = time.monotonic() + 1
            while not calls and time.monotonic() < deadline:
                time.sleep(0.01)
            assert calls == [signal.SIGCONT]
        finally:
            signal.signal(signal.SIGCONT, previous)

    def test_signal_while_token_lock_held_does_not_hang(self):
        # The signal lands while the main thread holds the token's lock;
        # delivery must wait for the lock instead of deadlocking on it.
        script = textwrap.dedent("""
            import os, signal, time
            from localchat.core.cancellation import CancellationToken
            from localchat.events.lifecycle import LifecycleRegistry, SignalResumeSource

            token = CancellationToken()
            registry = LifecycleRegistry([SignalResumeSource()])
            registry.subscribe(lambda active: active and token.cancel("lifecycle"))
            with token._lock:
                os.kill(os.getpid(), signal.SIGCONT)
                time.sleep(0.1)
            deadline = time.monotonic() + 2
            while not token.cancelled and time.monotonic() < deadline:
                time.sleep(0.01)
            print(token.reason)
        """)
        src = str(Path(__file__).resolve().parents[1] / "src")
        env = {**os.environ, "PYTHONPATH": os.pathsep.join(filter(None, [src, os.environ.get("PYTHONPATH")]))}
        proc = subprocess.run(
            [sys.executable, "-c", script], capture_output=True, text=True, timeout=10, env=env,
        )
        assert proc.returncode == 0, proc.stderr
        assert proc.stdout.strip() == "lifecycle"


class TestDefaultRegistry:
    def test_singleton(self, monkeypatch):
        monkeypatch.setattr(lifecycle_mod, "_default_registry", None)
        first = get_lifecycle_registry()
        assert get_lifecycle_registry() is first
        assert isinstance(first, LifecycleRegistry)
