"""
tests/unit/test_scheduler.py — TickScheduler

Covers:
  - Registered tasks tick repeatedly at their interval
  - Registrations made before start() begin ticking on start()
  - first_due_ms in the past fires immediately
  - cancel() stops further ticks; rescheduling replaces a registration
  - Ticks of one task never overlap, even when slower than the interval
  - A raising tick is logged and the registration keeps going
  - Process-wide instance: get_scheduler() / shutdown_scheduler()
"""

from __future__ import annotations

import sys
import threading
import time
from pathlib import Path

import pytest

# ── path setup (so `balance` is importable without installing the package) ───
_SRC = Path(__file__).parent.parent.parent / "src"
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import balance.scheduler.scheduler as scheduler_module
from balance.scheduler.scheduler import TickScheduler, get_scheduler, shutdown_scheduler


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

class _Ticking:
    """Minimal tick target: counts ticks, optionally slow or failing."""

    def __init__(self, name: str = "t", sleep_s: float = 0.0, fail: bool = False) -> None:
        self.name = name
        self.sleep_s = sleep_s
        self.fail = fail
        self.ticks = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()
        self.reached = threading.Event()
        self.target = 3

    def tick(self) -> None:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.sleep_s:
                time.sleep(self.sleep_s)
            if self.fail:
                raise RuntimeError("tick failed")
        finally:
            with self._lock:
                self.in_flight -= 1
                self.ticks += 1
                if self.ticks >= self.target:
                    self.reached.set()


@pytest.fixture
def scheduler():
    s = TickScheduler(max_workers=2)
    s.start()
    yield s
    s.stop()


# ─────────────────────────────────────────────────────────────────────────────
# Ticking
# ─────────────────────────────────────────────────────────────────────────────

class TestTicking:
    def test_ticks_repeatedly(self, scheduler):
        task = _Ticking()
        reg = scheduler.schedule(task, interval_ms=10)
        assert task.reached.wait(timeout=2.0)
        # the third tick may still be finishing its bookkeeping
        assert reg.ticks >= 2
        assert scheduler.is_registered(task)

    def test_registered_before_start(self):
        s = TickScheduler()
        task = _Ticking()
        s.schedule(task, interval_ms=10)
        time.sleep(0.05)
        assert task.ticks == 0
        s.start()
        try:
            assert task.reached.wait(timeout=2.0)
        finally:
            s.stop()

    def test_past_first_due_fires_immediately(self, scheduler):
        task = _Ticking()
        task.target = 1
        scheduler.schedule(task, interval_ms=60_000, first_due_ms=0)
        assert task.reached.wait(timeout=2.0)
        assert task.ticks == 1

    def test_future_first_due_waits(self, scheduler):
        task = _Ticking()
        now_ms = int(time.time() * 1000)
        scheduler.schedule(task, interval_ms=10, first_due_ms=now_ms + 60_000)
        time.sleep(0.1)
        assert task.ticks == 0

    @pytest.mark.parametrize("interval", [0, -1])
    def test_invalid_interval(self, scheduler, interval):
        with pytest.raises(ValueError):
            scheduler.schedule(_Ticking(), interval_ms=interval)


class TestCancel:
    def test_cancel_stops_ticks(self, scheduler):
        task = _Ticking()
        scheduler.schedule(task, interval_ms=10)
        assert task.reached.wait(timeout=2.0)
        assert scheduler.cancel(task) is True
        time.sleep(0.05)             # let an in-flight tick finish
        settled = task.ticks
        time.sleep(0.15)
        assert task.ticks == settled
        assert not scheduler.is_registered(task)

    def test_cancel_unknown(self, scheduler):
        assert scheduler.cancel(_Ticking()) is False

    def test_reschedule_replaces(self, scheduler):
        task = _Ticking()
        first = scheduler.schedule(task, interval_ms=60_000)
        second = scheduler.schedule(task, interval_ms=60_000)
        assert first.cancelled
        assert not second.cancelled
        assert scheduler.registration(task) is second
        assert scheduler.registered_count() == 1


class TestSerialization:
    def test_slow_ticks_never_overlap(self):
        s = TickScheduler(max_workers=4)
        task = _Ticking(sleep_s=0.03)
        task.target = 4
        s.schedule(task, interval_ms=5)
        s.start()
        try:
            assert task.reached.wait(timeout=3.0)
        finally:
            s.stop()
        assert task.max_in_flight == 1

    def test_different_tasks_run_concurrently(self):
        s = TickScheduler(max_workers=2)
        slow = _Ticking("slow", sleep_s=0.5)
        slow.target = 1
        fast = _Ticking("fast")
        s.schedule(slow, interval_ms=10_000, first_due_ms=0)
        s.schedule(fast, interval_ms=10)
        s.start()
        try:
            # fast keeps ticking while slow's first tick is still sleeping
            assert fast.reached.wait(timeout=0.4)
        finally:
            s.stop()

    def test_failing_tick_keeps_registration(self, scheduler):
        task = _Ticking(fail=True)
        task.target = 4
        reg = scheduler.schedule(task, interval_ms=10)
        assert task.reached.wait(timeout=2.0)
        assert reg.errors >= 3
        assert scheduler.is_registered(task)


class TestLifecycle:
    def test_stop_is_idempotent(self):
        s = TickScheduler()
        s.start()
        s.stop()
        s.stop()
        assert not s.running

    def test_invalid_worker_count(self):
        with pytest.raises(ValueError):
            TickScheduler(max_workers=0)

    def test_process_scheduler_singleton(self):
        a = get_scheduler()
        b = get_scheduler()
        assert a is b
        assert a.running
        shutdown_scheduler()
        assert not a.running
        assert scheduler_module._singleton is None
        c = get_scheduler()
        assert c is not a
        shutdown_scheduler()

    def test_shutdown_without_instance(self):
        shutdown_scheduler()
        assert scheduler_module._singleton is None
