"""
scheduler/scheduler.py — TickScheduler

Shared clock worker that drives every activated time-dependent task. Each
task registers with its own fixed interval and has tick() called every
interval for the rest of the process lifetime, or until it is cancelled.

Design
------
* One dispatcher thread owns a heap of registrations ordered by next due
  time (monotonic clock). Ticks run on a small ThreadPoolExecutor so a slow
  tick only delays its own task.
* Fixed rate: next due = previous due + interval. Jitter does not accumulate.
* Per-task serialization: a registration never has two ticks in flight. A
  tick that comes due while the previous one is still running is counted as
  backlog and run straight after it.
* Fail-safe: a tick that raises is logged and the registration keeps going.
* Process-scoped default instance via get_scheduler() / shutdown_scheduler().

The scheduler is duck-typed over its tasks: anything with tick() and,
optionally, a name attribute can be registered.

Usage::

    scheduler = TickScheduler(max_workers=4)
    scheduler.start()
    scheduler.schedule(task, interval_ms=1000)
    ...
    scheduler.stop()
"""

from __future__ import annotations

import heapq
import itertools
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Optional

from balance.observability.logger import get_logger

log = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Registration — runtime record for one scheduled task
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(eq=False)
class Registration:
    task: Any
    interval_s: float
    next_due: float                      # time.monotonic() seconds
    cancelled: bool = False
    running: bool = False
    backlog: int = 0
    ticks: int = 0
    errors: int = 0
    seq: int = field(default=0, repr=False)

    @property
    def task_name(self) -> str:
        return str(getattr(self.task, "name", repr(self.task)))


# ─────────────────────────────────────────────────────────────────────────────
# TickScheduler
# ─────────────────────────────────────────────────────────────────────────────

class TickScheduler:
    """
    Fixed-rate tick scheduler shared by all time-dependent tasks.

    Lifecycle::

        scheduler = TickScheduler()
        scheduler.start()     # starts the dispatcher thread
        scheduler.stop()      # stops dispatching, waits for in-flight ticks

    Registrations made before start() begin ticking once it is called.
    """

    def __init__(self, max_workers: int = 4, name: str = "balance-ticks") -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._name = name
        self._max_workers = max_workers

        self._cond = threading.Condition()
        self._heap: list[tuple[float, int, Registration]] = []
        self._registrations: dict[Any, Registration] = {}
        self._seq = itertools.count()

        self._executor: Optional[ThreadPoolExecutor] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    # ── Public API ────────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Start the dispatcher thread. Non-blocking."""
        with self._cond:
            if self._running:
                log.warning("scheduler.already_running")
                return
            self._running = True
            self._executor = ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix=f"{self._name}-worker",
            )
            self._thread = threading.Thread(
                target=self._dispatch_loop, name=self._name, daemon=True
            )
            self._thread.start()
        log.info("scheduler.started", max_workers=self._max_workers)

    def stop(self, wait: bool = True) -> None:
        """Stop dispatching. In-flight ticks finish; pending ones are dropped."""
        with self._cond:
            if not self._running:
                return
            self._running = False
            self._cond.notify_all()
            thread, executor = self._thread, self._executor
            self._thread = None
            self._executor = None
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join()
        if executor is not None:
            executor.shutdown(wait=wait, cancel_futures=True)
        log.info("scheduler.stopped", registrations=len(self._registrations))

    def schedule(
        self,
        task: Any,
        interval_ms: int,
        first_due_ms: Optional[int] = None,
    ) -> Registration:
        """
        Register task for a tick every interval_ms.

        first_due_ms is the wall-clock time (epoch ms) of the first tick;
        default is one interval from now. Past times fire immediately.
        Scheduling an already registered task replaces its registration.
        """
        if interval_ms <= 0:
            raise ValueError(f"interval_ms must be positive, got {interval_ms}")

        if first_due_ms is None:
            delay_s = interval_ms / 1000
        else:
            delay_s = max(0.0, (first_due_ms - time.time() * 1000) / 1000)

        reg = Registration(
            task=task,
            interval_s=interval_ms / 1000,
            next_due=time.monotonic() + delay_s,
        )
        with self._cond:
            previous = self._registrations.pop(task, None)
            if previous is not None:
                previous.cancelled = True
            self._registrations[task] = reg
            self._push(reg)
            self._cond.notify_all()

        log.debug(
            "scheduler.task_registered",
            task=reg.task_name,
            interval_ms=interval_ms,
            first_in_s=round(delay_s, 3),
        )
        return reg

    def cancel(self, task: Any) -> bool:
        """Revoke a task's registration. Returns False if it was not registered."""
        with self._cond:
            reg = self._registrations.pop(task, None)
            if reg is None:
                return False
            reg.cancelled = True
            self._cond.notify_all()
        log.debug("scheduler.task_cancelled", task=reg.task_name)
        return True

    def is_registered(self, task: Any) -> bool:
        with self._cond:
            return task in self._registrations

    def registration(self, task: Any) -> Optional[Registration]:
        with self._cond:
            return self._registrations.get(task)

    def registered_count(self) -> int:
        with self._cond:
            return len(self._registrations)

    # ── Dispatcher loop ───────────────────────────────────────────────────────

    def _push(self, reg: Registration) -> None:
        reg.seq = next(self._seq)
        heapq.heappush(self._heap, (reg.next_due, reg.seq, reg))

    def _next_due_registration(self) -> Optional[Registration]:
        """Block until a registration is due. None once stopped. Holds _cond."""
        while self._running:
            if not self._heap:
                self._cond.wait()
                continue
            due, _, reg = self._heap[0]
            if reg.cancelled:
                heapq.heappop(self._heap)
                continue
            delay = due - time.monotonic()
            if delay > 0:
                self._cond.wait(timeout=delay)
                continue
            heapq.heappop(self._heap)
            return reg
        return None

    def _dispatch_loop(self) -> None:
        log.debug("scheduler.dispatcher.start")
        while True:
            with self._cond:
                reg = self._next_due_registration()
                if reg is None:
                    break
                reg.next_due += reg.interval_s
                self._push(reg)
                if reg.running:
                    reg.backlog += 1
                    continue
                reg.running = True
                executor = self._executor

            try:
                executor.submit(self._run_ticks, reg)
            except RuntimeError as e:
                # Executor already shut down (stop() or interpreter exit).
                log.debug("scheduler.submit_rejected", task=reg.task_name, error=str(e))
                with self._cond:
                    reg.running = False
                break
        log.debug("scheduler.dispatcher.exit")

    # ── Tick execution ────────────────────────────────────────────────────────

    def _run_ticks(self, reg: Registration) -> None:
        """Run one tick, then any backlog accumulated meanwhile. Never raises."""
        while True:
            if not reg.cancelled:
                try:
                    reg.task.tick()
                    reg.ticks += 1
                except Exception as e:
                    reg.errors += 1
                    log.error(
                        "scheduler.tick_error",
                        task=reg.task_name,
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=True,
                    )
            with self._cond:
                if reg.backlog > 0 and not reg.cancelled and self._running:
                    reg.backlog -= 1
                    continue
                reg.backlog = 0
                reg.running = False
                return


# ─────────────────────────────────────────────────────────────────────────────
# Process-scoped default scheduler
# ─────────────────────────────────────────────────────────────────────────────

_singleton: Optional[TickScheduler] = None
_singleton_lock = threading.Lock()


def get_scheduler(max_workers: int = 4) -> TickScheduler:
    """
    Return the process-wide scheduler, creating and starting it on first use.

    max_workers only applies to the call that creates the instance.
    """
    global _singleton
    if _singleton is not None:
        return _singleton
    with _singleton_lock:
        if _singleton is None:
            scheduler = TickScheduler(max_workers=max_workers)
            scheduler.start()
            _singleton = scheduler
    return _singleton


def shutdown_scheduler(wait: bool = True) -> None:
    """Stop and forget the process-wide scheduler, if one was created."""
    global _singleton
    with _singleton_lock:
        scheduler, _singleton = _singleton, None
    if scheduler is not None:
        scheduler.stop(wait=wait)
