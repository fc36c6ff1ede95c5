"""
scheduler/ — Tick Scheduler

Shared background clock that drives update() ticks of activated
time-dependent tasks.

    from balance.scheduler import TickScheduler, get_scheduler
"""

from balance.scheduler.scheduler import (
    Registration,
    TickScheduler,
    get_scheduler,
    shutdown_scheduler,
)

__all__ = ["Registration", "TickScheduler", "get_scheduler", "shutdown_scheduler"]
