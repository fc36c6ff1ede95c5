"""
kernel/kernel.py — TaskKernel

Single assembly point that wires the task engine (registry, loader, scheduler,
collection, store) into one object. The REPL and integration tests obtain a
TaskKernel by calling TaskKernel.build(settings) rather than assembling the
sub-packages themselves.

Design principles
-----------------
* Wiring plus the command-level operations the REPL needs; the semantics
  live in balance.tasks.
* All sub-systems receive their dependencies via constructor injection.
* TaskKernel.build() is the only place that reads from Settings; every other
  module is settings-unaware.
* Errors are typed (balance.exceptions) and propagate to the caller, which
  reports them and carries on.

Usage::

    from balance.kernel import TaskKernel
    from balance.config.settings import load_settings

    kernel = TaskKernel.build(load_settings())
    kernel.load_types()
    kernel.restore()
    kernel.create("CounterTask", ["read", "10"])
    kernel.shutdown()
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Sequence

from balance.exceptions import DuplicateNameError, TaskNotFoundError
from balance.observability.logger import get_logger
from balance.scheduler.scheduler import TickScheduler, get_scheduler, shutdown_scheduler
from balance.storage.store import AutoSaver, RestoreReport, SaveReport, TaskStore
from balance.tasks.base import Task
from balance.tasks.collection import TaskCollection
from balance.tasks.fields import FieldAccessor
from balance.tasks.loader import LoadReport, TaskTypeLoader
from balance.tasks.registry import TypeRegistry
from balance.tasks.types import FieldSpec, TaskDescriptor

log = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# KernelConfig — typed subset of Settings consumed by the kernel
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class KernelConfig:
    """
    Typed configuration surface for the task kernel.

    Extracted from Settings so the kernel never imports Pydantic models or
    touches balance.yaml keys directly.
    """
    # Engine
    task_types_dirs: tuple[Path, ...]
    strict_loading: bool = False

    # Storage
    save_dir: Path = Path("./save.d")
    auto_save_interval_seconds: int = 300

    # Scheduler
    scheduler_max_workers: int = 4

    @classmethod
    def from_settings(cls, settings) -> "KernelConfig":
        """Build a KernelConfig from a balance.config.Settings instance."""
        return cls(
            task_types_dirs=tuple(settings.task_types_dirs),
            strict_loading=settings.engine.strict_loading,
            save_dir=settings.save_dir,
            auto_save_interval_seconds=settings.storage.auto_save_interval_seconds,
            scheduler_max_workers=settings.scheduler.max_workers,
        )


# ─────────────────────────────────────────────────────────────────────────────
# TaskKernel
# ─────────────────────────────────────────────────────────────────────────────

class TaskKernel:
    """
    Fully assembled Balance task engine.

    Do not instantiate directly in application code; use
    TaskKernel.build(settings). Tests may pass their own collaborators.
    """

    def __init__(
        self,
        config: KernelConfig,
        registry: TypeRegistry,
        loader: TaskTypeLoader,
        scheduler: TickScheduler,
        collection: TaskCollection,
        store: TaskStore,
        accessor: Optional[FieldAccessor] = None,
        owns_scheduler: bool = False,
    ) -> None:
        self.config     = config
        self.registry   = registry
        self.loader     = loader
        self.scheduler  = scheduler
        self.collection = collection
        self.store      = store
        self.accessor   = accessor or FieldAccessor(registry)
        self.autosaver  = AutoSaver(store, collection, config.auto_save_interval_seconds)
        # True when scheduler is the process-wide instance from get_scheduler().
        self._owns_scheduler = owns_scheduler
        self._closed = False

    # ─────────────────────────────────────────────────────────────────────────
    # Factory
    # ─────────────────────────────────────────────────────────────────────────

    @classmethod
    def build(cls, settings, scheduler: Optional[TickScheduler] = None) -> "TaskKernel":
        """
        Assemble the kernel from a Settings instance.

        Without an explicit scheduler the process-wide one is used and is shut
        down by shutdown(). Nothing is loaded yet; call load_types() and
        restore().
        """
        log.info("kernel.build.start")
        cfg = KernelConfig.from_settings(settings)

        owns_scheduler = scheduler is None
        if scheduler is None:
            scheduler = get_scheduler(max_workers=cfg.scheduler_max_workers)
        log.info("kernel.scheduler_ready", max_workers=cfg.scheduler_max_workers)

        registry = TypeRegistry()
        loader = TaskTypeLoader(registry)
        collection = TaskCollection(scheduler=scheduler)
        store = TaskStore(cfg.save_dir)
        log.info("kernel.store_ready", save_dir=str(cfg.save_dir))

        log.info("kernel.build.complete")
        return cls(
            config=cfg,
            registry=registry,
            loader=loader,
            scheduler=scheduler,
            collection=collection,
            store=store,
            owns_scheduler=owns_scheduler,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Startup
    # ─────────────────────────────────────────────────────────────────────────

    def load_types(self) -> LoadReport:
        """Scan the configured task-type directories into the registry."""
        report = self.loader.load_all(self.config.task_types_dirs, strict=self.config.strict_loading)
        log.info("kernel.types_ready", count=len(self.registry), rejected=len(report.failures))
        return report

    def restore(self) -> RestoreReport:
        """Load saved tasks; time-dependent ones catch up as they are added."""
        report = self.store.load(self.collection, self.registry)
        log.info("kernel.tasks_ready", count=len(self.collection), rejected=len(report.failures))
        return report

    def start_autosave(self) -> None:
        self.autosaver.start()

    # ─────────────────────────────────────────────────────────────────────────
    # Commands
    # ─────────────────────────────────────────────────────────────────────────

    def create(self, type_name: str, args: Sequence[str]) -> Task:
        """
        Construct a task of type_name from literal arguments and add it.

        Raises UnknownTaskTypeError, NoMatchingConstructorError or
        DuplicateNameError. Nothing is added on failure.
        """
        descriptor = self.registry.get(type_name)
        task = self.accessor.construct(descriptor, args)
        if not self.collection.add(task):
            raise DuplicateNameError(task.name)
        return task

    def edit(self, name: str, assignments: Sequence[str]) -> dict[str, Any]:
        """Apply KEY=VALUE assignments to a task, all or nothing."""
        return self.accessor.mutate_args(self.get(name), assignments)

    def progress(self, name: str) -> Task:
        task = self.get(name)
        task.progress()
        log.debug("kernel.progress", task=name)
        return task

    def remove(self, name: str) -> bool:
        return self.collection.remove(name)

    def save(self) -> SaveReport:
        return self.store.save(self.collection)

    # ─────────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────────

    def get(self, name: str) -> Task:
        """Return the live task. Raises TaskNotFoundError."""
        task = self.collection.get(name)
        if task is None:
            raise TaskNotFoundError(name)
        return task

    def tasks(self) -> list[Task]:
        """Live tasks sorted by name."""
        return sorted(self.collection, key=lambda t: t.name)

    def types(self) -> list[TaskDescriptor]:
        """Registered task types sorted by name."""
        return sorted(self.registry.list_all(), key=lambda d: d.name)

    def fields(self, name: str) -> list[tuple[FieldSpec, Any]]:
        """Editable fields of a task with their current values."""
        return self.accessor.read_fields(self.get(name))

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def shutdown(self, save: bool = True) -> None:
        """Stop auto-saving, write a final save and stop the scheduler. Idempotent."""
        if self._closed:
            return
        self._closed = True
        log.info("kernel.shutdown.start")

        self.autosaver.stop()
        if save:
            self.save()

        if self._owns_scheduler:
            shutdown_scheduler()
        else:
            self.scheduler.stop()
        log.info("kernel.shutdown.complete")
