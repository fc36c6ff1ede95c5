"""
tasks/loader.py — Task Type Discovery and Loader

Turns externally authored task type artifacts into registered
TaskDescriptors. An artifact is the source of one Python module defining
exactly one concrete Task subclass.

Rules:
  - The artifact is compiled and executed in a fresh module; the bytes are not
    kept after the descriptor is built.
  - Bytes that do not decode, compile or execute, or that define no class or
    several task classes, raise ArtifactFormatError.
  - An artifact whose classes are not concrete Task subclasses raises
    TypeKindError.
  - A type name that is already registered keeps its first definition.
  - In load_all(), a bad artifact is logged and skipped and the others still
    load, unless strict=True.

Usage:
    loader = TaskTypeLoader(registry)
    report = loader.load_all([Path("task-types.d")])
    descriptor = loader.load_from_artifact(Path("my_task.py").read_bytes())
"""

from __future__ import annotations

import hashlib
import importlib.util
import inspect
import itertools
import sys
import types
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from balance.exceptions import ArtifactFormatError, TaskTypeError, TypeKindError
from balance.observability.logger import get_logger
from balance.tasks.base import Task, describe
from balance.tasks.registry import TypeRegistry
from balance.tasks.types import TaskDescriptor

log = get_logger(__name__)

# Bundled task types shipped with the package.
BUILTIN_TYPES_DIR = Path(__file__).resolve().parent.parent / "plugins"

_module_seq = itertools.count()


@dataclass
class LoadReport:
    """Outcome of one load_all() pass."""
    loaded: list[str] = field(default_factory=list)     # type names
    failures: dict[str, str] = field(default_factory=dict)  # path -> reason

    @property
    def ok(self) -> bool:
        return not self.failures


class TaskTypeLoader:
    """
    Discovers and loads task types into a TypeRegistry.

    Designed to be called at startup. Individual loads are independent; a
    failed artifact leaves the registry untouched.
    """

    def __init__(self, registry: Optional[TypeRegistry] = None) -> None:
        self.registry = registry if registry is not None else TypeRegistry()

    # ── Single artifact ───────────────────────────────────────────────────────

    def load_from_artifact(self, data: bytes, origin: str = "<artifact>") -> TaskDescriptor:
        """
        Parse artifact bytes into a task type and register it.

        Returns the registered descriptor for the type name (the earlier one
        if the name was already known).

        Raises:
            ArtifactFormatError: not a well-formed type definition.
            TypeKindError:       the defined type is not a concrete Task.
        """
        try:
            source = data.decode("utf-8")
        except (UnicodeDecodeError, AttributeError) as e:
            raise ArtifactFormatError(f"{origin}: not UTF-8 Python source: {e}") from e

        try:
            code = compile(source, origin, "exec")
        except (SyntaxError, ValueError) as e:
            raise ArtifactFormatError(f"{origin}: does not compile: {e}") from e

        digest = hashlib.sha1(data).hexdigest()[:16]
        module_name = f"_balance_task_type_{digest}_{next(_module_seq)}"
        spec = importlib.util.spec_from_loader(module_name, loader=None, origin=origin)
        module = importlib.util.module_from_spec(spec)
        module.__file__ = origin
        sys.modules[module_name] = module

        try:
            exec(code, module.__dict__)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise ArtifactFormatError(
                f"{origin}: failed to execute: {type(e).__name__}: {e}"
            ) from e

        try:
            task_class = self._find_task_class(module, origin)
            descriptor = describe(task_class)
        except TaskTypeError:
            sys.modules.pop(module_name, None)
            raise

        if not self.registry.register(descriptor):
            sys.modules.pop(module_name, None)
            log.warning(
                "task_loader.duplicate_type",
                task_type=descriptor.name,
                origin=origin,
            )
            return self.registry.get(descriptor.name)

        log.debug(
            "task_loader.registered",
            task_type=descriptor.name,
            constructors=len(descriptor.constructors),
            origin=origin,
        )
        return descriptor

    def load_path(self, path: Path | str) -> TaskDescriptor:
        """Read an artifact file and load it. OSError propagates."""
        path = Path(path)
        return self.load_from_artifact(path.read_bytes(), origin=str(path))

    # ── Directories ───────────────────────────────────────────────────────────

    def load_all(self, type_dirs: Iterable[Path | str], strict: bool = False) -> LoadReport:
        """
        Load every *.py artifact under type_dirs, recursively and sorted,
        skipping _-prefixed files and directories.

        Args:
            type_dirs: Directories to scan, in order. Missing ones are skipped.
            strict:    If True, the first bad artifact is raised instead of
                       being logged and skipped.
        """
        report = LoadReport()
        dirs = [Path(d) for d in type_dirs]

        for type_dir in dirs:
            if not type_dir.is_dir():
                log.debug("task_loader.dir_not_found", path=str(type_dir))
                continue

            for artifact in sorted(type_dir.rglob("*.py")):
                # _-prefixed files and directories are private
                if any(part.startswith("_") for part in artifact.relative_to(type_dir).parts):
                    continue
                try:
                    descriptor = self.load_path(artifact)
                except (TaskTypeError, OSError) as e:
                    if strict:
                        raise
                    report.failures[str(artifact)] = f"{type(e).__name__}: {e}"
                    log.warning(
                        "task_loader.artifact_rejected",
                        file=str(artifact),
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue
                report.loaded.append(descriptor.name)

        log.info(
            "task_loader.complete",
            loaded=len(report.loaded),
            rejected=len(report.failures),
            dirs=[str(d) for d in dirs],
        )
        return report

    # ── Helpers ───────────────────────────────────────────────────────────────

    @staticmethod
    def _find_task_class(module: types.ModuleType, origin: str) -> type:
        """Return the single concrete Task subclass defined by the module."""
        defined = [
            obj for obj in vars(module).values()
            if inspect.isclass(obj) and obj.__module__ == module.__name__
        ]
        if not defined:
            raise ArtifactFormatError(f"{origin}: defines no classes")

        task_classes = [cls for cls in defined if issubclass(cls, Task)]
        if not task_classes:
            names = [cls.__name__ for cls in defined]
            raise TypeKindError(f"{origin}: no subtype of Task among {names}")

        concrete = [cls for cls in task_classes if not inspect.isabstract(cls)]
        if not concrete:
            # describe() reports which required methods are missing
            describe(task_classes[0])
        if len(concrete) > 1:
            names = [cls.__name__ for cls in concrete]
            raise ArtifactFormatError(
                f"{origin}: defines {len(concrete)} task types {names}; "
                f"an artifact must define exactly one"
            )
        return concrete[0]
