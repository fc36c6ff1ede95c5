"""
interfaces/cli.py — Balance CLI Interface

Line-oriented REPL over a TaskKernel. Uses rich for terminal rendering.

Features:
  - Shell-style argument parsing (quotes and backslash escapes) via shlex
  - create / edit / list / rm / progress / save / types / help / exit
  - Every engine error is reported and the loop keeps going
  - Ctrl+D / exit / quit ends the loop; the kernel then saves and shuts down

Usage:
    balance
    balance --config path/to/balance.yaml --log-level DEBUG
"""

from __future__ import annotations

import shlex
from typing import Callable, Optional

from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.table import Table

from balance.exceptions import (
    BalanceError,
    MutationError,
    NoMatchingConstructorError,
    TaskNotFoundError,
    UnknownTaskTypeError,
)
from balance.kernel.kernel import TaskKernel
from balance.observability.logger import get_logger

log = get_logger(__name__)

# ── Constants ─────────────────────────────────────────────────────────────────

PROMPT = "> "

_HELP_TEXT = """
## Balance Commands

| Command | Description |
|---------|-------------|
| `create TYPE [ARGUMENT]...` | Create a task of TYPE. Constructors are tried in declaration order; the first complete match is used. |
| `edit TASK [KEY=VALUE]...` | Edit fields of TASK, all or nothing. With no pairs, same as `list TASK`. |
| `list [TASK]...` | List current tasks, or the editable fields of the given tasks. |
| `rm TASK...` | Remove tasks. |
| `progress TASK...` | Make progress on the given tasks. |
| `save` | Save all tasks. Saved tasks are loaded on next launch. |
| `types` | List the loaded task types. |
| `help` | Show this help message. |
| `exit` / `quit` / Ctrl+D | Save and exit. |
"""

_USAGE = {
    "create":   "create TYPE [ARGUMENT]...",
    "edit":     "edit TASK [KEY=VALUE]...",
    "rm":       "rm TASK...",
    "progress": "progress TASK...",
}


# ── CLI Runner ────────────────────────────────────────────────────────────────


class CLIInterface:
    """
    Interactive REPL for Balance.

    handle_line() processes one input line and returns False when the loop
    should end; run() drives it from input until EOF or exit.
    """

    def __init__(
        self,
        kernel: TaskKernel,
        console: Optional[Console] = None,
        input_fn: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.kernel = kernel
        self.console = console or Console()
        self._input = input_fn or self.console.input
        self._handlers: dict[str, Callable[[list[str]], bool]] = {
            "create":   self._cmd_create,
            "edit":     self._cmd_edit,
            "list":     self._cmd_list,
            "rm":       self._cmd_rm,
            "progress": self._cmd_progress,
            "save":     self._cmd_save,
            "types":    self._cmd_types,
            "help":     self._cmd_help,
            "exit":     lambda _: False,
            "quit":     lambda _: False,
        }

    # ── REPL Loop ─────────────────────────────────────────────────────────────

    def run(self) -> None:
        """Read and dispatch lines until EOF or exit, then shut the kernel down."""
        try:
            while True:
                try:
                    line = self._input(PROMPT)
                except (EOFError, KeyboardInterrupt):
                    self.console.print()
                    break
                if not self.handle_line(line):
                    break
        finally:
            self.kernel.shutdown()
            self.console.print("[dim]Saved. Goodbye.[/]")

    def handle_line(self, line: str) -> bool:
        """Parse and dispatch one line. Returns False to end the loop."""
        try:
            parts = shlex.split(line)
        except ValueError as e:
            self._error(f"Cannot parse command: {e}")
            return True
        if not parts:
            return True

        cmd, args = parts[0], parts[1:]
        handler = self._handlers.get(cmd)
        if handler is None:
            self._error(f"Unrecognized command: {cmd}")
            self._cmd_help([])
            return True

        log.debug("cli.command", command=cmd, args=len(args))
        try:
            return handler(args)
        except BalanceError as e:
            # Per-command handlers report the expected cases themselves.
            log.warning("cli.command_failed", command=cmd, error=str(e), error_type=type(e).__name__)
            self._error(str(e))
            return True

    # ── Commands ──────────────────────────────────────────────────────────────

    def _cmd_create(self, args: list[str]) -> bool:
        if not args:
            return self._usage("create")

        type_name, ctor_args = args[0], args[1:]
        try:
            task = self.kernel.create(type_name, ctor_args)
        except UnknownTaskTypeError:
            self._error(f"Unknown task type: {type_name}")
            self._error("Use help to see available types")
            return True
        except NoMatchingConstructorError as e:
            self._error(f"Construction failed: {e}")
            return True

        self.console.print(f"[green]Created[/] {escape(str(task))}")
        return True

    def _cmd_edit(self, args: list[str]) -> bool:
        if not args:
            return self._usage("edit")
        if len(args) < 2:
            return self._cmd_list(args)

        name, entries = args[0], args[1:]
        try:
            applied = self.kernel.edit(name, entries)
        except TaskNotFoundError as e:
            self._error(str(e))
            return True
        except MutationError as e:
            for err in e.errors:
                self._error(str(err))
            self._error("Nothing was changed")
            return True

        changed = ", ".join(f"{k}={v}" for k, v in applied.items())
        self.console.print(f"[green]Updated[/] {escape(name)}: {escape(changed)}")
        return True

    def _cmd_list(self, args: list[str]) -> bool:
        if not args:
            tasks = self.kernel.tasks()
            if not tasks:
                self.console.print("[dim]No tasks.[/]")
                return True
            table = Table(box=box.SIMPLE, show_header=True, header_style="bold")
            table.add_column("Type", style="cyan", no_wrap=True)
            table.add_column("Name", style="bold", no_wrap=True)
            table.add_column("Status")
            for task in tasks:
                table.add_row(type(task).__name__, escape(task.name), escape(task.status()))
            self.console.print(table)
            return True

        for name in args:
            try:
                task = self.kernel.get(name)
            except TaskNotFoundError as e:
                self._error(str(e))
                continue
            self.console.print(escape(str(task)))
            for spec, value in self.kernel.fields(name):
                self.console.print(f"\t{spec.kind.value} {spec.name}:\t{escape(str(value))}")
        return True

    def _cmd_rm(self, args: list[str]) -> bool:
        if not args:
            return self._usage("rm")
        for name in args:
            if not self.kernel.remove(name):
                self._error(f"Task '{name}' does not exist")
        return True

    def _cmd_progress(self, args: list[str]) -> bool:
        if not args:
            return self._usage("progress")
        for name in args:
            try:
                self.kernel.progress(name)
            except TaskNotFoundError as e:
                self._error(str(e))
        return True

    def _cmd_save(self, args: list[str]) -> bool:
        report = self.kernel.save()
        for name, reason in report.failures.items():
            self._error(f"Save failed for '{name}': {reason}")
        self.console.print(
            f"[dim]Saved {len(report.saved)} task(s) to {escape(str(self.kernel.store.save_dir))}.[/]"
        )
        return True

    def _cmd_types(self, args: list[str]) -> bool:
        descriptors = self.kernel.types()
        if not descriptors:
            self.console.print("[dim]No task types loaded.[/]")
            return True
        table = Table(box=box.ROUNDED, border_style="dim")
        table.add_column("Type", style="cyan bold", no_wrap=True)
        table.add_column("Ticks", no_wrap=True)
        table.add_column("Description")
        for d in descriptors:
            table.add_row(d.name, "✓" if d.time_dependent else "", escape(d.doc))
        self.console.print(table)
        return True

    def _cmd_help(self, args: list[str]) -> bool:
        self.console.print(Markdown(_HELP_TEXT))
        self.console.print("[bold]TASK TYPES:[/]")
        for d in self.kernel.types():
            self.console.print(f"[cyan]{d.name}[/]")
            for ctor in d.constructors:
                self.console.print(f"\t{escape(ctor.signature())}")
        return True

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _usage(self, cmd: str) -> bool:
        self.console.print(f"[yellow]Usage: {escape(_USAGE[cmd])}[/]")
        return True

    def _error(self, message: str) -> None:
        self.console.print(f"[red]{escape(message)}[/]")


def run_cli(kernel: TaskKernel, console: Optional[Console] = None) -> None:
    CLIInterface(kernel, console=console).run()


__all__ = ["CLIInterface", "PROMPT", "run_cli"]
