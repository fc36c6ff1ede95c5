"""
main.py — Balance Entry Point

Usage:
    balance                                  # REPL, default settings
    balance --config path/to/balance.yaml
    balance --log-level DEBUG                # Verbose logging
    python -m balance
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv


def _find_env_file() -> Path | None:
    """Walk up from CWD looking for .env file."""
    cwd = Path.cwd()
    for d in [cwd, *cwd.parents]:
        candidate = d / ".env"
        if candidate.is_file():
            return candidate
    return None


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="balance",
        description="Balance — track tasks whose progress builds up or decays over time",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to balance.yaml (default: $BALANCE_CONFIG or config/balance.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    return parser.parse_args(argv)


def bootstrap(args: argparse.Namespace):
    """
    Load config, validate it fully, and set up logging.
    Returns (settings, log) ready for use.

    Exits with code 1 (after printing a clear message) if:
      - balance.yaml has invalid values (Pydantic ValidationError)
      - filesystem problems are found (ConfigError from validate_all())
    """
    from balance.config.settings import ConfigError, load_settings
    from balance.observability.logger import get_logger, setup_logging
    from pydantic import ValidationError

    # -- Load and parse -------------------------------------------------------
    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {'.'.join(str(p) for p in e['loc']) if e['loc'] else '?'}: {e['msg']}"
            for e in exc.errors()
        )
        print(
            f"\n❌  Config validation failed:\n\n{problems}\n\n"
            f"    Fix config/balance.yaml or your environment and restart.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    except ConfigError as exc:
        print(f"\n❌  Failed to load config: {exc}\n", file=sys.stderr)
        sys.exit(1)
    except (OSError, ValueError, TypeError) as exc:
        print(
            f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n",
            file=sys.stderr,
        )
        sys.exit(1)

    # -- Cross-field validation -----------------------------------------------
    try:
        settings.validate_all()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    # -- Logging --------------------------------------------------------------
    # CLI --log-level flag overrides balance.yaml
    log_level = args.log_level or settings.log_level

    setup_logging(
        level=log_level,
        log_dir=settings.log_dir,
        json_format=settings.logging.json_format,
        console_output=settings.logging.console_output,
        max_bytes=settings.log_max_bytes,
        backup_count=settings.logging.backup_count,
    )

    log = get_logger("balance.main")
    return settings, log


def main(argv: Optional[Sequence[str]] = None) -> int:
    env_path = _find_env_file()
    if env_path:
        load_dotenv(dotenv_path=env_path)

    args = parse_args(argv)
    settings, log = bootstrap(args)

    from balance.exceptions import TaskTypeError
    from balance.interfaces.cli import CLIInterface
    from balance.kernel.kernel import TaskKernel

    log.info(
        "balance.starting",
        task_types_dirs=[str(d) for d in settings.task_types_dirs],
        save_dir=str(settings.save_dir),
    )

    kernel = TaskKernel.build(settings)
    try:
        report = kernel.load_types()
    except TaskTypeError as e:
        # strict_loading: a bad artifact aborts startup
        log.error("balance.startup_failed", error=str(e), error_type=type(e).__name__)
        print(f"\n❌  Failed to load task types: {e}\n", file=sys.stderr)
        kernel.shutdown(save=False)
        return 1

    for path, reason in report.failures.items():
        print(f"Bad task type definition: {path}\n\t{reason}", file=sys.stderr)

    restored = kernel.restore()
    for file_name, reason in restored.failures.items():
        print(f"Failed to load save: {file_name}\n\t{reason}", file=sys.stderr)

    kernel.start_autosave()
    CLIInterface(kernel).run()

    log.info("balance.stopped")
    return 0


def run() -> None:
    """Console-script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
