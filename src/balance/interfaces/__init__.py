from balance.interfaces.cli import CLIInterface, run_cli

__all__ = ["CLIInterface", "run_cli"]
