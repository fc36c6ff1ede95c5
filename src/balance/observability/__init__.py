"""observability/ — structured logging for Balance."""

from balance.observability.logger import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
