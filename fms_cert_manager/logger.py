"""
Centralized logging setup and configuration.

Provides colored console logging plus an append-only log file for the
certificate manager, so scheduled runs leave a trail on the server.
"""

import logging
import os
import sys
from typing import Optional


LOGGER_NAME = "fms-cert-manager"
FILE_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """
    Formatter that adds colors to log output.

    Colors are only applied when output is to a terminal.
    """

    COLORS = {
        "DEBUG": "\033[34m",     # Blue
        "INFO": "\033[34m",      # Blue
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
        "SUCCESS": "\033[32m",   # Green
        "RESET": "\033[0m",
    }

    def __init__(self, fmt: str = None, use_colors: bool = True):
        super().__init__(fmt or "[%(levelname)s] %(message)s")
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        original_levelname = record.levelname

        if self.use_colors:
            label = "SUCCESS" if getattr(record, "success", False) else original_levelname
            color = self.COLORS.get(label, "")
            record.levelname = f"{color}{label}{self.COLORS['RESET']}"
        elif getattr(record, "success", False):
            record.levelname = "SUCCESS"

        result = super().format(record)
        record.levelname = original_levelname
        return result


class StructuredLogger(logging.Logger):
    """Logger with banner and outcome helpers for run reports."""

    def section(self, title: str) -> None:
        """Log a banner, used for the run summary."""
        rule = "=" * 60
        for line in (rule, title, rule):
            self.info(line)

    def step(self, hostname: str, title: str) -> None:
        """Log the start of a run step for a hostname."""
        self.info(f"--- {hostname}: {title} ---")

    def success(self, message: str) -> None:
        """Log a success message (INFO level, rendered as SUCCESS)."""
        self.info(message, extra={"success": True})

    def failure(self, message: str) -> None:
        """Log a failure message (ERROR level with special formatting)."""
        self.error(f"[FAIL] {message}")


# Global logger instance
_logger: Optional[StructuredLogger] = None


def setup_logger(
    name: str = LOGGER_NAME,
    verbose: bool = False,
    use_colors: bool = True,
    log_file: Optional[str] = None,
) -> StructuredLogger:
    """
    Setup and configure the global logger.

    Args:
        name: Logger name
        verbose: Enable debug-level logging
        use_colors: Enable colored output
        log_file: Optional file path for log output; its directory is
            created when missing

    Returns:
        Configured StructuredLogger instance
    """
    global _logger

    logging.setLoggerClass(StructuredLogger)
    logger = logging.getLogger(name)
    logger.__class__ = StructuredLogger
    logger.propagate = False

    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)

    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(ColoredFormatter(use_colors=use_colors))
    logger.addHandler(console_handler)

    if log_file:
        try:
            os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(log_file)
        except OSError as e:
            logger.warning(f"Cannot open log file {log_file}: {e}")
        else:
            file_handler.setLevel(level)
            file_handler.setFormatter(
                logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT)
            )
            logger.addHandler(file_handler)

    _logger = logger
    return logger


def get_logger() -> StructuredLogger:
    """
    Get the global logger instance, creating a default one if needed.

    Returns:
        The configured StructuredLogger instance
    """
    global _logger

    if _logger is None:
        _logger = setup_logger()

    return _logger
