"""Logging configuration and utilities."""

import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "ai_config_sync"


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    log_to_console: bool = True,
    max_file_size: int = 5 * 1024 * 1024,  # 5MB
    backup_count: int = 3
) -> logging.Logger:
    """Setup logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (optional)
        log_to_console: Whether to log to console
        max_file_size: Maximum size of log file before rotation
        backup_count: Number of rotated log files to keep

    Returns:
        Configured logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper()))

    # Clear existing handlers so repeated CLI invocations do not stack them
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if log_to_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(getattr(logging, log_level.upper()))
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the package namespace.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class TimedOperation:
    """Context manager for timing operations and logging results."""

    def __init__(self, logger: logging.Logger, operation_name: str, log_level: str = "INFO"):
        """Initialize timed operation.

        Args:
            logger: Logger to use
            operation_name: Name of the operation
            log_level: Log level for timing messages
        """
        self.logger = logger
        self.operation_name = operation_name
        self.log_level = getattr(logging, log_level.upper())
        self.start_time: Optional[datetime] = None

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.log(self.log_level, "Starting %s", self.operation_name)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()
            if exc_type is None:
                self.logger.log(self.log_level, "Completed %s in %.2fs",
                                self.operation_name, duration)
            else:
                self.logger.error("Failed %s after %.2fs: %s",
                                  self.operation_name, duration, exc_val)
        return False
