"""Utility functions and helpers."""

from .logging import setup_logging, get_logger, TimedOperation
from .file_utils import FileHelper

__all__ = ["setup_logging", "get_logger", "TimedOperation", "FileHelper"]
