"""
Logging configuration for Live Recognition.

Provides structured logging with the selected camera as context.
"""

import logging
import sys
from typing import Optional


class CameraContextFilter(logging.Filter):
    """Add the currently selected camera to log records."""

    def __init__(self, camera_id: str):
        super().__init__()
        self.camera_id = camera_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.camera_id = self.camera_id or '-'
        return True


_context_filter: Optional[CameraContextFilter] = None


def setup_logging(camera_id: str = '', debug: bool = False) -> None:
    """
    Configure logging for the service.

    Args:
        camera_id: Initial camera identifier for log context
        debug: Enable debug level logging
    """
    global _context_filter

    level = logging.DEBUG if debug else logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(
        '[%(levelname)s] [camera=%(camera_id)s] %(message)s'
    ))

    _context_filter = CameraContextFilter(camera_id)
    console_handler.addFilter(_context_filter)

    root_logger.addHandler(console_handler)


def set_camera_context(camera_id: str) -> None:
    """
    Update the camera shown in log records after a device change.

    No-op when logging was not configured through setup_logging().
    """
    if _context_filter is not None:
        _context_filter.camera_id = camera_id


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
