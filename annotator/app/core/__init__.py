"""Core utilities for the annotation service."""

from annotator.app.core.clock import Clock, ManualClock, system_clock
from annotator.app.core.config import settings
from annotator.app.core.logging import get_logger, setup_logging

__all__ = [
    "Clock",
    "ManualClock",
    "system_clock",
    "settings",
    "get_logger",
    "setup_logging",
]
