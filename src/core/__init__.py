"""Core module — config, clock, logging."""

from src.core.clock import Clock, ManualClock, SystemClock, default_clock
from src.core.config import Settings, get_settings, load_settings, reset_settings
from src.core.logging import setup_logging

__all__ = [
    "Clock",
    "ManualClock",
    "Settings",
    "SystemClock",
    "default_clock",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
