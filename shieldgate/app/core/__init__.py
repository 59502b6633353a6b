"""Core utilities for ShieldGate."""

from shieldgate.app.core.config import Settings, settings
from shieldgate.app.core.logging import get_log_context, get_logger, setup_logging
from shieldgate.app.core.utils import now_ms

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "get_log_context",
    "setup_logging",
    "now_ms",
]
