"""
modelprobe validates and benchmarks OpenAI-compatible chat-completion
endpoints across many models, in streaming and non-streaming modes.
"""

from .logger import configure_logger, logger
from .settings import (
    LoggingSettings,
    MonitorSettings,
    Settings,
    print_config,
    reload_settings,
    settings,
)

__all__ = [
    "LoggingSettings",
    "MonitorSettings",
    "Settings",
    "configure_logger",
    "logger",
    "print_config",
    "reload_settings",
    "settings",
]
