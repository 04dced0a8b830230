"""
Logger configuration for modelprobe.

Configures loguru sinks from LoggingSettings. Library modules import the
shared ``logger`` from loguru directly; this module only decides where the
records go. Logging can be switched off entirely with
``MODELPROBE__LOGGING__DISABLED=true``.

Example:
::
    from modelprobe import configure_logger, LoggingSettings

    configure_logger(LoggingSettings(console_log_level="DEBUG"))
"""

from __future__ import annotations

import os
import sys

from loguru import logger

from modelprobe.settings import LoggingSettings, settings

__all__ = ["configure_logger", "logger"]


def configure_logger(config: LoggingSettings = settings.logging):
    """
    Configure the loguru sinks for the modelprobe package.

    :param config: Logging settings to apply, defaults to the global settings
    """
    if os.getenv("MODELPROBE__LOGGING__DISABLED", "").lower() in ("1", "true"):
        config.disabled = True

    if config.disabled:
        logger.disable("modelprobe")
        return

    logger.enable("modelprobe")

    if config.clear_loggers:
        logger.remove()

    if config.console_log_level:
        logger.add(
            sys.stderr,
            level=config.console_log_level.upper(),
            format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "{name}:{function}:{line} - {message}",
        )

    if config.log_file or config.log_file_level:
        log_file = config.log_file or "modelprobe.log"
        logger.add(
            log_file,
            level=(config.log_file_level or "INFO").upper(),
            rotation="10 MB",
            serialize=log_file.endswith(".json"),
        )


configure_logger(config=settings.logging)
