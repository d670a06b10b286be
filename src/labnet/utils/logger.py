"""
Logging setup for LabNet.

Thin wrapper around loguru so every module can do:

    from labnet.utils.logger import get_logger

    logger = get_logger(__name__)

and the CLI can reconfigure sinks once at startup with configure_logging().
"""

import sys
import traceback

from loguru import logger as _logger

from labnet.models.enums import LogLevel

_LEVEL_MAP = {
    LogLevel.FULL: "TRACE",
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARNING",
}

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)

_logger.configure(extra={"name": "labnet"})


def get_logger(name: str):
    """Return a loguru logger bound to a module name."""
    return _logger.bind(name=name)


def configure_logging(level: LogLevel = LogLevel.INFO, log_file: str = "") -> None:
    """
    Install the stderr sink (and optional file sink) at the given level.

    Args:
        level: Verbosity level.
        log_file: Optional path; when set, logs are also appended there.
    """
    loguru_level = _LEVEL_MAP.get(level, "INFO")

    _logger.remove()
    _logger.add(sys.stderr, level=loguru_level, format=_FORMAT, colorize=True)

    if log_file:
        _logger.add(
            log_file,
            level=loguru_level,
            format=_FORMAT,
            colorize=False,
            rotation="10 MB",
            retention=5,
        )


def format_traceback(exc: BaseException) -> str:
    """Render an exception with its traceback for a log line."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
