"""Logging configuration for applications embedding transcache.

The library itself only creates module loggers. Applications either call
`setup_logging` directly or hand their loaded `Settings` to
`configure_logging`, which applies `TRANSCACHE_LOG_LEVEL` and
`TRANSCACHE_LOG_FILE`.
"""

import logging
import sys
from typing import Optional, Union

from transcache.infrastructure.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def resolve_level(log_level: Union[int, str]) -> int:
    """Turns a level name such as "debug" into its number.

    Raises:
        ValueError: If the name is not a known logging level.
    """
    if isinstance(log_level, int):
        return log_level
    level_name = str(log_level).strip().upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {level_name}")
    return level


def _attach(root_logger: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)


def setup_logging(
    log_level: Union[int, str] = DEFAULT_LOG_LEVEL,
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Optional[str] = None,
) -> None:
    """Configures the root logger.

    Existing root handlers are replaced by a stdout handler and, if
    `log_file` is given, a file handler. A file that cannot be opened is
    reported and console logging stays in place.

    Args:
        log_level: Minimum level, as a number or a name such as "DEBUG".
        log_format: The format string for log messages.
        log_file: Optional path to a file for logging output.

    Raises:
        ValueError: If `log_level` is an unknown level name.
    """
    level = resolve_level(log_level)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(log_format)
    _attach(root_logger, logging.StreamHandler(sys.stdout), level, formatter)

    if log_file:
        try:
            _attach(root_logger, logging.FileHandler(log_file, encoding='utf-8'), level, formatter)
        except OSError as e:
            logger.error(f"Failed to set up file logging to {log_file}: {e}", exc_info=True)
        else:
            logger.info(f"Logging to file: {log_file}")

    logger.info(f"Logging configured. Level={logging.getLevelName(level)}")


def configure_logging(settings: Settings, log_format: str = DEFAULT_LOG_FORMAT) -> None:
    """Applies the logging part of loaded settings to the root logger."""
    setup_logging(settings.log_level, log_format, settings.log_file)
