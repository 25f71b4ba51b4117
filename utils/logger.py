"""
============================================================================
UPTIMEKIT - LOGGING UTILITY
============================================================================
loguru based logging with console, rotating file and error sinks.

Every component obtains a named logger through ``get_logger()`` so the
console line shows which part of the daemon spoke (Scheduler, Executor,
AlertManager, ...).
============================================================================
"""

import sys
import inspect
import time
from functools import wraps
from typing import Optional

from loguru import logger

from config.settings import Settings, get_settings


CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}"

# Records from unbound loggers still need extra[name] for the formats above
logger.configure(extra={"name": "uptimekit"})


# ============================================================================
# LOGGER CONFIGURATION
# ============================================================================

def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure logging system with multiple handlers.
    Sets up console logging and, when enabled, file and error sinks.
    """
    settings = settings or get_settings()
    log_settings = settings.logging

    # Remove default loguru handler
    logger.remove()

    log_level = log_settings.level.value

    # Console Handler
    if log_settings.console_enabled:
        logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=log_level,
            colorize=log_settings.colorize,
            backtrace=True,
            diagnose=settings.debug,
        )

    # File Handler
    if log_settings.file_enabled:
        log_settings.file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_settings.file_path,
            format=FILE_FORMAT,
            level=log_level,
            rotation=log_settings.file_rotation,
            retention=log_settings.file_retention,
            compression=log_settings.file_compression,
            serialize=log_settings.json_enabled,
            enqueue=True,
            backtrace=True,
            diagnose=settings.debug,
        )

    # Error log file (separate file for errors)
    if log_settings.error_file_enabled:
        log_settings.error_file_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_settings.error_file_path,
            format=FILE_FORMAT,
            level="ERROR",
            rotation="1 day",
            retention=log_settings.file_retention,
            compression=log_settings.file_compression,
            enqueue=True,
            backtrace=True,
            diagnose=settings.debug,
        )

    logger.info("Logging system initialized")
    logger.info(f"Log level: {log_level}")
    logger.info(f"Console logging: {log_settings.console_enabled}")
    logger.info(f"File logging: {log_settings.file_enabled}")


def get_logger(name: Optional[str] = None):
    """
    Get logger instance with optional name.

    Args:
        name: Logger name (usually a component name)

    Returns:
        Logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger


# ============================================================================
# LOG DECORATORS
# ============================================================================

def log_execution_time(func):
    """
    Decorator to log function execution time at DEBUG level.

    Args:
        func: Function to decorate

    Returns:
        Decorated function
    """

    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = await func(*args, **kwargs)
            logger.debug(
                f"Function {func.__name__} executed in "
                f"{time.perf_counter() - start_time:.4f} seconds"
            )
            return result
        except Exception as e:
            logger.error(
                f"Function {func.__name__} failed after "
                f"{time.perf_counter() - start_time:.4f} seconds: {e}"
            )
            raise

    @wraps(func)
    def sync_wrapper(*args, **kwargs):
        start_time = time.perf_counter()
        try:
            result = func(*args, **kwargs)
            logger.debug(
                f"Function {func.__name__} executed in "
                f"{time.perf_counter() - start_time:.4f} seconds"
            )
            return result
        except Exception as e:
            logger.error(
                f"Function {func.__name__} failed after "
                f"{time.perf_counter() - start_time:.4f} seconds: {e}"
            )
            raise

    if inspect.iscoroutinefunction(func):
        return async_wrapper
    return sync_wrapper


# ============================================================================
# END OF LOGGER MODULE
# ============================================================================
