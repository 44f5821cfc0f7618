"""
Logging Utilities.

This module configures loguru for the command line and provides timing
helpers that log the duration of an operation.
"""

import time
from contextlib import contextmanager
from functools import wraps
from typing import Any, Optional, Tuple, Type

from loguru import logger
from rich.console import Console
from rich.logging import RichHandler

# Log output goes to stderr so that --json output on stdout stays parseable
console = Console(stderr=True)


def configure_logging(level: str = "INFO", rich_output: bool = True) -> None:
    """
    Route loguru records through a single sink.

    Args:
        level: Minimum level name.
        rich_output: Render with rich's RichHandler; plain stderr otherwise.
    """
    logger.remove()
    if rich_output:
        logger.add(
            RichHandler(console=console, show_path=False, markup=False),
            format="{message}",
            level=level,
        )
    else:
        logger.add(
            console.file,
            format="{time:YYYY-MM-DD HH:mm:ss,SSS} - {name} - {level} - {message}",
            level=level,
        )


@contextmanager
def log_execution_time(logger_instance: Any, operation: str, **context):
    """
    Context manager to log execution time of an operation.

    Args:
        logger_instance: Logger instance (loguru logger or std logger)
        operation: Name of the operation being timed
        **context: Additional context to include in log messages
    """
    context_str = " | ".join(f"{k}={v}" for k, v in context.items()) if context else ""
    full_context = f" | {context_str}" if context_str else ""

    start_time = time.time()
    logger_instance.info(f"Starting: {operation}{full_context}")

    try:
        yield
    except Exception as e:
        elapsed = time.time() - start_time
        msg = f"Failed: {operation} | duration={elapsed:.2f}s{full_context} | error={str(e)}"

        if hasattr(logger_instance, "opt"):  # Loguru
            logger_instance.opt(exception=True).error(msg)
        else:
            logger_instance.error(msg, exc_info=True)

        raise
    else:
        elapsed = time.time() - start_time
        logger_instance.info(
            f"Completed: {operation} | duration={elapsed:.2f}s{full_context}"
        )


def timed(
    operation_name: Optional[str] = None,
    expected: Tuple[Type[BaseException], ...] = (),
):
    """
    Decorator to automatically log execution time of a function.

    Args:
        operation_name: Name used in the log lines. Defaults to the function name.
        expected: Exceptions the caller handles; logged as a warning without
            a traceback, then re-raised.
    """

    def decorator(func):
        op_name = operation_name or func.__name__

        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.time()

            try:
                logger.debug(f"Starting: {op_name}")
                result = func(*args, **kwargs)
                elapsed = time.time() - start_time
                logger.debug(f"Completed: {op_name} | duration={elapsed:.2f}s")
                return result
            except expected as e:
                elapsed = time.time() - start_time
                logger.warning(
                    f"Failed: {op_name} | duration={elapsed:.2f}s | error={str(e)}"
                )
                raise
            except Exception as e:
                elapsed = time.time() - start_time
                logger.opt(exception=True).error(
                    f"Failed: {op_name} | duration={elapsed:.2f}s | error={str(e)}"
                )
                raise

        return wrapper

    return decorator
