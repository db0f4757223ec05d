"""
Centralized logging for the FantaAiuto backend.

Configures the application logger (console + rotating file) and provides a
decorator for timing long-running operations such as imports.
"""
from __future__ import annotations

import functools
import logging
import logging.handlers
import time
import traceback
from pathlib import Path
from typing import Any, Callable

APP_LOGGER_NAME = "fantaaiuto"


def setup_logging(
    log_level: str = "INFO",
    log_dir: str | Path = "logs",
    log_file: str | None = "fantaaiuto.log",
) -> logging.Logger:
    """
    Configure the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for the rotating log file
        log_file: File name inside log_dir; empty or None disables file logging

    Returns:
        The configured application logger
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    formatter = logging.Formatter(
        "[%(asctime)s] [%(levelname)s] [%(filename)s:%(lineno)d] - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(numeric_level)

    # Re-running setup (e.g. one app per test) must not stack handlers
    for handler in app_logger.handlers[:]:
        app_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(formatter)
    app_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path / log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        app_logger.addHandler(file_handler)

    return app_logger


def log_execution(func: Callable) -> Callable:
    """
    Decorator to log function execution details.

    Logs function name, execution time, and errors. Exceptions are re-raised.
    """
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        log = logging.getLogger(func.__module__)
        func_name = func.__name__
        log.info(f"EXECUTING: {func_name}({_format_args(args, kwargs)})")

        start_time = time.time()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            execution_time = (time.time() - start_time) * 1000
            log.error(
                f"ERROR: {func_name} failed after {execution_time:.2f}ms - "
                f"{type(e).__name__}: {e}"
            )
            log.debug(f"TRACEBACK: {traceback.format_exc()}")
            raise
        execution_time = (time.time() - start_time) * 1000
        log.info(f"SUCCESS: {func_name} completed in {execution_time:.2f}ms")
        return result

    return wrapper


def _format_args(args: tuple, kwargs: dict) -> str:
    """Short argument summary: objects by class name, long sequences by length."""
    formatted: list[str] = []
    for arg in args:
        formatted.append(_short_repr(arg))
    for key, value in kwargs.items():
        formatted.append(f"{key}={_short_repr(value)}")
    return ", ".join(formatted)


def _short_repr(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return f"<{type(value).__name__} len={len(value)}>"
    if isinstance(value, (str, int, float, bool)) or value is None:
        return repr(value)
    return f"<{value.__class__.__name__}>"


logger = logging.getLogger(APP_LOGGER_NAME)
