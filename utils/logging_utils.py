"""
Logging utilities for the crisis pipeline.

Key goals:
- Provide a simple `get_logger(name)` for modules.
- Configure root logging once at startup without duplicate handlers.
- Keep raw user text out of INFO-level lines (see `preview_text`).
"""

from typing import Callable, Optional, Union
import logging
import time
import inspect
import functools

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _coerce_level(level: Union[int, str, None], default: int) -> int:
    if level is None:
        return default
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else default


def configure_logging(
    level: Union[int, str] = logging.INFO,
    file_path: Optional[str] = "crisis_pipeline.log",
    file_level: Union[int, str] = logging.DEBUG,
    console_level: Optional[Union[int, str]] = None,
    truncate: bool = False,
) -> None:
    """Configure the root logger once and avoid duplicate handlers.

    Entry points (main.py, service wrappers) call this before building the
    dependency container. Library modules only ever call `get_logger`.
    """
    level = _coerce_level(level, logging.INFO)
    file_level = _coerce_level(file_level, logging.DEBUG)

    root = logging.getLogger()
    if root.hasHandlers():
        root.handlers.clear()

    # Root sits at the lowest handler level so neither handler is starved
    root.setLevel(min(level, file_level))

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler()
    console.setLevel(_coerce_level(console_level, level))
    console.setFormatter(fmt)
    root.addHandler(console)

    if not file_path:
        return

    try:
        fh = logging.FileHandler(file_path, mode="w" if truncate else "a", encoding="utf-8")
    except OSError as e:
        root.warning(f"[Logging] File handler unavailable ({file_path}): {e}; console only")
        return
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)


def get_logger(name: str = "crisis_pipeline") -> logging.Logger:
    """Return a module-specific logger.

    Root configuration is done once via `configure_logging()` in the entry
    point; calling this never adds handlers.
    """
    return logging.getLogger(name)


def preview_text(text: Optional[str], limit: int = 40) -> str:
    """Short, single-line excerpt of user text for DEBUG lines."""
    if not text:
        return ""
    flat = " ".join(str(text).split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."


# --- Lightweight decorators ---

def log_and_time(label: str = "Function") -> Callable:
    """Decorator to log start/end and duration at DEBUG level."""
    def decorator(func):
        log = get_logger(func.__module__)

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = time.perf_counter()
                log.debug(f"[{label}] START")
                try:
                    return await func(*args, **kwargs)
                finally:
                    log.debug(f"[{label}] END ({time.perf_counter() - start:.3f}s)")
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.perf_counter()
            log.debug(f"[{label}] START")
            try:
                return func(*args, **kwargs)
            finally:
                log.debug(f"[{label}] END ({time.perf_counter() - start:.3f}s)")
        return sync_wrapper

    return decorator


def log_duration(tag: str) -> Callable:
    """Decorator to log only duration (DEBUG level)."""
    def decorator(func):
        log = get_logger(func.__module__)

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start = time.perf_counter()
                result = await func(*args, **kwargs)
                log.debug(f"[TIMING] {tag} took {(time.perf_counter() - start) * 1000:.1f}ms")
                return result
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.perf_counter()
            result = func(*args, **kwargs)
            log.debug(f"[TIMING] {tag} took {(time.perf_counter() - start) * 1000:.1f}ms")
            return result
        return sync_wrapper

    return decorator


def log_async_operation(func):
    """Decorator to log async operation start/complete/errors. Errors re-raise."""
    log = get_logger(func.__module__)

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        log.debug(f"[ASYNC START] {func.__name__}")
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            log.error(f"[ASYNC ERROR] {func.__name__}: {type(e).__name__}: {e}")
            raise
        log.debug(f"[ASYNC COMPLETE] {func.__name__}")
        return result

    return wrapper


"""
Module Contract
- Purpose: Central logging utilities for every pipeline component. Named loggers, timing decorators, safe text previews.
- Inputs:
  - configure_logging(level, file_path, ...), get_logger(name), log_and_time(label), log_duration(tag), log_async_operation
- Outputs:
  - Logger instances; wrapped callables that emit DEBUG timing lines.
- Side effects:
  - None at import (root configuration happens in entry points via configure_logging()).
"""
