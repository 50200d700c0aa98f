"""
Small helpers shared across the engine.
"""

from __future__ import annotations

import importlib
import threading
import time
from contextlib import contextmanager
from functools import wraps
from types import ModuleType
from typing import TYPE_CHECKING, Callable, Iterator, TypeVar

if TYPE_CHECKING:
    import logging

T = TypeVar("T")


def require_import(package: str, *, pip_name: str | None = None) -> ModuleType:
    """Import ``package`` or raise an ImportError naming the pip install."""
    try:
        return importlib.import_module(package)
    except ImportError as e:
        raise ImportError(
            f"{package} package required. Install with: pip install {pip_name or package}"
        ) from e


def thread_safe_singleton(factory_fn: Callable[[], T]) -> Callable[[], T]:
    """Build the result of ``factory_fn`` once, lazily, under a lock.

    ``reset()`` on the returned callable drops the cached instance so the
    next call rebuilds it.
    """
    lock = threading.Lock()
    cell: list[T] = []

    @wraps(factory_fn)
    def get_instance() -> T:
        if not cell:
            with lock:
                if not cell:
                    cell.append(factory_fn())
        return cell[0]

    def reset() -> None:
        with lock:
            cell.clear()

    get_instance.reset = reset  # type: ignore[attr-defined]
    return get_instance


@contextmanager
def timed_operation(
    name: str,
    logger: logging.Logger | None = None,
    observe: Callable[[float], None] | None = None,
) -> Iterator[None]:
    """Time the enclosed block.

    The duration in seconds goes to ``observe`` (a histogram helper) and,
    in milliseconds, to ``logger`` at DEBUG.
    """
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - started
        if observe is not None:
            observe(elapsed)
        if logger is not None:
            logger.debug("%s took %.1fms", name, elapsed * 1000)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))
