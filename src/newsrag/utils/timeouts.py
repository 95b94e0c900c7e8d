"""Bounded calls to external collaborators."""

from __future__ import annotations

import concurrent.futures
import threading
from typing import Any, Callable, Dict, TypeVar

T = TypeVar("T")

EMBEDDING_POOL = "embedding"
GENERATION_POOL = "generation"

# Workers per pool. Each workload gets its own executor so that slow calls of
# one kind never sit in front of the other in a shared queue.
POOL_SIZES: Dict[str, int] = {
    EMBEDDING_POOL: 4,
    GENERATION_POOL: 8,
}

_executors: Dict[str, concurrent.futures.ThreadPoolExecutor] = {}
_executors_lock = threading.Lock()


def _executor(pool: str) -> concurrent.futures.ThreadPoolExecutor:
    with _executors_lock:
        executor = _executors.get(pool)
        if executor is None:
            executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=POOL_SIZES.get(pool, 4),
                thread_name_prefix=f"newsrag_{pool}",
            )
            _executors[pool] = executor
        return executor


def call_with_timeout(
    fn: Callable[..., T],
    timeout: float | None,
    *args: Any,
    pool: str = GENERATION_POOL,
    **kwargs: Any,
) -> T:
    """Run ``fn`` on the ``pool`` executor and wait at most ``timeout`` seconds.

    Raises ``TimeoutError`` when the deadline passes. The worker thread is left
    to finish on its own; its result is discarded. ``timeout=None`` calls
    ``fn`` inline.
    """
    if timeout is None:
        return fn(*args, **kwargs)

    future = _executor(pool).submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError as exc:
        future.cancel()
        raise TimeoutError(f"{getattr(fn, '__name__', 'call')} timed out after {timeout}s") from exc
