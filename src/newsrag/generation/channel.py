"""Producer/consumer channel for streamed generation deltas."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Iterable, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)

_DELTA = "delta"
_ERROR = "error"
_DONE = "done"


class DeltaChannel:
    """Moves text deltas from a producer iterable to a consumer, in order.

    The producer runs on a daemon thread and pushes each delta onto a queue;
    iterating the channel pops them. A producer exception is re-raised on the
    consumer side. If no delta arrives within ``idle_timeout`` seconds the
    channel is cancelled and ``TimeoutError`` is raised. Closing the channel
    (explicitly, on error, or when the consumer stops early) signals the
    producer to stop after its current delta.
    """

    def __init__(self, source: Iterable[str], *, idle_timeout: Optional[float] = None) -> None:
        self._source = source
        self.idle_timeout = idle_timeout
        self._queue: "queue.Queue[Tuple[str, object]]" = queue.Queue()
        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _produce(self) -> None:
        iterator = iter(self._source)
        try:
            for delta in iterator:
                if self._cancelled.is_set():
                    break
                self._queue.put((_DELTA, delta))
        except Exception as exc:
            self._queue.put((_ERROR, exc))
        finally:
            close = getattr(iterator, "close", None)
            if callable(close):
                try:
                    close()
                except Exception as exc:
                    logger.debug("Error closing delta producer: %s", exc)
            self._queue.put((_DONE, None))

    def _start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("DeltaChannel can only be consumed once")
        self._thread = threading.Thread(target=self._produce, name="newsrag_stream", daemon=True)
        self._thread.start()

    def __iter__(self) -> Iterator[str]:
        self._start()
        try:
            while True:
                try:
                    kind, payload = self._queue.get(timeout=self.idle_timeout)
                except queue.Empty:
                    raise TimeoutError(f"No generation output for {self.idle_timeout}s") from None
                if kind == _DELTA:
                    yield str(payload)
                elif kind == _ERROR:
                    raise payload  # type: ignore[misc]
                else:
                    return
        finally:
            self.close()

    def close(self) -> None:
        self._cancelled.set()

    def __enter__(self) -> "DeltaChannel":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
