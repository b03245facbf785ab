"""Fixed-capacity channel of meme ids awaiting a worker."""

from __future__ import annotations

import queue
import threading

from memology.dispatch.errors import QueueFullError, ShuttingDownError

DEFAULT_TICK_SECONDS = 0.5


class BoundedJobQueue:
    """Non-blocking for producers, blocking (with a stop check) for workers."""

    def __init__(self, capacity: int, *, tick_seconds: float = DEFAULT_TICK_SECONDS) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = capacity
        self.tick_seconds = tick_seconds
        self._items: queue.Queue[str] = queue.Queue(maxsize=capacity)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put_nowait(self, meme_id: str) -> None:
        """Enqueue without waiting; raise when closed or full."""

        if self._closed.is_set():
            raise ShuttingDownError(meme_id)
        try:
            self._items.put_nowait(meme_id)
        except queue.Full:
            raise QueueFullError(meme_id, self.capacity) from None

    def get(self, stop: threading.Event) -> str | None:
        """Wait for the next id; ``None`` once ``stop`` is set or the queue closes."""

        while not stop.is_set() and not self._closed.is_set():
            try:
                return self._items.get(timeout=self.tick_seconds)
            except queue.Empty:
                continue
        return None

    def close(self) -> None:
        self._closed.set()

    def drain(self) -> list[str]:
        """Remove and return every queued id."""

        drained: list[str] = []
        while True:
            try:
                drained.append(self._items.get_nowait())
            except queue.Empty:
                return drained

    def __len__(self) -> int:
        return self._items.qsize()
