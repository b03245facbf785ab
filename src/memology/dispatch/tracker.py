"""Set of meme ids currently owned by a worker."""

from __future__ import annotations

import threading


class InFlightTracker:
    """Mutual-exclusion set: at most one owner per meme id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ids: set[str] = set()

    def try_acquire(self, meme_id: str) -> bool:
        """Insert ``meme_id`` if absent; return whether this call inserted it."""

        with self._lock:
            if meme_id in self._ids:
                return False
            self._ids.add(meme_id)
            return True

    def release(self, meme_id: str) -> None:
        with self._lock:
            self._ids.discard(meme_id)

    def snapshot(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._ids)

    def __contains__(self, meme_id: object) -> bool:
        with self._lock:
            return meme_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)
