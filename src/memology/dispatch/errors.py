"""Errors raised by the dispatch subsystem."""

from __future__ import annotations


class DispatchError(RuntimeError):
    """Base error for job dispatch."""


class QueueFullError(DispatchError):
    """Job queue is at capacity; the caller should retry later."""

    def __init__(self, meme_id: str, capacity: int) -> None:
        super().__init__(f"Task queue is full (capacity={capacity}); rejected meme {meme_id}")
        self.meme_id = meme_id
        self.capacity = capacity


class ShuttingDownError(DispatchError):
    """Task processor is stopping and no longer accepts jobs."""

    def __init__(self, meme_id: str) -> None:
        super().__init__(f"Task processor is shutting down; rejected meme {meme_id}")
        self.meme_id = meme_id


class MemeNotFoundError(LookupError):
    """Meme record does not exist."""

    def __init__(self, meme_id: str) -> None:
        super().__init__(f"Meme not found: {meme_id}")
        self.meme_id = meme_id


class MemeBusyError(DispatchError):
    """A worker currently owns the meme."""

    def __init__(self, meme_id: str) -> None:
        super().__init__(f"Meme {meme_id} is being processed; try again later")
        self.meme_id = meme_id


class MemeOwnershipError(PermissionError):
    """Meme belongs to another user."""

    def __init__(self, meme_id: str, user_id: str) -> None:
        super().__init__(f"Meme {meme_id} does not belong to user {user_id}")
        self.meme_id = meme_id
        self.user_id = user_id
