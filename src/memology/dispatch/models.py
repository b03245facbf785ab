"""Domain models for meme jobs and their dispatch outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class MemeStatus(str, Enum):
    """Statuses the dispatch core writes itself.

    In-progress statuses reported by the generation service are stored
    verbatim and are not members of this enum.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PollOutcome(str, Enum):
    """Terminal state of one worker's polling state machine."""

    COMPLETED = "completed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"
    DEFERRED = "deferred"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


@dataclass(slots=True)
class MemeCreate:
    """Input payload for a new meme record."""

    prompt: str
    user_id: str
    style: str = ""
    task_id: str = ""
    is_public: bool = True
    meme_id: str | None = None


@dataclass(slots=True)
class MemeView:
    """Mutable snapshot of a meme record passed between store and workers."""

    meme_id: str
    user_id: str
    prompt: str
    style: str
    task_id: str
    status: str
    image_url: str
    is_public: bool
    generation_time_ms: int | None
    created_at: datetime
    updated_at: datetime

    @property
    def is_completed(self) -> bool:
        return self.status == MemeStatus.COMPLETED.value


@dataclass(slots=True)
class ScanSummary:
    """Counters for one stuck-job scanner pass."""

    found: int = 0
    rescheduled: int = 0
    skipped_in_flight: int = 0
    skipped_changed: int = 0
    rejected: int = 0
    errors: int = 0


def artifact_name_for(meme_id: str) -> str:
    """Deterministic object name for a meme's generated image."""

    return f"memes/{meme_id}.jpg"


def upload_name_for(meme_id: str, upload_id: str) -> str:
    """Object name for a manually uploaded image; unique per upload."""

    return f"memes/uploads/{meme_id}-{upload_id}.jpg"
