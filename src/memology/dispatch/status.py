"""Normalization of free-text generation statuses.

The generation service reports statuses as loosely cased free text
(``"completed"``, ``"SUCCESS"``, ``"ERROR"``, ``"processing"`` ...). Workers
never branch on the raw string: it is mapped once, here, into a closed
:class:`GenerationStatus` variant.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

_SUCCESS_SYNONYMS: frozenset[str] = frozenset({"completed", "success"})
_FAILURE_SYNONYMS: frozenset[str] = frozenset({"failed", "error"})


class StatusKind(str, Enum):
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True, slots=True)
class GenerationStatus:
    """Normalized external status; ``raw`` keeps the service's own text."""

    kind: StatusKind
    raw: str

    @property
    def is_terminal(self) -> bool:
        return self.kind is not StatusKind.IN_PROGRESS


def classify_generation_status(raw: str | None) -> GenerationStatus:
    """Map a raw service status onto success, failure or in-progress."""

    text = (raw or "").strip()
    normalized = text.lower()
    if normalized in _SUCCESS_SYNONYMS:
        return GenerationStatus(kind=StatusKind.SUCCESS, raw=text)
    if normalized in _FAILURE_SYNONYMS:
        return GenerationStatus(kind=StatusKind.FAILURE, raw=text)
    return GenerationStatus(kind=StatusKind.IN_PROGRESS, raw=text)
