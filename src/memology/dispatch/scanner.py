"""Periodic recovery sweep for memes whose jobs stalled."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import timedelta

from memology.dispatch.errors import DispatchError
from memology.dispatch.models import MemeStatus, ScanSummary
from memology.dispatch.ports import JobStore
from memology.dispatch.tracker import InFlightTracker

logger = logging.getLogger(__name__)


class StuckJobScanner:
    """Resets stale, unowned memes to ``pending`` and puts them back in the queue.

    ``enqueue`` receives ids whose tracker slot the scanner already holds; it
    must release the slot itself when it rejects the id.

    Failed memes are part of the stale set, so a job the worker marked
    ``failed`` is attempted again once it has been idle for ``stale_after``.
    """

    def __init__(
        self,
        *,
        repository: JobStore,
        tracker: InFlightTracker,
        enqueue: Callable[[str], None],
        stop_event: threading.Event,
        stale_after: timedelta = timedelta(minutes=30),
        interval_seconds: float = 3600.0,
    ) -> None:
        self.repository = repository
        self.tracker = tracker
        self.enqueue = enqueue
        self.stop_event = stop_event
        self.stale_after = stale_after
        self.interval_seconds = interval_seconds

    def run(self) -> None:
        """Scan now, then every ``interval_seconds`` until stopped."""

        logger.info(
            "Stuck tasks scanner started (interval=%.0fs, stale_after=%s)",
            self.interval_seconds,
            self.stale_after,
        )
        self._scan_logged()
        while not self.stop_event.wait(self.interval_seconds):
            self._scan_logged()
        logger.info("Stuck tasks scanner stopped")

    def scan_once(self) -> ScanSummary:
        summary = ScanSummary()
        if self.stop_event.is_set():
            return summary

        stale = self.repository.find_stale(older_than=self.stale_after)
        summary.found = len(stale)
        logger.info("Found %d stuck memes to reschedule", summary.found)

        for candidate in stale:
            if self.stop_event.is_set():
                break
            if not self.tracker.try_acquire(candidate.meme_id):
                summary.skipped_in_flight += 1
                logger.info("Meme %s is already in processing, skipping", candidate.meme_id)
                continue

            # The row may have moved on between the query and taking the slot.
            try:
                meme = self.repository.get_by_id(candidate.meme_id)
            except Exception as error:  # noqa: BLE001
                self.tracker.release(candidate.meme_id)
                summary.errors += 1
                logger.warning("Failed to reload meme %s: %s", candidate.meme_id, error)
                continue
            if meme is None or meme.is_completed or meme.updated_at != candidate.updated_at:
                self.tracker.release(candidate.meme_id)
                summary.skipped_changed += 1
                logger.info("Meme %s changed since the stale query, skipping", candidate.meme_id)
                continue

            logger.info(
                "Rescheduling stuck meme %s (status: %s, updated: %s)",
                meme.meme_id,
                meme.status,
                meme.updated_at.isoformat(timespec="seconds"),
            )
            meme.status = MemeStatus.PENDING.value
            try:
                self.repository.update(meme)
            except Exception as error:  # noqa: BLE001
                self.tracker.release(meme.meme_id)
                summary.errors += 1
                logger.warning("Failed to reset status for meme %s: %s", meme.meme_id, error)
                continue

            try:
                self.enqueue(meme.meme_id)
            except DispatchError as error:
                summary.rejected += 1
                logger.warning("Failed to reschedule meme %s: %s", meme.meme_id, error)
                continue
            summary.rescheduled += 1

        logger.info(
            "Scan completed: rescheduled %d of %d memes (in flight: %d, rejected: %d)",
            summary.rescheduled,
            summary.found,
            summary.skipped_in_flight,
            summary.rejected,
        )
        return summary

    def _scan_logged(self) -> None:
        try:
            self.scan_once()
        except Exception:
            logger.exception("Stuck tasks scan failed")
