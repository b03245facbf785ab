"""Worker pool that drives meme jobs to a terminal outcome."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import timedelta

from memology.dispatch.errors import DispatchError, ShuttingDownError
from memology.dispatch.job_queue import DEFAULT_TICK_SECONDS, BoundedJobQueue
from memology.dispatch.models import MemeStatus, MemeView, PollOutcome, artifact_name_for
from memology.dispatch.ports import ArtifactStore, GenerationService, JobStore
from memology.dispatch.scanner import StuckJobScanner
from memology.dispatch.status import StatusKind, classify_generation_status
from memology.dispatch.tracker import InFlightTracker
from memology.generation.client import GenerationServiceError
from memology.storage.common import utc_now

logger = logging.getLogger(__name__)


class TaskProcessor:
    """Owns the queue, the in-flight tracker, the workers and the scanner.

    ``submit`` never blocks: it rejects with ``QueueFullError`` at capacity
    and ``ShuttingDownError`` once ``stop`` has begun. All waits select on one
    stop event, so ``stop`` returns within one tick plus any in-flight
    collaborator call.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: JobStore,
        generation: GenerationService,
        artifacts: ArtifactStore,
        workers: int = 5,
        queue_size: int = 100,
        poll_interval_seconds: float = 5.0,
        max_poll_attempts: int = 120,
        stale_after_seconds: float = 1800.0,
        scan_interval_seconds: float = 3600.0,
        queue_tick_seconds: float = DEFAULT_TICK_SECONDS,
    ) -> None:
        if workers <= 0:
            raise ValueError("workers must be > 0")
        self.repository = repository
        self.generation = generation
        self.artifacts = artifacts
        self.workers = workers
        self.poll_interval_seconds = poll_interval_seconds
        self.max_poll_attempts = max_poll_attempts
        self.tracker = InFlightTracker()
        self.queue = BoundedJobQueue(queue_size, tick_seconds=queue_tick_seconds)
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._started = False
        self.scanner = StuckJobScanner(
            repository=repository,
            tracker=self.tracker,
            enqueue=self._enqueue_acquired,
            stop_event=self._stop_event,
            stale_after=timedelta(seconds=stale_after_seconds),
            interval_seconds=scan_interval_seconds,
        )

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> None:
        if self._stop_event.is_set():
            raise RuntimeError("Task processor was stopped and cannot be restarted.")
        if self._started:
            raise RuntimeError("Task processor already started.")
        self._started = True
        logger.info(
            "Starting task processor with %d workers, poll interval: %.2fs",
            self.workers,
            self.poll_interval_seconds,
        )
        for worker_no in range(1, self.workers + 1):
            self._spawn(self._worker_loop, f"memology-worker-{worker_no}", worker_no)
        self._spawn(self.scanner.run, "memology-scanner")
        logger.info("Task processor started successfully")

    def stop(self) -> None:
        """Signal cancellation, close the queue and wait for every thread."""

        if self._stop_event.is_set():
            return
        logger.info("Stopping task processor...")
        self._stop_event.set()
        self.queue.close()
        for thread in self._threads:
            thread.join()
        self._threads.clear()
        for meme_id in self.queue.drain():
            self.tracker.release(meme_id)
        logger.info("Task processor stopped")

    def __enter__(self) -> TaskProcessor:
        self.start()
        return self

    def __exit__(self, *_: object) -> None:
        self.stop()

    def submit(self, meme_id: str) -> bool:
        """Queue a meme for polling.

        Returns ``False`` without queueing when the meme is already in flight.
        """

        if self._stop_event.is_set() or self.queue.closed:
            raise ShuttingDownError(meme_id)
        if not self.tracker.try_acquire(meme_id):
            logger.info("Task for meme %s is already being processed", meme_id)
            return False
        self._enqueue_acquired(meme_id)
        logger.info("Task added to queue: meme_id=%s", meme_id)
        return True

    def process_task(self, meme_id: str, *, worker_name: str = "inline") -> PollOutcome:
        """Run one meme through the polling state machine on the calling thread.

        Returns ``SKIPPED`` when another owner already holds the meme.
        """

        if not self.tracker.try_acquire(meme_id):
            logger.info("%s: meme %s is already being processed", worker_name, meme_id)
            return PollOutcome.SKIPPED
        return self._process_owned(meme_id, worker_name=worker_name)

    def _process_owned(self, meme_id: str, *, worker_name: str) -> PollOutcome:
        try:
            logger.info("%s: processing task for meme %s", worker_name, meme_id)
            meme = self.repository.get_by_id(meme_id)
            if meme is None:
                logger.warning("%s: meme %s not found", worker_name, meme_id)
                return PollOutcome.SKIPPED
            if meme.is_completed:
                logger.info("%s: meme %s already completed", worker_name, meme_id)
                return PollOutcome.SKIPPED
            if not meme.task_id:
                logger.warning("%s: meme %s has no task_id", worker_name, meme_id)
                return PollOutcome.SKIPPED
            return self._poll_until_terminal(meme, worker_name=worker_name)
        finally:
            self.tracker.release(meme_id)

    def _enqueue_acquired(self, meme_id: str) -> None:
        try:
            self.queue.put_nowait(meme_id)
        except DispatchError:
            self.tracker.release(meme_id)
            raise

    def _spawn(self, target: Callable[..., None], name: str, *args: object) -> None:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        self._threads.append(thread)
        thread.start()

    def _worker_loop(self, worker_no: int) -> None:
        name = f"Worker {worker_no}"
        logger.info("%s started", name)
        while True:
            meme_id = self.queue.get(self._stop_event)
            if meme_id is None:
                logger.info("%s stopped", name)
                return
            try:
                self._process_owned(meme_id, worker_name=name)
            except Exception:
                logger.exception("%s: unexpected error processing meme %s", name, meme_id)

    def _poll_until_terminal(self, meme: MemeView, *, worker_name: str) -> PollOutcome:
        attempts = 0
        while True:
            if self._stop_event.wait(self.poll_interval_seconds):
                logger.info(
                    "%s: stop requested, abandoning meme %s",
                    worker_name,
                    meme.meme_id,
                )
                return PollOutcome.CANCELLED

            attempts += 1
            if attempts > self.max_poll_attempts:
                logger.info(
                    "%s: max attempts reached for meme %s - will be retried by scanner",
                    worker_name,
                    meme.meme_id,
                )
                return PollOutcome.EXHAUSTED

            logger.debug(
                "%s: checking status for meme %s (attempt %d/%d)",
                worker_name,
                meme.meme_id,
                attempts,
                self.max_poll_attempts,
            )
            try:
                raw_status = self.generation.poll_status(meme.task_id)
            except GenerationServiceError as error:
                logger.warning(
                    "%s: failed to check task status for meme %s: %s",
                    worker_name,
                    meme.meme_id,
                    error,
                )
                continue
            if self._stop_event.is_set():
                return PollOutcome.CANCELLED

            status = classify_generation_status(raw_status)
            logger.info(
                "%s: meme %s generation status: %s",
                worker_name,
                meme.meme_id,
                status.raw,
            )
            if status.kind is StatusKind.SUCCESS:
                return self._complete(meme, worker_name=worker_name)
            if status.kind is StatusKind.FAILURE:
                self._mark_failed(meme, reason=f"generation status {status.raw!r}")
                return PollOutcome.FAILED

            if status.raw:
                meme.status = status.raw
            try:
                self.repository.update(meme)
            except Exception as error:  # noqa: BLE001
                logger.warning(
                    "%s: failed to update meme %s status: %s",
                    worker_name,
                    meme.meme_id,
                    error,
                )

    def _complete(self, meme: MemeView, *, worker_name: str) -> PollOutcome:
        """Store the artifact and mark the meme completed.

        Any failure leaves the record as is for the scanner; an artifact that
        was already written is deleted so no orphan remains.
        """

        logger.info("%s: task completed for meme %s, fetching result", worker_name, meme.meme_id)
        try:
            image = self.generation.fetch_result(meme.task_id)
        except GenerationServiceError as error:
            logger.warning("%s: failed to fetch result for meme %s: %s", worker_name, meme.meme_id, error)
            return PollOutcome.DEFERRED
        if self._stop_event.is_set():
            return PollOutcome.CANCELLED

        object_name = artifact_name_for(meme.meme_id)
        try:
            image_url = self.artifacts.put(object_name, image)
        except Exception as error:  # noqa: BLE001
            logger.warning("%s: failed to store image for meme %s: %s", worker_name, meme.meme_id, error)
            return PollOutcome.DEFERRED

        previous_status = meme.status
        meme.image_url = image_url
        meme.status = MemeStatus.COMPLETED.value
        meme.generation_time_ms = _elapsed_ms(meme)
        try:
            self.repository.update(meme)
        except Exception as error:  # noqa: BLE001
            meme.image_url = ""
            meme.status = previous_status
            logger.warning(
                "%s: failed to mark meme %s completed, removing artifact: %s",
                worker_name,
                meme.meme_id,
                error,
            )
            self._delete_artifact(object_name)
            return PollOutcome.DEFERRED

        logger.info("%s: successfully processed meme %s", worker_name, meme.meme_id)
        return PollOutcome.COMPLETED

    def _mark_failed(self, meme: MemeView, *, reason: str) -> None:
        meme.status = MemeStatus.FAILED.value
        meme.image_url = ""
        try:
            self.repository.update(meme)
        except Exception as error:  # noqa: BLE001
            logger.warning("Failed to mark meme %s as failed: %s", meme.meme_id, error)
            return
        logger.info("Meme %s marked as failed: %s", meme.meme_id, reason)

    def _delete_artifact(self, object_name: str) -> None:
        try:
            self.artifacts.delete(object_name)
        except Exception as error:  # noqa: BLE001
            logger.warning("Failed to delete orphaned artifact %s: %s", object_name, error)


def _elapsed_ms(meme: MemeView) -> int:
    return max(0, int((utc_now() - meme.created_at).total_seconds() * 1000))


def wait_until_idle(processor: TaskProcessor, *, timeout_seconds: float) -> bool:
    """Block until the queue and tracker are empty or the timeout passes."""

    deadline = time.monotonic() + timeout_seconds
    while time.monotonic() < deadline:
        if len(processor.queue) == 0 and len(processor.tracker) == 0:
            return True
        time.sleep(0.01)
    return len(processor.queue) == 0 and len(processor.tracker) == 0
