from __future__ import annotations

import threading
from datetime import timedelta

import allure
from conftest import FlakyRepository, seed_meme

from memology.dispatch.errors import QueueFullError
from memology.dispatch.models import MemeStatus
from memology.dispatch.scanner import StuckJobScanner
from memology.dispatch.tracker import InFlightTracker
from memology.storage.common import utc_now

pytestmark = [
    allure.epic("Meme Dispatch"),
    allure.feature("Stuck Job Recovery"),
]


def _age(repository: FlakyRepository, meme_id: str, *, minutes: int) -> None:
    repository.touch(meme_id, updated_at=utc_now() - timedelta(minutes=minutes))


def _scanner(
    repository: FlakyRepository,
    tracker: InFlightTracker,
    enqueued: list[str],
    *,
    stop_event: threading.Event | None = None,
) -> StuckJobScanner:
    return StuckJobScanner(
        repository=repository,
        tracker=tracker,
        enqueue=enqueued.append,
        stop_event=stop_event or threading.Event(),
        stale_after=timedelta(minutes=30),
        interval_seconds=3600,
    )


def test_scan_resets_stale_memes_to_pending_and_enqueues(repository: FlakyRepository) -> None:
    stuck = seed_meme(repository, meme_id="stuck")
    stuck.status = "processing"
    repository.update(stuck)
    _age(repository, "stuck", minutes=45)
    seed_meme(repository, meme_id="fresh")
    tracker = InFlightTracker()
    enqueued: list[str] = []

    summary = _scanner(repository, tracker, enqueued).scan_once()

    assert summary.found == 1
    assert summary.rescheduled == 1
    assert enqueued == ["stuck"]
    assert "stuck" in tracker
    stored = repository.get_by_id("stuck")
    assert stored is not None
    assert stored.status == MemeStatus.PENDING.value
    assert stored.updated_at > utc_now() - timedelta(minutes=1)


def test_scan_skips_memes_already_in_flight(repository: FlakyRepository) -> None:
    seed_meme(repository, meme_id="busy")
    _age(repository, "busy", minutes=90)
    tracker = InFlightTracker()
    tracker.try_acquire("busy")
    enqueued: list[str] = []

    summary = _scanner(repository, tracker, enqueued).scan_once()

    assert summary.skipped_in_flight == 1
    assert summary.rescheduled == 0
    assert enqueued == []
    assert repository.update_calls == []


def test_scan_ignores_completed_memes(repository: FlakyRepository) -> None:
    done = seed_meme(repository, meme_id="done")
    done.status = MemeStatus.COMPLETED.value
    repository.update(done)
    _age(repository, "done", minutes=600)
    enqueued: list[str] = []

    summary = _scanner(repository, InFlightTracker(), enqueued).scan_once()

    assert summary.found == 0
    assert enqueued == []


def test_scan_retries_failed_memes(repository: FlakyRepository) -> None:
    failed = seed_meme(repository, meme_id="failed")
    failed.status = MemeStatus.FAILED.value
    repository.update(failed)
    _age(repository, "failed", minutes=31)
    enqueued: list[str] = []

    _scanner(repository, InFlightTracker(), enqueued).scan_once()

    assert enqueued == ["failed"]


def test_rejected_enqueue_is_counted_and_scan_continues(repository: FlakyRepository) -> None:
    for meme_id in ("a", "b"):
        seed_meme(repository, meme_id=meme_id)
    _age(repository, "a", minutes=60)
    _age(repository, "b", minutes=40)
    tracker = InFlightTracker()
    enqueued: list[str] = []

    def _enqueue(meme_id: str) -> None:
        if meme_id == "a":
            tracker.release(meme_id)
            raise QueueFullError(meme_id, 1)
        enqueued.append(meme_id)

    scanner = StuckJobScanner(
        repository=repository,
        tracker=tracker,
        enqueue=_enqueue,
        stop_event=threading.Event(),
        stale_after=timedelta(minutes=30),
    )

    summary = scanner.scan_once()

    assert summary.rejected == 1
    assert summary.rescheduled == 1
    assert enqueued == ["b"]
    assert "a" not in tracker


def test_status_write_failure_releases_slot(repository: FlakyRepository) -> None:
    stuck = seed_meme(repository, meme_id="stuck")
    stuck.status = "processing"
    repository.update(stuck)
    _age(repository, "stuck", minutes=45)
    repository.fail_status.add(MemeStatus.PENDING.value)
    tracker = InFlightTracker()
    enqueued: list[str] = []

    summary = _scanner(repository, tracker, enqueued).scan_once()

    assert summary.errors == 1
    assert enqueued == []
    assert "stuck" not in tracker


def test_scan_does_nothing_once_stopped(repository: FlakyRepository) -> None:
    seed_meme(repository, meme_id="stuck")
    _age(repository, "stuck", minutes=45)
    stop_event = threading.Event()
    stop_event.set()
    enqueued: list[str] = []

    summary = _scanner(repository, InFlightTracker(), enqueued, stop_event=stop_event).scan_once()

    assert summary.found == 0
    assert enqueued == []


def test_run_scans_immediately_and_exits_on_stop(repository: FlakyRepository) -> None:
    seed_meme(repository, meme_id="stuck")
    _age(repository, "stuck", minutes=45)
    stop_event = threading.Event()
    enqueued: list[str] = []
    scanner = _scanner(repository, InFlightTracker(), enqueued, stop_event=stop_event)

    thread = threading.Thread(target=scanner.run)
    thread.start()
    for _ in range(200):
        if enqueued:
            break
        stop_event.wait(0.01)
    stop_event.set()
    thread.join(timeout=2)

    assert enqueued == ["stuck"]
    assert not thread.is_alive()


def test_meme_completed_after_stale_query_is_left_alone(repository: FlakyRepository) -> None:
    seed_meme(repository, meme_id="racing")
    _age(repository, "racing", minutes=45)
    original_find_stale = repository.find_stale

    def _find_stale_then_worker_completes(**kwargs):
        stale = original_find_stale(**kwargs)
        finished = repository.get_by_id("racing")
        assert finished is not None
        finished.status = MemeStatus.COMPLETED.value
        finished.image_url = "http://minio.local:9000/memes/memes/racing.jpg"
        repository.update(finished)
        return stale

    repository.find_stale = _find_stale_then_worker_completes  # type: ignore[method-assign]
    tracker = InFlightTracker()
    enqueued: list[str] = []

    summary = _scanner(repository, tracker, enqueued).scan_once()

    assert summary.found == 1
    assert summary.skipped_changed == 1
    assert summary.rescheduled == 0
    assert enqueued == []
    assert "racing" not in tracker
    stored = repository.get_by_id("racing")
    assert stored is not None
    assert stored.status == MemeStatus.COMPLETED.value
    assert stored.image_url.endswith("/memes/racing.jpg")


def test_meme_touched_after_stale_query_is_left_alone(repository: FlakyRepository) -> None:
    seed_meme(repository, meme_id="heartbeat")
    _age(repository, "heartbeat", minutes=45)
    original_find_stale = repository.find_stale

    def _find_stale_then_heartbeat(**kwargs):
        stale = original_find_stale(**kwargs)
        polled = repository.get_by_id("heartbeat")
        assert polled is not None
        polled.status = "processing"
        repository.update(polled)
        return stale

    repository.find_stale = _find_stale_then_heartbeat  # type: ignore[method-assign]
    enqueued: list[str] = []

    summary = _scanner(repository, InFlightTracker(), enqueued).scan_once()

    assert summary.skipped_changed == 1
    assert enqueued == []
    stored = repository.get_by_id("heartbeat")
    assert stored is not None
    assert stored.status == "processing"
