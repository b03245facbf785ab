from __future__ import annotations

import threading

import allure

from memology.dispatch.tracker import InFlightTracker

pytestmark = [
    allure.epic("Meme Dispatch"),
    allure.feature("In-Flight Exclusivity"),
]


def test_try_acquire_is_exclusive_until_release() -> None:
    tracker = InFlightTracker()

    assert tracker.try_acquire("m1") is True
    assert tracker.try_acquire("m1") is False
    assert "m1" in tracker

    tracker.release("m1")

    assert "m1" not in tracker
    assert tracker.try_acquire("m1") is True


def test_release_of_unknown_id_is_noop() -> None:
    tracker = InFlightTracker()
    tracker.release("missing")
    assert len(tracker) == 0


def test_concurrent_acquire_has_single_winner() -> None:
    tracker = InFlightTracker()
    barrier = threading.Barrier(16)
    wins: list[bool] = []
    lock = threading.Lock()

    def _contend() -> None:
        barrier.wait()
        won = tracker.try_acquire("shared")
        with lock:
            wins.append(won)

    threads = [threading.Thread(target=_contend) for _ in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert wins.count(True) == 1
    assert tracker.snapshot() == frozenset({"shared"})
