"""Shared test fixtures."""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from memology.dispatch.models import MemeCreate, MemeView
from memology.dispatch.repository import MemeRepository
from memology.generation.client import GenerationServiceError, TemplateMeme
from memology.storage.artifacts import LocalArtifactStore


class ScriptedGeneration:
    """In-memory generation service replaying a status script per task id.

    The last scripted status repeats once the script runs out. A script item
    that is an exception instance is raised instead of returned.
    """

    def __init__(self) -> None:
        self.scripts: dict[str, list[object]] = {}
        self.results: dict[str, bytes] = {}
        self.fetch_errors: dict[str, Exception] = {}
        self.poll_calls: dict[str, int] = defaultdict(int)
        self.fetch_calls: dict[str, int] = defaultdict(int)
        self.submitted: list[tuple[str, str]] = []
        self._lock = threading.Lock()
        self._active: dict[str, int] = defaultdict(int)
        self.max_concurrent_per_task: dict[str, int] = defaultdict(int)
        self.poll_gate: threading.Event | None = None
        self.on_poll: Callable[[str], None] | None = None

    def script(self, task_id: str, *statuses: object, result: bytes = b"jpeg-bytes") -> None:
        self.scripts[task_id] = list(statuses)
        self.results[task_id] = result

    def submit(self, prompt: str, style: str = "") -> str:
        with self._lock:
            self.submitted.append((prompt, style))
            return f"task-{len(self.submitted)}"

    def poll_status(self, task_id: str) -> str:
        with self._lock:
            self._active[task_id] += 1
            self.max_concurrent_per_task[task_id] = max(
                self.max_concurrent_per_task[task_id],
                self._active[task_id],
            )
            self.poll_calls[task_id] += 1
            script = self.scripts.get(task_id, ["processing"])
            item = script.pop(0) if len(script) > 1 else script[0]
        try:
            if self.on_poll is not None:
                self.on_poll(task_id)
            if self.poll_gate is not None:
                self.poll_gate.wait(timeout=5)
            if isinstance(item, Exception):
                raise item
            return str(item)
        finally:
            with self._lock:
                self._active[task_id] -= 1

    def available_styles(self) -> list[str]:
        return ["classic", "modern"]

    def generate_template(self, context: str, *, width: int = 512, height: int = 512) -> TemplateMeme:
        return TemplateMeme(url="http://img/template.jpg", template="drake", text=[context])

    def fetch_result(self, task_id: str) -> bytes:
        with self._lock:
            self.fetch_calls[task_id] += 1
        error = self.fetch_errors.get(task_id)
        if error is not None:
            raise error
        return self.results.get(task_id, b"jpeg-bytes")


class FlakyRepository(MemeRepository):
    """Repository whose ``update`` can be made to fail for chosen statuses."""

    def __init__(self, db_path: Path) -> None:
        super().__init__(db_path)
        self.fail_status: set[str] = set()
        self.update_calls: list[tuple[str, str]] = []

    def update(self, meme: MemeView) -> MemeView:
        self.update_calls.append((meme.meme_id, meme.status))
        if meme.status in self.fail_status:
            raise RuntimeError(f"db unavailable for status {meme.status}")
        return super().update(meme)


def transient_error() -> GenerationServiceError:
    return GenerationServiceError("connection reset", transient=True)


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[FlakyRepository]:
    repo = FlakyRepository(tmp_path / "memology.db")
    repo.init_schema()
    yield repo
    repo.close()


@pytest.fixture()
def generation() -> ScriptedGeneration:
    return ScriptedGeneration()


@pytest.fixture()
def artifacts(tmp_path: Path) -> LocalArtifactStore:
    return LocalArtifactStore(
        root_dir=tmp_path / "artifacts",
        bucket="memes",
        public_url="http://minio.local:9000",
    )


def seed_meme(
    repository: MemeRepository,
    *,
    task_id: str = "task-1",
    prompt: str = "cat hates mondays",
    meme_id: str | None = None,
) -> MemeView:
    return repository.create(
        MemeCreate(prompt=prompt, user_id="user-1", task_id=task_id, meme_id=meme_id),
    )
