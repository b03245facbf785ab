"""Controllers for meme and dispatch CLI commands."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from memology.config import Settings
from memology.dispatch.errors import DispatchError
from memology.dispatch.models import MemeView
from memology.dispatch.processor import TaskProcessor, wait_until_idle
from memology.dispatch.repository import MemeRepository
from memology.dispatch.services import CreateMeme, MemeService
from memology.generation.client import GenerationClient
from memology.storage.alembic_runner import current_revision
from memology.storage.artifacts import LocalArtifactStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MemeCreateCommand:
    """CLI input for meme creation."""

    db_path: Path | None
    prompt: str
    style: str
    user_id: str
    is_public: bool


@dataclass(slots=True)
class MemeListCommand:
    """CLI input for meme listing."""

    db_path: Path | None
    status: str | None
    user_id: str | None
    public_only: bool
    limit: int


@dataclass(slots=True)
class MemeInspectCommand:
    """CLI input for single meme inspection / status check."""

    db_path: Path | None
    meme_id: str


@dataclass(slots=True)
class MemeDeleteCommand:
    """CLI input for meme deletion."""

    db_path: Path | None
    meme_id: str
    user_id: str


@dataclass(slots=True)
class MemeUploadCommand:
    """CLI input for a manual image upload."""

    db_path: Path | None
    meme_id: str
    image_path: Path


@dataclass(slots=True)
class TemplateCommand:
    """CLI input for synchronous template memes."""

    db_path: Path | None
    context: str
    width: int
    height: int


@dataclass(slots=True)
class DispatchRunCommand:
    """CLI input for running the task processor."""

    db_path: Path | None
    meme_ids: tuple[str, ...] = ()
    duration_seconds: float | None = None
    until_idle: bool = False
    workers: int | None = None


@dataclass(slots=True)
class DispatchScanCommand:
    """CLI input for a single stuck-job scanner pass."""

    db_path: Path | None
    stale_after_seconds: int | None = None
    reschedule: bool = False


class MemeCliController:
    """CLI controller for meme records and the dispatch subsystem."""

    def init_db(self, db_path: Path | None) -> list[str]:
        settings = Settings.from_env(db_path=db_path)
        with _repository(settings):
            pass
        revision = current_revision(settings.db_path)
        return [f"Database ready: {settings.db_path} (schema revision {revision})"]

    def create(self, command: MemeCreateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository, _generation_client(settings) as generation:
            service = MemeService(
                repository=repository,
                generation=generation,
                artifacts=_artifact_store(settings),
            )
            meme = service.create_meme(
                CreateMeme(
                    prompt=command.prompt,
                    user_id=command.user_id,
                    style=command.style,
                    is_public=command.is_public,
                ),
            )
        return [
            f"Meme created: meme_id={meme.meme_id} task_id={meme.task_id} status={meme.status}",
            f"Run `memology dispatch run --meme-id {meme.meme_id}` to track generation.",
        ]

    def list_memes(self, command: MemeListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            memes = repository.list_memes(
                limit=command.limit,
                user_id=command.user_id,
                status=command.status,
                public_only=command.public_only,
            )
        if not memes:
            return ["No memes found."]
        return [_format_meme_line(meme) for meme in memes]

    def show(self, command: MemeInspectCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository:
            meme = repository.get_by_id(command.meme_id)
        if meme is None:
            raise ValueError(f"Meme not found: {command.meme_id}")
        return _format_meme_details(meme)

    def check(self, command: MemeInspectCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository, _generation_client(settings) as generation:
            service = MemeService(
                repository=repository,
                generation=generation,
                artifacts=_artifact_store(settings),
            )
            meme = service.check_task_status(command.meme_id)
        return _format_meme_details(meme)

    def upload(self, command: MemeUploadCommand) -> list[str]:
        data = command.image_path.read_bytes()
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository, _generation_client(settings) as generation:
            service = MemeService(
                repository=repository,
                generation=generation,
                artifacts=_artifact_store(settings),
            )
            meme = service.upload_image(command.meme_id, data)
        return _format_meme_details(meme)

    def delete(self, command: MemeDeleteCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository, _generation_client(settings) as generation:
            service = MemeService(
                repository=repository,
                generation=generation,
                artifacts=_artifact_store(settings),
            )
            service.delete_meme(command.user_id, command.meme_id)
        return [f"Meme deleted: {command.meme_id}"]

    def styles(self, db_path: Path | None) -> list[str]:
        settings = Settings.from_env(db_path=db_path)
        with _generation_client(settings) as generation:
            styles = generation.available_styles()
        if not styles:
            return ["No styles available."]
        return [f"- {style}" for style in styles]

    def template(self, command: TemplateCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _repository(settings) as repository, _generation_client(settings) as generation:
            service = MemeService(
                repository=repository,
                generation=generation,
                artifacts=_artifact_store(settings),
            )
            meme = service.generate_template_meme(
                command.context,
                width=command.width,
                height=command.height,
            )
        lines = [f"Template: {meme.template}", f"URL: {meme.url}"]
        lines.extend(f"Text: {line}" for line in meme.text)
        return lines

    def run_dispatch(self, command: DispatchRunCommand) -> list[str]:
        """Run workers and scanner until a signal, the duration, or idleness."""

        settings = Settings.from_env(db_path=command.db_path)
        if command.workers is not None:
            settings.dispatch.workers = command.workers
        settings.validate()

        lines: list[str] = []
        stop_requested = threading.Event()
        with _repository(settings) as repository, _generation_client(settings) as generation:
            processor = _task_processor(
                settings=settings,
                repository=repository,
                generation=generation,
            )
            with processor, _signal_handlers(stop_requested):
                for meme_id in command.meme_ids:
                    try:
                        queued = processor.submit(meme_id)
                    except DispatchError as error:
                        lines.append(f"Rejected {meme_id}: {error}")
                        continue
                    lines.append(
                        f"Submitted {meme_id}" if queued else f"Already in flight: {meme_id}",
                    )

                if command.until_idle:
                    wait_until_idle(
                        processor,
                        timeout_seconds=command.duration_seconds
                        or settings.dispatch.poll_interval_seconds
                        * (settings.dispatch.max_poll_attempts + 2),
                    )
                else:
                    stop_requested.wait(command.duration_seconds)
        lines.append("Task processor stopped.")
        return lines

    def scan(self, command: DispatchScanCommand) -> list[str]:
        """List stale memes, or reschedule them and process until idle."""

        settings = Settings.from_env(db_path=command.db_path)
        if command.stale_after_seconds is not None:
            settings.dispatch.stale_after_seconds = command.stale_after_seconds
        settings.validate()
        stale_after = timedelta(seconds=settings.dispatch.stale_after_seconds)

        with _repository(settings) as repository, _generation_client(settings) as generation:
            if not command.reschedule:
                stale = repository.find_stale(older_than=stale_after)
                if not stale:
                    return ["No stale memes."]
                return [_format_meme_line(meme) for meme in stale]

            processor = _task_processor(
                settings=settings,
                repository=repository,
                generation=generation,
            )
            summary = processor.scanner.scan_once()
            if summary.rescheduled:
                with processor:
                    wait_until_idle(
                        processor,
                        timeout_seconds=settings.dispatch.poll_interval_seconds
                        * (settings.dispatch.max_poll_attempts + 2),
                    )
        return [
            "Scan summary: "
            f"found={summary.found} rescheduled={summary.rescheduled} "
            f"in_flight={summary.skipped_in_flight} changed={summary.skipped_changed} "
            f"rejected={summary.rejected} "
            f"errors={summary.errors}",
        ]


def _task_processor(
    *,
    settings: Settings,
    repository: MemeRepository,
    generation: GenerationClient,
) -> TaskProcessor:
    dispatch = settings.dispatch
    return TaskProcessor(
        repository=repository,
        generation=generation,
        artifacts=_artifact_store(settings),
        workers=dispatch.workers,
        queue_size=dispatch.queue_size,
        poll_interval_seconds=dispatch.poll_interval_seconds,
        max_poll_attempts=dispatch.max_poll_attempts,
        stale_after_seconds=dispatch.stale_after_seconds,
        scan_interval_seconds=dispatch.scan_interval_seconds,
        queue_tick_seconds=dispatch.queue_tick_seconds,
    )


def _artifact_store(settings: Settings) -> LocalArtifactStore:
    return LocalArtifactStore(
        root_dir=settings.storage.root_dir,
        bucket=settings.storage.bucket,
        public_url=settings.storage.public_url,
    )


def _format_meme_line(meme: MemeView) -> str:
    return (
        f"{meme.meme_id} status={meme.status} user={meme.user_id} "
        f"updated={meme.updated_at.isoformat(timespec='seconds')} prompt={meme.prompt[:60]!r}"
    )


def _format_meme_details(meme: MemeView) -> list[str]:
    return [
        f"Meme: {meme.meme_id}",
        f"Status: {meme.status}",
        f"User: {meme.user_id}",
        f"Prompt: {meme.prompt}",
        f"Style: {meme.style or '-'}",
        f"Task: {meme.task_id or '-'}",
        f"Image: {meme.image_url or '-'}",
        f"Public: {'yes' if meme.is_public else 'no'}",
        f"Created: {meme.created_at.isoformat(timespec='seconds')}",
        f"Updated: {meme.updated_at.isoformat(timespec='seconds')}",
    ]


@contextmanager
def _repository(settings: Settings) -> Iterator[MemeRepository]:
    repository = MemeRepository(db_path=settings.db_path)
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@contextmanager
def _generation_client(settings: Settings) -> Iterator[GenerationClient]:
    client = GenerationClient(
        base_url=settings.generation.base_url,
        timeout_seconds=settings.generation.timeout_seconds,
        max_retries=settings.generation.max_retries,
    )
    try:
        yield client
    finally:
        client.close()


@contextmanager
def _signal_handlers(stop_requested: threading.Event) -> Iterator[None]:
    if not hasattr(signal, "SIGINT"):
        yield
        return

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        logger.info("Received %s, stopping task processor", name)
        stop_requested.set()

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # Signal handlers can only be installed in main thread.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)
