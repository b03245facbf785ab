"""Use-case services for meme records."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from uuid import uuid4

from memology.dispatch.errors import (
    DispatchError,
    MemeBusyError,
    MemeNotFoundError,
    MemeOwnershipError,
)
from memology.dispatch.models import (
    MemeCreate,
    MemeStatus,
    MemeView,
    artifact_name_for,
    upload_name_for,
)
from memology.dispatch.ports import ArtifactStore, MemeGenerator, MemeStore
from memology.dispatch.processor import TaskProcessor
from memology.dispatch.status import StatusKind, classify_generation_status
from memology.generation.client import TemplateMeme

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CreateMeme:
    """High-level command to create a generated meme."""

    prompt: str
    user_id: str
    style: str = ""
    is_public: bool = True


class MemeService:
    """Coordinates the generation service, meme records and the processor.

    Every path that writes a record on its own behalf first takes the meme's
    slot in the processor's in-flight tracker, so it never races a worker.
    """

    def __init__(
        self,
        *,
        repository: MemeStore,
        generation: MemeGenerator,
        artifacts: ArtifactStore,
        processor: TaskProcessor | None = None,
    ) -> None:
        self.repository = repository
        self.generation = generation
        self.artifacts = artifacts
        self.processor = processor

    def create_meme(self, command: CreateMeme) -> MemeView:
        """Start generation, store a pending record and hand it to the processor.

        A rejected hand-off is logged, not raised: the record stays
        ``pending`` and the stuck-job scanner picks it up later.
        """

        if not command.prompt.strip():
            raise ValueError("Prompt must not be empty.")
        task_id = self.generation.submit(command.prompt, command.style)
        meme = self.repository.create(
            MemeCreate(
                prompt=command.prompt,
                user_id=command.user_id,
                style=command.style,
                task_id=task_id,
                is_public=command.is_public,
            ),
        )
        if self.processor is not None:
            try:
                self.processor.submit(meme.meme_id)
            except DispatchError as error:
                logger.warning("Failed to add task to processor: %s", error)
        return meme

    def get_meme(self, meme_id: str) -> MemeView:
        meme = self.repository.get_by_id(meme_id)
        if meme is None:
            raise MemeNotFoundError(meme_id)
        return meme

    def list_memes(
        self,
        *,
        limit: int = 20,
        offset: int = 0,
        user_id: str | None = None,
        status: str | None = None,
        public_only: bool = False,
    ) -> list[MemeView]:
        return self.repository.list_memes(
            limit=limit,
            offset=offset,
            user_id=user_id,
            status=status,
            public_only=public_only,
        )

    def check_task_status(self, meme_id: str) -> MemeView:
        """Poll the generation service once and apply the result inline.

        A meme a worker currently owns is returned as stored.
        """

        meme = self.get_meme(meme_id)
        if meme.is_completed:
            return meme
        if not meme.task_id:
            raise ValueError(f"Meme {meme_id} has no task ID.")

        with self._ownership(meme_id) as owned:
            if not owned:
                return meme
            status = classify_generation_status(self.generation.poll_status(meme.task_id))
            if status.kind is StatusKind.SUCCESS:
                return self._complete(meme_id)

            meme.status = MemeStatus.FAILED.value if status.kind is StatusKind.FAILURE else status.raw
            if not meme.status:
                return meme
            return self.repository.update(meme)

    def process_completed_task(self, meme_id: str) -> MemeView:
        """Fetch the finished image, store it and mark the meme completed."""

        with self._ownership(meme_id) as owned:
            if not owned:
                raise MemeBusyError(meme_id)
            return self._complete(meme_id)

    def upload_image(self, meme_id: str, data: bytes) -> MemeView:
        """Attach a manually supplied image and mark the meme completed.

        The uploaded object is removed again when the record cannot be
        loaded or written.
        """

        if not data:
            raise ValueError("Image data must not be empty.")
        with self._ownership(meme_id) as owned:
            if not owned:
                raise MemeBusyError(meme_id)
            object_name = upload_name_for(meme_id, uuid4().hex[:12])
            image_url = self.artifacts.put(object_name, data)
            try:
                meme = self.get_meme(meme_id)
                meme.image_url = image_url
                meme.status = MemeStatus.COMPLETED.value
                return self.repository.update(meme)
            except Exception:
                self._delete_artifact(object_name)
                raise

    def delete_meme(self, user_id: str, meme_id: str) -> None:
        """Delete a user's meme record and its stored images."""

        with self._ownership(meme_id) as owned:
            if not owned:
                raise MemeBusyError(meme_id)
            meme = self.get_meme(meme_id)
            if meme.user_id != user_id:
                raise MemeOwnershipError(meme_id, user_id)
            self.repository.delete(meme_id)

        names = {artifact_name_for(meme_id)}
        uploaded = self.artifacts.name_for_url(meme.image_url) if meme.image_url else None
        if uploaded:
            names.add(uploaded)
        for name in sorted(names):
            self._delete_artifact(name)
        logger.info("Meme %s deleted by user %s", meme_id, user_id)

    def available_styles(self) -> list[str]:
        return self.generation.available_styles()

    def generate_template_meme(self, context: str, *, width: int = 0, height: int = 0) -> TemplateMeme:
        if not context.strip():
            raise ValueError("Template context must not be empty.")
        return self.generation.generate_template(context, width=width, height=height)

    def _complete(self, meme_id: str) -> MemeView:
        meme = self.get_meme(meme_id)
        if not meme.task_id:
            raise ValueError(f"Meme {meme_id} has no task ID.")

        image = self.generation.fetch_result(meme.task_id)
        object_name = artifact_name_for(meme.meme_id)
        meme.image_url = self.artifacts.put(object_name, image)
        meme.status = MemeStatus.COMPLETED.value
        try:
            return self.repository.update(meme)
        except Exception:
            self._delete_artifact(object_name)
            raise

    @contextmanager
    def _ownership(self, meme_id: str) -> Iterator[bool]:
        if self.processor is None:
            yield True
            return
        tracker = self.processor.tracker
        if not tracker.try_acquire(meme_id):
            logger.info("Meme %s is owned by a worker", meme_id)
            yield False
            return
        try:
            yield True
        finally:
            tracker.release(meme_id)

    def _delete_artifact(self, object_name: str) -> None:
        try:
            self.artifacts.delete(object_name)
        except Exception as error:  # noqa: BLE001
            logger.warning("Failed to delete artifact %s: %s", object_name, error)
