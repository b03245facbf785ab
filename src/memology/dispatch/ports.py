"""Collaborator interfaces consumed by the dispatch core."""

from __future__ import annotations

from datetime import timedelta
from typing import Protocol

from memology.dispatch.models import MemeCreate, MemeView
from memology.generation.client import TemplateMeme


class GenerationService(Protocol):
    """External generation service."""

    def submit(self, prompt: str, style: str = "") -> str:
        """Start a generation and return the service's task id."""

    def poll_status(self, task_id: str) -> str:
        """Return the raw status text for a task."""

    def fetch_result(self, task_id: str) -> bytes:
        """Return the generated image bytes for a finished task."""


class JobStore(Protocol):
    """Durable meme records."""

    def get_by_id(self, meme_id: str) -> MemeView | None:
        """Load one record or ``None`` when absent."""

    def update(self, meme: MemeView) -> MemeView:
        """Persist mutable fields and bump ``updated_at``."""

    def find_stale(self, *, older_than: timedelta) -> list[MemeView]:
        """Non-completed records not updated within ``older_than``, oldest first."""


class ArtifactStore(Protocol):
    """Durable blob storage."""

    def put(self, name: str, data: bytes) -> str:
        """Store ``data`` under ``name`` and return a retrievable URL."""

    def delete(self, name: str) -> None:
        """Remove the object stored under ``name``."""

    def name_for_url(self, url: str) -> str | None:
        """Object name behind a URL returned by ``put``, if it is one."""


class MemeStore(JobStore, Protocol):
    """Job store plus the record use cases of the meme service."""

    def create(self, payload: MemeCreate) -> MemeView:
        """Insert a new pending record."""

    def delete(self, meme_id: str) -> None:
        """Remove a record; raise ``MemeNotFoundError`` when absent."""

    def list_memes(
        self,
        *,
        limit: int = 20,
        offset: int = 0,
        user_id: str | None = None,
        status: str | None = None,
        public_only: bool = False,
    ) -> list[MemeView]:
        """Records newest first, optionally filtered."""


class MemeGenerator(GenerationService, Protocol):
    """Generation service including its catalogue and template endpoints."""

    def available_styles(self) -> list[str]:
        """Style names the service accepts on submit."""

    def generate_template(self, context: str, *, width: int = 512, height: int = 512) -> TemplateMeme:
        """Render a template meme synchronously."""
