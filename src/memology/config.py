"""Runtime configuration for the meme dispatch backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse


@dataclass(slots=True)
class DispatchSettings:
    """Task processor settings."""

    workers: int = 5
    queue_size: int = 100
    poll_interval_seconds: float = 5.0
    max_poll_attempts: int = 120
    stale_after_seconds: int = 1_800
    scan_interval_seconds: float = 3_600.0
    queue_tick_seconds: float = 0.5


@dataclass(slots=True)
class GenerationSettings:
    """External generation service settings."""

    base_url: str = "http://localhost:8000"
    timeout_seconds: float = 30.0
    max_retries: int = 2


@dataclass(slots=True)
class StorageSettings:
    """Artifact storage settings."""

    root_dir: Path = Path(".memology_artifacts")
    bucket: str = "memes"
    public_url: str = "http://localhost:9000"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".memology.db")
    dispatch: DispatchSettings = field(default_factory=DispatchSettings)
    generation: GenerationSettings = field(default_factory=GenerationSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            db_path=db_path or Path(os.getenv("MEMOLOGY_DB_PATH", ".memology.db")),
            dispatch=DispatchSettings(
                workers=int(os.getenv("MEMOLOGY_WORKERS", "5")),
                queue_size=int(os.getenv("MEMOLOGY_QUEUE_SIZE", "100")),
                poll_interval_seconds=float(os.getenv("MEMOLOGY_POLL_INTERVAL_SECONDS", "5.0")),
                max_poll_attempts=int(os.getenv("MEMOLOGY_MAX_POLL_ATTEMPTS", "120")),
                stale_after_seconds=int(os.getenv("MEMOLOGY_STALE_AFTER_SECONDS", "1800")),
                scan_interval_seconds=float(
                    os.getenv("MEMOLOGY_SCAN_INTERVAL_SECONDS", "3600"),
                ),
                queue_tick_seconds=float(os.getenv("MEMOLOGY_QUEUE_TICK_SECONDS", "0.5")),
            ),
            generation=GenerationSettings(
                base_url=os.getenv("MEMOLOGY_AI_BASE_URL", "http://localhost:8000"),
                timeout_seconds=float(os.getenv("MEMOLOGY_AI_TIMEOUT_SECONDS", "30.0")),
                max_retries=int(os.getenv("MEMOLOGY_AI_MAX_RETRIES", "2")),
            ),
            storage=StorageSettings(
                root_dir=Path(os.getenv("MEMOLOGY_STORAGE_DIR", ".memology_artifacts")),
                bucket=os.getenv("MEMOLOGY_STORAGE_BUCKET", "memes"),
                public_url=os.getenv("MEMOLOGY_STORAGE_PUBLIC_URL", "http://localhost:9000"),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error on values the dispatcher cannot run with."""

        dispatch = self.dispatch
        if dispatch.workers <= 0:
            raise ValueError("MEMOLOGY_WORKERS must be > 0.")
        if dispatch.queue_size <= 0:
            raise ValueError("MEMOLOGY_QUEUE_SIZE must be > 0.")
        if dispatch.poll_interval_seconds <= 0:
            raise ValueError("MEMOLOGY_POLL_INTERVAL_SECONDS must be > 0.")
        if dispatch.max_poll_attempts <= 0:
            raise ValueError("MEMOLOGY_MAX_POLL_ATTEMPTS must be > 0.")
        if dispatch.stale_after_seconds < 0:
            raise ValueError("MEMOLOGY_STALE_AFTER_SECONDS must be >= 0.")
        if dispatch.scan_interval_seconds <= 0:
            raise ValueError("MEMOLOGY_SCAN_INTERVAL_SECONDS must be > 0.")
        if dispatch.queue_tick_seconds <= 0:
            raise ValueError("MEMOLOGY_QUEUE_TICK_SECONDS must be > 0.")
        if self.generation.timeout_seconds <= 0:
            raise ValueError("MEMOLOGY_AI_TIMEOUT_SECONDS must be > 0.")
        _validate_http_url(self.generation.base_url, name="MEMOLOGY_AI_BASE_URL")
        _validate_http_url(self.storage.public_url, name="MEMOLOGY_STORAGE_PUBLIC_URL")
        if not self.storage.bucket.strip() or "/" in self.storage.bucket:
            raise ValueError("MEMOLOGY_STORAGE_BUCKET must be a single non-empty path segment.")


def _validate_http_url(value: str, *, name: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid {name}: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )
