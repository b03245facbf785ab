"""Filesystem-backed artifact store with object-store style URLs."""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class ArtifactStoreError(RuntimeError):
    """Artifact write/delete failure."""


class LocalArtifactStore:
    """Stores blobs under ``root_dir/<bucket>/<name>``.

    Returned URLs follow the ``<public_url>/<bucket>/<name>`` layout used by
    S3-compatible gateways, so records stay valid if the directory is served
    behind one.
    """

    def __init__(self, *, root_dir: Path, bucket: str, public_url: str) -> None:
        self.root_dir = root_dir
        self.bucket = bucket
        self.public_url = public_url.rstrip("/")
        self.bucket_dir = root_dir / bucket

    def put(self, name: str, data: bytes) -> str:
        """Write ``data`` under ``name`` and return its public URL."""

        path = self._resolve(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except OSError as error:
            tmp_path.unlink(missing_ok=True)
            raise ArtifactStoreError(f"Failed to write artifact {name!r}: {error}") from error
        logger.debug("Stored artifact %s (%d bytes)", name, len(data))
        return self.url_for(name)

    def delete(self, name: str) -> None:
        path = self._resolve(name)
        try:
            path.unlink(missing_ok=True)
        except OSError as error:
            raise ArtifactStoreError(f"Failed to delete artifact {name!r}: {error}") from error

    def exists(self, name: str) -> bool:
        return self._resolve(name).is_file()

    def read(self, name: str) -> bytes:
        return self._resolve(name).read_bytes()

    def url_for(self, name: str) -> str:
        return f"{self.public_url}/{self.bucket}/{name}"

    def name_for_url(self, url: str) -> str | None:
        """Object name behind a URL from ``url_for``; ``None`` for foreign URLs."""

        prefix = f"{self.public_url}/{self.bucket}/"
        if not url.startswith(prefix) or len(url) == len(prefix):
            return None
        return url[len(prefix) :]

    def _resolve(self, name: str) -> Path:
        if not name or name.startswith("/"):
            raise ValueError(f"Invalid artifact name: {name!r}")
        bucket_dir = self.bucket_dir.resolve()
        path = (bucket_dir / name).resolve()
        if not path.is_relative_to(bucket_dir):
            raise ValueError(f"Artifact name escapes bucket: {name!r}")
        return path
