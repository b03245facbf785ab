"""Programmatic access to the memology Alembic migrations."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext

# src/memology/storage -> repository root holding alembic.ini and alembic/
_PROJECT_ROOT = Path(__file__).resolve().parents[3]


def _config(db_path: Path) -> Config:
    config = Config(str(_PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(_PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", f"sqlite:///{db_path}")
    return config


def upgrade_head(db_path: Path) -> None:
    """Bring the meme database at ``db_path`` to the latest schema."""

    command.upgrade(_config(db_path), "head")


def current_revision(db_path: Path) -> str | None:
    """Revision stamped in the database, ``None`` before the first upgrade."""

    engine = create_engine(f"sqlite:///{db_path}", poolclass=NullPool)
    try:
        with engine.connect() as connection:
            return MigrationContext.configure(connection).get_current_revision()
    finally:
        engine.dispose()
