from pathlib import Path

import allure
from sqlalchemy import inspect, text

from memology.dispatch.repository import MemeRepository
from memology.storage.alembic_runner import current_revision

pytestmark = [
    allure.epic("Meme Dispatch"),
    allure.feature("Meme Persistence"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    repository = MemeRepository(tmp_path / "migrations.db")
    repository.init_schema()

    with repository.engine.connect() as connection:
        version = connection.execute(text("SELECT version_num FROM alembic_version")).scalar_one()
    assert version == "20261017_0001"

    inspector = inspect(repository.engine)
    assert "memes" in inspector.get_table_names()
    columns = {column["name"] for column in inspector.get_columns("memes")}
    assert {
        "meme_id",
        "user_id",
        "prompt",
        "style",
        "task_id",
        "status",
        "image_url",
        "is_public",
        "generation_time_ms",
        "created_at",
        "updated_at",
    } <= columns
    index_names = {index["name"] for index in inspector.get_indexes("memes")}
    assert "idx_memes_status_updated" in index_names
    repository.close()


def test_init_schema_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "twice.db"
    repository = MemeRepository(db_path)
    assert current_revision(db_path) is None

    repository.init_schema()
    repository.init_schema()

    assert current_revision(db_path) == "20261017_0001"
    repository.close()
