"""Persistent meme job repository."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from uuid import uuid4

from sqlmodel import Session, col, select

from memology.dispatch.errors import MemeNotFoundError
from memology.dispatch.models import MemeCreate, MemeStatus, MemeView
from memology.storage.alembic_runner import upgrade_head
from memology.storage.common import (
    DEFAULT_BUSY_TIMEOUT_MS,
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from memology.storage.sqlmodel_models import Meme


class MemeRepository:
    """Meme persistence facade backed by SQLModel + SQLite.

    Safe to share between worker threads: every call opens its own session.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        sqlite_busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=sqlite_busy_timeout_ms)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def create(self, payload: MemeCreate) -> MemeView:
        now = utc_now()
        with Session(self.engine) as session:
            row = Meme(
                meme_id=payload.meme_id or str(uuid4()),
                user_id=payload.user_id,
                prompt=payload.prompt,
                style=payload.style,
                task_id=payload.task_id,
                status=MemeStatus.PENDING.value,
                image_url="",
                is_public=payload.is_public,
                created_at=to_db_datetime(now),
                updated_at=to_db_datetime(now),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_meme_view(row)

    def get_by_id(self, meme_id: str) -> MemeView | None:
        with Session(self.engine) as session:
            row = session.get(Meme, meme_id)
            if row is None:
                return None
            return _to_meme_view(row)

    def update(self, meme: MemeView) -> MemeView:
        """Persist mutable fields of ``meme`` and bump ``updated_at`` in place."""

        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(Meme, meme.meme_id)
            if row is None:
                raise MemeNotFoundError(meme.meme_id)
            row.task_id = meme.task_id
            row.status = meme.status
            row.image_url = meme.image_url
            row.is_public = meme.is_public
            row.generation_time_ms = meme.generation_time_ms
            row.updated_at = to_db_datetime(now)
            session.add(row)
            session.commit()
        meme.updated_at = now
        return meme

    def delete(self, meme_id: str) -> None:
        with Session(self.engine) as session:
            row = session.get(Meme, meme_id)
            if row is None:
                raise MemeNotFoundError(meme_id)
            session.delete(row)
            session.commit()

    def find_stale(
        self,
        *,
        older_than: timedelta,
        now: datetime | None = None,
    ) -> list[MemeView]:
        """Non-completed memes whose last update is older than ``older_than``.

        Includes ``failed`` rows: the scanner re-attempts them after an
        outage of the generation service.
        """

        threshold = (now or utc_now()) - older_than
        with Session(self.engine) as session:
            rows = session.exec(
                select(Meme)
                .where(
                    col(Meme.status) != MemeStatus.COMPLETED.value,
                    col(Meme.updated_at) < to_db_datetime(threshold),
                )
                .order_by(col(Meme.updated_at).asc()),
            ).all()
            return [_to_meme_view(row) for row in rows]

    def list_memes(
        self,
        *,
        limit: int = 20,
        offset: int = 0,
        user_id: str | None = None,
        status: str | None = None,
        public_only: bool = False,
    ) -> list[MemeView]:
        with Session(self.engine) as session:
            query = select(Meme)
            if user_id is not None:
                query = query.where(Meme.user_id == user_id)
            if status is not None:
                query = query.where(Meme.status == status)
            if public_only:
                query = query.where(col(Meme.is_public).is_(True))
            rows = session.exec(
                query.order_by(col(Meme.created_at).desc(), col(Meme.meme_id).desc())
                .offset(offset)
                .limit(limit),
            ).all()
            return [_to_meme_view(row) for row in rows]

    def touch(self, meme_id: str, *, updated_at: datetime) -> None:
        """Force ``updated_at``; used by maintenance tooling and tests."""

        with Session(self.engine) as session:
            row = session.get(Meme, meme_id)
            if row is None:
                raise MemeNotFoundError(meme_id)
            row.updated_at = to_db_datetime(updated_at)
            session.add(row)
            session.commit()


def _to_meme_view(row: Meme) -> MemeView:
    return MemeView(
        meme_id=row.meme_id,
        user_id=row.user_id,
        prompt=row.prompt,
        style=row.style,
        task_id=row.task_id,
        status=row.status,
        image_url=row.image_url,
        is_public=row.is_public,
        generation_time_ms=row.generation_time_ms,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
