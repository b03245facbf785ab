"""SQLModel ORM tables for meme storage."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import Field, SQLModel

DEFAULT_USER_ID = "default_user"


class Meme(SQLModel, table=True):
    __tablename__ = "memes"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_memes_status_updated", "status", "updated_at"),)

    meme_id: str = Field(primary_key=True)
    user_id: str = Field(default=DEFAULT_USER_ID, index=True)
    prompt: str = Field(sa_column=Column(Text, nullable=False))
    style: str = Field(default="")
    task_id: str = Field(default="", index=True)
    status: str = Field(default="pending", index=True)
    image_url: str = Field(default="")
    is_public: bool = Field(default=True, index=True)
    generation_time_ms: int | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
