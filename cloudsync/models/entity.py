"""Local content entities (courses and lessons)."""

from __future__ import annotations

from enum import StrEnum

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cloudsync.models.base import Base


class EntityKind(StrEnum):
    COURSE = "course"
    LESSON = "lesson"


class EntityStatus(StrEnum):
    PUBLISHED = "published"
    DRAFT = "draft"
    PENDING = "pending"
    PRIVATE = "private"


class Entity(Base):
    """A course or a lesson nested in a course."""

    __tablename__ = "entities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("entities.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default=EntityStatus.DRAFT)
    is_revision: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[str] = mapped_column(Text, nullable=False)
