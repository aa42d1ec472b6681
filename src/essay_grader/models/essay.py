# src/essay_grader/models/essay.py
"""SQLAlchemy models for submitted essays and their correction records."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from essay_grader.db.session import Base

GRADE_MIN = 0
GRADE_MAX = 10


class EssayStatus(str, Enum):
    """Lifecycle states, exposed across the API boundary verbatim."""

    PENDING = "pending"
    CORRECTING = "correcting"
    CORRECTED = "corrected"


class Essay(Base):
    """A submitted essay.

    ``grade`` and ``corrected_at`` are written together, and only by the
    finalize transition; see :mod:`essay_grader.services.essay_lifecycle`.
    """

    __tablename__ = "essays"
    __table_args__ = (
        UniqueConstraint("task_id", "submitter_id", name="uq_essays_task_submitter"),
        CheckConstraint(
            "status IN ('pending', 'correcting', 'corrected')", name="ck_essays_status"
        ),
        CheckConstraint(
            f"grade IS NULL OR (grade >= {GRADE_MIN} AND grade <= {GRADE_MAX})",
            name="ck_essays_grade",
        ),
        CheckConstraint(
            "(grade IS NULL) = (corrected_at IS NULL)", name="ck_essays_grade_timestamp"
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    task_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    submitter_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_ref: Mapped[str] = mapped_column(String(500), nullable=False)
    file_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EssayStatus.PENDING.value, index=True
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    corrected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    grade: Mapped[float | None] = mapped_column(Numeric(4, 2, asdecimal=False), nullable=True)
    written_feedback: Mapped[str | None] = mapped_column(Text, nullable=True)

    annotations: Mapped[list[Annotation]] = relationship(
        back_populates="essay",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    comments: Mapped[list[Comment]] = relationship(
        back_populates="essay",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Annotation(Base):
    """Freehand correction strokes for one page of an essay."""

    __tablename__ = "annotations"
    __table_args__ = (
        UniqueConstraint("essay_id", "page_number", name="uq_annotations_essay_page"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    essay_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("essays.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    page_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    essay: Mapped[Essay] = relationship(back_populates="annotations")


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    essay_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("essays.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[str] = mapped_column(String(36), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    essay: Mapped[Essay] = relationship(back_populates="comments")
