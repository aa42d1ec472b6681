# src/essay_grader/models/task.py
"""SQLAlchemy models for writing tasks assigned to classes."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, Table, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from essay_grader.db.session import Base
from essay_grader.models.classroom import SchoolClass

# Many-to-many: a task can be assigned to several classes.
task_classes = Table(
    "task_classes",
    Base.metadata,
    Column("task_id", String(36), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "class_id",
        String(36),
        ForeignKey("school_classes.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Task(Base):
    """A writing assignment; its corrector grades every essay submitted for it."""

    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    corrector_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    classes: Mapped[list[SchoolClass]] = relationship(secondary=task_classes)

    @property
    def class_ids(self) -> list[str]:
        return [school_class.id for school_class in self.classes]
