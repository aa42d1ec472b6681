# src/essay_grader/models/user.py
"""SQLAlchemy model for authenticated identities."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from essay_grader.db.session import Base


class Role(str, Enum):
    """The two kinds of principal known to the system."""

    CORRECTOR = "corrector"
    SUBMITTER = "submitter"


class User(Base):
    """A corrector or submitter account.

    Correctors own classes and tasks; submitters belong to at most one class
    (``class_id``) and submit essays for the tasks assigned to it.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    # Group membership for submitters; always NULL for correctors.
    class_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey(
            "school_classes.id",
            ondelete="SET NULL",
            use_alter=True,
            name="fk_users_class_id",
        ),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    @property
    def is_corrector(self) -> bool:
        return self.role == Role.CORRECTOR.value

    @property
    def is_submitter(self) -> bool:
        return self.role == Role.SUBMITTER.value
