"""State machine for submitted essays.

Transitions run ``pending -> correcting -> corrected`` and never go backwards;
a ``pending`` essay may instead be deleted by its submitter. Every status
change is a conditional ``UPDATE ... WHERE status = <expected>`` so that two
writers racing on the same essay cannot both win: the loser matches zero rows
and is rejected without touching the record.
"""

from __future__ import annotations

import logging
import math
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from essay_grader.core.errors import (
    ConflictError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from essay_grader.core.settings import settings
from essay_grader.models.essay import GRADE_MAX, GRADE_MIN, Annotation, Essay, EssayStatus
from essay_grader.models.task import Task
from essay_grader.models.user import Role, User
from essay_grader.schemas.user import Principal

logger = logging.getLogger(__name__)


def validate_grade(grade: Any) -> float:
    """Return ``grade`` as a float within the range the essays table accepts.

    Raises:
        ValidationFailedError: If the grade is missing, not a number, or out of range.
    """
    if grade is None:
        raise ValidationFailedError("Grade is required")
    if isinstance(grade, bool) or not isinstance(grade, int | float | Decimal):
        raise ValidationFailedError("Grade must be a number")
    value = float(grade)
    if math.isnan(value) or math.isinf(value):
        raise ValidationFailedError("Grade must be a number")
    if not GRADE_MIN <= value <= GRADE_MAX:
        raise ValidationFailedError(f"Grade must be between {GRADE_MIN} and {GRADE_MAX}")
    return round(value, 2)


def validate_annotation_data(data: Any) -> dict[str, Any]:
    """Check the stroke payload ``{"lines": [{"points", "color", "size"}]}``."""
    if not isinstance(data, dict) or not isinstance(data.get("lines"), list):
        raise ValidationFailedError("Annotation data must contain a 'lines' list")
    for line in data["lines"]:
        if not isinstance(line, dict) or not isinstance(line.get("points"), list):
            raise ValidationFailedError("Each line must contain a 'points' list")
        for point in line["points"]:
            if not isinstance(point, list) or len(point) != 3 or not all(
                isinstance(coord, int | float) and not isinstance(coord, bool) for coord in point
            ):
                raise ValidationFailedError("Each point must be [x, y, pressure]")
        if not isinstance(line.get("color"), str):
            raise ValidationFailedError("Each line must have a color")
        size = line.get("size")
        if isinstance(size, bool) or not isinstance(size, int | float) or size <= 0:
            raise ValidationFailedError("Each line must have a positive size")
    return data


class EssayLifecycle:
    """Apply authorized transitions to essays within one database session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # --- loading and authorization ----------------------------------------------

    def _load(self, essay_id: str, *, for_update: bool = False) -> Essay:
        stmt = select(Essay).where(Essay.id == essay_id)
        if for_update:
            stmt = stmt.with_for_update()
        essay = self.db.execute(stmt).scalar_one_or_none()
        if essay is None:
            raise NotFoundError("Essay not found")
        return essay

    def _is_corrector(self, essay: Essay, principal: Principal) -> bool:
        if principal.role != Role.CORRECTOR.value:
            return False
        task = self.db.get(Task, essay.task_id)
        return task is not None and task.corrector_id == principal.id

    def _require_corrector(self, essay: Essay, principal: Principal) -> None:
        if not self._is_corrector(essay, principal):
            raise UnauthorizedError("Only the task's corrector can correct this essay")

    def _transition(
        self,
        essay: Essay,
        expected: EssayStatus,
        values: dict[str, Any],
    ) -> bool:
        result = self.db.execute(
            update(Essay)
            .where(Essay.id == essay.id, Essay.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _log_transition(
        self, essay_id: str, source: EssayStatus, target: EssayStatus, actor: Principal
    ) -> None:
        logger.info(
            "essay %s: %s -> %s by %s",
            essay_id,
            source.value,
            target.value,
            actor.id,
            extra={"essay_id": essay_id, "actor_id": actor.id},
        )

    # --- operations ---------------------------------------------------------------

    def submit(
        self,
        principal: Principal,
        *,
        task_id: str,
        file_ref: str,
        file_kind: str,
    ) -> Essay:
        """Create a ``pending`` essay for ``task_id`` owned by ``principal``."""
        if principal.role != Role.SUBMITTER.value:
            raise UnauthorizedError("Only submitters can submit essays")
        if file_kind not in settings.allowed_file_kinds:
            raise ValidationFailedError(
                "File kind must be one of: " + ", ".join(settings.allowed_file_kinds)
            )

        task = self.db.get(Task, task_id)
        if task is None:
            raise NotFoundError("Task not found")
        submitter = self.db.get(User, principal.id)
        if submitter is None or submitter.class_id not in task.class_ids:
            raise UnauthorizedError("This task is not assigned to your class")

        existing = self.db.execute(
            select(Essay.id).where(Essay.task_id == task_id, Essay.submitter_id == principal.id)
        ).first()
        if existing is not None:
            raise ConflictError("You have already submitted an essay for this task")

        essay = Essay(
            task_id=task_id,
            submitter_id=principal.id,
            file_ref=file_ref,
            file_kind=file_kind,
            status=EssayStatus.PENDING.value,
        )
        self.db.add(essay)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError("You have already submitted an essay for this task") from exc
        self.db.refresh(essay)
        logger.info("essay %s submitted for task %s by %s", essay.id, task_id, principal.id)
        return essay

    def get(self, essay_id: str, principal: Principal) -> Essay:
        """Return the essay if ``principal`` is its submitter or its corrector."""
        essay = self._load(essay_id)
        if essay.submitter_id != principal.id and not self._is_corrector(essay, principal):
            raise UnauthorizedError("You cannot view this essay")
        return essay

    def open(self, essay_id: str, principal: Principal) -> Essay:
        """Move ``pending`` to ``correcting``; re-opening is a no-op."""
        essay = self._load(essay_id, for_update=True)
        self._require_corrector(essay, principal)
        self._open_locked(essay, principal)
        self.db.commit()
        self.db.refresh(essay)
        return essay

    def _open_locked(self, essay: Essay, principal: Principal) -> None:
        if essay.status == EssayStatus.CORRECTED.value:
            raise ValidationFailedError("Essay has already been corrected")
        if essay.status == EssayStatus.CORRECTING.value:
            return
        if self._transition(
            essay, EssayStatus.PENDING, {"status": EssayStatus.CORRECTING.value}
        ):
            self._log_transition(essay.id, EssayStatus.PENDING, EssayStatus.CORRECTING, principal)
            return
        # Lost a race; only another open is compatible with what we wanted.
        self.db.refresh(essay)
        if essay.status != EssayStatus.CORRECTING.value:
            self.db.rollback()
            raise ValidationFailedError("Essay has already been corrected")

    def save_annotations(
        self,
        essay_id: str,
        principal: Principal,
        *,
        page_number: int,
        data: Any,
    ) -> Annotation:
        """Store strokes for one page, opening the essay if still ``pending``."""
        strokes = validate_annotation_data(data)
        essay = self._load(essay_id, for_update=True)
        self._require_corrector(essay, principal)
        self._open_locked(essay, principal)

        annotation = self.db.execute(
            select(Annotation).where(
                Annotation.essay_id == essay.id, Annotation.page_number == page_number
            )
        ).scalar_one_or_none()
        if annotation is None:
            annotation = Annotation(essay_id=essay.id, page_number=page_number, data=strokes)
            self.db.add(annotation)
        else:
            annotation.data = strokes
        self.db.commit()
        self.db.refresh(annotation)
        return annotation

    def save_draft_feedback(self, essay_id: str, principal: Principal, feedback: str) -> Essay:
        """Update written feedback without finalizing; only while ``correcting``."""
        essay = self._load(essay_id, for_update=True)
        self._require_corrector(essay, principal)
        if not self._transition(
            essay, EssayStatus.CORRECTING, {"written_feedback": feedback}
        ):
            self.db.rollback()
            raise ValidationFailedError("Feedback can only be drafted while correcting")
        self.db.commit()
        self.db.refresh(essay)
        return essay

    def finalize(
        self,
        essay_id: str,
        principal: Principal,
        *,
        grade: Any,
        written_feedback: str | None = None,
    ) -> Essay:
        """Move ``correcting`` to ``corrected`` with a grade and timestamp.

        Status, grade and correction timestamp are written by one statement, so
        a rejected call leaves every field untouched.
        """
        essay = self._load(essay_id, for_update=True)
        self._require_corrector(essay, principal)
        value = validate_grade(grade)
        if essay.status != EssayStatus.CORRECTING.value:
            raise ValidationFailedError("Only essays under correction can be finalized")

        values: dict[str, Any] = {
            "status": EssayStatus.CORRECTED.value,
            "grade": value,
            "corrected_at": datetime.now(UTC),
        }
        if written_feedback is not None:
            values["written_feedback"] = written_feedback

        if not self._transition(essay, EssayStatus.CORRECTING, values):
            self.db.rollback()
            logger.warning(
                "rejected concurrent finalize of essay %s by %s", essay_id, principal.id
            )
            raise ValidationFailedError("Only essays under correction can be finalized")

        self.db.commit()
        self.db.refresh(essay)
        self._log_transition(essay.id, EssayStatus.CORRECTING, EssayStatus.CORRECTED, principal)
        return essay

    def delete(self, essay_id: str, principal: Principal) -> None:
        """Remove a ``pending`` essay; annotations and comments go with it."""
        essay = self._load(essay_id, for_update=True)
        if essay.submitter_id != principal.id:
            raise UnauthorizedError("Only the submitter can delete this essay")
        if essay.status != EssayStatus.PENDING.value:
            raise ValidationFailedError("Only pending essays can be deleted")

        result = self.db.execute(
            delete(Essay)
            .where(Essay.id == essay.id, Essay.status == EssayStatus.PENDING.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise ValidationFailedError("Only pending essays can be deleted")
        self.db.expunge(essay)
        self.db.commit()
        logger.info("essay %s deleted by %s", essay_id, principal.id)
