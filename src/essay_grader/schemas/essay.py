# src/essay_grader/schemas/essay.py
"""Essay-related Pydantic schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class EssaySubmit(BaseModel):
    """Schema for a submitter handing in an essay."""

    task_id: str = Field(..., description="Task the essay answers")
    file_ref: str = Field(..., min_length=1, max_length=500, description="Stored file reference")
    file_kind: str = Field(..., description="MIME type of the uploaded file")


class EssayResponse(BaseModel):
    """Schema for essay information returned by the API."""

    id: str
    task_id: str
    submitter_id: str
    file_ref: str
    file_kind: str
    status: Literal["pending", "correcting", "corrected"]
    submitted_at: datetime
    corrected_at: datetime | None = None
    grade: float | None = None
    written_feedback: str | None = None

    model_config = ConfigDict(from_attributes=True)


class FinalizeRequest(BaseModel):
    """Finalize payload.

    ``grade`` is deliberately untyped here; range and type checks happen in the
    lifecycle so that every rejection surfaces as ``validation_failed``.
    """

    grade: Any = None
    written_feedback: str | None = Field(None, max_length=20000)


class FeedbackUpdate(BaseModel):
    written_feedback: str = Field(..., max_length=20000)


class AnnotationSave(BaseModel):
    """Freehand strokes for one page of an essay; shape is checked by the lifecycle."""

    page_number: int = Field(1, ge=1)
    data: Any = None
