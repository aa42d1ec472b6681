# src/essay_grader/api/v1/endpoints/essays.py
"""Essay submission and correction endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Response, status

from essay_grader.api.v1.dependencies import (
    CorrectorDep,
    CurrentPrincipalDep,
    EssayLifecycleDep,
    SubmitterDep,
)
from essay_grader.schemas.essay import (
    AnnotationSave,
    EssayResponse,
    EssaySubmit,
    FeedbackUpdate,
    FinalizeRequest,
)

router = APIRouter(prefix="/essays", tags=["essays"])


@router.post("/", response_model=EssayResponse, status_code=status.HTTP_201_CREATED)
async def submit_essay(
    payload: EssaySubmit,
    principal: SubmitterDep,
    lifecycle: EssayLifecycleDep,
) -> EssayResponse:
    """Submit an essay for a task assigned to the caller's class."""
    essay = lifecycle.submit(
        principal,
        task_id=payload.task_id,
        file_ref=payload.file_ref,
        file_kind=payload.file_kind,
    )
    return EssayResponse.model_validate(essay)


@router.get("/{essay_id}", response_model=EssayResponse)
async def get_essay(
    essay_id: str,
    principal: CurrentPrincipalDep,
    lifecycle: EssayLifecycleDep,
) -> EssayResponse:
    essay = lifecycle.get(essay_id, principal)
    return EssayResponse.model_validate(essay)


@router.post("/{essay_id}/open", response_model=EssayResponse)
async def open_essay(
    essay_id: str,
    principal: CorrectorDep,
    lifecycle: EssayLifecycleDep,
) -> EssayResponse:
    """Start correcting an essay; opening it again is harmless."""
    essay = lifecycle.open(essay_id, principal)
    return EssayResponse.model_validate(essay)


@router.put("/{essay_id}/annotations")
async def save_annotations(
    essay_id: str,
    payload: AnnotationSave,
    principal: CorrectorDep,
    lifecycle: EssayLifecycleDep,
) -> dict[str, Any]:
    annotation = lifecycle.save_annotations(
        essay_id,
        principal,
        page_number=payload.page_number,
        data=payload.data,
    )
    return {
        "essay_id": annotation.essay_id,
        "page_number": annotation.page_number,
        "data": annotation.data,
    }


@router.patch("/{essay_id}/feedback", response_model=EssayResponse)
async def save_feedback(
    essay_id: str,
    payload: FeedbackUpdate,
    principal: CorrectorDep,
    lifecycle: EssayLifecycleDep,
) -> EssayResponse:
    essay = lifecycle.save_draft_feedback(essay_id, principal, payload.written_feedback)
    return EssayResponse.model_validate(essay)


@router.post("/{essay_id}/finalize", response_model=EssayResponse)
async def finalize_essay(
    essay_id: str,
    payload: FinalizeRequest,
    principal: CorrectorDep,
    lifecycle: EssayLifecycleDep,
) -> EssayResponse:
    """Record the grade and close the correction."""
    essay = lifecycle.finalize(
        essay_id,
        principal,
        grade=payload.grade,
        written_feedback=payload.written_feedback,
    )
    return EssayResponse.model_validate(essay)


@router.delete("/{essay_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_essay(
    essay_id: str,
    principal: SubmitterDep,
    lifecycle: EssayLifecycleDep,
) -> Response:
    """Withdraw a submission that nobody has started correcting."""
    lifecycle.delete(essay_id, principal)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
