"""
Attempt routes.

Student endpoints:
- GET   /api/exams/attempts/{attempt_id}
- PATCH /api/exams/attempts/{attempt_id}/autosave
- POST  /api/exams/attempts/{attempt_id}/questions/{question_id}/image
- POST  /api/exams/attempts/{attempt_id}/submit
- POST  /api/exams/attempts/{attempt_id}/request-review

Instructor endpoints:
- GET   /api/exams/attempts/{attempt_id}/review
- PATCH /api/exams/attempts/{attempt_id}/grade
- PATCH /api/exams/attempts/{attempt_id}/review-response
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, File, UploadFile

from ..models import (
    AutosaveRequest,
    GradeRequest,
    ReviewRequestCreate,
    ReviewResponseUpdate,
    SubmitRequest,
    User,
)
from ..services import ExamServices
from .deps import get_services, require_role

router = APIRouter(prefix="/api/exams/attempts", tags=["attempts"])

instructor = require_role("professor", "admin")
student = require_role("student", "admin")


@router.get("/{attempt_id}")
async def get_attempt(
    attempt_id: str,
    user: User = Depends(student),
    services: ExamServices = Depends(get_services),
):
    return await services.attempts.get_attempt(attempt_id, user.user_id)


@router.patch("/{attempt_id}/autosave")
async def autosave_attempt(
    attempt_id: str,
    payload: AutosaveRequest,
    user: User = Depends(student),
    services: ExamServices = Depends(get_services),
):
    """Merge draft answers into the attempt without grading."""
    patches = [p.model_dump() for p in payload.answers]
    return await services.attempts.autosave(attempt_id, user.user_id, patches)


@router.post("/{attempt_id}/questions/{question_id}/image")
async def upload_answer_image(
    attempt_id: str,
    question_id: str,
    image: UploadFile = File(...),
    user: User = Depends(student),
    services: ExamServices = Depends(get_services),
):
    """Upload the image answer for an image-upload question."""
    data = await image.read()
    return await services.attempts.upload_answer_image(
        attempt_id=attempt_id,
        student_id=user.user_id,
        question_id=question_id,
        filename=image.filename or "",
        content_type=image.content_type or "",
        data=data,
    )


@router.post("/{attempt_id}/submit")
async def submit_attempt(
    attempt_id: str,
    payload: Optional[SubmitRequest] = Body(default=None),
    user: User = Depends(student),
    services: ExamServices = Depends(get_services),
):
    """Submit and grade; without a body the autosaved draft is graded."""
    answers = None
    if payload is not None and payload.answers is not None:
        answers = [a.model_dump() for a in payload.answers]
    return await services.attempts.submit(attempt_id, user.user_id, answers)


@router.post("/{attempt_id}/request-review")
async def request_review(
    attempt_id: str,
    payload: Optional[ReviewRequestCreate] = Body(default=None),
    user: User = Depends(student),
    services: ExamServices = Depends(get_services),
):
    message = payload.message if payload else None
    return await services.reviews.request_review(attempt_id, user.user_id, message)


@router.get("/{attempt_id}/review")
async def get_attempt_review(
    attempt_id: str,
    user: User = Depends(instructor),
    services: ExamServices = Depends(get_services),
):
    return await services.results.get_attempt_review(attempt_id)


@router.patch("/{attempt_id}/grade")
async def grade_attempt(
    attempt_id: str,
    payload: GradeRequest,
    user: User = Depends(instructor),
    services: ExamServices = Depends(get_services),
):
    """Apply manual points; clears needs_review."""
    return await services.grading.grade_attempt(attempt_id, user.user_id, payload.points_by_question)


@router.patch("/{attempt_id}/review-response")
async def respond_to_review(
    attempt_id: str,
    payload: ReviewResponseUpdate,
    user: User = Depends(instructor),
    services: ExamServices = Depends(get_services),
):
    # Only fields present in the body are touched; explicit nulls clear
    changes = payload.model_dump(exclude_unset=True)
    return await services.reviews.respond_to_review(attempt_id, user.user_id, **changes)
