"""
Exam management routes.

Endpoints:
- GET    /api/exams
- GET    /api/exams/available
- GET    /api/exams/active-attempt
- GET    /api/exams/{exam_id}
- POST   /api/exams
- PUT    /api/exams/{exam_id}
- DELETE /api/exams/{exam_id}
- PATCH  /api/exams/{exam_id}/questions
- PATCH  /api/exams/{exam_id}/publish
- GET    /api/exams/{exam_id}/results
- POST   /api/exams/{exam_id}/attempts
"""

from fastapi import APIRouter, Depends

from ..models import ExamCreate, ExamQuestionsUpdate, ExamUpdate, User
from ..services import ExamServices
from .deps import get_current_user, get_services, require_role

router = APIRouter(prefix="/api/exams", tags=["exams"])

instructor = require_role("professor", "admin")
student = require_role("student", "admin")


@router.get("")
async def list_exams(services: ExamServices = Depends(get_services)):
    """List all exams."""
    return await services.exams.list_exams()


@router.get("/available")
async def list_available_exams(
    user: User = Depends(get_current_user),
    services: ExamServices = Depends(get_services),
):
    """Published exams the caller can take right now."""
    return await services.exams.list_available_exams(user.user_id, user.role)


@router.get("/active-attempt")
async def get_active_attempt(
    user: User = Depends(student),
    services: ExamServices = Depends(get_services),
):
    """The caller's in-progress attempt, if any. May auto-submit an overdue one."""
    return await services.attempts.get_active_attempt(user.user_id)


@router.get("/{exam_id}")
async def get_exam(exam_id: str, services: ExamServices = Depends(get_services)):
    return await services.exams.get_exam(exam_id)


@router.post("", status_code=201)
async def create_exam(
    payload: ExamCreate,
    user: User = Depends(instructor),
    services: ExamServices = Depends(get_services),
):
    """Create a new exam in draft state"""
    return await services.exams.create_exam(payload, user.user_id, user.role)


@router.put("/{exam_id}")
async def update_exam(
    exam_id: str,
    payload: ExamUpdate,
    user: User = Depends(instructor),
    services: ExamServices = Depends(get_services),
):
    return await services.exams.update_exam(exam_id, payload, user.user_id, user.role)


@router.delete("/{exam_id}")
async def delete_exam(
    exam_id: str,
    user: User = Depends(instructor),
    services: ExamServices = Depends(get_services),
):
    return await services.exams.delete_exam(exam_id, user.user_id, user.role)


@router.patch("/{exam_id}/questions")
async def set_exam_questions(
    exam_id: str,
    payload: ExamQuestionsUpdate,
    user: User = Depends(instructor),
    services: ExamServices = Depends(get_services),
):
    """Assign a manual question list or a random composition (draft exams only)."""
    return await services.exams.set_exam_questions(exam_id, payload, user.user_id, user.role)


@router.patch("/{exam_id}/publish")
async def publish_exam(
    exam_id: str,
    user: User = Depends(instructor),
    services: ExamServices = Depends(get_services),
):
    return await services.exams.publish_exam(exam_id, user.user_id, user.role)


@router.get("/{exam_id}/results")
async def get_exam_results(
    exam_id: str,
    user: User = Depends(instructor),
    services: ExamServices = Depends(get_services),
):
    """Submitted attempts ranked by points, earliest submission first on ties."""
    return await services.results.get_exam_results(exam_id)


@router.post("/{exam_id}/attempts")
async def start_attempt(
    exam_id: str,
    user: User = Depends(student),
    services: ExamServices = Depends(get_services),
):
    """Start or resume the caller's attempt."""
    return await services.attempts.start_attempt(exam_id, user.user_id, user.role)
