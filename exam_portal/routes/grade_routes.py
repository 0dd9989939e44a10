"""
Grade and question bank routes.

Endpoints:
- GET  /api/grades
- GET  /api/students/{student_id}/review
- GET  /api/courses/{course_id}/questions
- POST /api/courses/{course_id}/questions
"""

from fastapi import APIRouter, Depends

from ..models import QuestionCreate, User
from ..services import ExamServices
from .deps import get_services, require_role

router = APIRouter(prefix="/api", tags=["grades"])

instructor = require_role("professor", "admin")
student = require_role("student", "admin")


@router.get("/grades")
async def get_my_grades(
    user: User = Depends(student),
    services: ExamServices = Depends(get_services),
):
    """The caller's submitted attempts with grade summaries."""
    return await services.results.get_my_grades(user.user_id)


@router.get("/students/{student_id}/review")
async def get_student_review(
    student_id: str,
    user: User = Depends(instructor),
    services: ExamServices = Depends(get_services),
):
    return await services.results.get_student_review(student_id)


@router.get("/courses/{course_id}/questions")
async def list_course_questions(
    course_id: str,
    user: User = Depends(instructor),
    services: ExamServices = Depends(get_services),
):
    return await services.questions.list_course_questions(course_id)


@router.post("/courses/{course_id}/questions", status_code=201)
async def create_question(
    course_id: str,
    payload: QuestionCreate,
    user: User = Depends(instructor),
    services: ExamServices = Depends(get_services),
):
    return await services.questions.create_question(course_id, payload, user.user_id)
