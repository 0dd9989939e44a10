"""Exam attempt models and request bodies"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime


class ImageAnswer(BaseModel):
    """Answer payload for image-upload questions"""
    kind: Literal["image"] = "image"
    path: str
    original_name: str
    mimetype: str
    size: int
    uploaded_at: datetime


class AttemptAnswer(BaseModel):
    model_config = ConfigDict(extra="ignore")
    question_id: str
    answer: Any = None  # str, bool or ImageAnswer dict depending on question type
    is_correct: Optional[bool] = None
    points_awarded: Optional[float] = None
    max_points: Optional[float] = None


class ExamAttempt(BaseModel):
    model_config = ConfigDict(extra="ignore")
    attempt_id: str
    exam_id: str
    student_id: str
    started_at: datetime
    expires_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    question_ids: List[str] = []
    answers: List[AttemptAnswer] = []
    points_awarded: float = 0
    points_total: float = 0
    needs_review: bool = False
    graded_at: Optional[datetime] = None
    graded_by: Optional[str] = None
    review_requested: bool = False
    review_requested_at: Optional[datetime] = None
    review_request_message: Optional[str] = None
    review_response_message: Optional[str] = None
    review_appointment_at: Optional[datetime] = None
    review_responded_at: Optional[datetime] = None
    review_responded_by: Optional[str] = None


class AnswerPatch(BaseModel):
    question_id: str
    answer: Any = None


class AutosaveRequest(BaseModel):
    answers: List[AnswerPatch] = []


class SubmitRequest(BaseModel):
    answers: Optional[List[AnswerPatch]] = None


class GradeRequest(BaseModel):
    points_by_question: Dict[str, Any] = {}


class ReviewRequestCreate(BaseModel):
    message: Optional[str] = None


class ReviewResponseUpdate(BaseModel):
    """Fields left out of the body stay unchanged; explicit null clears them"""
    appointment_at: Optional[str] = None
    message: Optional[str] = None
