"""Question bank models"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, List, Literal, Optional
from datetime import datetime, timezone

QuestionType = Literal["essay", "multiple-choice", "tf", "image-upload"]

# Never auto-graded; always routed to manual review
SUBJECTIVE_TYPES = ("essay", "image-upload")
OBJECTIVE_TYPES = ("multiple-choice", "tf")


class Question(BaseModel):
    model_config = ConfigDict(extra="ignore")
    question_id: str
    course_id: str
    type: QuestionType
    content: str
    options: List[str] = []
    correct_answer: Optional[Any] = None  # str for multiple-choice, bool for tf
    points: float = 1
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class QuestionCreate(BaseModel):
    """Payload for adding a question to a course bank"""
    type: Optional[str] = None
    content: Optional[str] = None
    options: Optional[List[str]] = None
    correct_answer: Optional[Any] = None
    points: Optional[Any] = None
