"""Exam-related Pydantic models"""

from pydantic import BaseModel, Field, ConfigDict
from typing import List, Literal, Optional
from datetime import datetime, timezone

SelectionMode = Literal["manual", "random"]


class RandomConfig(BaseModel):
    """Composition for random question selection"""
    mc_count: int = 0
    tf_count: int = 0
    image_count: int = 0
    essay_count: int = 0
    randomize_per_student: bool = True
    shuffle_order: bool = True


class Exam(BaseModel):
    model_config = ConfigDict(extra="ignore")
    exam_id: str
    title: str
    description: Optional[str] = None
    date: datetime
    duration_minutes: int = 60
    course_id: Optional[str] = None
    selection_mode: SelectionMode = "manual"
    question_ids: List[str] = []
    random_config: Optional[RandomConfig] = None
    num_questions: Optional[int] = None
    published: bool = False
    published_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ExamCreate(BaseModel):
    """Model for creating an exam in draft state"""
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    date: datetime
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    course_id: Optional[str] = None
    num_questions: Optional[int] = Field(default=None, ge=1)
    selection_mode: SelectionMode = "manual"
    question_ids: List[str] = []
    random_config: Optional[RandomConfig] = None


class ExamUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    date: Optional[datetime] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1)


class ExamQuestionsUpdate(BaseModel):
    """Assign the question set: a manual id list or a random composition"""
    selection_mode: SelectionMode = "manual"
    question_ids: List[str] = []
    num_questions: Optional[int] = Field(default=None, ge=1)
    random_config: Optional[RandomConfig] = None
