"""Pydantic models for the exam portal"""

from .user import User, Role
from .question import Question, QuestionCreate, QuestionType, SUBJECTIVE_TYPES, OBJECTIVE_TYPES
from .exam import (
    Exam,
    ExamCreate,
    ExamUpdate,
    ExamQuestionsUpdate,
    RandomConfig,
    SelectionMode,
)
from .attempt import (
    AttemptAnswer,
    ExamAttempt,
    ImageAnswer,
    AnswerPatch,
    AutosaveRequest,
    SubmitRequest,
    GradeRequest,
    ReviewRequestCreate,
    ReviewResponseUpdate,
)

__all__ = [
    # User models
    "User",
    "Role",

    # Question models
    "Question",
    "QuestionCreate",
    "QuestionType",
    "SUBJECTIVE_TYPES",
    "OBJECTIVE_TYPES",

    # Exam models
    "Exam",
    "ExamCreate",
    "ExamUpdate",
    "ExamQuestionsUpdate",
    "RandomConfig",
    "SelectionMode",

    # Attempt models
    "AttemptAnswer",
    "ExamAttempt",
    "ImageAnswer",
    "AnswerPatch",
    "AutosaveRequest",
    "SubmitRequest",
    "GradeRequest",
    "ReviewRequestCreate",
    "ReviewResponseUpdate",
]
