"""Services implementing the exam attempt lifecycle."""

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..utils import Clock, utc_now
from .errors import (
    ExamServiceError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationFailure,
)
from .question_pool import QuestionPoolService
from .selection import SelectionService
from .grading import GradingService
from .attempts import AttemptService
from .review import ReviewService, UNSET
from .results import ResultsService
from .exams import ExamService


class ExamServices:
    """Wires every service against one database, clock and image store."""

    def __init__(self, db: AsyncIOMotorDatabase, clock: Clock = utc_now, image_store=None):
        self.db = db
        self.clock = clock
        self.questions = QuestionPoolService(db, clock)
        self.selection = SelectionService(self.questions)
        self.grading = GradingService(db, self.questions, clock)
        self.attempts = AttemptService(
            db, self.questions, self.selection, self.grading, image_store, clock
        )
        self.reviews = ReviewService(db, clock)
        self.results = ResultsService(db, self.questions)
        self.exams = ExamService(db, self.selection, clock)


__all__ = [
    "ExamServices",
    "ExamServiceError",
    "ForbiddenError",
    "InvalidStateError",
    "NotFoundError",
    "ValidationFailure",
    "QuestionPoolService",
    "SelectionService",
    "GradingService",
    "AttemptService",
    "ReviewService",
    "ResultsService",
    "ExamService",
    "UNSET",
]
