"""
Question pool service - read access to a course's question bank, plus
authoring of new bank questions.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..models import Question, QuestionCreate
from ..utils import Clock, is_number, new_id, utc_now
from .errors import NotFoundError, ValidationFailure

logger = logging.getLogger(__name__)

VALID_TYPES = ("essay", "multiple-choice", "tf", "image-upload")


class QuestionPoolService:
    """Queries over the questions collection, filtered by course and type."""

    def __init__(self, db: AsyncIOMotorDatabase, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def list_ids(self, course_id: str, question_type: Optional[str] = None) -> List[str]:
        """Question ids of a course bank, optionally restricted to one type."""
        query: Dict[str, Any] = {"course_id": course_id}
        if question_type:
            query["type"] = question_type
        docs = await self.db.questions.find(query, {"_id": 0, "question_id": 1}).to_list(None)
        return [d["question_id"] for d in docs]

    async def count(self, course_id: str, question_type: Optional[str] = None) -> int:
        query: Dict[str, Any] = {"course_id": course_id}
        if question_type:
            query["type"] = question_type
        return await self.db.questions.count_documents(query)

    async def list_course_questions(self, course_id: str) -> List[Dict[str, Any]]:
        await self._require_course(course_id)
        return await self.db.questions.find({"course_id": course_id}, {"_id": 0}).to_list(None)

    async def get_many(self, question_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Full question documents keyed by question_id."""
        ids = list(question_ids)
        if not ids:
            return {}
        docs = await self.db.questions.find({"question_id": {"$in": ids}}, {"_id": 0}).to_list(None)
        return {d["question_id"]: d for d in docs}

    async def get_ordered(self, question_ids: Iterable[str]) -> List[Dict[str, Any]]:
        """Question documents in the given order; unknown ids are skipped."""
        ids = list(question_ids)
        by_id = await self.get_many(ids)
        return [by_id[qid] for qid in ids if qid in by_id]

    async def create_question(
        self,
        course_id: str,
        payload: QuestionCreate,
        created_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Add a question to a course bank, enforcing per-type shape rules."""
        await self._require_course(course_id)

        q_type = payload.type
        content = (payload.content or "").strip()
        if not q_type or not content:
            raise ValidationFailure("type and content are required")
        if q_type not in VALID_TYPES:
            raise ValidationFailure(f"type must be one of: {', '.join(VALID_TYPES)}")

        points = payload.points if is_number(payload.points) and payload.points > 0 else 1
        options = payload.options or []
        correct = payload.correct_answer

        if q_type == "multiple-choice":
            if len(options) < 2:
                raise ValidationFailure("multiple-choice questions require at least 2 options")
            if not isinstance(correct, str) or correct not in options:
                raise ValidationFailure("multiple-choice questions require correct_answer to be one of the options")

        if q_type == "tf":
            if not isinstance(correct, bool):
                raise ValidationFailure("tf questions require correct_answer to be boolean")

        if q_type in ("essay", "image-upload"):
            # Graded manually
            correct = None

        question = Question(
            question_id=new_id("q"),
            course_id=course_id,
            type=q_type,
            content=content,
            options=options if q_type == "multiple-choice" else [],
            correct_answer=correct,
            points=points,
            created_by=created_by,
            created_at=self.clock(),
        )
        doc = question.model_dump()
        await self.db.questions.insert_one(dict(doc))
        logger.info(f"Question {question.question_id} ({q_type}) added to course {course_id}")
        return doc

    async def _require_course(self, course_id: str) -> Dict[str, Any]:
        course = await self.db.courses.find_one({"course_id": course_id}, {"_id": 0})
        if not course:
            raise NotFoundError("Course not found")
        return course
