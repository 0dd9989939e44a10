"""
Exam service - drafting, question assignment and publishing of exams.

Once published, an exam's question set is frozen: set_exam_questions is
refused. Publishing requires a non-empty manual list, or a random
composition the course pool can satisfy.
"""

import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..config.settings import settings
from ..models import Exam, ExamCreate, ExamQuestionsUpdate, ExamUpdate
from ..utils import Clock, as_utc, new_id, utc_now
from .access import can_professor_manage_course, can_student_access_course
from .attempts import is_exam_available
from .errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationFailure
from .selection import SelectionService

logger = logging.getLogger(__name__)


class ExamService:

    def __init__(self, db: AsyncIOMotorDatabase, selection: SelectionService, clock: Clock = utc_now):
        self.db = db
        self.selection = selection
        self.clock = clock

    async def get_exam(self, exam_id: str) -> Dict[str, Any]:
        exam = await self.db.exams.find_one({"exam_id": exam_id}, {"_id": 0})
        if not exam:
            raise NotFoundError("Exam not found")
        return exam

    async def list_exams(self) -> List[Dict[str, Any]]:
        return await self.db.exams.find({}, {"_id": 0}).sort("date", -1).to_list(None)

    async def _check_course(self, course_id: Optional[str], user_id: str, role: str) -> None:
        if not course_id:
            return
        course = await self.db.courses.find_one({"course_id": course_id}, {"_id": 0})
        if not course:
            raise NotFoundError("Course not found")
        if not can_professor_manage_course(user_id, role, course):
            raise ForbiddenError("You do not manage this course")

    async def _check_manual_ids(self, question_ids: List[str], course_id: Optional[str]) -> None:
        if len(set(question_ids)) != len(question_ids):
            raise ValidationFailure("question_ids contains duplicates")
        if not question_ids:
            return
        query: Dict[str, Any] = {"question_id": {"$in": question_ids}}
        if course_id:
            query["course_id"] = course_id
        found = await self.db.questions.count_documents(query)
        if found != len(question_ids):
            raise ValidationFailure("Some question_ids do not exist in the exam's course")

    async def create_exam(self, payload: ExamCreate, user_id: str, role: str) -> Dict[str, Any]:
        await self._check_course(payload.course_id, user_id, role)
        if payload.selection_mode == "manual":
            await self._check_manual_ids(payload.question_ids, payload.course_id)

        exam = Exam(
            exam_id=new_id("exam", 8),
            title=payload.title.strip(),
            description=payload.description,
            date=as_utc(payload.date),
            duration_minutes=payload.duration_minutes or settings.DEFAULT_DURATION_MINUTES,
            course_id=payload.course_id,
            selection_mode=payload.selection_mode,
            question_ids=payload.question_ids if payload.selection_mode == "manual" else [],
            random_config=payload.random_config,
            num_questions=payload.num_questions,
            created_by=user_id,
            created_at=self.clock(),
        )
        doc = exam.model_dump()
        await self.db.exams.insert_one(dict(doc))
        logger.info(f"Exam {exam.exam_id} created by {user_id} ({exam.selection_mode} mode)")
        return doc

    async def update_exam(self, exam_id: str, payload: ExamUpdate, user_id: str, role: str) -> Dict[str, Any]:
        exam = await self.get_exam(exam_id)
        await self._check_course(exam.get("course_id"), user_id, role)

        changes = payload.model_dump(exclude_unset=True)
        changes = {k: v for k, v in changes.items() if v is not None}
        if "date" in changes:
            changes["date"] = as_utc(changes["date"])
        if "title" in changes:
            changes["title"] = changes["title"].strip()
        if changes:
            await self.db.exams.update_one({"exam_id": exam_id}, {"$set": changes})
        return {**exam, **changes}

    async def delete_exam(self, exam_id: str, user_id: str, role: str) -> Dict[str, Any]:
        exam = await self.get_exam(exam_id)
        await self._check_course(exam.get("course_id"), user_id, role)
        result = await self.db.exams.delete_one({"exam_id": exam_id})
        if result.deleted_count == 0:
            raise NotFoundError("Exam not found")
        logger.info(f"Exam {exam_id} deleted by {user_id}")
        return {"message": "Exam removed"}

    async def set_exam_questions(
        self,
        exam_id: str,
        payload: ExamQuestionsUpdate,
        user_id: str,
        role: str,
    ) -> Dict[str, Any]:
        exam = await self.get_exam(exam_id)
        await self._check_course(exam.get("course_id"), user_id, role)
        if exam.get("published"):
            raise InvalidStateError("Exam already published; its questions can no longer change")

        if payload.selection_mode == "manual":
            await self._check_manual_ids(payload.question_ids, exam.get("course_id"))
            changes: Dict[str, Any] = {
                "selection_mode": "manual",
                "question_ids": payload.question_ids,
                "num_questions": len(payload.question_ids) or payload.num_questions,
                "random_config": None,
            }
        else:
            if payload.random_config is None:
                raise ValidationFailure("random_config is required for random selection")
            changes = {
                "selection_mode": "random",
                "question_ids": [],
                "num_questions": payload.num_questions or exam.get("num_questions"),
                "random_config": payload.random_config.model_dump(),
            }

        write = await self.db.exams.update_one(
            {"exam_id": exam_id, "published": {"$ne": True}},
            {"$set": changes},
        )
        if write.matched_count == 0:
            raise InvalidStateError("Exam already published; its questions can no longer change")
        return {**exam, **changes}

    async def publish_exam(self, exam_id: str, user_id: str, role: str) -> Dict[str, Any]:
        exam = await self.get_exam(exam_id)
        await self._check_course(exam.get("course_id"), user_id, role)
        if exam.get("published"):
            raise InvalidStateError("Exam already published")

        if exam.get("selection_mode") == "random":
            await self.selection.validate(exam)
        elif not exam.get("question_ids"):
            raise ValidationFailure("Exam has no questions; assign questions before publishing")

        now = self.clock()
        await self.db.exams.update_one(
            {"exam_id": exam_id},
            {"$set": {"published": True, "published_at": now}},
        )
        logger.info(f"Exam {exam_id} published by {user_id}")
        return {**exam, "published": True, "published_at": now}

    async def list_available_exams(self, user_id: str, role: str) -> List[Dict[str, Any]]:
        """Published exams open right now that the caller may take, with attempt status."""
        now = self.clock()
        exams = await self.db.exams.find({"published": True}, {"_id": 0}).sort("date", 1).to_list(None)
        open_exams = [e for e in exams if is_exam_available(e, now)]

        course_ids = list({e["course_id"] for e in open_exams if e.get("course_id")})
        courses = {}
        if course_ids:
            docs = await self.db.courses.find({"course_id": {"$in": course_ids}}, {"_id": 0}).to_list(None)
            courses = {c["course_id"]: c for c in docs}

        attempts = await self.db.exam_attempts.find(
            {"student_id": user_id, "exam_id": {"$in": [e["exam_id"] for e in open_exams]}},
            {"_id": 0, "exam_id": 1, "attempt_id": 1, "submitted_at": 1},
        ).to_list(None)
        attempt_by_exam = {a["exam_id"]: a for a in attempts}

        available = []
        for exam in open_exams:
            course = courses.get(exam.get("course_id"))
            if not can_student_access_course(user_id, role, course):
                continue
            attempt = attempt_by_exam.get(exam["exam_id"])
            if attempt is None:
                status = "not_started"
            elif attempt.get("submitted_at"):
                status = "submitted"
            else:
                status = "in_progress"
            available.append({
                **{k: v for k, v in exam.items() if k not in ("question_ids", "random_config")},
                "attempt_status": status,
                "attempt_id": attempt["attempt_id"] if attempt else None,
            })
        return available
