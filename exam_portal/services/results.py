"""
Results service - every grade-facing read: exam results, attempt review,
a student's own grades and the per-student review dashboard.

All of them render grades through summarize() so the letter/pass logic
lives in one place.
"""

from typing import Any, Dict, Iterable, List, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..utils import PASS_PERCENT, as_utc, is_final_grade
from .errors import NotFoundError
from .grading import resolve_question_ids, summarize
from .question_pool import QuestionPoolService

STUDENT_FIELDS = {"_id": 0, "user_id": 1, "name": 1, "email": 1}

REVIEW_FIELDS = (
    "review_requested",
    "review_requested_at",
    "review_request_message",
    "review_response_message",
    "review_appointment_at",
    "review_responded_at",
)


def _review_fields(attempt: Dict[str, Any]) -> Dict[str, Any]:
    fields = {name: attempt.get(name) for name in REVIEW_FIELDS}
    fields["review_requested"] = bool(attempt.get("review_requested"))
    return fields


def _grade_row(attempt: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "points_awarded": attempt.get("points_awarded") or 0,
        "points_total": attempt.get("points_total") or 0,
        "needs_review": bool(attempt.get("needs_review")),
        "graded_at": attempt.get("graded_at"),
        "submitted_at": attempt.get("submitted_at"),
        **_review_fields(attempt),
        **summarize(attempt),
    }


class ResultsService:

    def __init__(self, db: AsyncIOMotorDatabase, pool: QuestionPoolService):
        self.db = db
        self.pool = pool

    async def _users_by_id(self, user_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        docs = await self.db.users.find({"user_id": {"$in": ids}}, STUDENT_FIELDS).to_list(None)
        return {d["user_id"]: d for d in docs}

    async def _exams_by_id(self, exam_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        ids = list(set(exam_ids))
        if not ids:
            return {}
        docs = await self.db.exams.find(
            {"exam_id": {"$in": ids}},
            {"_id": 0, "exam_id": 1, "title": 1, "date": 1, "course_id": 1},
        ).to_list(None)
        return {d["exam_id"]: d for d in docs}

    async def get_exam_results(self, exam_id: str) -> Dict[str, Any]:
        """Submitted attempts, highest score first; ties go to the earliest submission."""
        exam = await self.db.exams.find_one(
            {"exam_id": exam_id}, {"_id": 0, "exam_id": 1, "title": 1, "date": 1}
        )
        if not exam:
            raise NotFoundError("Exam not found")

        attempts = await self.db.exam_attempts.find(
            {"exam_id": exam_id, "submitted_at": {"$ne": None}}, {"_id": 0}
        ).to_list(None)
        attempts.sort(key=lambda a: as_utc(a["submitted_at"]))
        attempts.sort(key=lambda a: a.get("points_awarded") or 0, reverse=True)

        students = await self._users_by_id(a["student_id"] for a in attempts)
        return {
            "exam": exam,
            "results": [
                {
                    "attempt_id": a["attempt_id"],
                    "student": students.get(a["student_id"], {"user_id": a["student_id"]}),
                    **_grade_row(a),
                }
                for a in attempts
            ],
        }

    async def get_attempt_review(self, attempt_id: str) -> Dict[str, Any]:
        """Instructor view of one attempt, answers joined to their questions."""
        attempt = await self.db.exam_attempts.find_one({"attempt_id": attempt_id}, {"_id": 0})
        if not attempt:
            raise NotFoundError("Attempt not found")
        exam = await self.db.exams.find_one({"exam_id": attempt["exam_id"]}, {"_id": 0})
        if not exam:
            raise NotFoundError("Exam not found")

        question_ids = resolve_question_ids(attempt, exam)
        questions = await self.pool.get_many(question_ids)
        students = await self._users_by_id([attempt["student_id"]])

        answers: List[Dict[str, Any]] = []
        for record in attempt.get("answers") or []:
            qid = record.get("question_id")
            question = questions.get(qid)
            max_points = record.get("max_points")
            if max_points is None:
                max_points = (question or {}).get("points") or 1
            answers.append({
                "question": question or {"question_id": qid},
                "answer": record.get("answer"),
                "is_correct": record.get("is_correct"),
                "points_awarded": record.get("points_awarded") or 0,
                "max_points": max_points,
            })

        return {
            "attempt": {
                "id": attempt_id,
                "student": students.get(attempt["student_id"], {"user_id": attempt["student_id"]}),
                "graded_by": attempt.get("graded_by"),
                **_grade_row(attempt),
            },
            "exam": exam,
            "answers": answers,
        }

    async def get_my_grades(self, student_id: str) -> List[Dict[str, Any]]:
        """A student's submitted attempts, newest submission first."""
        attempts = await self.db.exam_attempts.find(
            {"student_id": student_id, "submitted_at": {"$ne": None}}, {"_id": 0}
        ).sort("submitted_at", -1).to_list(None)
        exams = await self._exams_by_id(a["exam_id"] for a in attempts)
        return [
            {
                "id": a["attempt_id"],
                "exam": exams.get(a["exam_id"], {"exam_id": a["exam_id"]}),
                **_grade_row(a),
            }
            for a in attempts
        ]

    async def get_student_review(self, student_id: str) -> Dict[str, Any]:
        """
        Per-course breakdown of a student's submitted attempts.

        Pass/fail stats only count final grades; attempts still waiting for
        manual review are listed but not counted.
        """
        student = await self.db.users.find_one({"user_id": student_id}, STUDENT_FIELDS)
        if not student:
            raise NotFoundError("Student not found")

        courses = await self.db.courses.find(
            {"students": student_id},
            {"_id": 0, "course_id": 1, "title": 1, "course_code": 1, "ects": 1},
        ).to_list(None)
        course_ids = [c["course_id"] for c in courses]

        exams = await self.db.exams.find(
            {"course_id": {"$in": course_ids}},
            {"_id": 0, "exam_id": 1, "title": 1, "date": 1, "course_id": 1},
        ).to_list(None)
        exams_by_id = {e["exam_id"]: e for e in exams}

        attempts = await self.db.exam_attempts.find(
            {
                "student_id": student_id,
                "exam_id": {"$in": list(exams_by_id)},
                "submitted_at": {"$ne": None},
            },
            {"_id": 0},
        ).sort("submitted_at", -1).to_list(None)

        by_course: Dict[str, List[Tuple[Dict[str, Any], Dict[str, Any]]]] = {}
        for a in attempts:
            exam = exams_by_id[a["exam_id"]]
            row = {"attempt_id": a["attempt_id"], "exam": exam, **_grade_row(a)}
            by_course.setdefault(exam.get("course_id") or "unassigned", []).append((a, row))

        breakdown = []
        for course in courses:
            rows = by_course.get(course["course_id"], [])
            passed = failed = 0
            for attempt, row in rows:
                if not is_final_grade(attempt):
                    continue
                if row["passed"]:
                    passed += 1
                else:
                    failed += 1
            breakdown.append({
                "course": course,
                "attempts": [row for _, row in rows],
                "stats": {
                    "passed": passed,
                    "failed": failed,
                    "total": len(rows),
                    "pass_percent": PASS_PERCENT,
                },
            })

        return {"student": student, "breakdown": breakdown}
