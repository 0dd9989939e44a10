"""
Grading service - auto-grades submitted attempts and applies instructor
overrides.

Objective questions (multiple-choice, tf) are exact-match graded with no
partial credit. Essay and image-upload questions are never auto-graded:
they score 0 until an instructor grades them and flag the attempt as
needing review.
"""

import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..models import AttemptAnswer, SUBJECTIVE_TYPES
from ..utils import Clock, compute_grade_summary, is_final_grade, is_number, utc_now
from .errors import InvalidStateError, NotFoundError
from .question_pool import QuestionPoolService

logger = logging.getLogger(__name__)


def resolve_question_ids(attempt: Dict[str, Any], exam: Optional[Dict[str, Any]]) -> List[str]:
    """The attempt's own snapshot wins; older attempts fall back to the exam list."""
    snapshot = attempt.get("question_ids") or []
    if snapshot:
        return list(snapshot)
    return list((exam or {}).get("question_ids") or [])


def max_points_for(question: Dict[str, Any]) -> float:
    points = question.get("points")
    if is_number(points) and points > 0:
        return points
    return 1


def is_answer_correct(question: Dict[str, Any], answer: Any) -> bool:
    q_type = question.get("type")
    correct = question.get("correct_answer")
    if q_type == "tf":
        return isinstance(answer, bool) and isinstance(correct, bool) and answer is correct
    if q_type == "multiple-choice":
        return isinstance(answer, str) and isinstance(correct, str) and answer == correct
    return False


def grade_answers(
    question_ids: List[str],
    questions_by_id: Dict[str, Dict[str, Any]],
    answers_by_question: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Grade one set of answers in snapshot order.

    Returns:
        {
            "answers": [AttemptAnswer dicts],
            "points_awarded": float,
            "points_total": float,
            "needs_review": bool
        }
    """
    records: List[Dict[str, Any]] = []
    points_awarded = 0
    points_total = 0
    needs_review = False

    for qid in question_ids:
        question = questions_by_id.get(qid)
        if question is None:
            logger.warning(f"Question {qid} missing from bank; skipped during grading")
            continue

        answer = answers_by_question.get(qid)
        max_points = max_points_for(question)
        points_total += max_points

        if question.get("type") in SUBJECTIVE_TYPES:
            needs_review = True
            record = AttemptAnswer(
                question_id=qid,
                answer=answer,
                is_correct=None,
                points_awarded=0,
                max_points=max_points,
            )
        else:
            correct = is_answer_correct(question, answer)
            awarded = max_points if correct else 0
            points_awarded += awarded
            record = AttemptAnswer(
                question_id=qid,
                answer=answer,
                is_correct=correct,
                points_awarded=awarded,
                max_points=max_points,
            )
        records.append(record.model_dump())

    return {
        "answers": records,
        "points_awarded": points_awarded,
        "points_total": points_total,
        "needs_review": needs_review,
    }


class GradingService:
    """Finalizes attempts and applies manual grade overrides."""

    def __init__(self, db: AsyncIOMotorDatabase, pool: QuestionPoolService, clock: Clock = utc_now):
        self.db = db
        self.pool = pool
        self.clock = clock

    async def finalize_attempt(
        self,
        attempt: Dict[str, Any],
        exam: Optional[Dict[str, Any]],
        submitted_answers: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Grade and submit an attempt in one conditional write.

        The update only matches while submitted_at is unset, so a concurrent
        submit loses cleanly with InvalidStateError instead of double-grading.
        """
        question_ids = resolve_question_ids(attempt, exam)
        questions_by_id = await self.pool.get_many(question_ids)
        answers_by_question = {
            a.get("question_id"): a.get("answer")
            for a in submitted_answers
            if a.get("question_id")
        }

        result = grade_answers(question_ids, questions_by_id, answers_by_question)
        now = self.clock()

        update = {
            "question_ids": question_ids,
            "answers": result["answers"],
            "points_awarded": result["points_awarded"],
            "points_total": result["points_total"],
            "needs_review": result["needs_review"],
            "submitted_at": now,
        }
        write = await self.db.exam_attempts.update_one(
            {"attempt_id": attempt["attempt_id"], "submitted_at": None},
            {"$set": update},
        )
        if write.matched_count == 0:
            raise InvalidStateError("Attempt already submitted")

        logger.info(
            f"Attempt {attempt['attempt_id']} graded: "
            f"{result['points_awarded']}/{result['points_total']} "
            f"(needs_review={result['needs_review']})"
        )
        return {**attempt, **update}

    async def grade_attempt(
        self,
        attempt_id: str,
        grader_id: str,
        points_by_question: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Apply instructor points to a submitted attempt.

        Subjective questions take the override when given, else keep their
        stored points. Objective questions keep the auto score unless
        overridden. Overrides are clamped into [0, max_points]. Grading
        always resolves the review: needs_review is cleared.
        """
        attempt = await self.db.exam_attempts.find_one({"attempt_id": attempt_id}, {"_id": 0})
        if not attempt:
            raise NotFoundError("Attempt not found")
        if not attempt.get("submitted_at"):
            raise InvalidStateError("Attempt not submitted")

        exam = await self.db.exams.find_one({"exam_id": attempt["exam_id"]}, {"_id": 0})
        if not exam:
            raise NotFoundError("Exam not found")

        question_ids = resolve_question_ids(attempt, exam)
        questions_by_id = await self.pool.get_many(question_ids)
        stored = {a.get("question_id"): a for a in attempt.get("answers") or []}
        overrides = points_by_question or {}

        total = 0
        awarded = 0
        updated: List[Dict[str, Any]] = []

        for qid in question_ids:
            question = questions_by_id.get(qid)
            if question is None:
                logger.warning(f"Question {qid} missing from bank; skipped while grading attempt {attempt_id}")
                continue
            record = dict(stored.get(qid) or {"question_id": qid, "answer": None})
            max_points = record.get("max_points")
            if not is_number(max_points):
                max_points = max_points_for(question)
            total += max_points

            previous = record.get("points_awarded")
            points = previous if is_number(previous) else 0

            override = overrides.get(qid)
            if is_number(override):
                clamped = max(0, min(max_points, override))
                if clamped != override:
                    logger.warning(
                        f"Override {override} for question {qid} on attempt {attempt_id} "
                        f"clamped to {clamped} (max {max_points})"
                    )
                points = clamped

            record["max_points"] = max_points
            record["points_awarded"] = points
            if question.get("type") in SUBJECTIVE_TYPES:
                record["is_correct"] = None
            awarded += points
            updated.append(record)

        now = self.clock()
        update = {
            "answers": updated,
            "points_total": total,
            "points_awarded": awarded,
            "needs_review": False,
            "graded_at": now,
            "graded_by": grader_id,
        }
        await self.db.exam_attempts.update_one(
            {"attempt_id": attempt_id, "submitted_at": {"$ne": None}},
            {"$set": update},
        )
        logger.info(f"Attempt {attempt_id} graded by {grader_id}: {awarded}/{total}")

        return {
            "id": attempt_id,
            "points_awarded": awarded,
            "points_total": total,
            "needs_review": False,
            "graded_at": now,
            **compute_grade_summary(awarded, total, is_final=True),
        }


def summarize(attempt: Dict[str, Any]) -> Dict[str, Any]:
    """Grade summary for a stored attempt, honoring its finality."""
    return compute_grade_summary(
        attempt.get("points_awarded") or 0,
        attempt.get("points_total") or 0,
        is_final=is_final_grade(attempt),
    )

