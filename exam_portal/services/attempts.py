"""
Attempt lifecycle service - the student-facing state machine of a timed
exam attempt.

STATES:
    none → in-progress (submitted_at unset) → submitted (terminal for the student)

An in-progress attempt whose expires_at has passed is "expired pending
finalize"; nothing runs in the background to close it. Every entry point
that touches an attempt calls finalize_if_expired first, so reads here can
write (backfill expires_at, auto-submit) and callers must expect that.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from ..config.settings import settings
from ..models import ExamAttempt, ImageAnswer
from ..utils import (
    Clock,
    as_utc,
    new_id,
    utc_now,
    validate_file_size,
    validate_file_type,
)
from .access import can_student_access_course
from .errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationFailure
from .grading import GradingService, resolve_question_ids, summarize
from .question_pool import QuestionPoolService
from .selection import SelectionService

logger = logging.getLogger(__name__)


# ============ PURE HELPERS ============

def exam_duration(exam: Optional[Dict[str, Any]]) -> int:
    minutes = (exam or {}).get("duration_minutes")
    if isinstance(minutes, int) and not isinstance(minutes, bool) and minutes > 0:
        return minutes
    return settings.DEFAULT_DURATION_MINUTES


def exam_window(exam: Dict[str, Any]) -> Tuple[Optional[datetime], Optional[datetime]]:
    start = as_utc(exam.get("date"))
    if start is None:
        return None, None
    return start, start + timedelta(minutes=exam_duration(exam))


def is_exam_available(exam: Dict[str, Any], now: datetime) -> bool:
    """Published and now within [date, date + duration]."""
    if not exam.get("published"):
        return False
    start, end = exam_window(exam)
    if start is None:
        return False
    return start <= now <= end


def is_expired(attempt: Dict[str, Any], now: datetime) -> bool:
    """An unsubmitted attempt whose deadline has passed."""
    if attempt.get("submitted_at"):
        return False
    expires_at = as_utc(attempt.get("expires_at"))
    return expires_at is not None and now > expires_at


def strip_answer_key(question: Dict[str, Any]) -> Dict[str, Any]:
    """Question as shown to students: no correct answer."""
    return {k: v for k, v in question.items() if k != "correct_answer"}


def is_image_payload(answer: Any) -> bool:
    return isinstance(answer, dict) and answer.get("kind") == "image"


class AttemptService:
    """Start, autosave, upload, submit and lazy expiry of exam attempts."""

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        pool: QuestionPoolService,
        selection: SelectionService,
        grading: GradingService,
        image_store=None,
        clock: Clock = utc_now,
    ):
        self.db = db
        self.pool = pool
        self.selection = selection
        self.grading = grading
        self.image_store = image_store
        self.clock = clock

    # ============ LOADING ============

    async def _load_exam(self, exam_id: str) -> Dict[str, Any]:
        exam = await self.db.exams.find_one({"exam_id": exam_id}, {"_id": 0})
        if not exam:
            raise NotFoundError("Exam not found")
        return exam

    async def _load_owned_attempt(self, attempt_id: str, student_id: str) -> Dict[str, Any]:
        attempt = await self.db.exam_attempts.find_one({"attempt_id": attempt_id}, {"_id": 0})
        if not attempt:
            raise NotFoundError("Attempt not found")
        if attempt.get("student_id") != student_id:
            raise ForbiddenError("Forbidden")
        return attempt

    async def _reload(self, attempt_id: str) -> Dict[str, Any]:
        attempt = await self.db.exam_attempts.find_one({"attempt_id": attempt_id}, {"_id": 0})
        if not attempt:
            raise NotFoundError("Attempt not found")
        return attempt

    # ============ QUESTION SNAPSHOT ============

    async def ensure_exam_questions(self, exam: Dict[str, Any]) -> List[str]:
        """
        The exam-level question list, populated on first use when empty.

        Random-mode exams without per-student randomization draw once through
        the selection service; manual exams with a course and num_questions
        fall back to an unconstrained draw from the course pool.
        """
        current = list(exam.get("question_ids") or [])
        if current:
            return current

        picked: Optional[List[str]] = None
        if exam.get("selection_mode") == "random":
            picked = await self.selection.select(exam)
        elif exam.get("course_id") and exam.get("num_questions"):
            picked = await self.selection.fill_from_pool(exam["course_id"], exam["num_questions"])

        if not picked:
            return []

        write = await self.db.exams.update_one(
            {
                "exam_id": exam["exam_id"],
                "$or": [{"question_ids": {"$size": 0}}, {"question_ids": None}],
            },
            {"$set": {"question_ids": picked}},
        )
        if write.matched_count == 0:
            # Lost the race to another first attempt; use what it stored
            stored = await self._load_exam(exam["exam_id"])
            return list(stored.get("question_ids") or picked)
        exam["question_ids"] = picked
        return picked

    async def _snapshot_for(self, exam: Dict[str, Any]) -> List[str]:
        config = exam.get("random_config") or {}
        if exam.get("selection_mode") == "random" and config.get("randomize_per_student", True):
            return await self.selection.select(exam)

        question_ids = await self.ensure_exam_questions(exam)
        if not question_ids:
            raise ValidationFailure("Exam has no questions")
        return question_ids

    # ============ CREATION / EXPIRY ============

    async def _create_attempt(self, exam: Dict[str, Any], student_id: str) -> Dict[str, Any]:
        """
        Insert the attempt for (exam, student).

        The unique (exam_id, student_id) index is authoritative: losing an
        insert race is an "already exists" outcome and the stored attempt is
        returned instead.
        """
        question_ids = await self._snapshot_for(exam)
        started_at = self.clock()
        attempt = ExamAttempt(
            attempt_id=new_id("att"),
            exam_id=exam["exam_id"],
            student_id=student_id,
            started_at=started_at,
            expires_at=started_at + timedelta(minutes=exam_duration(exam)),
            question_ids=question_ids,
        ).model_dump()

        try:
            await self.db.exam_attempts.insert_one(dict(attempt))
        except DuplicateKeyError:
            logger.info(f"Attempt for exam {exam['exam_id']} / student {student_id} already exists")
            existing = await self.db.exam_attempts.find_one(
                {"exam_id": exam["exam_id"], "student_id": student_id}, {"_id": 0}
            )
            if existing is None:
                raise
            return existing

        logger.info(
            f"Attempt {attempt['attempt_id']} started for exam {exam['exam_id']} "
            f"by {student_id} ({len(question_ids)} questions)"
        )
        return attempt

    async def _backfill_expiry(self, attempt: Dict[str, Any], exam: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Attempts created before expires_at existed get one from started_at."""
        if attempt.get("expires_at") or attempt.get("submitted_at"):
            return attempt
        started_at = as_utc(attempt.get("started_at")) or self.clock()
        expires_at = started_at + timedelta(minutes=exam_duration(exam))
        await self.db.exam_attempts.update_one(
            {"attempt_id": attempt["attempt_id"], "expires_at": None},
            {"$set": {"expires_at": expires_at}},
        )
        return {**attempt, "expires_at": expires_at}

    async def finalize_if_expired(
        self,
        attempt: Dict[str, Any],
        exam: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Dict[str, Any], bool, bool]:
        """
        Auto-submit an expired attempt with whatever draft answers it has.

        Returns (attempt, expired, auto_submitted). Failures are logged and
        swallowed: the caller still gets an expired, inactive status.
        """
        if not is_expired(attempt, self.clock()):
            return attempt, False, False

        try:
            finalized = await self.grading.finalize_attempt(attempt, exam, attempt.get("answers") or [])
            logger.info(f"Attempt {attempt['attempt_id']} auto-submitted after expiry")
            return finalized, True, True
        except InvalidStateError:
            # Submitted concurrently
            return await self._reload(attempt["attempt_id"]), True, False
        except Exception:
            logger.exception(f"Auto-finalize failed for attempt {attempt['attempt_id']}")
            return attempt, True, False

    # ============ VIEWS ============

    def attempt_view(self, attempt: Dict[str, Any]) -> Dict[str, Any]:
        view = {
            "id": attempt["attempt_id"],
            "exam_id": attempt["exam_id"],
            "student_id": attempt["student_id"],
            "started_at": as_utc(attempt.get("started_at")),
            "expires_at": as_utc(attempt.get("expires_at")),
            "submitted_at": as_utc(attempt.get("submitted_at")),
            "question_ids": attempt.get("question_ids") or [],
            "answers": [
                {"question_id": a.get("question_id"), "answer": a.get("answer")}
                for a in attempt.get("answers") or []
            ],
        }
        if attempt.get("submitted_at"):
            view.update({
                "points_awarded": attempt.get("points_awarded") or 0,
                "points_total": attempt.get("points_total") or 0,
                "needs_review": bool(attempt.get("needs_review")),
                **summarize(attempt),
            })
        return view

    async def _exam_with_questions(self, exam: Dict[str, Any], question_ids: List[str]) -> Dict[str, Any]:
        questions = await self.pool.get_ordered(question_ids)
        return {**exam, "questions": [strip_answer_key(q) for q in questions]}

    def _inactive(self, attempt: Dict[str, Any], expired: bool, auto_submitted: bool) -> Dict[str, Any]:
        return {
            "active": False,
            "expired": expired,
            "auto_submitted": auto_submitted,
            "exam_id": attempt["exam_id"],
            "attempt_id": attempt["attempt_id"],
            "submitted_at": as_utc(attempt.get("submitted_at")),
        }

    # ============ OPERATIONS ============

    async def start_attempt(self, exam_id: str, student_id: str, role: str = "student") -> Dict[str, Any]:
        """
        Start (or resume) the caller's attempt on an exam.

        Returns either
            {"active": True, "attempt": {...}, "exam": {..., "questions": [...]}}
        or, when the stored attempt had already run out of time,
            {"active": False, "expired": True, "auto_submitted": bool, ...}
        """
        exam = await self._load_exam(exam_id)

        if exam.get("course_id"):
            course = await self.db.courses.find_one({"course_id": exam["course_id"]}, {"_id": 0})
            if not can_student_access_course(student_id, role, course):
                raise ForbiddenError("You are not enrolled in this course")

        attempt = await self.db.exam_attempts.find_one(
            {"exam_id": exam_id, "student_id": student_id}, {"_id": 0}
        )
        if attempt is not None:
            if attempt.get("submitted_at"):
                raise InvalidStateError("Attempt already submitted")
            # An overdue attempt is closed out even after the exam window has ended
            attempt = await self._backfill_expiry(attempt, exam)
            attempt, expired, auto_submitted = await self.finalize_if_expired(attempt, exam)
            if expired:
                return self._inactive(attempt, expired, auto_submitted)

        if not is_exam_available(exam, self.clock()):
            raise InvalidStateError("Exam is not currently available")

        if attempt is None:
            attempt = await self._create_attempt(exam, student_id)
            if attempt.get("submitted_at"):
                raise InvalidStateError("Attempt already submitted")

        question_ids = resolve_question_ids(attempt, exam)
        return {
            "active": True,
            "attempt": self.attempt_view(attempt),
            "exam": await self._exam_with_questions(exam, question_ids),
        }

    async def get_active_attempt(self, student_id: str) -> Dict[str, Any]:
        """Most recent unsubmitted attempt of a student, finalizing it if overdue."""
        candidates = await self.db.exam_attempts.find(
            {"student_id": student_id, "submitted_at": None}, {"_id": 0}
        ).sort("started_at", -1).to_list(1)
        if not candidates:
            return {"active": False}

        attempt = candidates[0]
        exam = await self.db.exams.find_one({"exam_id": attempt["exam_id"]}, {"_id": 0})
        attempt = await self._backfill_expiry(attempt, exam)
        attempt, expired, auto_submitted = await self.finalize_if_expired(attempt, exam)
        if expired:
            return self._inactive(attempt, expired, auto_submitted)

        return {
            "active": True,
            "expired": False,
            "exam_id": attempt["exam_id"],
            "attempt_id": attempt["attempt_id"],
            "started_at": as_utc(attempt.get("started_at")),
            "expires_at": as_utc(attempt.get("expires_at")),
        }

    async def get_attempt(self, attempt_id: str, student_id: str) -> Dict[str, Any]:
        attempt = await self._load_owned_attempt(attempt_id, student_id)
        exam = await self.db.exams.find_one({"exam_id": attempt["exam_id"]}, {"_id": 0})
        attempt = await self._backfill_expiry(attempt, exam)
        attempt, expired, auto_submitted = await self.finalize_if_expired(attempt, exam)

        question_ids = resolve_question_ids(attempt, exam)
        return {
            "active": not attempt.get("submitted_at") and not expired,
            "expired": expired,
            "auto_submitted": auto_submitted,
            "attempt": self.attempt_view(attempt),
            "exam": await self._exam_with_questions(exam or {"exam_id": attempt["exam_id"]}, question_ids),
        }

    async def _validate_patches(
        self,
        attempt: Dict[str, Any],
        patches: List[Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        """
        Check each patch against the attempt snapshot and the question type.

        Image answers only come from the upload endpoint: patches for
        image-upload questions (typically the stored draft echoed back) are
        dropped and the uploaded payload stays.
        """
        snapshot = set(attempt.get("question_ids") or [])
        questions = await self.pool.get_many([p.get("question_id") for p in patches])

        cleaned = []
        for patch in patches:
            qid = patch.get("question_id")
            answer = patch.get("answer")
            if qid not in snapshot:
                raise ValidationFailure(f"Question {qid} is not part of this attempt")
            question = questions.get(qid)
            if question is None:
                raise NotFoundError(f"Question {qid} not found")

            q_type = question.get("type")
            if q_type == "image-upload":
                continue
            if answer is not None:
                if q_type == "tf" and not isinstance(answer, bool):
                    raise ValidationFailure(f"Answer to true/false question {qid} must be a boolean")
                if q_type in ("multiple-choice", "essay") and not isinstance(answer, str):
                    raise ValidationFailure(f"Answer to {q_type} question {qid} must be a string")
            cleaned.append({"question_id": qid, "answer": answer})
        return cleaned

    async def _write_answer(self, attempt_id: str, question_id: str, answer: Any) -> None:
        """
        Per-question atomic draft write: replace the entry for question_id, or
        append one. Only matches unsubmitted attempts.
        """
        for _ in range(3):
            replaced = await self.db.exam_attempts.update_one(
                {"attempt_id": attempt_id, "submitted_at": None, "answers.question_id": question_id},
                {"$set": {"answers.$.answer": answer}},
            )
            if replaced.matched_count:
                return
            appended = await self.db.exam_attempts.update_one(
                {"attempt_id": attempt_id, "submitted_at": None, "answers.question_id": {"$ne": question_id}},
                {"$push": {"answers": {"question_id": question_id, "answer": answer}}},
            )
            if appended.matched_count:
                return
            current = await self._reload(attempt_id)
            if current.get("submitted_at"):
                raise InvalidStateError("Attempt already submitted")
            # Entry appeared between the two writes; retry the replace
        raise InvalidStateError("Could not save answer, please retry")

    def _check_writable(self, attempt: Dict[str, Any]) -> None:
        if attempt.get("submitted_at"):
            raise InvalidStateError("Attempt already submitted")
        if is_expired(attempt, self.clock()):
            raise InvalidStateError("Attempt time has expired")

    async def autosave(
        self,
        attempt_id: str,
        student_id: str,
        patches: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """Merge draft answers by question id (last write wins); no grading."""
        attempt = await self._load_owned_attempt(attempt_id, student_id)
        self._check_writable(attempt)

        for patch in await self._validate_patches(attempt, patches):
            await self._write_answer(attempt_id, patch["question_id"], patch["answer"])

        saved = await self._reload(attempt_id)
        return {
            "id": attempt_id,
            "answers": [
                {"question_id": a.get("question_id"), "answer": a.get("answer")}
                for a in saved.get("answers") or []
            ],
            "saved_at": self.clock(),
        }

    async def upload_answer_image(
        self,
        attempt_id: str,
        student_id: str,
        question_id: str,
        filename: str,
        content_type: str,
        data: bytes,
    ) -> Dict[str, Any]:
        attempt = await self._load_owned_attempt(attempt_id, student_id)
        self._check_writable(attempt)

        if question_id not in (attempt.get("question_ids") or []):
            raise ValidationFailure("Question is not part of this attempt")
        question = await self.db.questions.find_one({"question_id": question_id}, {"_id": 0})
        if not question:
            raise NotFoundError("Question not found")
        if question.get("type") != "image-upload":
            raise ValidationFailure("Question does not accept image uploads")

        if not (content_type or "").startswith("image/"):
            raise ValidationFailure("Only image uploads are allowed")
        is_valid, msg = validate_file_type(filename, settings.ALLOWED_IMAGE_EXTENSIONS)
        if not is_valid:
            raise ValidationFailure(msg)
        is_valid, msg = validate_file_size(data, settings.MAX_IMAGE_SIZE_MB)
        if not is_valid:
            raise ValidationFailure(msg)
        if self.image_store is None:
            raise RuntimeError("Image storage not configured")

        path = await self.image_store.save(
            filename,
            data,
            content_type,
            {"attempt_id": attempt_id, "question_id": question_id, "student_id": student_id},
        )
        payload = ImageAnswer(
            path=path,
            original_name=filename,
            mimetype=content_type,
            size=len(data),
            uploaded_at=self.clock(),
        ).model_dump()

        await self._write_answer(attempt_id, question_id, payload)
        return {"question": strip_answer_key(question), "answer": payload}

    async def submit(
        self,
        attempt_id: str,
        student_id: str,
        answers: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Submit and grade an attempt.

        Provided answers replace the draft; uploaded images always come from
        the draft. An attempt already past its deadline is finalized from its
        draft alone and reported with auto_submitted=True.
        """
        attempt = await self._load_owned_attempt(attempt_id, student_id)
        if attempt.get("submitted_at"):
            raise InvalidStateError("Attempt already submitted")

        exam = await self.db.exams.find_one({"exam_id": attempt["exam_id"]}, {"_id": 0})
        attempt = await self._backfill_expiry(attempt, exam)
        draft = attempt.get("answers") or []
        auto_submitted = is_expired(attempt, self.clock())

        if answers is None or auto_submitted:
            final_answers = draft
        else:
            final_answers = await self._validate_patches(attempt, answers)
            provided = {a["question_id"] for a in final_answers}
            final_answers.extend(
                a for a in draft
                if is_image_payload(a.get("answer")) and a.get("question_id") not in provided
            )

        finalized = await self.grading.finalize_attempt(attempt, exam, final_answers)
        if auto_submitted:
            logger.info(f"Attempt {attempt_id} submitted after expiry; graded from draft")
        return {
            "id": attempt_id,
            "points_awarded": finalized["points_awarded"],
            "points_total": finalized["points_total"],
            "needs_review": finalized["needs_review"],
            "submitted_at": finalized["submitted_at"],
            "auto_submitted": auto_submitted,
            **summarize(finalized),
        }
