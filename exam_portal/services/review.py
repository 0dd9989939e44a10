"""
Review workflow - a student asks for a review of a graded attempt, an
instructor answers with an optional appointment and message.
"""

import logging
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from ..config.settings import settings
from ..utils import Clock, parse_instant, utc_now
from .errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationFailure

logger = logging.getLogger(__name__)


class _Unset:
    def __repr__(self):
        return "UNSET"


# Marks a field the caller did not send, as opposed to an explicit null
UNSET: Any = _Unset()


def _clean_message(message: str) -> Optional[str]:
    trimmed = message.strip()
    return trimmed[: settings.REVIEW_MESSAGE_MAX_LENGTH] if trimmed else None


class ReviewService:
    """Student review requests and instructor responses on submitted attempts."""

    def __init__(self, db: AsyncIOMotorDatabase, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def _load_submitted(self, attempt_id: str) -> Dict[str, Any]:
        attempt = await self.db.exam_attempts.find_one({"attempt_id": attempt_id}, {"_id": 0})
        if not attempt:
            raise NotFoundError("Attempt not found")
        return attempt

    async def request_review(
        self,
        attempt_id: str,
        student_id: str,
        message: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record a review request once; a second request fails and changes nothing."""
        attempt = await self._load_submitted(attempt_id)
        if attempt.get("student_id") != student_id:
            raise ForbiddenError("Forbidden")
        if not attempt.get("submitted_at"):
            raise InvalidStateError("Attempt not submitted")
        if attempt.get("review_requested"):
            raise InvalidStateError("Review already requested")

        now = self.clock()
        update: Dict[str, Any] = {"review_requested": True, "review_requested_at": now}
        if isinstance(message, str) and message.strip():
            update["review_request_message"] = _clean_message(message)

        # Guarded write so two racing requests cannot both stamp the attempt
        write = await self.db.exam_attempts.update_one(
            {"attempt_id": attempt_id, "review_requested": {"$ne": True}},
            {"$set": update},
        )
        if write.matched_count == 0:
            raise InvalidStateError("Review already requested")

        logger.info(f"Review requested for attempt {attempt_id} by {student_id}")
        return {
            "attempt_id": attempt_id,
            "review_requested": True,
            "review_requested_at": now,
        }

    async def respond_to_review(
        self,
        attempt_id: str,
        responder_id: str,
        appointment_at: Any = UNSET,
        message: Any = UNSET,
    ) -> Dict[str, Any]:
        """
        Answer a review request.

        For appointment_at and message: None clears the stored value, a string
        sets it, UNSET leaves it alone. Every accepted call stamps
        review_responded_at / review_responded_by.
        """
        attempt = await self._load_submitted(attempt_id)
        if not attempt.get("submitted_at"):
            raise InvalidStateError("Attempt not submitted")
        if not attempt.get("review_requested"):
            raise InvalidStateError("No review request for this attempt")

        to_set: Dict[str, Any] = {}
        to_unset: Dict[str, str] = {}

        if appointment_at is None:
            to_unset["review_appointment_at"] = ""
        elif isinstance(appointment_at, str) and appointment_at.strip():
            try:
                to_set["review_appointment_at"] = parse_instant(appointment_at)
            except ValueError:
                raise ValidationFailure("appointment_at must be a valid date/time")

        if message is None:
            to_unset["review_response_message"] = ""
        elif isinstance(message, str):
            cleaned = _clean_message(message)
            if cleaned:
                to_set["review_response_message"] = cleaned
            else:
                to_unset["review_response_message"] = ""

        now = self.clock()
        to_set["review_responded_at"] = now
        to_set["review_responded_by"] = responder_id

        update: Dict[str, Any] = {"$set": to_set}
        if to_unset:
            update["$unset"] = to_unset
        await self.db.exam_attempts.update_one({"attempt_id": attempt_id}, update)

        saved = await self._load_submitted(attempt_id)
        logger.info(f"Review response on attempt {attempt_id} by {responder_id}")
        return {
            "attempt_id": attempt_id,
            "review_appointment_at": saved.get("review_appointment_at"),
            "review_response_message": saved.get("review_response_message"),
            "review_responded_at": saved.get("review_responded_at"),
        }
