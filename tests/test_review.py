from datetime import datetime, timezone

import pytest

from exam_portal.services import ForbiddenError, InvalidStateError, NotFoundError, ReviewService, ValidationFailure
from exam_portal.utils import as_utc


@pytest.fixture
async def attempt_id(seed, services):
    await seed.standard_exam()
    started = await services.attempts.start_attempt("exam_1", "stu_1")
    return started["attempt"]["id"]


async def test_request_review_needs_submission(services, attempt_id):
    with pytest.raises(InvalidStateError, match="not submitted"):
        await services.reviews.request_review(attempt_id, "stu_1")


async def test_request_review_only_by_owner(services, attempt_id):
    await services.attempts.submit(attempt_id, "stu_1")
    with pytest.raises(ForbiddenError):
        await services.reviews.request_review(attempt_id, "stu_2")


async def test_request_review_unknown_attempt(services):
    with pytest.raises(NotFoundError):
        await services.reviews.request_review("att_missing", "stu_1")


async def test_second_request_fails_and_keeps_first_timestamp(services, db, clock, attempt_id):
    await services.attempts.submit(attempt_id, "stu_1")
    first = await services.reviews.request_review(attempt_id, "stu_1", "  please check q3  ")
    assert first["review_requested"] is True

    clock.advance(minutes=5)
    with pytest.raises(InvalidStateError, match="already requested"):
        await services.reviews.request_review(attempt_id, "stu_1", "again")

    stored = await db.exam_attempts.find_one({"attempt_id": attempt_id})
    assert as_utc(stored["review_requested_at"]) == first["review_requested_at"]
    assert stored["review_request_message"] == "please check q3"


async def test_request_message_truncated(services, db, attempt_id):
    await services.attempts.submit(attempt_id, "stu_1")
    await services.reviews.request_review(attempt_id, "stu_1", "x" * 1500)

    stored = await db.exam_attempts.find_one({"attempt_id": attempt_id})
    assert len(stored["review_request_message"]) == 1000


async def test_respond_requires_request(services, attempt_id):
    await services.attempts.submit(attempt_id, "stu_1")
    with pytest.raises(InvalidStateError, match="No review request"):
        await services.reviews.respond_to_review(attempt_id, "prof_1", message="hi")


async def test_respond_rejects_bad_date(services, attempt_id):
    await services.attempts.submit(attempt_id, "stu_1")
    await services.reviews.request_review(attempt_id, "stu_1")
    with pytest.raises(ValidationFailure, match="valid date/time"):
        await services.reviews.respond_to_review(attempt_id, "prof_1", appointment_at="next tuesday")


async def test_respond_sets_and_clears_fields(services, db, attempt_id):
    await services.attempts.submit(attempt_id, "stu_1")
    await services.reviews.request_review(attempt_id, "stu_1")

    response = await services.reviews.respond_to_review(
        attempt_id, "prof_1", appointment_at="2026-03-05T14:30:00Z", message="  Room 204  "
    )
    assert as_utc(response["review_appointment_at"]) == datetime(2026, 3, 5, 14, 30, tzinfo=timezone.utc)
    assert response["review_response_message"] == "Room 204"
    assert response["review_responded_at"] is not None

    # Omitted appointment stays; blank message clears
    response = await services.reviews.respond_to_review(attempt_id, "prof_1", message="   ")
    assert response["review_appointment_at"] is not None
    assert response["review_response_message"] is None

    # Explicit None clears the appointment
    response = await services.reviews.respond_to_review(attempt_id, "prof_1", appointment_at=None)
    assert response["review_appointment_at"] is None

    stored = await db.exam_attempts.find_one({"attempt_id": attempt_id})
    assert stored["review_responded_by"] == "prof_1"


def test_review_service_has_class_docstring():
    assert ReviewService.__doc__ and ReviewService.__doc__.strip()
