from datetime import timedelta

import pytest

from exam_portal.models import ExamCreate, ExamQuestionsUpdate, ExamUpdate, QuestionCreate, RandomConfig
from exam_portal.services import ForbiddenError, InvalidStateError, NotFoundError, ValidationFailure


def draft(clock, **fields):
    data = {"title": "  Final  ", "date": clock() + timedelta(days=1), "course_id": "course_1"}
    data.update(fields)
    return ExamCreate(**data)


# ============ EXAMS ============

async def test_create_exam_as_draft(seed, services, clock):
    await seed.course()
    exam = await services.exams.create_exam(draft(clock), "prof_1", "professor")

    assert exam["exam_id"].startswith("exam_")
    assert exam["title"] == "Final"
    assert exam["published"] is False
    assert exam["duration_minutes"] == 60
    assert (await services.exams.get_exam(exam["exam_id"]))["created_by"] == "prof_1"


async def test_create_exam_requires_course_manager(seed, services, clock):
    await seed.course()
    with pytest.raises(ForbiddenError):
        await services.exams.create_exam(draft(clock), "prof_2", "professor")
    with pytest.raises(NotFoundError):
        await services.exams.create_exam(draft(clock, course_id="course_x"), "prof_1", "professor")
    # Admins manage every course
    assert await services.exams.create_exam(draft(clock), "admin_1", "admin")


async def test_manual_question_ids_must_exist_and_be_unique(seed, services, clock):
    await seed.course()
    await seed.question("q_tf", "tf", correct=True)
    with pytest.raises(ValidationFailure, match="do not exist"):
        await services.exams.create_exam(draft(clock, question_ids=["q_tf", "q_nope"]), "prof_1", "professor")
    with pytest.raises(ValidationFailure, match="duplicates"):
        await services.exams.create_exam(draft(clock, question_ids=["q_tf", "q_tf"]), "prof_1", "professor")


async def test_update_and_delete_exam(seed, services, clock):
    await seed.course()
    exam = await services.exams.create_exam(draft(clock), "prof_1", "professor")

    updated = await services.exams.update_exam(exam["exam_id"], ExamUpdate(duration_minutes=90), "prof_1", "professor")
    assert updated["duration_minutes"] == 90

    await services.exams.delete_exam(exam["exam_id"], "prof_1", "professor")
    with pytest.raises(NotFoundError):
        await services.exams.get_exam(exam["exam_id"])


async def test_publish_rules_for_manual_exam(seed, services, clock):
    await seed.course()
    await seed.question("q_tf", "tf", correct=True)
    exam = await services.exams.create_exam(draft(clock), "prof_1", "professor")
    exam_id = exam["exam_id"]

    with pytest.raises(ValidationFailure, match="no questions"):
        await services.exams.publish_exam(exam_id, "prof_1", "professor")

    await services.exams.set_exam_questions(
        exam_id, ExamQuestionsUpdate(question_ids=["q_tf"]), "prof_1", "professor"
    )
    published = await services.exams.publish_exam(exam_id, "prof_1", "professor")
    assert published["published"] is True
    assert published["published_at"] == clock()

    with pytest.raises(InvalidStateError, match="already published"):
        await services.exams.publish_exam(exam_id, "prof_1", "professor")
    with pytest.raises(InvalidStateError, match="already published"):
        await services.exams.set_exam_questions(
            exam_id, ExamQuestionsUpdate(question_ids=[]), "prof_1", "professor"
        )


async def test_publish_random_exam_checks_pool(seed, services, clock):
    await seed.course()
    await seed.pool(per_type=2)
    exam = await services.exams.create_exam(draft(clock), "prof_1", "professor")
    exam_id = exam["exam_id"]

    await services.exams.set_exam_questions(
        exam_id,
        ExamQuestionsUpdate(selection_mode="random", num_questions=5, random_config=RandomConfig(mc_count=3)),
        "prof_1",
        "professor",
    )
    with pytest.raises(ValidationFailure, match="multiple-choice"):
        await services.exams.publish_exam(exam_id, "prof_1", "professor")

    await services.exams.set_exam_questions(
        exam_id,
        ExamQuestionsUpdate(selection_mode="random", num_questions=5, random_config=RandomConfig(mc_count=2)),
        "prof_1",
        "professor",
    )
    assert (await services.exams.publish_exam(exam_id, "prof_1", "professor"))["published"] is True


async def test_random_selection_requires_config(seed, services, clock):
    await seed.course()
    exam = await services.exams.create_exam(draft(clock), "prof_1", "professor")
    with pytest.raises(ValidationFailure, match="random_config"):
        await services.exams.set_exam_questions(
            exam["exam_id"], ExamQuestionsUpdate(selection_mode="random"), "prof_1", "professor"
        )


async def test_available_exams_with_attempt_status(seed, services, clock):
    await seed.standard_exam()
    await seed.exam("exam_later", ["q_tf"], date=clock() + timedelta(days=2))
    await seed.course("course_2", students=("stu_9",))
    await seed.exam("exam_other", ["q_tf"], course_id="course_2")

    available = await services.exams.list_available_exams("stu_1", "student")
    assert [(e["exam_id"], e["attempt_status"]) for e in available] == [("exam_1", "not_started")]
    assert "question_ids" not in available[0]

    started = await services.attempts.start_attempt("exam_1", "stu_1")
    available = await services.exams.list_available_exams("stu_1", "student")
    assert available[0]["attempt_status"] == "in_progress"
    assert available[0]["attempt_id"] == started["attempt"]["id"]

    await services.attempts.submit(started["attempt"]["id"], "stu_1")
    available = await services.exams.list_available_exams("stu_1", "student")
    assert available[0]["attempt_status"] == "submitted"


# ============ QUESTION BANK ============

async def test_create_questions(seed, services):
    await seed.course()
    mc = await services.questions.create_question(
        "course_1",
        QuestionCreate(type="multiple-choice", content=" 2+2? ", options=["3", "4"], correct_answer="4", points=2),
        "prof_1",
    )
    assert mc["content"] == "2+2?"
    assert mc["points"] == 2

    essay = await services.questions.create_question(
        "course_1", QuestionCreate(type="essay", content="Discuss", points="lots"), "prof_1"
    )
    assert essay["points"] == 1
    assert essay["correct_answer"] is None

    listed = await services.questions.list_course_questions("course_1")
    assert {q["question_id"] for q in listed} == {mc["question_id"], essay["question_id"]}


@pytest.mark.parametrize(
    "payload",
    [
        QuestionCreate(type="essay"),
        QuestionCreate(content="no type"),
        QuestionCreate(type="matching", content="?"),
        QuestionCreate(type="multiple-choice", content="?", options=["only"], correct_answer="only"),
        QuestionCreate(type="multiple-choice", content="?", options=["a", "b"], correct_answer="c"),
        QuestionCreate(type="tf", content="?", correct_answer="true"),
    ],
)
async def test_create_question_validation(seed, services, payload):
    await seed.course()
    with pytest.raises(ValidationFailure):
        await services.questions.create_question("course_1", payload, "prof_1")


async def test_question_bank_unknown_course(services):
    with pytest.raises(NotFoundError):
        await services.questions.list_course_questions("course_x")
