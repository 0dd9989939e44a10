from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from exam_portal.main import create_app, create_indexes
from exam_portal.services import ExamServices

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeImageStore:
    def __init__(self):
        self.saved = []

    async def save(self, filename, data, content_type, metadata):
        self.saved.append({
            "filename": filename,
            "size": len(data),
            "content_type": content_type,
            "metadata": metadata,
        })
        return f"memory://attempt_images/{len(self.saved)}"


class Seeder:
    """Inserts fixture documents straight into the database."""

    def __init__(self, db, clock):
        self.db = db
        self.clock = clock

    async def user(self, user_id, role="student", name=None):
        doc = {
            "user_id": user_id,
            "email": f"{user_id}@example.com",
            "name": name or user_id,
            "role": role,
        }
        await self.db.users.insert_one(dict(doc))
        await self.db.user_sessions.insert_one({
            "user_id": user_id,
            "session_token": f"token_{user_id}",
            "expires_at": self.clock() + timedelta(days=7),
        })
        return doc

    async def course(self, course_id="course_1", professors=("prof_1",), students=("stu_1", "stu_2")):
        doc = {
            "course_id": course_id,
            "title": "Algorithms",
            "course_code": "CS201",
            "ects": 6,
            "professors": list(professors),
            "students": list(students),
            "created_by": professors[0] if professors else None,
        }
        await self.db.courses.insert_one(dict(doc))
        return doc

    async def question(self, question_id, q_type, course_id="course_1", correct=None, points=1, options=None):
        doc = {
            "question_id": question_id,
            "course_id": course_id,
            "type": q_type,
            "content": f"Question {question_id}",
            "options": options or [],
            "correct_answer": correct,
            "points": points,
        }
        await self.db.questions.insert_one(dict(doc))
        return doc

    async def pool(self, course_id="course_1", per_type=5):
        """per_type questions of every type."""
        for i in range(per_type):
            await self.question(f"mc_{i}", "multiple-choice", course_id, correct="A", options=["A", "B"])
            await self.question(f"tf_{i}", "tf", course_id, correct=True)
            await self.question(f"essay_{i}", "essay", course_id)
            await self.question(f"img_{i}", "image-upload", course_id)

    async def exam(self, exam_id="exam_1", question_ids=(), course_id="course_1", **fields):
        doc = {
            "exam_id": exam_id,
            "title": "Midterm",
            "date": self.clock() - timedelta(minutes=1),
            "duration_minutes": 60,
            "course_id": course_id,
            "selection_mode": "manual",
            "question_ids": list(question_ids),
            "random_config": None,
            "num_questions": None,
            "published": True,
        }
        doc.update(fields)
        await self.db.exams.insert_one(dict(doc))
        return doc

    async def standard_exam(self):
        """Course with mc/tf/essay/image questions and a published manual exam over them."""
        await self.course()
        await self.question("q_mc", "multiple-choice", correct="4", points=2, options=["3", "4", "5"])
        await self.question("q_tf", "tf", correct=True)
        await self.question("q_essay", "essay", points=3)
        await self.question("q_img", "image-upload", points=2)
        return await self.exam(question_ids=["q_mc", "q_tf", "q_essay", "q_img"])


@pytest.fixture
def clock():
    return FrozenClock(START)


@pytest.fixture
def image_store():
    return FakeImageStore()


@pytest.fixture
async def db():
    database = AsyncMongoMockClient(tz_aware=True)["exam_portal_test"]
    await create_indexes(database)
    return database


@pytest.fixture
def services(db, clock, image_store):
    return ExamServices(db, clock=clock, image_store=image_store)


@pytest.fixture
def seed(db, clock):
    return Seeder(db, clock)


@pytest.fixture
async def client(db, clock, image_store):
    app = create_app(db=db, clock=clock, image_store=image_store)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http


@pytest.fixture
def auth():
    def headers(user_id):
        return {"Authorization": f"Bearer token_{user_id}"}
    return headers
