"""
Random selection service - validates a random-mode composition against the
course pool and draws the question ids for one attempt.

FLOW:
1. validate(exam)  → raise ValidationFailure naming the first unmet constraint
2. select(exam)    → per-type buckets, then remainder fill, then optional shuffle
"""

import secrets
from typing import Any, Dict, List, MutableSequence, Optional, Sequence, TypeVar

from .errors import ValidationFailure
from .question_pool import QuestionPoolService

T = TypeVar("T")

# (config key, question type, label used in error messages)
TYPED_BUCKETS = [
    ("mc_count", "multiple-choice", "multiple-choice"),
    ("tf_count", "tf", "true/false"),
    ("image_count", "image-upload", "image-upload"),
    ("essay_count", "essay", "essay"),
]


def secure_shuffle(items: MutableSequence[T]) -> MutableSequence[T]:
    """In-place Fisher-Yates shuffle driven by the OS CSPRNG.

    secrets.randbelow draws without modulo bias.
    """
    for i in range(len(items) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        items[i], items[j] = items[j], items[i]
    return items


def secure_sample(population: Sequence[T], k: int) -> List[T]:
    """Uniformly random k-subset of population, in random order."""
    pool = list(population)
    secure_shuffle(pool)
    return pool[:k]


def _count(config: Dict[str, Any], key: str) -> Any:
    value = config.get(key, 0)
    return 0 if value is None else value


class SelectionService:
    """Draws random question sets for random-mode exams."""

    def __init__(self, pool: QuestionPoolService):
        self.pool = pool

    async def validate(self, exam: Dict[str, Any]) -> None:
        """Check that the composition is consistent and the pool can satisfy it."""
        course_id = exam.get("course_id")
        if not course_id:
            raise ValidationFailure("Random selection requires the exam to be bound to a course")

        config = exam.get("random_config") or {}
        total = exam.get("num_questions")
        if not isinstance(total, int) or isinstance(total, bool) or total < 1:
            raise ValidationFailure("Random selection requires num_questions of at least 1")

        requested = 0
        for key, _, label in TYPED_BUCKETS:
            value = _count(config, key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValidationFailure(f"{label} count must be a non-negative integer")
            requested += value

        if requested > total:
            raise ValidationFailure(
                f"Sum of per-type counts ({requested}) exceeds num_questions ({total})"
            )

        for key, q_type, label in TYPED_BUCKETS:
            wanted = _count(config, key)
            if wanted == 0:
                continue
            available = await self.pool.count(course_id, q_type)
            if available < wanted:
                raise ValidationFailure(
                    f"Not enough {label} questions in the course pool: "
                    f"required {wanted}, available {available}"
                )

        available_total = await self.pool.count(course_id)
        if available_total < total:
            raise ValidationFailure(
                f"Not enough questions in the course pool: "
                f"required {total}, available {available_total}"
            )

    async def select(self, exam: Dict[str, Any]) -> List[str]:
        """Validated, de-duplicated random question ids of length num_questions."""
        await self.validate(exam)

        course_id = exam["course_id"]
        config = exam.get("random_config") or {}
        total = exam["num_questions"]

        picked: List[str] = []
        for key, q_type, _ in TYPED_BUCKETS:
            wanted = _count(config, key)
            if wanted == 0:
                continue
            bucket = await self.pool.list_ids(course_id, q_type)
            picked.extend(secure_sample(bucket, wanted))

        remaining = total - len(picked)
        if remaining > 0:
            taken = set(picked)
            rest = [qid for qid in await self.pool.list_ids(course_id) if qid not in taken]
            picked.extend(secure_sample(rest, remaining))

        if config.get("shuffle_order", True):
            secure_shuffle(picked)
        return picked

    async def fill_from_pool(self, course_id: str, count: int) -> Optional[List[str]]:
        """Unconstrained draw of count ids from a course pool; None if it is empty."""
        ids = await self.pool.list_ids(course_id)
        if not ids:
            return None
        return secure_sample(ids, min(count, len(ids)))
