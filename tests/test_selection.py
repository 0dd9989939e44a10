import pytest

from exam_portal.services import ValidationFailure
from exam_portal.services.selection import secure_sample, secure_shuffle


def random_exam(num_questions=5, **counts):
    config = {
        "mc_count": 0,
        "tf_count": 0,
        "image_count": 0,
        "essay_count": 0,
        "randomize_per_student": True,
        "shuffle_order": True,
    }
    config.update(counts)
    return {
        "exam_id": "exam_r",
        "course_id": "course_1",
        "selection_mode": "random",
        "num_questions": num_questions,
        "random_config": config,
    }


def test_secure_shuffle_is_a_permutation():
    items = list(range(50))
    shuffled = secure_shuffle(list(items))
    assert sorted(shuffled) == items


def test_secure_sample_is_distinct():
    sample = secure_sample(range(20), 7)
    assert len(sample) == 7
    assert len(set(sample)) == 7
    assert all(0 <= x < 20 for x in sample)


async def test_select_honors_composition(seed, services):
    await seed.pool(per_type=5)
    picked = await services.selection.select(random_exam(5, mc_count=2, tf_count=1))

    assert len(picked) == 5
    assert len(set(picked)) == 5
    assert sum(1 for q in picked if q.startswith("mc_")) >= 2
    assert sum(1 for q in picked if q.startswith("tf_")) >= 1


async def test_select_without_shuffle_keeps_bucket_order(seed, services):
    await seed.pool(per_type=5)
    exam = random_exam(5, mc_count=2, tf_count=1, shuffle_order=False)
    picked = await services.selection.select(exam)

    assert all(q.startswith("mc_") for q in picked[:2])
    assert picked[2].startswith("tf_")
    assert len(set(picked)) == 5


async def test_remainder_fill_excludes_bucket_picks(seed, services):
    await seed.pool(per_type=1)
    picked = await services.selection.select(random_exam(4, mc_count=1))
    assert sorted(picked) == ["essay_0", "img_0", "mc_0", "tf_0"]


async def test_pool_shortage_names_type_and_counts(seed, services):
    await seed.pool(per_type=2)
    with pytest.raises(ValidationFailure) as exc:
        await services.selection.validate(random_exam(5, mc_count=3))
    message = exc.value.message
    assert "multiple-choice" in message
    assert "required 3" in message
    assert "available 2" in message


async def test_overall_pool_shortage(seed, services):
    await seed.pool(per_type=1)
    with pytest.raises(ValidationFailure, match="required 6, available 4"):
        await services.selection.validate(random_exam(6))


async def test_counts_exceeding_total_rejected(seed, services):
    await seed.pool(per_type=5)
    with pytest.raises(ValidationFailure, match="exceeds num_questions"):
        await services.selection.validate(random_exam(3, mc_count=2, tf_count=2))


@pytest.mark.parametrize(
    "exam",
    [
        {**random_exam(3), "course_id": None},
        random_exam(0),
        random_exam(3, tf_count=-1),
        random_exam(3, essay_count=1.5),
    ],
)
async def test_invalid_compositions(seed, services, exam):
    await seed.pool(per_type=5)
    with pytest.raises(ValidationFailure):
        await services.selection.validate(exam)


async def test_fill_from_empty_pool_returns_none(services):
    assert await services.selection.fill_from_pool("course_empty", 3) is None
