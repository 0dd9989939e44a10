import pytest

from exam_portal.utils import (
    compute_grade_summary,
    compute_letter_grade,
    compute_score_percent,
    is_final_grade,
)


@pytest.mark.parametrize(
    "awarded,total,expected",
    [
        (5, 10, 50.0),
        (10, 10, 100.0),
        (12, 10, 100.0),
        (-3, 10, 0.0),
        (3, 0, 0.0),
        (3, -1, 0.0),
        (None, 10, 0.0),
    ],
)
def test_score_percent_is_clamped(awarded, total, expected):
    assert compute_score_percent(awarded, total) == expected


@pytest.mark.parametrize(
    "percent,letter",
    [(100, "A"), (90, "A"), (89.99, "B"), (80, "B"), (70, "C"), (55, "D"), (54.999, "F"), (0, "F")],
)
def test_letter_grade_thresholds(percent, letter):
    assert compute_letter_grade(percent) == letter


def test_pass_boundary():
    at_pass = compute_grade_summary(55, 100, is_final=True)
    assert at_pass["score_percent"] == pytest.approx(55.0)
    assert at_pass["grade"] == "D"
    assert at_pass["passed"] is True

    below = compute_grade_summary(54.999, 100, is_final=True)
    assert below["grade"] == "F"
    assert below["passed"] is False


def test_zero_total_scores_zero_regardless_of_finality():
    assert compute_grade_summary(4, 0, is_final=True)["score_percent"] == 0
    assert compute_grade_summary(4, 0, is_final=False)["score_percent"] == 0


def test_provisional_grade_hides_letter_and_pass():
    summary = compute_grade_summary(9, 10, is_final=False)
    assert summary == {"score_percent": 90.0, "grade": None, "passed": None}


def test_is_final_grade():
    assert is_final_grade({"needs_review": False})
    assert not is_final_grade({"needs_review": True})
    assert is_final_grade({"needs_review": True, "graded_at": "2026-03-02T10:00:00Z"})
