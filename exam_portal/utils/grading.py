"""
Grade summary calculator.

Every read path that shows a grade (grades list, exam results, attempt
review, student review dashboard) goes through compute_grade_summary.
"""

import math
from typing import Any, Dict, Optional

from ..config.settings import settings

PASS_PERCENT = settings.PASS_PERCENT

# (threshold, letter), checked top-down
LETTER_THRESHOLDS = [
    (90, "A"),
    (80, "B"),
    (70, "C"),
    (PASS_PERCENT, "D"),
]


def _as_points(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return float(value)


def compute_score_percent(points_awarded: Any, points_total: Any) -> float:
    """Percentage clamped to [0, 100]; 0 when there is nothing to score."""
    awarded = _as_points(points_awarded)
    total = _as_points(points_total)
    if total <= 0:
        return 0.0
    pct = (awarded / total) * 100
    return max(0.0, min(100.0, pct))


def compute_letter_grade(score_percent: float) -> str:
    for threshold, letter in LETTER_THRESHOLDS:
        if score_percent >= threshold:
            return letter
    return "F"


def is_final_grade(attempt: Dict[str, Any]) -> bool:
    """A grade is provisional while manual review is pending and nobody graded it."""
    return not (bool(attempt.get("needs_review")) and not attempt.get("graded_at"))


def compute_grade_summary(
    points_awarded: Any,
    points_total: Any,
    is_final: bool,
) -> Dict[str, Optional[Any]]:
    """
    Map points and finality to score_percent, grade and passed.

    Non-final grades keep a provisional score_percent but report grade and
    passed as None.
    """
    score_percent = compute_score_percent(points_awarded, points_total)
    if not is_final:
        return {"score_percent": score_percent, "grade": None, "passed": None}

    return {
        "score_percent": score_percent,
        "grade": compute_letter_grade(score_percent),
        "passed": score_percent >= PASS_PERCENT,
    }
