"""Utility functions for the exam portal backend."""

import math
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Tuple

from .grading import (
    PASS_PERCENT,
    compute_grade_summary,
    compute_letter_grade,
    compute_score_percent,
    is_final_grade,
)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Any) -> Optional[datetime]:
    """Normalize a stored instant to an aware UTC datetime.

    MongoDB hands datetimes back naive (in UTC); older documents may carry
    ISO strings instead.
    """
    if value is None:
        return None
    if isinstance(value, str):
        value = parse_instant(value)
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(raw: str) -> datetime:
    """Parse an ISO-8601 string, raising ValueError when it is not one."""
    text = raw.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def new_id(prefix: str, length: int = 12) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:length]}"


def is_number(value: Any) -> bool:
    """True for finite ints/floats; bools are not numbers here."""
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float)) and math.isfinite(value)


def validate_file_type(filename: str, allowed_extensions: list) -> Tuple[bool, str]:
    """Validate file type by extension."""
    if not filename or '.' not in filename:
        return False, f"File has no extension. Allowed: {allowed_extensions}"
    file_ext = filename.split('.')[-1].lower()

    if file_ext not in allowed_extensions:
        return False, f"File type '{file_ext}' not allowed. Allowed: {allowed_extensions}"

    return True, "OK"


def validate_file_size(file_bytes: bytes, max_size_mb: int) -> Tuple[bool, str]:
    """Validate file size in MB."""
    file_size_mb = len(file_bytes) / (1024 * 1024)

    if file_size_mb > max_size_mb:
        return False, f"File size {file_size_mb:.1f} MB exceeds limit of {max_size_mb} MB"

    return True, "OK"


__all__ = [
    "Clock",
    "PASS_PERCENT",
    "as_utc",
    "compute_grade_summary",
    "compute_letter_grade",
    "compute_score_percent",
    "is_final_grade",
    "is_number",
    "new_id",
    "parse_instant",
    "utc_now",
    "validate_file_size",
    "validate_file_type",
]
