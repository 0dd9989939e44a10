"""Role normalization and course-level access rules."""

from typing import Any, Dict, Optional

ROLES = ("student", "professor", "admin")


def normalize_role(role: Any) -> str:
    """Map stored roles onto student/professor/admin; legacy 'user' is a student."""
    value = str(role or "").lower()
    if value in ROLES:
        return value
    return "student"


def can_professor_manage_course(user_id: str, role: Any, course: Optional[Dict[str, Any]]) -> bool:
    role = normalize_role(role)
    if role == "admin":
        return True
    if role != "professor" or not user_id:
        return False
    if not course:
        return True

    professors = course.get("professors") or []
    if professors:
        return user_id in professors or course.get("created_by") == user_id

    # Legacy courses without an owner are open to any professor
    if course.get("created_by"):
        return course["created_by"] == user_id
    return True


def can_student_access_course(user_id: str, role: Any, course: Optional[Dict[str, Any]]) -> bool:
    role = normalize_role(role)
    if role in ("admin", "professor"):
        return True
    if not course:
        return True
    return user_id in (course.get("students") or [])
