from .exam_routes import router as exam_router
from .attempt_routes import router as attempt_router
from .grade_routes import router as grade_router

__all__ = ["exam_router", "attempt_router", "grade_router"]
