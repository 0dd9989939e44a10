"""
Exam Portal Backend - Main FastAPI Application

Timed exam attempts: question selection, autosave, lazy expiry,
auto-grading, manual grading and post-exam review.
Version: 2.0
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from .config.settings import settings
from .routes import attempt_router, exam_router, grade_router
from .services import ExamServiceError, ExamServices
from .storage import GridFSImageStore
from .utils import Clock, utc_now

# Setup logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


async def create_indexes(db: AsyncIOMotorDatabase):
    """Create database indexes; the attempt index enforces one attempt per student per exam."""
    try:
        # Exams
        await db.exams.create_index("exam_id", unique=True)
        await db.exams.create_index("course_id")

        # Question pool
        await db.questions.create_index("question_id", unique=True)
        await db.questions.create_index([("course_id", 1), ("type", 1)])

        # Attempts
        await db.exam_attempts.create_index("attempt_id", unique=True)
        await db.exam_attempts.create_index("student_id")
        await db.exam_attempts.create_index([("exam_id", 1), ("student_id", 1)], unique=True)

        # Users and sessions
        await db.users.create_index("user_id", unique=True)
        await db.user_sessions.create_index("session_token", unique=True)

    except Exception as e:
        logger.warning(f"Index creation warning: {e}")
        # Don't fail startup if indexes already exist


def create_app(
    db: Optional[AsyncIOMotorDatabase] = None,
    clock: Clock = utc_now,
    image_store=None,
) -> FastAPI:
    """Build the application; with ``db`` given, services are wired immediately."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """FastAPI lifespan context manager for startup/shutdown."""
        client = None

        # STARTUP
        logger.info("🚀 Exam Portal Backend Starting Up...")

        if getattr(app.state, "services", None) is None:
            try:
                settings.validate()
                logger.info("✅ Settings validated")

                client = AsyncIOMotorClient(
                    settings.MONGODB_URL,
                    maxPoolSize=50,
                    serverSelectionTimeoutMS=5000,
                    tz_aware=True
                )

                await client.server_info()
                database = client[settings.DATABASE_NAME]
                logger.info(f"✅ Connected to MongoDB: {settings.DATABASE_NAME}")

                await create_indexes(database)
                logger.info("✅ Database indexes created")

                app.state.services = ExamServices(
                    database,
                    clock=clock,
                    image_store=image_store or GridFSImageStore(database),
                )
                logger.info("✅ Application startup complete")

            except Exception as e:
                logger.error(f"❌ Startup failed: {e}")
                raise

        yield

        # SHUTDOWN
        logger.info("🛑 Shutting down...")
        if client is not None:
            client.close()
            logger.info("✅ Database connection closed")

    app = FastAPI(
        title="Exam Portal API",
        description="Timed exam attempts with auto-grading and review",
        version="2.0.0",
        lifespan=lifespan
    )

    if db is not None:
        app.state.services = ExamServices(
            db,
            clock=clock,
            image_store=image_store or GridFSImageStore(db),
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ExamServiceError)
    async def exam_service_error_handler(request: Request, exc: ExamServiceError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    app.include_router(exam_router)
    app.include_router(attempt_router)
    app.include_router(grade_router)

    # Health check endpoint
    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        services = getattr(app.state, "services", None)
        return {
            "status": "healthy",
            "version": "2.0.0",
            "database": "connected" if services is not None else "disconnected"
        }

    # Root endpoint
    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "app": "Exam Portal",
            "version": "2.0.0",
            "docs": "/docs",
            "health": "/api/health"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "exam_portal.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
