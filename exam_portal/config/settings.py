"""
Configuration settings for the exam portal backend.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[2]
load_dotenv(ROOT_DIR / '.env')


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """Application settings loaded from environment."""

    # Database
    MONGODB_URL: str = os.environ.get("MONGODB_URI", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.environ.get("DATABASE_NAME", "exam_portal")

    # Server
    PORT: int = int(os.environ.get("PORT", 8001))
    HOST: str = os.environ.get("HOST", "0.0.0.0")
    DEBUG: bool = os.environ.get("DEBUG", "False").lower() == "true"
    CORS_ORIGINS: List[str] = _split_csv(os.environ.get("CORS_ORIGINS", "*"))

    # Auth
    SESSION_COOKIE_NAME: str = os.environ.get("SESSION_COOKIE_NAME", "session_token")

    # Exams
    DEFAULT_DURATION_MINUTES: int = int(os.environ.get("DEFAULT_DURATION_MINUTES", 60))
    PASS_PERCENT: float = float(os.environ.get("PASS_PERCENT", 55))
    REVIEW_MESSAGE_MAX_LENGTH: int = 1000

    # Image answers
    IMAGE_BUCKET: str = os.environ.get("IMAGE_BUCKET", "attempt_images")
    MAX_IMAGE_SIZE_MB: int = int(os.environ.get("MAX_IMAGE_SIZE_MB", 10))
    ALLOWED_IMAGE_EXTENSIONS: list = ["png", "jpg", "jpeg", "gif", "webp"]

    # Logging
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    def validate(self):
        """Validate critical settings."""
        if not self.MONGODB_URL:
            raise ValueError("MONGODB_URI environment variable not set")
        if not self.DATABASE_NAME:
            raise ValueError("DATABASE_NAME environment variable not set")
        return True


# Global settings instance
settings = Settings()
