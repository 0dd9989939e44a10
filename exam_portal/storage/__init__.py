"""GridFS-backed storage for image answers."""

import logging
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket

from ..config.settings import settings

logger = logging.getLogger(__name__)


class GridFSImageStore:
    """Stores uploaded answer images and returns an opaque access path."""

    def __init__(self, db: AsyncIOMotorDatabase, bucket_name: Optional[str] = None):
        self.bucket_name = bucket_name or settings.IMAGE_BUCKET
        self.bucket = AsyncIOMotorGridFSBucket(db, bucket_name=self.bucket_name)

    async def save(self, filename: str, data: bytes, content_type: str, metadata: Dict[str, Any]) -> str:
        file_id = await self.bucket.upload_from_stream(
            filename,
            data,
            metadata={**metadata, "content_type": content_type},
        )
        logger.info(f"Stored answer image {filename} ({len(data)} bytes) as {file_id}")
        return f"gridfs://{self.bucket_name}/{file_id}"


__all__ = ["GridFSImageStore"]
