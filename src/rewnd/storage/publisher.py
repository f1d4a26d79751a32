"""Persist a processed photo: two object uploads and one metadata row.

Storage and database writes are not atomic. When a later step fails, objects
already uploaded are deleted best-effort so no orphan is left behind.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from rewnd.errors import DatabaseError, StorageError
from rewnd.imaging.styles import StyleIdentifier
from rewnd.storage.protocols import StoredObject

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from rewnd.imaging.pipeline import ProcessedResult
    from rewnd.storage.protocols import ObjectStorage, PhotoDatabase, UserIdentity

logger = logging.getLogger(__name__)

PHOTOS_TABLE = "photos"


@dataclass(frozen=True)
class PhotoSubmission:
    """Form fields sent alongside the photo file."""

    caption: str | None = None
    photo_style: StyleIdentifier = StyleIdentifier.POLAROID
    prompt_time: str | None = None
    latitude: float | None = None
    longitude: float | None = None


class PhotoPublisher:
    """Uploads main image and thumbnail, then records the photo row."""

    def __init__(
        self,
        storage: ObjectStorage,
        database: PhotoDatabase,
        bucket: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._database = database
        self._bucket = bucket
        self._clock = clock

    def object_paths(self, user_id: str) -> tuple[str, str]:
        """Return (main, thumbnail) object paths for a new upload."""
        stamp = int(self._clock() * 1000)
        return f"photos/{user_id}_{stamp}.jpg", f"thumbnails/{user_id}_{stamp}_thumb.jpg"

    async def publish(
        self,
        user: UserIdentity,
        processed: ProcessedResult,
        submission: PhotoSubmission,
    ) -> dict[str, Any]:
        """Store both images and insert the metadata row.

        Raises:
            StorageError: If either upload fails.
            DatabaseError: If the metadata insert fails.
        """
        main_path, thumb_path = self.object_paths(user.id)
        results = await asyncio.gather(
            self._storage.upload(processed.main_image, self._bucket, main_path),
            self._storage.upload(processed.thumbnail, self._bucket, thumb_path),
            return_exceptions=True,
        )
        stored = [result for result in results if isinstance(result, StoredObject)]
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            await self._discard(stored)
            raise StorageError(f"Failed to upload photo to storage: {failures[0]}") from failures[0]

        main, thumbnail = stored
        record = {
            "user_id": user.id,
            "image_url": main.url,
            "thumbnail_url": thumbnail.url,
            "caption": submission.caption or None,
            "prompt_time": submission.prompt_time or datetime.now(UTC).isoformat(),
            "photo_style": str(submission.photo_style),
            "latitude": submission.latitude,
            "longitude": submission.longitude,
        }

        try:
            row = await self._database.insert(PHOTOS_TABLE, record)
        except Exception as exc:
            await self._discard(stored)
            if isinstance(exc, DatabaseError):
                raise
            raise DatabaseError(f"Failed to save photo metadata: {exc}") from exc

        logger.info("Photo published: %s", row.get("id"))
        return row

    async def _discard(self, objects: Iterable[StoredObject]) -> None:
        for obj in objects:
            try:
                await self._storage.delete(obj.bucket, obj.path)
            except Exception:
                logger.exception("Could not remove orphaned object %s/%s", obj.bucket, obj.path)
            else:
                logger.info("Removed orphaned object %s/%s", obj.bucket, obj.path)
