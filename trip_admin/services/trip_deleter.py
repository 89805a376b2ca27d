"""Trip deletion cascade: storage objects first, then child rows, then the trip"""
import asyncio
import logging
from typing import List, Optional, Protocol

from pydantic import BaseModel, Field

from ..config import settings
from ..storage.cleanup import StorageCleaner
from ..utils.storage_paths import collect_paths

logger = logging.getLogger(__name__)

# Child tables keyed by day_id, deleted before the days themselves
CHILD_TABLES = ("day_media", "activities", "attractions", "accommodations")


class TripDeletionError(Exception):
    """Raised when a row delete in the cascade fails"""
    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class TripRows(Protocol):
    async def get_day_ids(self, trip_id: str) -> List[str]: ...

    async def get_cover_image(self, trip_id: str) -> Optional[str]: ...

    async def get_day_media_urls(self, day_ids: List[str]) -> List[str]: ...

    async def delete_rows(self, table: str, column: str, values: List[str]) -> None: ...

    async def delete_trip(self, trip_id: str) -> None: ...


class DeletionReport(BaseModel):
    trip_id: str
    days: int = 0
    media_paths: int = 0
    cover_removed: bool = False
    cleanup_failures: int = 0
    failed_paths: List[str] = Field(default_factory=list)


class TripDeleter:
    """Deletes a trip with all its media objects and child rows"""

    def __init__(self, rows: TripRows, cleaner: StorageCleaner):
        self.rows = rows
        self.cleaner = cleaner

    async def delete(self, trip_id: str) -> DeletionReport:
        """
        Delete a trip

        Storage removal is best-effort: failed chunks are logged and the
        cascade carries on. Row deletes are not; the first failing stage
        stops the cascade before the parents are touched.

        Args:
            trip_id: Trip to delete

        Returns:
            DeletionReport

        Raises:
            TripDeletionError: If child, day or trip rows could not be deleted
        """
        report = DeletionReport(trip_id=trip_id)

        day_ids, cover_image = await asyncio.gather(
            self.rows.get_day_ids(trip_id),
            self.rows.get_cover_image(trip_id),
        )
        report.days = len(day_ids)

        media_urls = await self.rows.get_day_media_urls(day_ids)
        media_paths = collect_paths(media_urls, settings.day_media_bucket)
        cover_paths = collect_paths([cover_image], settings.trip_covers_bucket) if cover_image else []
        report.media_paths = len(media_paths)

        logger.info(
            f"Deleting trip {trip_id}: {len(day_ids)} day(s), "
            f"{len(media_paths)} media object(s), {len(cover_paths)} cover object(s)"
        )

        results = await asyncio.gather(
            self.cleaner.remove_paths(settings.day_media_bucket, media_paths),
            self.cleaner.remove_paths(settings.trip_covers_bucket, cover_paths),
        )
        failures = [failure for batch in results for failure in batch]
        report.cleanup_failures = len(failures)
        report.failed_paths = [path for failure in failures for path in failure.paths]
        report.cover_removed = bool(cover_paths) and not results[1]

        if day_ids:
            await self._delete_children(trip_id, day_ids)
            try:
                await self.rows.delete_rows("days", "id", day_ids)
            except Exception as e:
                raise TripDeletionError(
                    f"Failed to delete days of trip {trip_id}",
                    {"trip_id": trip_id, "cause": str(e)}
                ) from e

        try:
            await self.rows.delete_trip(trip_id)
        except Exception as e:
            logger.error(f"Failed to delete trip row {trip_id}: {e}")
            raise TripDeletionError(
                f"Failed to delete trip {trip_id}",
                {"trip_id": trip_id, "cause": str(e)}
            ) from e

        logger.info(f"Trip {trip_id} deleted")
        return report

    async def _delete_children(self, trip_id: str, day_ids: List[str]) -> None:
        results = await asyncio.gather(
            *(self.rows.delete_rows(table, "day_id", day_ids) for table in CHILD_TABLES),
            return_exceptions=True
        )
        failed = {
            table: str(result)
            for table, result in zip(CHILD_TABLES, results)
            if isinstance(result, Exception)
        }
        if failed:
            for table, cause in failed.items():
                logger.error(f"Failed to delete {table} rows for trip {trip_id}: {cause}")
            raise TripDeletionError(
                f"Failed to delete child rows of trip {trip_id}",
                {"trip_id": trip_id, "tables": failed}
            )
