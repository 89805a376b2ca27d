"""
Trip save orchestration: flatten -> upload -> rehydrate -> persist

Object storage and the database cannot share a transaction. The procedure
call is the commit point: before it, uploaded files are compensated by
deleting them; after it, storage cleanup is best-effort only.
"""
import logging
from enum import Enum
from typing import List, Optional, Protocol

from pydantic import BaseModel, Field

from ..config import settings
from ..models.media import UploadedMedia
from ..models.trip import TripDraft
from ..schemas.payload import TripPayload
from ..storage.batch import BatchUploadCoordinator
from ..storage.cleanup import CleanupFailure, StorageCleaner
from ..utils.database import PersistenceFailure
from ..utils.storage_paths import extract_storage_path
from ..validators.trip_validator import validate_trip
from .media_tree import flatten, rehydrate

logger = logging.getLogger(__name__)


class SaveState(str, Enum):
    """Stages of one save"""
    IDLE = "idle"
    FLATTENING = "flattening"
    UPLOADING = "uploading"
    REHYDRATING = "rehydrating"
    PERSISTING = "persisting"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    DONE = "done"


class TripProcedures(Protocol):
    async def create_trip_with_relations(self, payload: dict) -> Optional[str]: ...

    async def update_trip_with_relations(self, trip_id: str, payload: dict) -> List[str]: ...

    async def get_cover_image(self, trip_id: str) -> Optional[str]: ...


class SaveReport(BaseModel):
    """What happened during one save"""
    editing: bool = False
    trip_id: Optional[str] = None
    states: List[SaveState] = Field(default_factory=lambda: [SaveState.IDLE])
    uploaded: int = 0
    missing_tags: List[str] = Field(default_factory=list)
    deleted_media_urls: List[str] = Field(default_factory=list)
    cleanup_failures: int = 0

    @property
    def state(self) -> SaveState:
        return self.states[-1]

    def advance(self, state: SaveState) -> None:
        logger.info(f"Trip save: {self.state.value} -> {state.value}")
        self.states.append(state)


class TripSaver:
    """Runs one save of a trip snapshot end to end"""

    def __init__(
        self,
        coordinator: BatchUploadCoordinator,
        procedures: TripProcedures,
        cleaner: StorageCleaner,
        covers_bucket: Optional[str] = None
    ):
        """
        Args:
            coordinator: Batch upload coordinator
            procedures: create/update trip procedures and cover lookup (TripRepository)
            cleaner: Storage cleaner for rollback and post-commit deletes
            covers_bucket: Bucket holding trip covers
        """
        self.coordinator = coordinator
        self.procedures = procedures
        self.cleaner = cleaner
        self.covers_bucket = covers_bucket or settings.trip_covers_bucket

    async def save(self, trip: TripDraft, access_token: Optional[str], editing: bool = False) -> SaveReport:
        """
        Save a trip tree, uploading its new files first

        The snapshot is frozen, so flatten and rehydrate see the same tree.
        A failed save is not resumable; retry with a fresh call. Any error
        between upload and commit rolls the uploads back before it propagates.

        Args:
            trip: Frozen trip snapshot including new file contents
            access_token: Caller's token (verified once for the upload batch)
            editing: True to update trip.id, False to create a new trip

        Returns:
            SaveReport with the persisted trip id

        Raises:
            ValidationError: Missing required fields; nothing was sent anywhere
            AuthenticationError: Caller could not be verified; nothing was uploaded
            PersistenceFailure: Procedure rejected the payload; uploads were rolled back
        """
        report = SaveReport(editing=editing)
        validate_trip(trip, editing)

        # The cover to clean up is whatever the database holds, never the client's copy
        stored_cover = await self.procedures.get_cover_image(trip.id) if editing else None

        report.advance(SaveState.FLATTENING)
        requests = flatten(trip)

        outcomes = []
        if requests:
            report.advance(SaveState.UPLOADING)
            outcomes = await self.coordinator.upload_all(requests, access_token)
            report.advance(SaveState.REHYDRATING)

        uploads = [outcome.media for outcome in outcomes if outcome.ok]
        report.uploaded = len(uploads)

        try:
            rehydrated = rehydrate(trip, requests, outcomes)
            report.missing_tags = list(rehydrated.missing_tags)

            report.advance(SaveState.PERSISTING)
            payload = TripPayload.from_rehydrated(rehydrated, trip.user_id).to_wire()

            if editing:
                deleted_urls = await self.procedures.update_trip_with_relations(trip.id, payload)
                trip_id = trip.id
            else:
                deleted_urls = []
                trip_id = await self.procedures.create_trip_with_relations(payload)
        except PersistenceFailure as e:
            logger.error(f"Trip {'update' if editing else 'creation'} failed: {e.message}")
            await self._roll_back(report, uploads)
            e.report = report
            raise
        except Exception as e:
            logger.error(f"Trip save failed before commit: {e}")
            await self._roll_back(report, uploads)
            raise

        report.trip_id = trip_id
        report.advance(SaveState.COMMITTED)

        if editing:
            cover_gone = rehydrated.cover is not None or trip.remove_cover
            failures = await self._cleanup_after_commit(
                trip.id,
                stored_cover if cover_gone else None,
                deleted_urls
            )
            report.deleted_media_urls = list(deleted_urls)
            report.cleanup_failures = len(failures)

        report.advance(SaveState.DONE)
        return report

    async def _roll_back(self, report: SaveReport, uploads: List[UploadedMedia]) -> None:
        report.advance(SaveState.ROLLING_BACK)
        failures = await self.cleaner.rollback(uploads)
        report.cleanup_failures = len(failures)
        report.advance(SaveState.DONE)

    async def _cleanup_after_commit(
        self,
        trip_id: str,
        replaced_cover: Optional[str],
        deleted_urls: List[str]
    ) -> List[CleanupFailure]:
        """
        Free storage for rows the update removed; the database is already consistent

        Args:
            trip_id: Updated trip
            replaced_cover: Cover value read from the database before the update,
                if the update replaced or removed it
            deleted_urls: media_url values of the day_media rows the procedure deleted
        """
        failures = []
        if deleted_urls:
            failures.extend(await self.cleaner.remove_urls(deleted_urls))

        if replaced_cover:
            path = extract_storage_path(replaced_cover, self.covers_bucket)
            if path:
                failures.extend(await self.cleaner.remove_paths(self.covers_bucket, [path]))
            else:
                logger.warning(f"Stored cover of trip {trip_id} is not in {self.covers_bucket}; leaving it in place")

        if failures:
            logger.error(f"Post-commit cleanup left {len(failures)} batch(es) behind for trip {trip_id}")
        return failures
