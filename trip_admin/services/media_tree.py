"""
Flatten a trip tree into one upload batch, and put the results back.

Uploaded files are matched to their slot only by a position tag, so flatten
and rehydrate both walk the tree through iter_media_slots(): same order, same
tag derivation.

Traversal order: cover, then for each day by position its day media, then
activities, attractions, accommodations (entities by position, media by
position inside their owner).

Tags:
    cover
    day{d}-day-media-{m}
    day{d}-{activity|attraction|accommodation}-{e}-media-{m}
"""
import logging
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel

from ..config import settings
from ..models.media import ENTITY_KINDS, LocalFile, MediaRelation, UploadedMedia
from ..models.trip import Day, Entity, TripDraft
from ..storage.batch import UploadOutcome, UploadRequest

logger = logging.getLogger(__name__)

COVER_TAG = "cover"

FOLDERS = {
    MediaRelation.DAY: "days",
    MediaRelation.ACTIVITY: "activities",
    MediaRelation.ATTRACTION: "attractions",
    MediaRelation.ACCOMMODATION: "accommodations",
}

# (day index, relation, entity index); entity index is None for day media,
# the whole key is None for the cover
OwnerKey = Optional[Tuple[int, MediaRelation, Optional[int]]]


def day_media_tag(day_index: int, media_index: int) -> str:
    return f"day{day_index}-day-media-{media_index}"


def entity_media_tag(day_index: int, kind: MediaRelation, entity_index: int, media_index: int) -> str:
    return f"day{day_index}-{kind.value}-{entity_index}-media-{media_index}"


class MediaSlot(BaseModel):
    """A new file at a fixed position in the tree"""
    model_config = {"frozen": True}

    tag: str
    owner: OwnerKey
    media_index: int
    file: LocalFile
    bucket: str
    folder: Optional[str] = None


def iter_media_slots(trip: TripDraft) -> Iterator[MediaSlot]:
    """Yield every new-media slot of the tree in traversal order"""
    if trip.new_cover is not None:
        yield MediaSlot(
            tag=COVER_TAG,
            owner=None,
            media_index=0,
            file=trip.new_cover,
            bucket=settings.trip_covers_bucket,
        )

    for day_index, day in enumerate(trip.days):
        for media_index, file in enumerate(day.new_media):
            yield MediaSlot(
                tag=day_media_tag(day_index, media_index),
                owner=(day_index, MediaRelation.DAY, None),
                media_index=media_index,
                file=file,
                bucket=settings.day_media_bucket,
                folder=FOLDERS[MediaRelation.DAY],
            )

        for kind in ENTITY_KINDS:
            for entity_index, entity in enumerate(day.entities(kind)):
                for media_index, file in enumerate(entity.new_media):
                    yield MediaSlot(
                        tag=entity_media_tag(day_index, kind, entity_index, media_index),
                        owner=(day_index, kind, entity_index),
                        media_index=media_index,
                        file=file,
                        bucket=settings.day_media_bucket,
                        folder=FOLDERS[kind],
                    )


def flatten(trip: TripDraft) -> List[UploadRequest]:
    """
    Turn every new file in the tree into one upload request

    Args:
        trip: Frozen trip snapshot

    Returns:
        Upload requests in traversal order, each tagged with its slot

    Raises:
        ValueError: If two slots produce the same tag
    """
    requests = [
        UploadRequest(tag=slot.tag, file=slot.file, bucket=slot.bucket, folder=slot.folder)
        for slot in iter_media_slots(trip)
    ]
    tags = [request.tag for request in requests]
    if len(set(tags)) != len(tags):
        raise ValueError("Media slot tags are not unique")
    return requests


class RehydratedEntity(BaseModel):
    """Entity plus the URLs its new files were stored under"""
    model_config = {"frozen": True}

    source: Entity
    uploaded: Tuple[UploadedMedia, ...] = ()


class RehydratedDay(BaseModel):
    """
    Day plus uploaded media for it and its entities

    uploaded_positions[i] is the index in source.new_media that uploaded[i]
    came from; failed slots leave gaps.
    """
    model_config = {"frozen": True}

    source: Day
    uploaded: Tuple[UploadedMedia, ...] = ()
    uploaded_positions: Tuple[int, ...] = ()
    activities: Tuple[RehydratedEntity, ...] = ()
    attractions: Tuple[RehydratedEntity, ...] = ()
    accommodations: Tuple[RehydratedEntity, ...] = ()

    def entities(self, kind: MediaRelation) -> Tuple[RehydratedEntity, ...]:
        return getattr(self, {
            MediaRelation.ACTIVITY: "activities",
            MediaRelation.ATTRACTION: "attractions",
            MediaRelation.ACCOMMODATION: "accommodations",
        }[kind])

    def featured_upload_index(self) -> Optional[int]:
        """Featured index remapped onto the uploaded list; None if that upload failed"""
        featured = self.source.featured_media_index
        if featured is None:
            return None
        try:
            return self.uploaded_positions.index(featured)
        except ValueError:
            return None


class RehydratedTrip(BaseModel):
    """Trip snapshot with every resolvable new-media slot turned into a URL"""
    model_config = {"frozen": True}

    source: TripDraft
    cover: Optional[UploadedMedia] = None
    days: Tuple[RehydratedDay, ...] = ()
    missing_tags: Tuple[str, ...] = ()

    def uploaded_media(self) -> List[UploadedMedia]:
        """Every URL attached anywhere in the tree"""
        media = [self.cover] if self.cover else []
        for day in self.days:
            media.extend(day.uploaded)
            for kind in ENTITY_KINDS:
                for entity in day.entities(kind):
                    media.extend(entity.uploaded)
        return media


def rehydrate(
    trip: TripDraft,
    requests: List[UploadRequest],
    outcomes: List[UploadOutcome]
) -> RehydratedTrip:
    """
    Attach upload results back to the slots they came from

    Args:
        trip: The same snapshot that was flattened
        requests: Output of flatten(trip)
        outcomes: Coordinator results, outcomes[i] for requests[i]

    Returns:
        RehydratedTrip; slots whose upload failed are left out and listed in
        missing_tags

    Raises:
        ValueError: If results do not line up with the requests
    """
    if len(requests) != len(outcomes):
        raise ValueError(f"Expected {len(requests)} upload results, got {len(outcomes)}")

    resolved: Dict[str, UploadedMedia] = {}
    for request, outcome in zip(requests, outcomes):
        if outcome.tag != request.tag:
            raise ValueError(f"Upload result for {outcome.tag} returned in the position of {request.tag}")
        if outcome.ok:
            resolved[request.tag] = outcome.media

    attached: Dict[OwnerKey, List[Tuple[int, UploadedMedia]]] = {}
    missing: List[str] = []
    for slot in iter_media_slots(trip):
        media = resolved.get(slot.tag)
        if media is None:
            missing.append(slot.tag)
            continue
        attached.setdefault(slot.owner, []).append((slot.media_index, media))

    if missing:
        logger.warning(f"{len(missing)} media slot(s) have no uploaded file: {', '.join(missing)}")

    cover = attached.get(None, [(0, None)])[0][1]

    days = []
    for day_index, day in enumerate(trip.days):
        day_uploads = attached.get((day_index, MediaRelation.DAY, None), [])
        entities = {}
        for kind in ENTITY_KINDS:
            entities[kind] = tuple(
                RehydratedEntity(
                    source=entity,
                    uploaded=tuple(m for _, m in attached.get((day_index, kind, entity_index), [])),
                )
                for entity_index, entity in enumerate(day.entities(kind))
            )
        days.append(RehydratedDay(
            source=day,
            uploaded=tuple(m for _, m in day_uploads),
            uploaded_positions=tuple(i for i, _ in day_uploads),
            activities=entities[MediaRelation.ACTIVITY],
            attractions=entities[MediaRelation.ATTRACTION],
            accommodations=entities[MediaRelation.ACCOMMODATION],
        ))

    return RehydratedTrip(source=trip, cover=cover, days=tuple(days), missing_tags=tuple(missing))
