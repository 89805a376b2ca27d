"""Payload sent to create_trip_with_relations / update_trip_with_relations

Field aliases are the keys the database procedures read. Only URLs travel
here, never file contents.
"""
from typing import List, Optional
from pydantic import BaseModel, Field

from ..models.media import ENTITY_KINDS, MediaRelation, MediaType
from ..services.media_tree import RehydratedDay, RehydratedEntity, RehydratedTrip


class MediaPayload(BaseModel):
    """Newly uploaded media"""
    url: str
    type: MediaType


class EntityPayload(BaseModel):
    """Activity / attraction / accommodation"""
    model_config = {"populate_by_name": True}

    id: Optional[str] = None
    title: str
    description: Optional[str] = None
    uploaded_media: List[MediaPayload] = Field(default_factory=list, alias="uploadedMedia")

    @classmethod
    def from_rehydrated(cls, entity: RehydratedEntity) -> "EntityPayload":
        return cls(
            id=entity.source.id,
            title=entity.source.title,
            description=entity.source.description,
            uploaded_media=[MediaPayload(url=m.url, type=m.type) for m in entity.uploaded],
        )


class DayPayload(BaseModel):
    """One day with its entities, new media and removal markers"""
    model_config = {"populate_by_name": True}

    id: Optional[str] = None
    title: str
    description: Optional[str] = None
    order_index: int
    activities: List[EntityPayload] = Field(default_factory=list)
    attractions: List[EntityPayload] = Field(default_factory=list)
    accommodations: List[EntityPayload] = Field(default_factory=list)
    feature_media_id: Optional[str] = Field(None, alias="featureMediaId")
    feature_media_index: Optional[int] = Field(None, alias="featureMediaIndex")
    uploaded_day_media: List[MediaPayload] = Field(default_factory=list, alias="uploadedDayMedia")
    day_removed_media_ids: List[str] = Field(default_factory=list, alias="dayRemovedMediaIds")
    activity_removed_media_ids: List[str] = Field(default_factory=list, alias="activityRemovedMediaIds")
    attraction_removed_media_ids: List[str] = Field(default_factory=list, alias="attractionRemovedMediaIds")
    accommodation_removed_media_ids: List[str] = Field(default_factory=list, alias="accommodationRemovedMediaIds")

    @classmethod
    def from_rehydrated(cls, day: RehydratedDay, order_index: int) -> "DayPayload":
        source = day.source
        kept_ids = {m.id for m in source.existing_media if m.keep}
        feature_media_id = source.featured_media_id if source.featured_media_id in kept_ids else None

        removed = {
            kind: [media_id for entity in source.entities(kind) for media_id in entity.removed_media_ids()]
            for kind in ENTITY_KINDS
        }

        return cls(
            id=source.id,
            title=source.title,
            description=source.description,
            order_index=order_index,
            activities=[EntityPayload.from_rehydrated(e) for e in day.activities],
            attractions=[EntityPayload.from_rehydrated(e) for e in day.attractions],
            accommodations=[EntityPayload.from_rehydrated(e) for e in day.accommodations],
            feature_media_id=feature_media_id,
            feature_media_index=None if feature_media_id else day.featured_upload_index(),
            uploaded_day_media=[MediaPayload(url=m.url, type=m.type) for m in day.uploaded],
            day_removed_media_ids=source.removed_media_ids(),
            activity_removed_media_ids=removed[MediaRelation.ACTIVITY],
            attraction_removed_media_ids=removed[MediaRelation.ATTRACTION],
            accommodation_removed_media_ids=removed[MediaRelation.ACCOMMODATION],
        )


class TripPayload(BaseModel):
    """Whole trip as one transactional unit"""
    title: str
    description: Optional[str] = None
    cover_image: Optional[str] = None
    user_id: Optional[str] = None
    days: List[DayPayload] = Field(default_factory=list)

    @classmethod
    def from_rehydrated(cls, trip: RehydratedTrip, user_id: Optional[str] = None) -> "TripPayload":
        """
        Build the payload from a rehydrated snapshot

        Cover: a newly uploaded cover wins; otherwise the stored cover is kept
        unless it was removed. A cover whose upload failed leaves the stored
        one in place.
        """
        source = trip.source
        if trip.cover is not None:
            cover_image = trip.cover.url
        elif source.remove_cover:
            cover_image = None
        else:
            cover_image = source.cover_url

        return cls(
            title=source.title.strip(),
            description=source.description,
            cover_image=cover_image,
            user_id=user_id or source.user_id,
            days=[DayPayload.from_rehydrated(day, index) for index, day in enumerate(trip.days)],
        )

    def to_wire(self) -> dict:
        """JSON-ready dict with the procedure's key names"""
        return self.model_dump(mode="json", by_alias=True)
