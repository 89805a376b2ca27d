"""Request schemas for API endpoints

A save request is a JSON tree. New files travel as multipart parts and the
tree names them by form field, so the tree itself never holds file bytes.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from ..models import editing
from ..models.media import ExistingMedia, LocalFile, MediaRelation, MediaType
from ..models.trip import Day, Entity, TripDraft
from ..validators.trip_validator import ValidationError


class ExistingMediaIn(BaseModel):
    """Persisted media as the editor last saw it"""
    model_config = {"populate_by_name": True}

    id: str
    url: str = Field("", alias="media_url")
    media_type: Optional[str] = None
    keep: bool = True

    def to_model(self) -> ExistingMedia:
        """As attached before any removal is applied"""
        return ExistingMedia(
            id=self.id,
            url=self.url,
            media_type=MediaType.parse(self.media_type),
        )


def _pick_files(field_names: List[str], files: Dict[str, LocalFile]) -> tuple:
    picked = []
    for name in field_names:
        if name not in files:
            raise ValidationError(
                f"Payload references file '{name}' that was not uploaded",
                {"field": name}
            )
        picked.append(files[name])
    return tuple(picked)


class EntityIn(BaseModel):
    """Activity, attraction or accommodation"""
    model_config = {"populate_by_name": True}

    id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    existing_media: List[ExistingMediaIn] = Field(default_factory=list, alias="existingMedia")
    new_media: List[str] = Field(
        default_factory=list,
        alias="newMedia",
        description="Form field names of files to upload for this entity"
    )

    def apply(
        self,
        trip: TripDraft,
        day_index: int,
        kind: MediaRelation,
        entity_index: int,
        files: Dict[str, LocalFile]
    ) -> TripDraft:
        entity = Entity(
            kind=kind,
            id=self.id,
            title=self.title,
            description=self.description,
            existing_media=tuple(m.to_model() for m in self.existing_media),
        )
        trip = editing.add_entity(trip, day_index, kind, entity)
        trip = editing.attach_entity_media(trip, day_index, kind, entity_index, _pick_files(self.new_media, files))
        for media in self.existing_media:
            if not media.keep:
                trip = editing.remove_existing_media(trip, day_index, media.id, kind=kind, entity_index=entity_index)
        return trip


class DayIn(BaseModel):
    """One day of the tree"""
    model_config = {"populate_by_name": True}

    id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    activities: List[EntityIn] = Field(default_factory=list)
    attractions: List[EntityIn] = Field(default_factory=list)
    accommodations: List[EntityIn] = Field(default_factory=list)
    existing_media: List[ExistingMediaIn] = Field(default_factory=list, alias="existingMedia")
    new_media: List[str] = Field(default_factory=list, alias="newMedia")
    featured_media_id: Optional[str] = Field(None, alias="featureMediaId")
    featured_media_index: Optional[int] = Field(None, ge=0, alias="featureMediaIndex")

    def apply(self, trip: TripDraft, day_index: int, files: Dict[str, LocalFile]) -> TripDraft:
        """
        Append this day to the draft as a sequence of edits

        A featured id that does not name a kept media item, or a featured
        index past the day's new files, is dropped. The id wins over the index.
        """
        day = Day(
            id=self.id,
            title=self.title,
            description=self.description,
            existing_media=tuple(m.to_model() for m in self.existing_media),
        )
        trip = editing.add_day(trip, day)
        trip = editing.attach_day_media(trip, day_index, _pick_files(self.new_media, files))

        for kind, entities in (
            (MediaRelation.ACTIVITY, self.activities),
            (MediaRelation.ATTRACTION, self.attractions),
            (MediaRelation.ACCOMMODATION, self.accommodations),
        ):
            for entity_index, entity in enumerate(entities):
                trip = entity.apply(trip, day_index, kind, entity_index, files)

        for media in self.existing_media:
            if not media.keep:
                trip = editing.remove_existing_media(trip, day_index, media.id)

        kept_ids = {m.id for m in self.existing_media if m.keep}
        if self.featured_media_id in kept_ids:
            trip = editing.set_featured_existing(trip, day_index, self.featured_media_id)
        elif self.featured_media_index is not None and self.featured_media_index < len(self.new_media):
            trip = editing.set_featured_new(trip, day_index, self.featured_media_index)
        return trip


class TripSaveRequest(BaseModel):
    """
    Request body for POST /trips and PUT /trips/{trip_id}

    Sent as JSON, or as the `payload` part of a multipart form whose other
    parts are the files named in the tree.
    """
    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "title": "Lisbon long weekend",
                "description": "Three days on the coast",
                "coverFile": "cover",
                "days": [
                    {
                        "title": "Arrival",
                        "newMedia": ["day0-photo0", "day0-photo1"],
                        "featureMediaIndex": 0,
                        "activities": [{"title": "Tram 28", "newMedia": ["day0-tram"]}]
                    }
                ]
            }
        }
    }

    title: str = Field(..., description="Trip title")
    description: Optional[str] = None
    cover_image: Optional[str] = Field(None, description="Currently stored cover URL")
    cover_file: Optional[str] = Field(None, alias="coverFile", description="Form field of a new cover")
    remove_cover: bool = Field(False, alias="removeCover")
    days: List[DayIn] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v):
        """Validate title is not empty"""
        if not v or not v.strip():
            raise ValueError("Trip title is required")
        return v

    def build_draft(
        self,
        files: Optional[Dict[str, LocalFile]] = None,
        user_id: Optional[str] = None,
        trip_id: Optional[str] = None
    ) -> TripDraft:
        """
        Freeze the request into a trip snapshot

        Args:
            files: Uploaded parts keyed by form field name
            user_id: Caller identity
            trip_id: Trip being edited, None when creating

        Raises:
            ValidationError: If the tree references a file that was not sent
        """
        files = files or {}
        new_cover = None
        if self.cover_file:
            new_cover = _pick_files([self.cover_file], files)[0]

        trip = TripDraft(
            id=trip_id,
            title=self.title,
            description=self.description,
            user_id=user_id,
            cover_url=self.cover_image,
            new_cover=new_cover,
            remove_cover=self.remove_cover,
        )
        for day_index, day in enumerate(self.days):
            trip = day.apply(trip, day_index, files)
        return trip

