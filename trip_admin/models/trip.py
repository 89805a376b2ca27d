"""Trip tree: trip -> days -> activities / attractions / accommodations

All models are frozen. Edits go through models/editing.py and always return a
new tree, so a tree handed to the save pipeline cannot change underneath it.
"""
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field, field_validator

from .media import ENTITY_KINDS, ExistingMedia, LocalFile, MediaRelation


class Entity(BaseModel):
    """Activity, attraction or accommodation inside a day"""
    model_config = {"frozen": True}

    kind: MediaRelation
    id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    existing_media: Tuple[ExistingMedia, ...] = ()
    new_media: Tuple[LocalFile, ...] = ()

    @field_validator("kind")
    @classmethod
    def kind_is_entity(cls, v):
        """Day media is not an entity"""
        if v not in ENTITY_KINDS:
            raise ValueError(f"Entity kind must be one of {[k.value for k in ENTITY_KINDS]}")
        return v

    def removed_media_ids(self) -> List[str]:
        return [m.id for m in self.existing_media if not m.keep]


class Day(BaseModel):
    """One ordered day of a trip"""
    model_config = {"frozen": True}

    id: Optional[str] = None
    title: str = ""
    description: Optional[str] = None
    activities: Tuple[Entity, ...] = ()
    attractions: Tuple[Entity, ...] = ()
    accommodations: Tuple[Entity, ...] = ()
    existing_media: Tuple[ExistingMedia, ...] = ()
    new_media: Tuple[LocalFile, ...] = ()
    featured_media_id: Optional[str] = Field(
        None, description="Featured item among already persisted media"
    )
    featured_media_index: Optional[int] = Field(
        None, ge=0, description="Featured item among this day's new day-level media"
    )

    def entities(self, kind: MediaRelation) -> Tuple[Entity, ...]:
        """Entities of one kind, in position order"""
        if kind == MediaRelation.ACTIVITY:
            return self.activities
        if kind == MediaRelation.ATTRACTION:
            return self.attractions
        if kind == MediaRelation.ACCOMMODATION:
            return self.accommodations
        raise ValueError(f"Days have no entities of kind '{kind}'")

    def removed_media_ids(self) -> List[str]:
        return [m.id for m in self.existing_media if not m.keep]


# Field name on Day for each entity kind
ENTITY_FIELDS = {
    MediaRelation.ACTIVITY: "activities",
    MediaRelation.ATTRACTION: "attractions",
    MediaRelation.ACCOMMODATION: "accommodations",
}


class TripDraft(BaseModel):
    """In-memory trip as submitted for a save, including files still to upload"""
    model_config = {"frozen": True}

    id: Optional[str] = Field(None, description="Set when editing an existing trip")
    title: str = ""
    description: Optional[str] = None
    user_id: Optional[str] = Field(None, description="Creator identity")
    cover_url: Optional[str] = Field(None, description="Currently stored cover image")
    new_cover: Optional[LocalFile] = None
    remove_cover: bool = False
    days: Tuple[Day, ...] = ()

    def count_new_media(self) -> int:
        """Number of files that a save of this tree would upload"""
        total = 1 if self.new_cover is not None else 0
        for day in self.days:
            total += len(day.new_media)
            for kind in ENTITY_KINDS:
                total += sum(len(entity.new_media) for entity in day.entities(kind))
        return total
