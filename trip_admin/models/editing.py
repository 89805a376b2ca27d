"""Copy-on-write edits of the trip tree

Every function takes a TripDraft and returns a new one; nothing is mutated in
place. Save requests are applied to an empty draft as a sequence of these
edits. Featured-media bookkeeping lives here so that a day's featured
reference never points at an item that will not survive the save.
"""
from typing import Iterable, Optional

from .media import LocalFile, MediaRelation
from .trip import Day, Entity, ENTITY_FIELDS, TripDraft


def _check_index(index: int, size: int, what: str) -> None:
    if index < 0 or index >= size:
        raise IndexError(f"{what} index {index} out of range (size {size})")


def _replace_day(trip: TripDraft, day_index: int, day: Day) -> TripDraft:
    _check_index(day_index, len(trip.days), "Day")
    days = list(trip.days)
    days[day_index] = day
    return trip.model_copy(update={"days": tuple(days)})


def _replace_entity(
    trip: TripDraft,
    day_index: int,
    kind: MediaRelation,
    entity_index: int,
    entity: Entity
) -> TripDraft:
    _check_index(day_index, len(trip.days), "Day")
    day = trip.days[day_index]
    entities = list(day.entities(kind))
    _check_index(entity_index, len(entities), f"{kind.value.capitalize()}")
    entities[entity_index] = entity
    return _replace_day(trip, day_index, day.model_copy(update={ENTITY_FIELDS[kind]: tuple(entities)}))


def normalize_featured(day: Day) -> Day:
    """
    Drop a featured reference that no longer resolves

    A featured id must name a kept existing media item of the day, and a
    featured index must fall inside the day's new media. Only one of the two
    may be set; the persisted id wins.
    """
    featured_id = day.featured_media_id
    if featured_id is not None:
        kept_ids = {m.id for m in day.existing_media if m.keep}
        if featured_id not in kept_ids:
            featured_id = None

    featured_index = day.featured_media_index
    if featured_index is not None and featured_index >= len(day.new_media):
        featured_index = None
    if featured_id is not None:
        featured_index = None

    if featured_id == day.featured_media_id and featured_index == day.featured_media_index:
        return day
    return day.model_copy(update={"featured_media_id": featured_id, "featured_media_index": featured_index})


def add_day(trip: TripDraft, day: Optional[Day] = None) -> TripDraft:
    return trip.model_copy(update={"days": trip.days + (day or Day(),)})


def add_entity(
    trip: TripDraft,
    day_index: int,
    kind: MediaRelation,
    entity: Optional[Entity] = None
) -> TripDraft:
    _check_index(day_index, len(trip.days), "Day")
    day = trip.days[day_index]
    entity = entity or Entity(kind=kind)
    if entity.kind != kind:
        raise ValueError(f"Cannot add a {entity.kind.value} as a {kind.value}")
    entities = day.entities(kind) + (entity,)
    return _replace_day(trip, day_index, day.model_copy(update={ENTITY_FIELDS[kind]: entities}))


def attach_day_media(trip: TripDraft, day_index: int, files: Iterable[LocalFile]) -> TripDraft:
    _check_index(day_index, len(trip.days), "Day")
    day = trip.days[day_index]
    return _replace_day(trip, day_index, day.model_copy(update={"new_media": day.new_media + tuple(files)}))


def attach_entity_media(
    trip: TripDraft,
    day_index: int,
    kind: MediaRelation,
    entity_index: int,
    files: Iterable[LocalFile]
) -> TripDraft:
    _check_index(day_index, len(trip.days), "Day")
    entities = trip.days[day_index].entities(kind)
    _check_index(entity_index, len(entities), kind.value.capitalize())
    entity = entities[entity_index]
    updated = entity.model_copy(update={"new_media": entity.new_media + tuple(files)})
    return _replace_entity(trip, day_index, kind, entity_index, updated)


def _without(media: tuple, media_id: str) -> tuple:
    found = False
    result = []
    for item in media:
        if item.id == media_id:
            found = True
            item = item.model_copy(update={"keep": False})
        result.append(item)
    if not found:
        raise KeyError(media_id)
    return tuple(result)


def remove_existing_media(
    trip: TripDraft,
    day_index: int,
    media_id: str,
    kind: Optional[MediaRelation] = None,
    entity_index: Optional[int] = None
) -> TripDraft:
    """
    Flag a persisted media item for deletion (keep=False)

    Args:
        trip: Current tree
        day_index: Day owning the media
        media_id: Persisted media id
        kind: Entity kind when the media belongs to an entity, None for day media
        entity_index: Entity position when kind is given

    Returns:
        New tree; the day's featured reference is cleared if it named this item

    Raises:
        IndexError: If a position is out of range
        KeyError: If the media id is not attached to the given owner
    """
    _check_index(day_index, len(trip.days), "Day")
    if kind is None or kind == MediaRelation.DAY:
        day = trip.days[day_index]
        day = day.model_copy(update={"existing_media": _without(day.existing_media, media_id)})
        return _replace_day(trip, day_index, normalize_featured(day))

    entities = trip.days[day_index].entities(kind)
    _check_index(entity_index if entity_index is not None else -1, len(entities), kind.value.capitalize())
    entity = entities[entity_index]
    entity = entity.model_copy(update={"existing_media": _without(entity.existing_media, media_id)})
    trip = _replace_entity(trip, day_index, kind, entity_index, entity)
    return _replace_day(trip, day_index, normalize_featured(trip.days[day_index]))


def set_featured_existing(trip: TripDraft, day_index: int, media_id: str) -> TripDraft:
    _check_index(day_index, len(trip.days), "Day")
    day = trip.days[day_index]
    if not any(m.id == media_id and m.keep for m in day.existing_media):
        raise KeyError(media_id)
    day = day.model_copy(update={"featured_media_id": media_id, "featured_media_index": None})
    return _replace_day(trip, day_index, day)


def set_featured_new(trip: TripDraft, day_index: int, file_index: int) -> TripDraft:
    _check_index(day_index, len(trip.days), "Day")
    day = trip.days[day_index]
    _check_index(file_index, len(day.new_media), "Media")
    day = day.model_copy(update={"featured_media_id": None, "featured_media_index": file_index})
    return _replace_day(trip, day_index, day)
