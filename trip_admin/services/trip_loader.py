"""
Shape stored trips for reading

Each day's media rows arrive as one flat list. Every row is resolved once
(plain URL or legacy JSON envelope) and attached to exactly one owner.
"""
import logging
from typing import Any, Dict, List, Optional

from ..models.media import EnvelopedMediaRef, MediaRelation, MediaType, parse_stored_media
from ..schemas.response import DayView, EntityView, MediaView, TripView

logger = logging.getLogger(__name__)

# Column holding the owner id for each entity relation
OWNER_COLUMNS = {
    MediaRelation.ACTIVITY: "activity_id",
    MediaRelation.ATTRACTION: "attraction_id",
    MediaRelation.ACCOMMODATION: "accommodation_id",
}


def resolve_media_row(row: Dict[str, Any]) -> Optional[MediaView]:
    """Turn a day_media row into a MediaView; None if nothing usable is stored"""
    ref = parse_stored_media(row.get("media_url"))
    if ref is None:
        return None

    media_type = MediaType.parse(row.get("media_type"))
    legacy = isinstance(ref, EnvelopedMediaRef)
    if legacy and ref.type is not None:
        media_type = ref.type

    try:
        related_to = MediaRelation(row.get("related_to") or MediaRelation.DAY.value)
    except ValueError:
        related_to = MediaRelation.DAY

    # Older rows tagged activity media only inside the envelope
    if legacy and ref.activity_id and related_to == MediaRelation.DAY:
        related_to = MediaRelation.ACTIVITY

    return MediaView(
        id=str(row.get("id")),
        url=ref.url,
        media_type=media_type,
        related_to=related_to,
        legacy=legacy,
    )


def _owner_id(row: Dict[str, Any], relation: MediaRelation) -> Optional[str]:
    owner = row.get(OWNER_COLUMNS[relation])
    if owner is None and relation == MediaRelation.ACTIVITY:
        ref = parse_stored_media(row.get("media_url"))
        if isinstance(ref, EnvelopedMediaRef):
            owner = ref.activity_id
    return str(owner) if owner is not None else None


def build_day_view(day: Dict[str, Any]) -> DayView:
    """
    Group a day's media rows onto the day and its entities

    Rows pointing at an entity that is not on this day are logged, left out
    of the tree and listed in orphaned_media_ids.
    """
    day_media: List[MediaView] = []
    by_owner: Dict[tuple, List[MediaView]] = {}

    for row in day.get("day_media") or []:
        media = resolve_media_row(row)
        if media is None:
            logger.warning(f"Skipping day_media row {row.get('id')} with no usable URL")
            continue
        if media.related_to == MediaRelation.DAY:
            day_media.append(media)
            continue
        owner = _owner_id(row, media.related_to)
        by_owner.setdefault((media.related_to, owner), []).append(media)

    entities: Dict[MediaRelation, List[EntityView]] = {}
    claimed = set()
    for relation, column in (
        (MediaRelation.ACTIVITY, "activities"),
        (MediaRelation.ATTRACTION, "attractions"),
        (MediaRelation.ACCOMMODATION, "accommodations"),
    ):
        views = []
        for entity in day.get(column) or []:
            key = (relation, str(entity.get("id")))
            claimed.add(key)
            views.append(EntityView(
                id=str(entity.get("id")),
                title=entity.get("title") or "",
                description=entity.get("description"),
                media=by_owner.get(key, []),
            ))
        entities[relation] = views

    orphaned_ids = []
    for key, orphans in by_owner.items():
        if key not in claimed:
            orphaned_ids.extend(m.id for m in orphans)
            logger.warning(
                f"Day {day.get('id')}: {len(orphans)} {key[0].value} media row(s) "
                f"reference unknown owner {key[1]}"
            )

    return DayView(
        id=str(day.get("id")),
        title=day.get("title") or "",
        description=day.get("description"),
        order_index=day.get("order_index") or 0,
        feature_media_id=day.get("feature_media_id"),
        media=day_media,
        activities=entities[MediaRelation.ACTIVITY],
        attractions=entities[MediaRelation.ATTRACTION],
        accommodations=entities[MediaRelation.ACCOMMODATION],
        orphaned_media_ids=orphaned_ids,
    )


def build_trip_view(trip: Dict[str, Any]) -> TripView:
    """Trip row (with nested days) to TripView; days ordered by order_index"""
    cover = parse_stored_media(trip.get("cover_image"))
    days = sorted(
        (build_day_view(day) for day in trip.get("days") or []),
        key=lambda d: d.order_index
    )
    created_at = trip.get("created_at")

    return TripView(
        id=str(trip.get("id")),
        title=trip.get("title") or "",
        description=trip.get("description"),
        cover_image=cover.url if cover else None,
        user_id=trip.get("user_id"),
        created_at=str(created_at) if created_at else None,
        days=days,
    )


def build_trip_views(trips: List[Dict[str, Any]]) -> List[TripView]:
    return [build_trip_view(trip) for trip in trips]
