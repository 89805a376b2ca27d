"""Tests for turning a save request into a trip snapshot"""
import pytest

from trip_admin.models.media import MediaRelation
from trip_admin.schemas.request import TripSaveRequest
from trip_admin.validators.trip_validator import ValidationError

from .fakes import make_file


def build(body, files=None, trip_id=None):
    return TripSaveRequest.model_validate(body).build_draft(files or {}, user_id="user-1", trip_id=trip_id)


class TestBuildDraft:
    def test_tree_shape(self):
        files = {"p0": make_file("p0.jpg"), "p1": make_file("p1.jpg"), "hike": make_file("hike.mp4", "video/mp4")}
        trip = build({
            "title": "Trip",
            "days": [
                {"title": "One", "newMedia": ["p0", "p1"], "activities": [{"title": "Hike", "newMedia": ["hike"]}]},
                {"title": "Two", "accommodations": [{"title": "Hostel"}]},
            ],
        }, files, trip_id="trip-1")

        assert trip.id == "trip-1"
        assert trip.user_id == "user-1"
        assert [f.name for f in trip.days[0].new_media] == ["p0.jpg", "p1.jpg"]
        assert trip.days[0].activities[0].kind == MediaRelation.ACTIVITY
        assert trip.days[0].activities[0].new_media[0].name == "hike.mp4"
        assert trip.days[1].accommodations[0].title == "Hostel"

    def test_removed_media_flagged(self):
        trip = build({
            "title": "Trip",
            "days": [{
                "existingMedia": [{"id": "m1", "media_url": "u1"}, {"id": "m2", "media_url": "u2", "keep": False}],
                "activities": [{"existingMedia": [{"id": "a1", "media_url": "ua", "keep": False}]}],
            }],
        })

        assert trip.days[0].removed_media_ids() == ["m2"]
        assert trip.days[0].activities[0].removed_media_ids() == ["a1"]

    def test_featured_removed_media_dropped(self):
        trip = build({
            "title": "Trip",
            "days": [{
                "existingMedia": [{"id": "m1", "media_url": "u1", "keep": False}],
                "featureMediaId": "m1",
            }],
        })

        assert trip.days[0].featured_media_id is None

    def test_featured_id_wins_over_index(self):
        trip = build({
            "title": "Trip",
            "days": [{
                "existingMedia": [{"id": "m1", "media_url": "u1"}],
                "newMedia": ["p0"],
                "featureMediaId": "m1",
                "featureMediaIndex": 0,
            }],
        }, {"p0": make_file()})

        assert trip.days[0].featured_media_id == "m1"
        assert trip.days[0].featured_media_index is None

    def test_featured_index_past_new_media_dropped(self):
        trip = build({"title": "Trip", "days": [{"newMedia": ["p0"], "featureMediaIndex": 3}]}, {"p0": make_file()})

        assert trip.days[0].featured_media_index is None

    def test_unknown_file_field(self):
        with pytest.raises(ValidationError) as exc_info:
            build({"title": "Trip", "days": [{"newMedia": ["missing"]}]})
        assert exc_info.value.details == {"field": "missing"}

    def test_cover_file(self):
        trip = build({"title": "Trip", "coverFile": "cover"}, {"cover": make_file("cover.png", "image/png")})

        assert trip.new_cover.name == "cover.png"
