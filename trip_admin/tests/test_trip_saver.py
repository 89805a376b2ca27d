"""Tests for the trip save pipeline"""
import pytest

from trip_admin.models.media import ExistingMedia, MediaRelation
from trip_admin.models.trip import Day, Entity, TripDraft
from trip_admin.services.trip_saver import SaveState, TripSaver
from trip_admin.storage import (
    AuthenticationError,
    BatchUploadCoordinator,
    BucketRegistry,
    FileUploader,
    IdentityCache,
    StorageCleaner,
)
from trip_admin.utils.database import PersistenceFailure
from trip_admin.validators.trip_validator import ValidationError

from .fakes import VALID_TOKEN, FakeStorageGateway, FakeTripRepository, make_file, public_url, resolve_identity

OLD_URL = public_url("day-media", "days/old-photo.jpg")


@pytest.fixture
def saver(coordinator, repository, cleaner):
    return TripSaver(coordinator, repository, cleaner)


def worked_example_trip():
    """Day 0: three new images and one existing image marked for removal; day 1 empty"""
    return TripDraft(
        id="trip-1",
        title="Coast trip",
        days=(
            Day(
                id="day-a",
                title="Arrival",
                existing_media=(ExistingMedia(id="m-old", url=OLD_URL, keep=False),),
                new_media=(make_file("one.jpg"), make_file("two.jpg"), make_file("three.jpg")),
            ),
            Day(id="day-b", title="Rest"),
        ),
    )


class TestWorkedExample:
    """Edit a trip: three uploads, one removal, post-commit delete"""

    @pytest.mark.asyncio
    async def test_update(self, coordinator, cleaner, direct_gateway, server_gateway):
        repository = FakeTripRepository(deleted_media_urls=[OLD_URL])
        saver = TripSaver(coordinator, repository, cleaner)

        report = await saver.save(worked_example_trip(), VALID_TOKEN, editing=True)

        assert report.trip_id == "trip-1"
        assert report.uploaded == 3
        assert len(direct_gateway.upload_calls) == 3

        trip_id, payload = repository.updated[0]
        assert trip_id == "trip-1"
        day0, day1 = payload["days"]
        assert [m["url"].rsplit("-", 1)[1] for m in day0["uploadedDayMedia"]] == ["one.jpg", "two.jpg", "three.jpg"]
        assert all(m["type"] == "image" for m in day0["uploadedDayMedia"])
        assert day0["dayRemovedMediaIds"] == ["m-old"]
        assert day0["order_index"] == 0
        assert day1["id"] == "day-b"
        assert day1["uploadedDayMedia"] == []
        assert day1["dayRemovedMediaIds"] == []
        assert day1["order_index"] == 1

        assert server_gateway.remove_calls == [("day-media", ["days/old-photo.jpg"])]
        assert report.deleted_media_urls == [OLD_URL]
        assert report.states[-2:] == [SaveState.COMMITTED, SaveState.DONE]

    @pytest.mark.asyncio
    async def test_upload_tags(self, repository, cleaner):
        seen = []

        class RecordingCoordinator:
            async def upload_all(self, requests, access_token):
                seen.extend(r.tag for r in requests)
                return await inner.upload_all(requests, access_token)

        inner = BatchUploadCoordinator(
            FileUploader(FakeStorageGateway(), buckets=BucketRegistry()),
            resolve_identity,
            identities=IdentityCache(),
        )
        saver = TripSaver(RecordingCoordinator(), repository, cleaner)

        await saver.save(worked_example_trip(), VALID_TOKEN, editing=True)

        assert seen == ["day0-day-media-0", "day0-day-media-1", "day0-day-media-2"]


class TestCreate:
    @pytest.mark.asyncio
    async def test_no_media_skips_upload_stages(self, saver, repository, direct_gateway):
        trip = TripDraft(title="  Weekend  ", user_id="user-1", days=(Day(title="Only day"),))

        report = await saver.save(trip, None)

        assert report.trip_id == "trip-new"
        assert report.states == [
            SaveState.IDLE,
            SaveState.FLATTENING,
            SaveState.PERSISTING,
            SaveState.COMMITTED,
            SaveState.DONE,
        ]
        assert direct_gateway.upload_calls == []
        payload = repository.created[0]
        assert payload["title"] == "Weekend"
        assert payload["user_id"] == "user-1"
        assert payload["cover_image"] is None

    @pytest.mark.asyncio
    async def test_payload_carries_urls_only(self, saver, repository):
        trip = TripDraft(
            title="Trip",
            new_cover=make_file("cover.png", "image/png"),
            days=(Day(
                title="D",
                new_media=(make_file("a.jpg"), make_file("b.mp4", "video/mp4")),
                featured_media_index=1,
                activities=(Entity(kind=MediaRelation.ACTIVITY, title="Surf", new_media=(make_file("s.jpg"),)),),
            ),),
        )

        report = await saver.save(trip, VALID_TOKEN)

        assert report.uploaded == 4
        payload = repository.created[0]
        assert payload["cover_image"].startswith(public_url("trip-covers", ""))
        day = payload["days"][0]
        assert [m["type"] for m in day["uploadedDayMedia"]] == ["image", "video"]
        assert day["featureMediaIndex"] == 1
        assert day["featureMediaId"] is None
        assert len(day["activities"][0]["uploadedMedia"]) == 1
        assert "data" not in str(payload)

    @pytest.mark.asyncio
    async def test_partial_upload_failure_still_persists(self, repository, cleaner):
        broken = lambda path: path.endswith("-b.jpg")
        uploader = FileUploader(
            FakeStorageGateway(fail_upload=broken),
            fallback=FakeStorageGateway(label="server", fail_upload=broken),
            buckets=BucketRegistry(),
        )
        coordinator = BatchUploadCoordinator(uploader, resolve_identity, identities=IdentityCache())
        saver = TripSaver(coordinator, repository, cleaner)
        trip = TripDraft(
            title="Trip",
            days=(Day(new_media=(make_file("a.jpg"), make_file("b.jpg"), make_file("c.jpg"))),),
        )

        report = await saver.save(trip, VALID_TOKEN)

        assert report.trip_id == "trip-new"
        assert report.missing_tags == ["day0-day-media-1"]
        assert len(repository.created[0]["days"][0]["uploadedDayMedia"]) == 2


class TestRollback:
    """A failed procedure call deletes every upload of the save"""

    @pytest.mark.asyncio
    async def test_one_delete_per_successful_upload(self, cleaner, server_gateway):
        broken = lambda path: path.endswith("-bad.jpg")
        uploader = FileUploader(
            FakeStorageGateway(fail_upload=broken),
            fallback=FakeStorageGateway(label="server-upload", fail_upload=broken),
            buckets=BucketRegistry(),
        )
        coordinator = BatchUploadCoordinator(uploader, resolve_identity, identities=IdentityCache())
        repository = FakeTripRepository(fail_procedure=True)
        saver = TripSaver(coordinator, repository, cleaner)
        trip = TripDraft(
            title="Trip",
            new_cover=make_file("cover.png", "image/png"),
            days=(Day(
                new_media=(make_file("a.jpg"), make_file("bad.jpg")),
                attractions=(Entity(kind=MediaRelation.ATTRACTION, new_media=(make_file("c.jpg"),)),),
            ),),
        )

        with pytest.raises(PersistenceFailure) as exc_info:
            await saver.save(trip, VALID_TOKEN)

        assert len(server_gateway.remove_calls) == 3
        assert all(len(paths) == 1 for _, paths in server_gateway.remove_calls)
        buckets = sorted(bucket for bucket, _ in server_gateway.remove_calls)
        assert buckets == ["day-media", "day-media", "trip-covers"]

        report = exc_info.value.report
        assert report.trip_id is None
        assert SaveState.COMMITTED not in report.states
        assert report.states[-2:] == [SaveState.ROLLING_BACK, SaveState.DONE]

    @pytest.mark.asyncio
    async def test_rollback_failure_does_not_mask_persistence_failure(self, coordinator):
        failing_cleaner = StorageCleaner(FakeStorageGateway(failing_removes=("day-media",)))
        saver = TripSaver(coordinator, FakeTripRepository(fail_procedure=True), failing_cleaner)
        trip = TripDraft(title="Trip", days=(Day(new_media=(make_file("a.jpg"),)),))

        with pytest.raises(PersistenceFailure) as exc_info:
            await saver.save(trip, VALID_TOKEN)

        assert exc_info.value.report.cleanup_failures == 1

    @pytest.mark.asyncio
    async def test_update_failure_keeps_old_media(self, coordinator, cleaner, server_gateway):
        repository = FakeTripRepository(fail_procedure=True, deleted_media_urls=[OLD_URL])
        saver = TripSaver(coordinator, repository, cleaner)

        with pytest.raises(PersistenceFailure):
            await saver.save(worked_example_trip(), VALID_TOKEN, editing=True)

        removed = [path for _, paths in server_gateway.remove_calls for path in paths]
        assert "days/old-photo.jpg" not in removed
        assert len(removed) == 3

    @pytest.mark.asyncio
    async def test_error_before_commit_rolls_back(self, uploader, repository, cleaner, server_gateway):
        """Results that do not line up with the requests abort the save and free the uploads"""
        inner = BatchUploadCoordinator(uploader, resolve_identity, identities=IdentityCache())

        class ReorderingCoordinator:
            async def upload_all(self, requests, access_token):
                return list(reversed(await inner.upload_all(requests, access_token)))

        saver = TripSaver(ReorderingCoordinator(), repository, cleaner)
        trip = TripDraft(title="Trip", days=(Day(new_media=(make_file("a.jpg"), make_file("b.jpg"))),))

        with pytest.raises(ValueError):
            await saver.save(trip, VALID_TOKEN)

        assert repository.created == []
        assert len(server_gateway.remove_calls) == 2


class TestPreconditions:
    @pytest.mark.asyncio
    async def test_blank_title(self, saver, repository, direct_gateway):
        trip = TripDraft(title="   ", days=(Day(new_media=(make_file(),)),))

        with pytest.raises(ValidationError):
            await saver.save(trip, VALID_TOKEN)

        assert direct_gateway.upload_calls == []
        assert repository.created == []

    @pytest.mark.asyncio
    async def test_update_requires_id(self, saver):
        with pytest.raises(ValidationError):
            await saver.save(TripDraft(title="Trip"), VALID_TOKEN, editing=True)

    @pytest.mark.asyncio
    async def test_unauthenticated(self, saver, repository, direct_gateway):
        trip = TripDraft(title="Trip", days=(Day(new_media=(make_file(),)),))

        with pytest.raises(AuthenticationError):
            await saver.save(trip, "bad-token")

        assert direct_gateway.upload_calls == []
        assert repository.created == []


class TestCover:
    @pytest.mark.asyncio
    async def test_replaced_cover_removed_after_commit(self, saver, repository, server_gateway):
        old_cover = public_url("trip-covers", "old-cover.png")
        repository.cover_image = old_cover
        trip = TripDraft(
            id="trip-1",
            title="Trip",
            cover_url=old_cover,
            new_cover=make_file("new.png", "image/png"),
        )

        await saver.save(trip, VALID_TOKEN, editing=True)

        assert ("trip-covers", ["old-cover.png"]) in server_gateway.remove_calls

    @pytest.mark.asyncio
    async def test_removed_cover(self, saver, repository, server_gateway):
        old_cover = public_url("trip-covers", "old-cover.png")
        repository.cover_image = old_cover
        trip = TripDraft(id="trip-1", title="Trip", cover_url=old_cover, remove_cover=True)

        await saver.save(trip, VALID_TOKEN, editing=True)

        assert repository.updated[0][1]["cover_image"] is None
        assert server_gateway.remove_calls == [("trip-covers", ["old-cover.png"])]

    @pytest.mark.asyncio
    async def test_kept_cover(self, saver, repository, server_gateway):
        old_cover = public_url("trip-covers", "old-cover.png")
        repository.cover_image = old_cover
        trip = TripDraft(id="trip-1", title="Trip", cover_url=old_cover)

        await saver.save(trip, VALID_TOKEN, editing=True)

        assert repository.updated[0][1]["cover_image"] == old_cover
        assert server_gateway.remove_calls == []

    @pytest.mark.asyncio
    async def test_client_cover_url_never_removed(self, saver, repository, server_gateway):
        """Only the cover stored on the trip row is cleaned up, whatever the request says"""
        repository.cover_image = public_url("trip-covers", "mine.png")
        trip = TripDraft(
            id="trip-1",
            title="Trip",
            cover_url=public_url("day-media", "days/someone-elses-photo.jpg"),
            remove_cover=True,
        )

        await saver.save(trip, VALID_TOKEN, editing=True)

        assert server_gateway.remove_calls == [("trip-covers", ["mine.png"])]

    @pytest.mark.asyncio
    async def test_stored_cover_outside_covers_bucket_left_alone(self, saver, repository, server_gateway):
        repository.cover_image = public_url("day-media", "days/photo.jpg")
        trip = TripDraft(id="trip-1", title="Trip", remove_cover=True)

        report = await saver.save(trip, VALID_TOKEN, editing=True)

        assert server_gateway.remove_calls == []
        assert report.state == SaveState.DONE

    @pytest.mark.asyncio
    async def test_no_stored_cover(self, saver, repository, server_gateway):
        trip = TripDraft(
            id="trip-1",
            title="Trip",
            cover_url=public_url("trip-covers", "old-cover.png"),
            new_cover=make_file("new.png", "image/png"),
        )

        await saver.save(trip, VALID_TOKEN, editing=True)

        assert server_gateway.remove_calls == []


class TestPostCommitCleanup:
    @pytest.mark.asyncio
    async def test_unmanaged_bucket_skipped(self, coordinator, cleaner, server_gateway):
        repository = FakeTripRepository(deleted_media_urls=[OLD_URL, public_url("avatars", "user-2.png")])
        saver = TripSaver(coordinator, repository, cleaner)

        await saver.save(TripDraft(id="trip-1", title="Trip"), VALID_TOKEN, editing=True)

        assert server_gateway.remove_calls == [("day-media", ["days/old-photo.jpg"])]
