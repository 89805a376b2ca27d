"""Tests for the batch upload coordinator and identity cache"""
import asyncio

import pytest

from trip_admin.storage import (
    AuthenticationError,
    BatchUploadCoordinator,
    BucketRegistry,
    FileUploader,
    IdentityCache,
    UploadRequest,
)

from .fakes import VALID_TOKEN, FakeStorageGateway, make_file, resolve_identity


def requests_for(*names):
    return [
        UploadRequest(tag=f"day0-day-media-{i}", file=make_file(name), bucket="day-media", folder="days")
        for i, name in enumerate(names)
    ]


class TestBatchUploadCoordinator:
    """Results line up with requests and failures stay isolated"""

    @pytest.mark.asyncio
    async def test_empty_batch_skips_identity_check(self, coordinator):
        assert await coordinator.upload_all([], None) == []

    @pytest.mark.asyncio
    async def test_order_preserved(self, coordinator):
        requests = requests_for("a.jpg", "b.jpg", "c.jpg", "d.jpg", "e.jpg")

        outcomes = await coordinator.upload_all(requests, VALID_TOKEN)

        assert [o.tag for o in outcomes] == [r.tag for r in requests]
        assert all(o.ok for o in outcomes)
        assert [o.media.path.rsplit("-", 1)[1] for o in outcomes] == ["a.jpg", "b.jpg", "c.jpg", "d.jpg", "e.jpg"]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_cancel_siblings(self):
        broken = lambda path: path.endswith("-broken.jpg")
        direct = FakeStorageGateway(label="direct", fail_upload=broken)
        server = FakeStorageGateway(label="server", fail_upload=broken)
        coordinator = BatchUploadCoordinator(
            FileUploader(direct, fallback=server, buckets=BucketRegistry()),
            resolve_identity,
            identities=IdentityCache(),
        )

        outcomes = await coordinator.upload_all(requests_for("a.jpg", "broken.jpg", "c.jpg"), VALID_TOKEN)

        assert [o.ok for o in outcomes] == [True, False, True]
        assert "broken.jpg" in outcomes[1].error

    @pytest.mark.asyncio
    async def test_unauthenticated_uploads_nothing(self, coordinator, direct_gateway):
        with pytest.raises(AuthenticationError):
            await coordinator.upload_all(requests_for("a.jpg"), "bad-token")
        assert direct_gateway.upload_calls == []

    @pytest.mark.asyncio
    async def test_missing_token(self, coordinator):
        with pytest.raises(AuthenticationError):
            await coordinator.upload_all(requests_for("a.jpg"), None)


class TestIdentityCache:
    @pytest.mark.asyncio
    async def test_concurrent_checks_share_one_lookup(self):
        calls = []

        async def slow_resolver(token):
            calls.append(token)
            await asyncio.sleep(0.01)
            return {"id": "user-1"}

        cache = IdentityCache()
        users = await asyncio.gather(*(cache.ensure("tok", slow_resolver) for _ in range(5)))

        assert calls == ["tok"]
        assert all(user["id"] == "user-1" for user in users)

    @pytest.mark.asyncio
    async def test_cached_after_first_lookup(self):
        calls = []

        async def resolver(token):
            calls.append(token)
            return {"id": "user-1"}

        cache = IdentityCache()
        await cache.ensure("tok", resolver)
        await cache.ensure("tok", resolver)

        assert calls == ["tok"]
        assert cache.get("tok") == {"id": "user-1"}

    @pytest.mark.asyncio
    async def test_resolver_error(self):
        async def resolver(token):
            raise RuntimeError("auth service down")

        with pytest.raises(AuthenticationError) as exc_info:
            await IdentityCache().ensure("tok", resolver)
        assert "auth service down" in exc_info.value.details["cause"]

    @pytest.mark.asyncio
    async def test_invalid_token_not_cached(self):
        cache = IdentityCache()
        with pytest.raises(AuthenticationError):
            await cache.ensure("bad-token", resolve_identity)
        assert cache.get("bad-token") is None

    @pytest.mark.asyncio
    async def test_revoked_token_rejected_after_expiry(self):
        now = [0.0]
        answers = [{"id": "user-1"}, None]

        async def resolver(token):
            return answers.pop(0)

        cache = IdentityCache(ttl_seconds=30, clock=lambda: now[0])
        assert (await cache.ensure("tok", resolver))["id"] == "user-1"

        now[0] = 31.0
        with pytest.raises(AuthenticationError):
            await cache.ensure("tok", resolver)
        assert cache.get("tok") is None

    @pytest.mark.asyncio
    async def test_zero_ttl_looks_up_every_time(self):
        calls = []

        async def resolver(token):
            calls.append(token)
            return {"id": "user-1"}

        cache = IdentityCache(ttl_seconds=0)
        await cache.ensure("tok", resolver)
        await cache.ensure("tok", resolver)

        assert calls == ["tok", "tok"]
        assert len(cache) == 0

    def test_oldest_entry_evicted_when_full(self):
        cache = IdentityCache(ttl_seconds=60, max_entries=2)
        cache.remember("a", {"id": "a"})
        cache.remember("b", {"id": "b"})
        cache.remember("c", {"id": "c"})

        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("c") == {"id": "c"}
