"""Shared fixtures; environment is seeded before the app settings load"""
import os

os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")

import pytest

from trip_admin.storage import (
    BatchUploadCoordinator,
    BucketRegistry,
    FileUploader,
    IdentityCache,
    StorageCleaner,
)

from .fakes import FakeStorageGateway, FakeTripRepository, resolve_identity


@pytest.fixture
def direct_gateway():
    return FakeStorageGateway(label="direct")


@pytest.fixture
def server_gateway():
    return FakeStorageGateway(label="server")


@pytest.fixture
def uploader(direct_gateway, server_gateway):
    return FileUploader(direct_gateway, fallback=server_gateway, buckets=BucketRegistry())


@pytest.fixture
def coordinator(uploader):
    return BatchUploadCoordinator(uploader, resolve_identity, identities=IdentityCache(), concurrency=4)


@pytest.fixture
def cleaner(server_gateway):
    return StorageCleaner(server_gateway, batch_limit=100, known_buckets=["day-media", "trip-covers"])


@pytest.fixture
def repository():
    return FakeTripRepository()
