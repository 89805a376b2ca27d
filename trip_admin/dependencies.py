"""FastAPI dependency factories for the trip pipeline"""
from typing import Any, Dict

from fastapi import Depends

from .middleware.auth import require_auth
from .services.trip_deleter import TripDeleter
from .services.trip_saver import TripSaver
from .storage import BatchUploadCoordinator, FileUploader, StorageCleaner, StorageGateway, get_bucket_registry
from .utils.database import SupabaseClient, TripRepository, get_user_for_token


async def get_trip_repository(user: Dict[str, Any] = Depends(require_auth)) -> TripRepository:
    """Row and procedure access as the caller, so row level security applies"""
    client = await SupabaseClient.create_user_client(user["access_token"])
    return TripRepository(client)


async def get_server_gateway() -> StorageGateway:
    """Service-role storage transport"""
    admin = await SupabaseClient.get_admin_client()
    return StorageGateway(admin, label="server")


async def get_storage_cleaner(server: StorageGateway = Depends(get_server_gateway)) -> StorageCleaner:
    return StorageCleaner(server)


async def get_trip_saver(
    repository: TripRepository = Depends(get_trip_repository),
    server: StorageGateway = Depends(get_server_gateway),
    cleaner: StorageCleaner = Depends(get_storage_cleaner)
) -> TripSaver:
    """
    Save orchestrator wired for one request

    Uploads go direct through the caller's client first and fall back to
    the service-role client.
    """
    direct = StorageGateway(repository.client, label="direct")
    uploader = FileUploader(direct, fallback=server, buckets=get_bucket_registry())
    coordinator = BatchUploadCoordinator(uploader, get_user_for_token)
    return TripSaver(coordinator, repository, cleaner)


async def get_trip_deleter(
    repository: TripRepository = Depends(get_trip_repository),
    cleaner: StorageCleaner = Depends(get_storage_cleaner)
) -> TripDeleter:
    return TripDeleter(repository, cleaner)
