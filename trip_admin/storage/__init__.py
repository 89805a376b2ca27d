"""
Object storage side of the save pipeline.

Main components:
- gateway: async wrapper over Supabase Storage (one per transport)
- uploader: single-file upload with server-mediated fallback
- batch: concurrent, order-preserving batch upload
- cleanup: rollback / post-commit / cascade deletes
"""

from .gateway import StorageGateway
from .uploader import (
    BucketRegistry,
    FileUploader,
    UploadFailure,
    get_bucket_registry
)
from .batch import (
    AuthenticationError,
    BatchUploadCoordinator,
    IdentityCache,
    UploadOutcome,
    UploadRequest,
    get_identity_cache
)
from .cleanup import CleanupFailure, StorageCleaner

__all__ = [
    "StorageGateway",
    "BucketRegistry",
    "FileUploader",
    "UploadFailure",
    "get_bucket_registry",
    "AuthenticationError",
    "BatchUploadCoordinator",
    "IdentityCache",
    "UploadOutcome",
    "UploadRequest",
    "get_identity_cache",
    "CleanupFailure",
    "StorageCleaner",
]
