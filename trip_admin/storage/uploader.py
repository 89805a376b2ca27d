"""Single-file upload with a server-mediated fallback"""
import asyncio
import logging
from typing import Optional, Set

from ..models.media import LocalFile, UploadedMedia
from ..utils.safe_name import build_object_path
from .gateway import StorageGateway

logger = logging.getLogger(__name__)


class UploadFailure(Exception):
    """Raised when a file could not be stored through either transport"""
    def __init__(self, file_name: str, cause: Exception):
        self.file_name = file_name
        self.cause = cause
        self.message = f"Upload failed for {file_name}: {cause}"
        self.details = {"file_name": file_name, "cause": str(cause)}
        super().__init__(self.message)


class BucketRegistry:
    """
    Process-wide memory of buckets known to exist

    A stale entry only costs a redundant create_bucket call, so there is no
    invalidation.
    """

    def __init__(self):
        self._known: Set[str] = set()
        self._lock = asyncio.Lock()

    def __contains__(self, bucket: str) -> bool:
        return bucket in self._known

    async def ensure(self, gateway: StorageGateway, bucket: str) -> None:
        """Create the bucket (public) the first time it is seen"""
        if bucket in self._known:
            return
        async with self._lock:
            if bucket in self._known:
                return
            await gateway.create_bucket(bucket)
            self._known.add(bucket)

    def forget(self, bucket: Optional[str] = None) -> None:
        if bucket is None:
            self._known.clear()
        else:
            self._known.discard(bucket)


_bucket_registry: Optional[BucketRegistry] = None


def get_bucket_registry() -> BucketRegistry:
    """Get or create the shared bucket registry"""
    global _bucket_registry
    if _bucket_registry is None:
        _bucket_registry = BucketRegistry()
    return _bucket_registry


class FileUploader:
    """Uploads one file to one bucket/folder and resolves its public URL"""

    def __init__(
        self,
        primary: StorageGateway,
        fallback: Optional[StorageGateway] = None,
        buckets: Optional[BucketRegistry] = None
    ):
        """
        Args:
            primary: Direct transport, tried first
            fallback: Server-mediated transport, tried once if primary rejects
            buckets: Registry of buckets known to exist (shared one by default)
        """
        self.primary = primary
        self.fallback = fallback
        self.buckets = buckets or get_bucket_registry()

    async def upload(self, file: LocalFile, bucket: str, folder: Optional[str] = None) -> UploadedMedia:
        """
        Upload a file with no-overwrite semantics

        Args:
            file: File to store
            bucket: Destination bucket (created public if missing)
            folder: Optional folder prefix inside the bucket

        Returns:
            UploadedMedia with public URL, media type, bucket and path

        Raises:
            UploadFailure: If the primary and the fallback transport both fail
        """
        # Bucket creation needs the privileged transport when there is one
        await self.buckets.ensure(self.fallback or self.primary, bucket)

        try:
            return await self._store(self.primary, file, bucket, folder)
        except Exception as e:
            if self.fallback is None:
                raise UploadFailure(file.name, e) from e
            logger.warning(
                f"Direct upload of {file.name} to {bucket} rejected ({e}); retrying via {self.fallback.label}"
            )

        try:
            return await self._store(self.fallback, file, bucket, folder)
        except Exception as e:
            logger.error(f"Fallback upload of {file.name} to {bucket} failed: {e}")
            raise UploadFailure(file.name, e) from e

    async def _store(
        self,
        gateway: StorageGateway,
        file: LocalFile,
        bucket: str,
        folder: Optional[str]
    ) -> UploadedMedia:
        # Fresh key per attempt; the rejected attempt may have claimed the old one
        path = build_object_path(file.name, folder)
        await gateway.upload(bucket, path, file.data, file.content_type)
        url = await gateway.get_public_url(bucket, path)
        return UploadedMedia(url=url, type=file.media_type, bucket=bucket, path=path)
