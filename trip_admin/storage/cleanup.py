"""Best-effort storage deletes: rollback, post-commit cleanup, cascade"""
import asyncio
import logging
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from ..config import settings
from ..models.media import UploadedMedia
from ..utils.storage_paths import chunked, extract_storage_path, split_public_url
from .gateway import StorageGateway

logger = logging.getLogger(__name__)


class CleanupFailure(Exception):
    """A storage removal that did not go through; logged, never surfaced to the user"""
    def __init__(self, bucket: str, paths: List[str], cause: Exception):
        self.bucket = bucket
        self.paths = paths
        self.cause = cause
        self.message = f"Failed to remove {len(paths)} object(s) from {bucket}: {cause}"
        self.details = {"bucket": bucket, "paths": paths, "cause": str(cause)}
        super().__init__(self.message)


class StorageCleaner:
    """Issues storage deletes and absorbs their failures"""

    def __init__(
        self,
        gateway: StorageGateway,
        batch_limit: Optional[int] = None,
        known_buckets: Optional[List[str]] = None
    ):
        """
        Args:
            gateway: Privileged storage transport used for deletes
            batch_limit: Max paths per remove() call
            known_buckets: Buckets to try, in order, for URLs that do not name their bucket
        """
        self.gateway = gateway
        self.batch_limit = batch_limit or settings.storage_batch_limit
        self.known_buckets = known_buckets or [settings.day_media_bucket, settings.trip_covers_bucket]

    async def _remove(self, bucket: str, paths: List[str]) -> Optional[CleanupFailure]:
        try:
            await self.gateway.remove(bucket, paths)
            return None
        except Exception as e:
            failure = CleanupFailure(bucket, paths, e)
            logger.error(failure.message)
            return failure

    async def rollback(self, uploads: Iterable[UploadedMedia]) -> List[CleanupFailure]:
        """
        Delete files that were uploaded but never committed

        One remove call per file, issued concurrently, against the bucket the
        file was uploaded to.

        Returns:
            Failures (already logged)
        """
        uploads = list(uploads)
        if not uploads:
            return []

        logger.info(f"Rolling back {len(uploads)} uncommitted upload(s)")
        results = await asyncio.gather(*(self._remove(u.bucket, [u.path]) for u in uploads))
        return [failure for failure in results if failure is not None]

    async def remove_paths(self, bucket: str, paths: List[str]) -> List[CleanupFailure]:
        """
        Delete many paths from one bucket in concurrent chunks

        A failing chunk does not stop the others.

        Returns:
            Failures (already logged)
        """
        if not paths:
            return []

        batches = chunked(list(paths), self.batch_limit)
        results = await asyncio.gather(*(self._remove(bucket, batch) for batch in batches))
        return [failure for failure in results if failure is not None]

    def group_urls_by_bucket(self, urls: Iterable[str]) -> Dict[str, List[str]]:
        """
        Map stored URLs to {bucket: [paths]}

        Public object URLs name their bucket, which must be one of the known
        buckets. Anything else is ambiguous and is matched against every known
        bucket.
        """
        grouped: Dict[str, List[str]] = defaultdict(list)
        for url in urls:
            split = split_public_url(url)
            if split:
                if split[0] in self.known_buckets:
                    grouped[split[0]].append(split[1])
                else:
                    logger.warning(f"Refusing to remove {url}: bucket {split[0]} is not managed here")
                continue

            matched = False
            for bucket in self.known_buckets:
                path = extract_storage_path(url, bucket)
                if path:
                    grouped[bucket].append(path)
                    matched = True
            if not matched:
                logger.warning(f"Cannot resolve a storage path for {url}; leaving it in place")
        return dict(grouped)

    async def remove_urls(self, urls: Iterable[str]) -> List[CleanupFailure]:
        """Delete objects given their stored URLs (post-commit cleanup)"""
        grouped = self.group_urls_by_bucket(urls)
        if not grouped:
            return []

        results = await asyncio.gather(*(self.remove_paths(bucket, paths) for bucket, paths in grouped.items()))
        return [failure for failures in results for failure in failures]
