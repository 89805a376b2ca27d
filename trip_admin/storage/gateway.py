"""Thin async wrapper over Supabase Storage"""
import logging
from typing import List

from supabase import AsyncClient

from ..config import settings

logger = logging.getLogger(__name__)


class StorageGateway:
    """
    One transport into object storage

    Two gateways are used side by side: the caller-scoped client (direct
    upload, subject to storage policies) and the service-role client (the
    server-mediated path used as fallback and for deletes).
    """

    def __init__(self, client: AsyncClient, label: str = "direct"):
        """
        Args:
            client: Supabase async client to talk through
            label: Name used in log lines ("direct", "server")
        """
        self.client = client
        self.label = label

    async def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        """
        Store bytes at bucket/path without overwriting

        Raises:
            storage3.exceptions.StorageException: If storage rejects the upload
        """
        await self.client.storage.from_(bucket).upload(
            path=path,
            file=data,
            file_options={
                "cache-control": settings.storage_cache_control,
                "content-type": content_type,
                "upsert": "false",
            },
        )

    async def get_public_url(self, bucket: str, path: str) -> str:
        return await self.client.storage.from_(bucket).get_public_url(path)

    async def remove(self, bucket: str, paths: List[str]) -> List[dict]:
        """Delete objects; storage settles each path independently"""
        return await self.client.storage.from_(bucket).remove(paths)

    async def create_bucket(self, name: str) -> None:
        """Create a public bucket; an existing bucket is not an error"""
        try:
            await self.client.storage.create_bucket(name, options={"public": True})
        except Exception as e:
            logger.debug(f"create_bucket({name}) via {self.label} ignored: {e}")
