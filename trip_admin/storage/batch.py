"""Concurrent batch upload with per-item failure isolation"""
import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel

from ..config import settings
from ..models.media import LocalFile, UploadedMedia
from .uploader import FileUploader

logger = logging.getLogger(__name__)

IdentityResolver = Callable[[str], Awaitable[Optional[Dict[str, Any]]]]


class AuthenticationError(Exception):
    """Raised when the caller's identity cannot be verified"""
    def __init__(self, message: str = "User must be authenticated to upload files", details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class IdentityCache:
    """
    Process-wide cache of verified identities, keyed by access token

    Concurrent checks for the same token share one in-flight lookup. Entries
    expire after ttl_seconds so a revoked token is looked up again, and the
    oldest entry is evicted once max_entries is reached.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = settings.identity_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.max_entries = max(1, max_entries or settings.identity_cache_max_entries)
        self.clock = clock
        self._users: "OrderedDict[str, Tuple[float, Dict[str, Any]]]" = OrderedDict()
        self._in_flight: Dict[str, asyncio.Task] = {}

    def get(self, access_token: str) -> Optional[Dict[str, Any]]:
        entry = self._users.get(access_token)
        if entry is None:
            return None
        expires_at, user = entry
        if self.clock() >= expires_at:
            del self._users[access_token]
            return None
        return user

    def remember(self, access_token: str, user: Dict[str, Any]) -> None:
        """Record a user that was just verified for this token"""
        if self.ttl_seconds <= 0:
            return
        self._users[access_token] = (self.clock() + self.ttl_seconds, user)
        self._users.move_to_end(access_token)
        while len(self._users) > self.max_entries:
            self._users.popitem(last=False)

    async def ensure(self, access_token: Optional[str], resolver: IdentityResolver) -> Dict[str, Any]:
        """
        Return the user behind a token, looking it up unless a fresh entry exists

        Raises:
            AuthenticationError: If the token is missing or does not resolve to a user
        """
        if not access_token:
            raise AuthenticationError("Missing authentication token")

        cached = self.get(access_token)
        if cached is not None:
            return cached

        task = self._in_flight.get(access_token)
        if task is None:
            task = asyncio.ensure_future(resolver(access_token))
            self._in_flight[access_token] = task
            task.add_done_callback(lambda _: self._in_flight.pop(access_token, None))

        try:
            user = await asyncio.shield(task)
        except Exception as e:
            raise AuthenticationError("Could not verify authentication token", {"cause": str(e)}) from e

        if not user:
            self._users.pop(access_token, None)
            raise AuthenticationError("Invalid or expired authentication token")

        self.remember(access_token, user)
        return user

    def __len__(self) -> int:
        return len(self._users)

    def clear(self) -> None:
        self._users.clear()


_identity_cache: Optional[IdentityCache] = None


def get_identity_cache() -> IdentityCache:
    """Get or create the shared identity cache"""
    global _identity_cache
    if _identity_cache is None:
        _identity_cache = IdentityCache()
    return _identity_cache


class UploadRequest(BaseModel):
    """One file to upload plus the tag that says where its URL belongs"""
    model_config = {"frozen": True}

    tag: str
    file: LocalFile
    bucket: str
    folder: Optional[str] = None


class UploadOutcome(BaseModel):
    """Settled result of one request: either media or an error message"""
    model_config = {"frozen": True}

    tag: str
    media: Optional[UploadedMedia] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.media is not None


class BatchUploadCoordinator:
    """
    Uploads a heterogeneous list of files concurrently

    results[i] always corresponds to requests[i]. A failing item is recorded
    as a failed outcome and never cancels or delays its siblings.
    """

    def __init__(
        self,
        uploader: FileUploader,
        resolve_identity: IdentityResolver,
        identities: Optional[IdentityCache] = None,
        concurrency: Optional[int] = None
    ):
        """
        Args:
            uploader: Single-file uploader (with its own fallback)
            resolve_identity: Async lookup from access token to user
            identities: Identity cache (shared one by default)
            concurrency: Max uploads in flight at once
        """
        self.uploader = uploader
        self.resolve_identity = resolve_identity
        self.identities = identities or get_identity_cache()
        self.concurrency = max(1, concurrency or settings.upload_concurrency)

    async def upload_all(self, requests: List[UploadRequest], access_token: Optional[str]) -> List[UploadOutcome]:
        """
        Upload every request and wait until all have settled

        Args:
            requests: Ordered upload requests
            access_token: Caller's token, verified once for the whole batch

        Returns:
            One outcome per request, in request order

        Raises:
            AuthenticationError: If the caller cannot be verified (nothing is uploaded)
        """
        if not requests:
            return []

        user = await self.identities.ensure(access_token, self.resolve_identity)
        logger.info(f"Uploading {len(requests)} files for user {user.get('id')}")

        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(request: UploadRequest) -> UploadOutcome:
            async with semaphore:
                try:
                    media = await self.uploader.upload(request.file, request.bucket, request.folder)
                    return UploadOutcome(tag=request.tag, media=media)
                except Exception as e:
                    logger.error(f"Upload for slot {request.tag} ({request.file.name}) failed: {e}")
                    return UploadOutcome(tag=request.tag, error=str(e))

        outcomes = await asyncio.gather(*(run(request) for request in requests))

        succeeded = sum(1 for outcome in outcomes if outcome.ok)
        logger.info(f"Batch upload settled: {succeeded}/{len(requests)} files stored")
        return list(outcomes)
