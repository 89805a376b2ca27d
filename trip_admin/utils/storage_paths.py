"""Recover bucket-relative storage paths from stored media values"""
import re
from typing import Iterable, List, Optional, Tuple, TypeVar, Union

from ..models.media import StoredMediaRef, parse_stored_media

T = TypeVar("T")

PUBLIC_OBJECT_MARKER = "/storage/v1/object/public/"


def _as_url(stored: Union[str, dict, StoredMediaRef, None]) -> Optional[str]:
    if stored is None:
        return None
    if isinstance(stored, (str, dict)):
        ref = parse_stored_media(stored)
        return ref.url if ref else None
    return stored.url


def extract_storage_path(stored: Union[str, dict, StoredMediaRef, None], bucket: str) -> Optional[str]:
    """
    Path of an object relative to its bucket

    Args:
        stored: Plain URL, legacy JSON envelope, or an already parsed StoredMediaRef
        bucket: Bucket the object is expected to live in

    Returns:
        Bucket-relative path (query string dropped), or None if the URL does
        not point into that bucket
    """
    url = _as_url(stored)
    if not url:
        return None

    url = url.split("?", 1)[0].split("#", 1)[0]
    match = re.search(rf"(?:^|/){re.escape(bucket)}/(.+)$", url)
    return match.group(1) if match else None


def split_public_url(url: str) -> Optional[Tuple[str, str]]:
    """
    Split a Supabase public object URL into (bucket, path)

    Returns:
        (bucket, path) or None if the URL is not a public object URL
    """
    url = _as_url(url)
    if not url or PUBLIC_OBJECT_MARKER not in url:
        return None

    remainder = url.split(PUBLIC_OBJECT_MARKER, 1)[1].split("?", 1)[0]
    bucket, _, path = remainder.partition("/")
    if not bucket or not path:
        return None
    return bucket, path


def collect_paths(values: Iterable[Union[str, dict, None]], bucket: str) -> List[str]:
    """Extract every resolvable path for a bucket, skipping the rest"""
    paths = []
    for value in values:
        path = extract_storage_path(value, bucket)
        if path:
            paths.append(path)
    return paths


def chunked(items: List[T], size: int) -> List[List[T]]:
    """Split into consecutive chunks of at most `size` items"""
    if size < 1:
        raise ValueError("Chunk size must be at least 1")
    return [items[i:i + size] for i in range(0, len(items), size)]
