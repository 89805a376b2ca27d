"""Media models shared by the upload pipeline and the trip tree"""
import json
from enum import Enum
from typing import Literal, Optional, Union
from pydantic import BaseModel, Field


class MediaType(str, Enum):
    """Kind of media stored for a slot"""
    IMAGE = "image"
    VIDEO = "video"
    OTHER = "other"

    @classmethod
    def from_content_type(cls, content_type: Optional[str]) -> "MediaType":
        """Derive the media type from a declared content type prefix"""
        content_type = (content_type or "").lower()
        if content_type.startswith("video/"):
            return cls.VIDEO
        if content_type.startswith("image/"):
            return cls.IMAGE
        return cls.OTHER

    @classmethod
    def parse(cls, value: Optional[str], default: "MediaType" = None) -> "MediaType":
        """Lenient parse for values read back from the database"""
        try:
            return cls(value)
        except ValueError:
            return default or cls.IMAGE


class MediaRelation(str, Enum):
    """Which kind of owner a media row belongs to"""
    DAY = "day"
    ACTIVITY = "activity"
    ATTRACTION = "attraction"
    ACCOMMODATION = "accommodation"


# Entity kinds in traversal order
ENTITY_KINDS = (MediaRelation.ACTIVITY, MediaRelation.ATTRACTION, MediaRelation.ACCOMMODATION)


class LocalFile(BaseModel):
    """A file handed to us by the caller that has not been uploaded yet"""
    model_config = {"frozen": True}

    name: str = Field(..., description="Original file name as supplied by the client")
    content_type: str = Field(default="application/octet-stream", description="Declared MIME type")
    data: bytes = Field(default=b"", repr=False)

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def media_type(self) -> MediaType:
        return MediaType.from_content_type(self.content_type)


class ExistingMedia(BaseModel):
    """A media row that is already persisted"""
    model_config = {"frozen": True}

    id: str
    url: str
    media_type: MediaType = MediaType.IMAGE
    keep: bool = Field(default=True, description="False marks the row for deletion on save")


class UploadedMedia(BaseModel):
    """Result of a successful upload: the public URL plus where the object lives"""
    model_config = {"frozen": True}

    url: str
    type: MediaType
    bucket: str
    path: str

    def to_wire(self) -> dict:
        """Shape the trip procedures expect for new media"""
        return {"url": self.url, "type": self.type.value}


class PlainMediaRef(BaseModel):
    """Stored value that is just a URL"""
    model_config = {"frozen": True}

    kind: Literal["plain"] = "plain"
    url: str


class EnvelopedMediaRef(BaseModel):
    """Legacy stored value: a JSON-encoded {url, type} envelope"""
    model_config = {"frozen": True}

    kind: Literal["enveloped"] = "enveloped"
    url: str
    type: Optional[MediaType] = None
    activity_id: Optional[str] = None


StoredMediaRef = Union[PlainMediaRef, EnvelopedMediaRef]


def parse_stored_media(raw: Union[str, dict, None]) -> Optional[StoredMediaRef]:
    """
    Resolve a stored media value once, at read time

    Args:
        raw: Value of a media_url / cover_image column. Either a plain URL, a
            JSON-encoded {url, type} string from older records, or an already
            decoded dict.

    Returns:
        PlainMediaRef or EnvelopedMediaRef, or None when nothing usable is stored
    """
    if raw is None:
        return None

    envelope = None
    if isinstance(raw, dict):
        envelope = raw
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        if text.startswith("{"):
            try:
                envelope = json.loads(text)
            except json.JSONDecodeError:
                return PlainMediaRef(url=text)
        else:
            return PlainMediaRef(url=text)
    else:
        return None

    if not isinstance(envelope, dict) or not envelope.get("url"):
        return PlainMediaRef(url=raw) if isinstance(raw, str) else None

    media_type = envelope.get("type")
    return EnvelopedMediaRef(
        url=str(envelope["url"]),
        type=MediaType.parse(media_type) if media_type else None,
        activity_id=envelope.get("activity_id"),
    )
