"""Response schemas for API endpoints"""
from typing import List, Optional
from pydantic import BaseModel, Field

from ..models.media import MediaRelation, MediaType


class MediaView(BaseModel):
    """Persisted media row with its stored value already resolved"""
    id: str = Field(..., description="day_media row id")
    url: str = Field(..., description="Public URL of the object")
    media_type: MediaType = Field(MediaType.IMAGE, description="image or video")
    related_to: MediaRelation = Field(MediaRelation.DAY, description="Owner kind")
    legacy: bool = Field(False, description="True if stored as a JSON envelope")


class EntityView(BaseModel):
    """Activity, attraction or accommodation with its media"""
    id: str
    title: str = ""
    description: Optional[str] = None
    media: List[MediaView] = Field(default_factory=list)


class DayView(BaseModel):
    """Day with entities and day-level media"""
    id: str
    title: str = ""
    description: Optional[str] = None
    order_index: int = 0
    feature_media_id: Optional[str] = Field(None, description="Featured media row, if any")
    media: List[MediaView] = Field(default_factory=list, description="Day-level media")
    activities: List[EntityView] = Field(default_factory=list)
    attractions: List[EntityView] = Field(default_factory=list)
    accommodations: List[EntityView] = Field(default_factory=list)
    orphaned_media_ids: List[str] = Field(
        default_factory=list,
        description="Media rows whose owner is not on this day"
    )


class TripView(BaseModel):
    """Trip as listed on the dashboard"""
    id: str
    title: str = ""
    description: Optional[str] = None
    cover_image: Optional[str] = Field(None, description="Resolved cover URL")
    user_id: Optional[str] = None
    created_at: Optional[str] = None
    days: List[DayView] = Field(default_factory=list)


class TripListResponse(BaseModel):
    """Response for GET /trips"""
    trips: List[TripView] = Field(default_factory=list)


class SaveTripResponse(BaseModel):
    """Response for POST /trips and PUT /trips/{trip_id}"""
    success: bool = True
    trip_id: Optional[str] = Field(None, description="Created or updated trip")
    uploaded: int = Field(0, description="Files stored during this save")
    missing_media: List[str] = Field(
        default_factory=list,
        description="Slots whose upload failed and were saved without media"
    )


class DeleteTripResponse(BaseModel):
    """Response for DELETE /trips/{trip_id}"""
    ok: bool = True


class UserView(BaseModel):
    """Auth user as listed on the dashboard"""
    id: str
    email: str = ""
    created_at: Optional[str] = None
    role: str = ""


class UserListResponse(BaseModel):
    """Response for GET /users"""
    users: List[UserView] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Error response"""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: Optional[dict] = Field(None, description="Additional error details")
