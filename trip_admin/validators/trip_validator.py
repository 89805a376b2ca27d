"""Input validation for trip saves"""
from typing import Optional

from ..config import settings
from ..models.media import ENTITY_KINDS, LocalFile
from ..models.trip import TripDraft


class ValidationError(Exception):
    """Custom validation error"""
    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


def check_upload_size(name: str, size: Optional[int]) -> None:
    """
    Reject a file larger than MAX_UPLOAD_SIZE; an unknown size passes

    Raises:
        ValidationError: If the file is too large
    """
    if size is not None and size > settings.max_upload_size:
        raise ValidationError(
            f"File {name} is too large. Maximum size is {settings.max_upload_size // (1024 * 1024)} MB",
            {"file_name": name, "size": size, "max_size": settings.max_upload_size}
        )


def validate_file(file: LocalFile) -> None:
    """
    Validate a file before it is accepted into the tree

    Args:
        file: Incoming file

    Raises:
        ValidationError: If the file is empty-named or too large
    """
    if not file.name or file.name.strip() == "":
        raise ValidationError("File name cannot be empty")

    check_upload_size(file.name, file.size)


def validate_trip(trip: TripDraft, editing: bool = False) -> None:
    """
    Validate a trip before any upload or database call

    Args:
        trip: Trip snapshot about to be saved
        editing: True for an update of an existing trip

    Raises:
        ValidationError: If required fields are missing
    """
    if not trip.title or trip.title.strip() == "":
        raise ValidationError("Trip title is required", {"field": "title"})

    if editing and not trip.id:
        raise ValidationError("Trip id is required when updating a trip", {"field": "id"})

    if trip.new_cover is not None:
        validate_file(trip.new_cover)

    for day in trip.days:
        for file in day.new_media:
            validate_file(file)
        for kind in ENTITY_KINDS:
            for entity in day.entities(kind):
                for file in entity.new_media:
                    validate_file(file)
