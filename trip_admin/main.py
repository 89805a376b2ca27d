"""
Trip Admin Backend - trip authoring API

- Trips are saved as one tree: files are uploaded first, then the whole
  tree is written by a single transactional procedure
- Uploads that never got committed are deleted again (rollback)
- Deleting a trip removes its storage objects, child rows, days, then the trip
- Supabase Auth tokens (HttpOnly cookie or Bearer header)
"""
import json
import logging
from typing import Any, Dict, Tuple

from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from .config import settings
from .dependencies import get_trip_deleter, get_trip_repository, get_trip_saver
from .middleware.auth import require_auth
from .middleware.timeout import CustomTimeoutMiddleware
from .models.media import LocalFile
from .schemas.request import TripSaveRequest
from .schemas.response import (
    DeleteTripResponse,
    ErrorResponse,
    SaveTripResponse,
    TripListResponse,
    UserListResponse,
)
from .services.trip_deleter import TripDeleter, TripDeletionError
from .services.trip_loader import build_trip_views
from .services.trip_saver import TripSaver
from .storage.batch import AuthenticationError
from .utils.database import PersistenceFailure, TripRepository, list_auth_users
from .validators.trip_validator import ValidationError, check_upload_size

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Trip Admin API",
    description="Trip authoring with media uploads and transactional saves",
    version="1.0.0"
)

# 1. Request timeout
app.add_middleware(CustomTimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)

# 2. CORS middleware for the dashboard
allowed_origins_list = [origin.strip() for origin in settings.allowed_origins.split(",")]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.get("/")
async def root():
    """Health check endpoint"""
    return {"status": "ok", "message": "Trip Admin API is running"}


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy"}


async def read_save_request(request: Request) -> Tuple[TripSaveRequest, Dict[str, LocalFile]]:
    """
    Parse a save request sent as JSON or as multipart form data

    In multipart form the `payload` field holds the JSON tree and every file
    part is keyed by its form field name.

    Raises:
        HTTPException: 400 if the payload is not valid JSON, does not validate,
            or carries a file over MAX_UPLOAD_SIZE
    """
    files: Dict[str, LocalFile] = {}
    try:
        if "application/json" in request.headers.get("content-type", ""):
            body = await request.json()
        else:
            form = await request.form()
            body = json.loads(str(form.get("payload") or "{}"))
            for field, value in form.multi_items():
                if isinstance(value, UploadFile):
                    name = value.filename or field
                    check_upload_size(name, value.size)
                    # Never buffer more than one byte past the limit
                    data = await value.read(settings.max_upload_size + 1)
                    check_upload_size(name, len(data))
                    files[field] = LocalFile(
                        name=name,
                        content_type=value.content_type or "application/octet-stream",
                        data=data,
                    )
        return TripSaveRequest.model_validate(body), files

    except json.JSONDecodeError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "ValidationError",
                "message": "Payload is not valid JSON",
                "details": {"errors": str(e)}
            }
        )

    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "ValidationError",
                "message": e.message,
                "details": e.details
            }
        )

    except PydanticValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "ValidationError",
                "message": "Invalid trip payload",
                "details": {"errors": e.errors(include_url=False, include_context=False)}
            }
        )


async def run_save(
    saver: TripSaver,
    request: Request,
    user: Dict[str, Any],
    trip_id: str = None
) -> SaveTripResponse:
    """Shared body of create and update; maps pipeline errors to the error envelope"""
    body, files = await read_save_request(request)
    editing = trip_id is not None

    try:
        trip = body.build_draft(files, user_id=user["id"], trip_id=trip_id)
        report = await saver.save(trip, user["access_token"], editing=editing)

        return SaveTripResponse(
            trip_id=report.trip_id,
            uploaded=report.uploaded,
            missing_media=report.missing_tags,
        )

    except ValidationError as e:
        raise HTTPException(
            status_code=400,
            detail={
                "error": "ValidationError",
                "message": e.message,
                "details": e.details
            }
        )

    except AuthenticationError as e:
        raise HTTPException(
            status_code=401,
            detail={
                "error": "Unauthorized",
                "message": e.message,
                "details": e.details
            }
        )

    except PersistenceFailure as e:
        rolled_back = e.report.uploaded if e.report else 0
        raise HTTPException(
            status_code=500,
            detail={
                "error": "PersistenceFailure",
                "message": f"Failed to {'update' if editing else 'create'} trip: {e.message}",
                "details": {**e.details, "rolled_back_uploads": rolled_back}
            }
        )

    except Exception as e:
        logger.exception(f"Trip save failed unexpectedly: {e}")
        raise HTTPException(
            status_code=500,
            detail={
                "error": "InternalServerError",
                "message": "Failed to save trip",
                "details": {"original_error": str(e)}
            }
        )


@app.get(
    "/trips",
    response_model=TripListResponse,
    responses={
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse}
    }
)
async def list_trips(repository: TripRepository = Depends(get_trip_repository)):
    """
    List trips newest first, with days in order and media grouped per owner

    Returns:
        TripListResponse

    Raises:
        HTTPException: If retrieval fails
    """
    try:
        trips = await repository.list_trips()
        return TripListResponse(trips=build_trip_views(trips))

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail={
                "error": "InternalServerError",
                "message": "Failed to retrieve trips",
                "details": {"original_error": str(e)}
            }
        )


@app.post(
    "/trips",
    response_model=SaveTripResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        504: {"model": ErrorResponse}
    }
)
async def create_trip(
    request: Request,
    saver: TripSaver = Depends(get_trip_saver),
    current_user: Dict[str, Any] = Depends(require_auth)
):
    """
    Create a trip with all its days, entities and media

    Args:
        request: JSON body, or multipart with a `payload` field plus files
        saver: Save orchestrator
        current_user: Authenticated user

    Returns:
        SaveTripResponse with the new trip id

    Raises:
        HTTPException: 400 invalid payload, 401 unauthenticated, 500 if the
            trip could not be written (uploads are rolled back)
    """
    return await run_save(saver, request, current_user)


@app.put(
    "/trips/{trip_id}",
    response_model=SaveTripResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        504: {"model": ErrorResponse}
    }
)
async def update_trip(
    trip_id: str,
    request: Request,
    saver: TripSaver = Depends(get_trip_saver),
    current_user: Dict[str, Any] = Depends(require_auth)
):
    """
    Update a trip; media removed by the update is deleted from storage afterwards

    Args:
        trip_id: Trip to update
        request: JSON body, or multipart with a `payload` field plus files
        saver: Save orchestrator
        current_user: Authenticated user

    Returns:
        SaveTripResponse
    """
    return await run_save(saver, request, current_user, trip_id=trip_id)


@app.delete(
    "/trips/{trip_id}",
    response_model=DeleteTripResponse,
    responses={
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse}
    }
)
async def delete_trip(
    trip_id: str,
    deleter: TripDeleter = Depends(get_trip_deleter)
):
    """
    Delete a trip with its media objects, child rows and days

    Args:
        trip_id: Trip to delete
        deleter: Deletion cascade

    Returns:
        {"ok": true}

    Raises:
        HTTPException: If any row delete fails
    """
    try:
        await deleter.delete(trip_id)
        return DeleteTripResponse()

    except TripDeletionError as e:
        raise HTTPException(
            status_code=500,
            detail={
                "error": "DeleteFailure",
                "message": e.message,
                "details": e.details
            }
        )

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail={
                "error": "InternalServerError",
                "message": "Failed to delete trip",
                "details": {"original_error": str(e)}
            }
        )


@app.get(
    "/users",
    response_model=UserListResponse,
    responses={
        401: {"model": ErrorResponse},
        500: {"model": ErrorResponse}
    }
)
async def list_users(current_user: Dict[str, Any] = Depends(require_auth)):
    """
    List auth users (service role)

    Returns:
        UserListResponse with id, email, created_at and role
    """
    try:
        users = await list_auth_users()
        return UserListResponse(users=users)

    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail={
                "error": "InternalServerError",
                "message": "Failed to list users",
                "details": {"original_error": str(e)}
            }
        )
