"""Authentication dependency for protected routes"""
from fastapi import HTTPException, Cookie, Depends, Request
from typing import Optional, Dict, Any

from ..storage.batch import get_identity_cache
from ..utils.database import get_user_for_token


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={
            "error": "Unauthorized",
            "message": message,
            "details": {}
        },
        headers={"WWW-Authenticate": "Bearer"}
    )


async def get_current_user(request: Request, access_token: Optional[str] = Cookie(None)) -> Dict[str, Any]:
    """
    Dependency to get the current Supabase user

    The token comes from the access_token cookie, or from the Authorization
    header when there is no cookie. The token is checked with Supabase Auth on
    every request; the verified user is then handed to the identity cache so
    the upload batch of the same request does not look the caller up again.

    Args:
        request: FastAPI request object
        access_token: Supabase JWT from cookie

    Returns:
        {"id", "email", "role", "access_token"}

    Raises:
        HTTPException: If token is missing or does not resolve to a user
    """
    if not access_token:
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            access_token = auth_header.split(" ", 1)[1].strip()

    if not access_token:
        raise _unauthorized("Missing authentication token")

    user = await get_user_for_token(access_token)
    if not user:
        raise _unauthorized("Invalid or expired authentication token")

    get_identity_cache().remember(access_token, user)

    return {**user, "access_token": access_token}


def require_auth(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    """
    Dependency shorthand for requiring authentication

    Args:
        user: Current user from get_current_user dependency

    Returns:
        Current user data
    """
    return user
