"""Middleware modules for FastAPI application"""
from .auth import get_current_user, require_auth
from .timeout import CustomTimeoutMiddleware

__all__ = ["CustomTimeoutMiddleware", "get_current_user", "require_auth"]
