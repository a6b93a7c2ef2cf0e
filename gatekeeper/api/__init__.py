"""
Surface HTTP (FastAPI).
"""

from .app import create_app
from .dependencies import get_components, get_current_session, require_permission
from .routes import router, ATTEMPT_COOKIE

__all__ = [
    "create_app",
    "router",
    "get_components",
    "get_current_session",
    "require_permission",
    "ATTEMPT_COOKIE",
]
