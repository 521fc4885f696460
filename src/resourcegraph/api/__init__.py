"""
API module - FastAPI endpoints.
"""

from __future__ import annotations

from .router import create_app, create_router, get_principal

__all__ = [
    "create_app",
    "create_router",
    "get_principal",
]
