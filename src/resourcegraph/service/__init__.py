"""
Service module - utilities for building resource services.

Provides:
- create_service_app: Factory for creating FastAPI service apps
- SQLAlchemyBackend, create_internal_router: The Backend contract on SQLAlchemy
- Database utilities (Base, Database, get_database)
"""

from __future__ import annotations

from .app import create_service_app
from .database import Base, Database, get_database
from .internal_api import SQLAlchemyBackend, create_internal_router

__all__ = [
    # App factory
    "create_service_app",
    # Database
    "Base",
    "Database",
    "get_database",
    # Internal API
    "SQLAlchemyBackend",
    "create_internal_router",
]
