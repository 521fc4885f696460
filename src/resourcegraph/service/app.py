"""
Resource service factory.

A resource service owns the SQLAlchemy models for some resources and serves
them to the gateway through the internal endpoints. The gateway reaches it
with ``ServiceClient``.

    app = create_service_app("catalog", {"Product": Product, "Offer": Offer})
    uvicorn.run(app, port=8002)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Mapping, Optional

from fastapi import FastAPI
from sqlalchemy.orm import DeclarativeBase

from .database import Database, get_database
from .internal_api import SQLAlchemyBackend, create_internal_router


logger = logging.getLogger(__name__)


class HealthcheckLogFilter(logging.Filter):
    """Drop uvicorn access log lines for health and schema requests."""

    QUIET_PATHS = frozenset({"/health", "/__schema"})

    def filter(self, record: logging.LogRecord) -> bool:
        # uvicorn.access args: (client, method, path, http_version, status)
        args = record.args
        if isinstance(args, tuple) and len(args) >= 3:
            path = str(args[2]).split("?", 1)[0]
            return path not in self.QUIET_PATHS
        return True


def create_service_app(
    service_name: str,
    models: Mapping[str, type[DeclarativeBase]],
    *,
    database: Optional[Database] = None,
    create_tables: bool = True,
) -> FastAPI:
    """
    Create a FastAPI app serving the internal endpoints for ``models``.

    Args:
        service_name: Used in the app title, logs and /health
        models: Resource name -> SQLAlchemy model
        database: Defaults to the DATABASE_URL database
        create_tables: Create missing tables on startup
    """
    database = database or get_database()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        access_log = logging.getLogger("uvicorn.access")
        log_filter = HealthcheckLogFilter()
        access_log.addFilter(log_filter)
        try:
            if create_tables:
                await database.create_tables()
            logger.info(f"Service {service_name} serving {', '.join(models)}")
            yield
        finally:
            access_log.removeFilter(log_filter)
            await database.dispose()

    app = FastAPI(
        title=f"{service_name.replace('_', ' ').title()} Service",
        version="1.0.0",
        lifespan=lifespan,
    )

    backend = SQLAlchemyBackend(database.session_maker, models)
    app.include_router(create_internal_router(backend))

    @app.get("/health")
    async def health_check():
        return {"status": "ok", "service": service_name, "resources": list(models)}

    return app
