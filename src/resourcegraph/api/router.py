"""
FastAPI router for the resourcegraph API.

Endpoints:
- POST /          - Resolve one operation or a batch of aliased operations
- GET  /__schema  - Argument schema per resource and operation

Supported request formats: see ``core.request_parser``.

Responses follow the GraphQL convention:

    {"data": {"offers": {...connection...}, "book": null},
     "errors": [{"message": "Access Denied.", "type": "AuthorizationError", "path": ["book"]}]}

Operation failures answer 200 with their error in ``errors``; an unparseable
request answers 400.

The principal is read from headers set by an upstream authenticator:
    X-User-Id:    principal id
    X-User-Roles: comma-separated roles
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..core.errors import ValidationError
from ..core.request_parser import parse_request
from ..runtime.context import Principal
from ..runtime.resolver import Resolver


logger = logging.getLogger(__name__)


async def get_principal(
    x_user_id: Optional[str] = Header(default=None),
    x_user_roles: Optional[str] = Header(default=None),
) -> Principal:
    """Build the principal from authenticator headers. No id means anonymous."""
    user_id: Optional[int | str] = x_user_id
    if x_user_id is not None and x_user_id.isdigit():
        user_id = int(x_user_id)
    roles = tuple(
        role.strip() for role in (x_user_roles or "").split(",") if role.strip()
    )
    return Principal(id=user_id, roles=roles)


def create_router(resolver: Resolver) -> APIRouter:
    """Create the API router bound to a resolver."""
    router = APIRouter()

    @router.get("/__schema")
    async def get_schema() -> dict[str, Any]:
        """Return the argument schema of every resource."""
        return resolver.registry.describe()

    @router.post("/")
    async def execute_request(
        request: Request,
        principal: Principal = Depends(get_principal),
    ):
        """Resolve the operations in the request body."""
        try:
            body = await request.json()
        except ValueError:
            error = ValidationError("Request body is not valid JSON")
            return JSONResponse(status_code=400, content={"errors": [error.to_payload()]})

        try:
            operations = parse_request(body)
        except ValidationError as e:
            return JSONResponse(status_code=400, content={"errors": [e.to_payload()]})

        data, errors = await resolver.resolve_many(operations, principal)
        response: dict[str, Any] = {"data": data}
        if errors:
            response["errors"] = errors
        return response

    return router


def create_app(
    resolver: Resolver,
    *,
    title: str = "resourcegraph",
    cors_origins: Optional[list[str]] = None,
) -> FastAPI:
    """
    Create a FastAPI application serving the API.

    Args:
        resolver: Resolver bound to a registry and backend
        title: FastAPI app title
        cors_origins: CORS allowed origins (default: localhost:3000)
    """
    app = FastAPI(title=title, version="1.0.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(create_router(resolver))

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    logger.info(f"API mounted for resources: {', '.join(resolver.registry.names)}")
    return app
