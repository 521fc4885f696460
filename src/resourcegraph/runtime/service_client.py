"""
HTTP client for a resource service.

Implements the Backend contract by calling the internal endpoints that
``create_internal_router`` mounts:

    POST /internal/count   -> {"total": int}
    POST /internal/window  -> {"items": [...]}
    POST /internal/get     -> {"item": {...} | null}
    POST /internal/mutate  -> {"item": {...}}
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

import httpx
from pydantic import BaseModel

from ..core.errors import ServiceError
from ..core.query_types import (
    InternalCountRequest,
    InternalCountResponse,
    InternalGetRequest,
    InternalGetResponse,
    InternalMutationRequest,
    InternalMutationResponse,
    InternalWindowRequest,
    InternalWindowResponse,
    NormalizedFilter,
    NormalizedOrder,
    WindowSpec,
)


logger = logging.getLogger(__name__)


class ServiceClient:
    """
    HTTP backend for the resolver.

    Usage:
        client = ServiceClient("http://catalog:8002")
        resolver = Resolver(registry, client)
        ...
        await client.close()
    """

    def __init__(
        self,
        service_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize service client.

        Args:
            service_url: Base URL of the service (e.g., "http://catalog:8002")
            timeout: HTTP request timeout in seconds
            transport: Optional httpx transport (tests use ASGITransport)
        """
        self.service_url = service_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.service_url,
                timeout=self.timeout,
                transport=self.transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def count(self, resource: str, filters: Sequence[NormalizedFilter]) -> int:
        request = InternalCountRequest(resource=resource, filters=list(filters))
        data = await self._post("/internal/count", request, resource)
        return InternalCountResponse(**data).total

    async def fetch_window(
        self,
        resource: str,
        filters: Sequence[NormalizedFilter],
        ordering: Sequence[NormalizedOrder],
        window: WindowSpec,
    ) -> list[dict[str, Any]]:
        request = InternalWindowRequest(
            resource=resource,
            filters=list(filters),
            order=list(ordering),
            offset=window.offset,
            limit=window.limit,
        )
        data = await self._post("/internal/window", request, resource)
        return InternalWindowResponse(**data).items

    async def fetch_one(self, resource: str, id: Any) -> Optional[dict[str, Any]]:
        request = InternalGetRequest(resource=resource, id=id)
        data = await self._post("/internal/get", request, resource)
        return InternalGetResponse(**data).item

    async def mutate(self, resource: str, operation: str, data: dict[str, Any]) -> dict[str, Any]:
        request = InternalMutationRequest(resource=resource, operation=operation, data=data)
        body = await self._post("/internal/mutate", request, resource)
        return InternalMutationResponse(**body).item

    async def _post(self, path: str, request: BaseModel, resource: str) -> dict[str, Any]:
        """
        POST a request model and return the decoded JSON body.

        Raises:
            ServiceError: On transport failures and non-200 responses
        """
        client = await self._get_client()
        try:
            response = await client.post(path, json=request.model_dump(mode="json"))
        except httpx.RequestError as e:
            raise ServiceError(
                service=self.service_url,
                status_code=0,
                message=str(e),
                resource=resource,
            ) from e

        if response.status_code != 200:
            logger.error(f"{self.service_url}{path} returned {response.status_code}: {response.text}")
            raise ServiceError(
                service=self.service_url,
                status_code=response.status_code,
                message=response.text,
                resource=resource,
            )
        return response.json()
