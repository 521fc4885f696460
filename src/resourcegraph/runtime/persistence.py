"""
Persistence contract consumed by the resolver.

The core never touches storage. It talks to a Backend, which is either the
HTTP ServiceClient, the SQLAlchemyBackend, or anything else implementing
these four coroutines.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Optional, Protocol, Sequence, TypeVar, runtime_checkable

from ..core.errors import PersistenceError, ResourceGraphError
from ..core.query_types import NormalizedFilter, NormalizedOrder, WindowSpec


logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class Backend(Protocol):
    """Abstract fetch/mutate contract."""

    async def count(self, resource: str, filters: Sequence[NormalizedFilter]) -> int:
        ...

    async def fetch_window(
        self,
        resource: str,
        filters: Sequence[NormalizedFilter],
        ordering: Sequence[NormalizedOrder],
        window: WindowSpec,
    ) -> list[dict[str, Any]]:
        ...

    async def fetch_one(self, resource: str, id: Any) -> Optional[dict[str, Any]]:
        ...

    async def mutate(self, resource: str, operation: str, data: dict[str, Any]) -> dict[str, Any]:
        ...


class GuardedBackend:
    """
    Wraps a Backend so that collaborator failures surface as PersistenceError.

    Cancellation is not an Exception and passes through untouched.
    """

    def __init__(self, backend: Backend):
        self.backend = backend

    async def count(self, resource: str, filters: Sequence[NormalizedFilter]) -> int:
        return await self._call("count", resource, self.backend.count(resource, filters))

    async def fetch_window(
        self,
        resource: str,
        filters: Sequence[NormalizedFilter],
        ordering: Sequence[NormalizedOrder],
        window: WindowSpec,
    ) -> list[dict[str, Any]]:
        return await self._call(
            "fetch_window",
            resource,
            self.backend.fetch_window(resource, filters, ordering, window),
        )

    async def fetch_one(self, resource: str, id: Any) -> Optional[dict[str, Any]]:
        return await self._call("fetch_one", resource, self.backend.fetch_one(resource, id))

    async def mutate(self, resource: str, operation: str, data: dict[str, Any]) -> dict[str, Any]:
        return await self._call(
            "mutate", resource, self.backend.mutate(resource, operation, data)
        )

    async def _call(self, action: str, resource: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except ResourceGraphError:
            raise
        except Exception as e:
            logger.error(f"Backend {action} on {resource} failed: {e}", exc_info=True)
            raise PersistenceError(f"{action} on {resource} failed: {e}", resource=resource) from e
