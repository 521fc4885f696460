"""
SQLAlchemy persistence backend and its internal API router.

The backend implements the resolver's Backend contract directly on async
SQLAlchemy sessions. The router exposes the same contract over HTTP for
``ServiceClient``:

- POST /internal/count  - Count records matching filters
- POST /internal/window - Fetch an ordered window of records
- POST /internal/get    - Fetch one record by primary key
- POST /internal/mutate - Create, update or delete one record

Dotted filter paths cross relationships with ``has()`` / ``any()``, so a
filter on a to-many relation never duplicates parent rows. Ordering may
cross to-one relationships, which are joined through aliases.

Models are registered by resource name, and relationship attributes must be
named like the resource's relation fields:

    backend = SQLAlchemyBackend(database.session_maker, {"Offer": Offer, "Product": Product})
    app.include_router(create_internal_router(backend))
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Mapping, Optional, Sequence

from fastapi import APIRouter, HTTPException
from sqlalchemy import Date, DateTime, func, inspect, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, aliased

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

TEXT_OPS = frozenset({"iexact", "contains", "icontains", "startswith", "endswith", "word_start"})


class SQLAlchemyBackend:
    """
    Backend contract implemented with SQLAlchemy async sessions.

    Each call opens its own session, so concurrent calls never share one.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        models: Mapping[str, type[DeclarativeBase]],
    ):
        self.session_factory = session_factory
        self.models = dict(models)

    def _model(self, resource: str) -> type[DeclarativeBase]:
        model = self.models.get(resource)
        if model is None:
            raise LookupError(f"No model registered for resource '{resource}'")
        return model

    # --- Backend contract ---

    async def count(self, resource: str, filters: Sequence[NormalizedFilter]) -> int:
        model = self._model(resource)
        stmt = self._apply_filters(select(model), model, filters)
        count_stmt = select(func.count()).select_from(stmt.subquery())

        async with self.session_factory() as session:
            result = await session.execute(count_stmt)
            return result.scalar() or 0

    async def fetch_window(
        self,
        resource: str,
        filters: Sequence[NormalizedFilter],
        ordering: Sequence[NormalizedOrder],
        window: WindowSpec,
    ) -> list[dict[str, Any]]:
        model = self._model(resource)
        stmt = self._apply_filters(select(model), model, filters)
        stmt = self._apply_order(stmt, model, ordering)
        stmt = stmt.offset(window.offset).limit(window.limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [self._model_to_dict(row) for row in result.scalars().all()]

    async def fetch_one(self, resource: str, id: Any) -> Optional[dict[str, Any]]:
        model = self._model(resource)
        async with self.session_factory() as session:
            instance = await session.get(model, self._coerce_key(model, id))
            return self._model_to_dict(instance) if instance is not None else None

    async def mutate(self, resource: str, operation: str, data: dict[str, Any]) -> dict[str, Any]:
        model = self._model(resource)
        data = self._coerce_data(model, data)

        async with self.session_factory() as session:
            if operation == "create":
                instance = model(**data)
                session.add(instance)
                await session.commit()
                await session.refresh(instance)
                return self._model_to_dict(instance)

            key = self._primary_key(model)
            instance = await session.get(model, data.get(key))
            if instance is None:
                raise LookupError(f"{resource} '{data.get(key)}' not found")

            if operation == "update":
                for name, value in data.items():
                    if name != key:
                        setattr(instance, name, value)
                await session.commit()
                await session.refresh(instance)
                return self._model_to_dict(instance)

            if operation == "delete":
                item = self._model_to_dict(instance)
                await session.delete(instance)
                await session.commit()
                return item

        raise ValueError(f"Unknown mutation '{operation}'")

    # --- filters ---

    def _apply_filters(self, stmt, model, filters: Sequence[NormalizedFilter]):
        """Apply filters to select statement."""
        for f in filters:
            stmt = stmt.where(self._condition(model, f.field.split("."), f))
        return stmt

    def _condition(self, model, parts: list[str], f: NormalizedFilter):
        mapper = inspect(model)
        name = parts[0]

        if len(parts) == 1:
            column = mapper.columns.get(name)
            if column is None:
                raise LookupError(f"Unknown column '{name}' on {model.__name__}")
            return self._compare(getattr(model, name), column, f.op, f.value)

        relationship = mapper.relationships.get(name)
        if relationship is None:
            raise LookupError(f"Unknown relationship '{name}' on {model.__name__}")
        inner = self._condition(relationship.mapper.class_, parts[1:], f)
        attr = getattr(model, name)
        return attr.any(inner) if relationship.uselist else attr.has(inner)

    def _compare(self, attr, column, op: str, value: Any):
        if op == "isnull":
            return attr.is_(None) if value else attr.isnot(None)
        if op in TEXT_OPS and isinstance(value, list):
            return or_(*(self._compare(attr, column, op, v) for v in value))
        if op in ("in", "between"):
            value = [_coerce_value(column, v) for v in value]
        else:
            value = _coerce_value(column, value)

        if op == "eq":
            return attr == value
        if op == "in":
            return attr.in_(value)
        if op == "between":
            return attr.between(value[0], value[1])
        if op == "lt":
            return attr < value
        if op == "lte":
            return attr <= value
        if op == "gt":
            return attr > value
        if op == "gte":
            return attr >= value
        if op == "iexact":
            return func.lower(attr) == value.lower()
        if op == "contains":
            return attr.contains(value, autoescape=True)
        if op == "icontains":
            return attr.icontains(value, autoescape=True)
        if op == "startswith":
            return attr.startswith(value, autoescape=True)
        if op == "endswith":
            return attr.endswith(value, autoescape=True)
        if op == "word_start":
            return or_(
                attr.istartswith(value, autoescape=True),
                attr.icontains(f" {value}", autoescape=True),
            )
        raise ValueError(f"Unsupported filter op '{op}'")

    # --- ordering ---

    def _apply_order(self, stmt, model, ordering: Sequence[NormalizedOrder]):
        joined: dict[str, Any] = {}
        for order in ordering:
            parts = order.field.split(".")
            entity, current, prefix = model, model, ""

            for part in parts[:-1]:
                relationship = inspect(current).relationships.get(part)
                if relationship is None or relationship.uselist:
                    raise LookupError(f"Cannot order {model.__name__} by '{order.field}'")
                prefix = f"{prefix}.{part}" if prefix else part
                if prefix not in joined:
                    target = aliased(relationship.mapper.class_)
                    stmt = stmt.outerjoin(getattr(entity, part).of_type(target))
                    joined[prefix] = target
                entity, current = joined[prefix], relationship.mapper.class_

            column = getattr(entity, parts[-1])
            stmt = stmt.order_by(column.desc() if order.dir == "desc" else column.asc())
        return stmt

    # --- conversion ---

    def _primary_key(self, model) -> str:
        return inspect(model).primary_key[0].name

    def _coerce_key(self, model, id: Any) -> Any:
        return _coerce_value(inspect(model).primary_key[0], id)

    def _coerce_data(self, model, data: dict[str, Any]) -> dict[str, Any]:
        """Coerce ISO strings for date and datetime columns."""
        columns = inspect(model).columns
        coerced = {}
        for key, value in data.items():
            column = columns.get(key)
            coerced[key] = _coerce_value(column, value) if column is not None else value
        return coerced

    def _model_to_dict(self, instance) -> dict[str, Any]:
        """Convert model instance to a dict of its column attributes."""
        return {
            attr.key: getattr(instance, attr.key)
            for attr in inspect(instance).mapper.column_attrs
        }


def _coerce_value(column, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if isinstance(column.type, DateTime):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(column.type, Date):
        return date.fromisoformat(value[:10])
    return value


def create_internal_router(backend: SQLAlchemyBackend, prefix: str = "") -> APIRouter:
    """
    Create the FastAPI router that serves the Backend contract over HTTP.

    Unknown resources and missing mutation targets answer 404, constraint
    violations 409.
    """
    router = APIRouter(prefix=prefix)

    @router.post("/internal/count")
    async def internal_count(request: InternalCountRequest) -> InternalCountResponse:
        try:
            total = await backend.count(request.resource, request.filters)
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return InternalCountResponse(total=total)

    @router.post("/internal/window")
    async def internal_window(request: InternalWindowRequest) -> InternalWindowResponse:
        window = WindowSpec(offset=request.offset, limit=request.limit)
        try:
            items = await backend.fetch_window(request.resource, request.filters, request.order, window)
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return InternalWindowResponse(items=items)

    @router.post("/internal/get")
    async def internal_get(request: InternalGetRequest) -> InternalGetResponse:
        try:
            item = await backend.fetch_one(request.resource, request.id)
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return InternalGetResponse(item=item)

    @router.post("/internal/mutate")
    async def internal_mutate(request: InternalMutationRequest) -> InternalMutationResponse:
        try:
            item = await backend.mutate(request.resource, request.operation, request.data)
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except IntegrityError as e:
            logger.warning(f"Constraint violation on {request.resource}: {e.orig}")
            raise HTTPException(status_code=409, detail="Constraint violation")
        return InternalMutationResponse(item=item)

    return router
