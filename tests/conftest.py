"""
Shared pytest fixtures: an in-memory recording backend and a small catalog.

Catalog:
    Product  - no declared operations (every operation exposed)
    Offer    - filters across the Offer -> Product relation
    Book     - query and create only, serialization groups, admin-only create
    Note     - owner-based item rules, update override
"""

from __future__ import annotations

import copy
from datetime import date
from typing import Any, Optional, Sequence

import pytest

from resourcegraph.core.compiler import compile_resources
from resourcegraph.core.query_types import NormalizedFilter, NormalizedOrder, WindowSpec
from resourcegraph.core.registry import ResourceRegistry
from resourcegraph.runtime.context import Principal
from resourcegraph.runtime.resolver import Resolver


CATALOG = {
    "resources": {
        "Product": {
            "fields": {
                "id": "int",
                "name": "string",
                "color": "string",
                "releaseDate": "date?",
                "image": "string?",
                "offers": {
                    "type": "Offer",
                    "relation": {
                        "cardinality": "many",
                        "ref": {"from_field": "id", "to_field": "product_id"},
                    },
                },
            },
            "filters": {
                "color": {"kind": "search", "properties": {"color": "exact"}},
                "name": {"kind": "search", "properties": {"name": "ipartial"}},
            },
        },
        "Offer": {
            "fields": {
                "id": "int",
                "price": "float",
                "product_id": "int?",
                "product": {
                    "type": "Product",
                    "relation": {
                        "cardinality": "one",
                        "ref": {"from_field": "product_id", "to_field": "id"},
                    },
                },
            },
            "filters": {
                "product_color": {"kind": "search", "properties": {"product.color": "exact"}},
                "price_range": {"kind": "range", "properties": {"price": None}},
                "has_image": {"kind": "exists", "properties": {"product.image": None}},
                "release": {"kind": "date", "properties": {"product.releaseDate": None}},
                "sorting": {
                    "kind": "order",
                    "properties": {"product.releaseDate": None, "price": None, "id": None},
                },
            },
        },
        "Book": {
            "fields": {
                "id": "int",
                "title": {"type": "string", "groups": ["book:read", "book:write"]},
                "author": {"type": "string", "groups": ["book:read", "book:write"]},
                "isbn": {"type": "string?", "groups": ["book:read"]},
                "notes": {"type": "string?", "groups": ["admin"]},
            },
            "normalization_groups": ["book:read"],
            "denormalization_groups": ["book:write"],
            "access": "user.id != null",
            "filters": {
                "author": {"kind": "search", "properties": {"author": "exact"}},
            },
            "operations": {
                "query": {},
                "create": {
                    "access": {
                        "expression": "is_granted('ROLE_ADMIN')",
                        "message": "Only admins may add books.",
                    },
                },
            },
        },
        "Note": {
            "fields": {
                "id": "int",
                "owner_id": "int",
                "body": "string",
            },
            "access": {"expression": "object.owner_id == user.id", "message": "Not your note."},
            "operations": {
                "query": {},
                "create": {"access": "user.id != null"},
                "update": {
                    "access": "is_granted('ROLE_ADMIN') or object.owner_id == user.id",
                },
                "delete": {},
            },
        },
    }
}


PRODUCTS = [
    {"id": 1, "name": "Red Shoe", "color": "red", "releaseDate": date(2024, 1, 10), "image": "a.png"},
    {"id": 2, "name": "Green Hat", "color": "green", "releaseDate": date(2024, 3, 5), "image": None},
    {"id": 3, "name": "Blue Scarf", "color": "blue", "releaseDate": date(2024, 2, 1), "image": "c.png"},
    {"id": 4, "name": "Red Glove", "color": "red", "releaseDate": date(2023, 12, 1), "image": None},
]

OFFERS = [
    {"id": 1, "price": 10.0, "product_id": 1},
    {"id": 2, "price": 20.0, "product_id": 2},
    {"id": 3, "price": 30.0, "product_id": 3},
    {"id": 4, "price": 40.0, "product_id": 4},
    {"id": 5, "price": 15.0, "product_id": 1},
    {"id": 6, "price": 25.0, "product_id": 2},
    {"id": 7, "price": 5.0, "product_id": None},
    {"id": 8, "price": 35.0, "product_id": 3},
]

BOOKS = [
    {"id": 1, "title": "Dune", "author": "Herbert", "isbn": "111", "notes": "first edition"},
    {"id": 2, "title": "Emma", "author": "Austen", "isbn": "222", "notes": None},
]

NOTES = [
    {"id": 1, "owner_id": 7, "body": "mine"},
    {"id": 2, "owner_id": 8, "body": "theirs"},
]


class RecordingBackend:
    """
    In-memory Backend that records every call.

    Dotted filter paths are resolved through the registry's relations, like
    a real backend would join them.
    """

    def __init__(self, registry: ResourceRegistry, data: dict[str, list[dict[str, Any]]]):
        self.registry = registry
        self.data = copy.deepcopy(data)
        self.calls: list[tuple[str, str]] = []
        self.windows: list[tuple[str, list, list, WindowSpec]] = []

    # --- Backend contract ---

    async def count(self, resource: str, filters: Sequence[NormalizedFilter]) -> int:
        self.calls.append(("count", resource))
        return len(self._matching(resource, filters))

    async def fetch_window(
        self,
        resource: str,
        filters: Sequence[NormalizedFilter],
        ordering: Sequence[NormalizedOrder],
        window: WindowSpec,
    ) -> list[dict[str, Any]]:
        self.calls.append(("fetch_window", resource))
        self.windows.append((resource, list(filters), list(ordering), window))
        rows = self._matching(resource, filters)
        for order in reversed(list(ordering)):
            rows.sort(key=lambda row: self._first(resource, row, order.field),
                      reverse=order.dir == "desc")
        return [dict(row) for row in rows[window.offset:window.offset + window.limit]]

    async def fetch_one(self, resource: str, id: Any) -> Optional[dict[str, Any]]:
        self.calls.append(("fetch_one", resource))
        key = self.registry.get(resource).keys[0]
        for row in self.data.get(resource, []):
            if row[key] == id:
                return dict(row)
        return None

    async def mutate(self, resource: str, operation: str, data: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("mutate", resource))
        rows = self.data.setdefault(resource, [])
        key = self.registry.get(resource).keys[0]

        if operation == "create":
            row = {f.name: None for f in self.registry.get(resource).fields if not f.is_relation}
            row.update(data)
            row[key] = max((r[key] for r in rows), default=0) + 1
            rows.append(row)
            return dict(row)

        row = next(r for r in rows if r[key] == data[key])
        if operation == "update":
            row.update(data)
            return dict(row)
        rows.remove(row)
        return dict(row)

    # --- helpers ---

    def _matching(self, resource: str, filters: Sequence[NormalizedFilter]) -> list[dict[str, Any]]:
        return [
            row for row in self.data.get(resource, [])
            if all(self._match(resource, row, f) for f in filters)
        ]

    def _values(self, resource: str, row: dict[str, Any], path: str) -> list[Any]:
        parts = path.split(".")
        rows, current = [row], self.registry.get(resource)
        for part in parts[:-1]:
            relation = current.get_field(part).relation
            target_rows = self.data.get(relation.target, [])
            rows = [
                target for source in rows for target in target_rows
                if source.get(relation.ref.from_field) is not None
                and target.get(relation.ref.to_field) == source.get(relation.ref.from_field)
            ]
            current = self.registry.get(relation.target)
        return [r.get(parts[-1]) for r in rows]

    def _first(self, resource: str, row: dict[str, Any], path: str):
        values = self._values(resource, row, path)
        value = values[0] if values else None
        return (False, 0) if value is None else (True, value)

    def _match(self, resource: str, row: dict[str, Any], f: NormalizedFilter) -> bool:
        values = self._values(resource, row, f.field) or [None]
        return any(_compare(value, f.op, f.value) for value in values)


def _compare(value: Any, op: str, operand: Any) -> bool:
    if op == "isnull":
        return (value is None) == operand
    if value is None:
        return False
    if isinstance(operand, list) and op not in ("in", "between"):
        return any(_compare(value, op, item) for item in operand)
    if op == "eq":
        return value == operand
    if op == "in":
        return value in operand
    if op == "iexact":
        return value.lower() == operand.lower()
    if op == "contains":
        return operand in value
    if op == "icontains":
        return operand.lower() in value.lower()
    if op == "startswith":
        return value.startswith(operand)
    if op == "endswith":
        return value.endswith(operand)
    if op == "word_start":
        return any(word.lower().startswith(operand.lower()) for word in value.split())
    if op == "lt":
        return value < operand
    if op == "lte":
        return value <= operand
    if op == "gt":
        return value > operand
    if op == "gte":
        return value >= operand
    if op == "between":
        return operand[0] <= value <= operand[1]
    raise ValueError(f"Unsupported op {op}")


@pytest.fixture
def registry() -> ResourceRegistry:
    return compile_resources(CATALOG)


@pytest.fixture
def backend(registry) -> RecordingBackend:
    return RecordingBackend(
        registry,
        {"Product": PRODUCTS, "Offer": OFFERS, "Book": BOOKS, "Note": NOTES},
    )


@pytest.fixture
def resolver(registry, backend) -> Resolver:
    return Resolver(registry, backend)


@pytest.fixture
def anonymous() -> Principal:
    return Principal.anonymous()


@pytest.fixture
def reader() -> Principal:
    return Principal(id=7, roles=("ROLE_USER",))


@pytest.fixture
def admin() -> Principal:
    return Principal(id=1, roles=("ROLE_ADMIN",))
