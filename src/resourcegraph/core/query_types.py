"""
Pydantic models for operations, normalized filters and connections.

These define the structure of incoming operations, the normalized
representation handed to the persistence backend, and the Relay-style
connection envelope returned for collections.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Normalized types (what the backend receives) ---

# eq, in           exact match / any of
# iexact           case-insensitive exact (value may be a list: any of)
# contains, icontains, startswith, endswith, word_start
#                  text match (value may be a list: any of)
# lt, lte, gt, gte comparisons
# between          value is [low, high]
# isnull           value is a bool
FILTER_OPS = frozenset({
    "eq", "in", "iexact",
    "contains", "icontains", "startswith", "endswith", "word_start",
    "lt", "lte", "gt", "gte", "between",
    "isnull",
})


class NormalizedFilter(BaseModel):
    """
    Normalized filter representation.

    Argument: {"product_color_list": ["red", "green"]}
    Normalized: NormalizedFilter(field="product.color", op="in", value=["red", "green"])
    """
    model_config = ConfigDict(frozen=True)

    field: str  # dotted property path, may cross relations
    op: str
    value: Any


class NormalizedOrder(BaseModel):
    """
    Normalized order representation.

    Argument: {"order": {"product_releaseDate": "DESC"}}
    Normalized: NormalizedOrder(field="product.releaseDate", dir="desc")
    """
    model_config = ConfigDict(frozen=True)

    field: str
    dir: Literal["asc", "desc"]


class WindowSpec(BaseModel):
    """Bounded fetch instruction: items at positions [offset, offset + limit)."""
    offset: int = 0
    limit: int


# --- Pagination ---

class CursorWindowRequest(BaseModel):
    """
    Relay pagination arguments.

    Forward: first + after. Backward: last + before. Never both.
    """
    first: Optional[int] = None
    after: Optional[str] = None
    last: Optional[int] = None
    before: Optional[str] = None

    @property
    def is_forward(self) -> bool:
        return self.first is not None or self.after is not None

    @property
    def is_backward(self) -> bool:
        return self.last is not None or self.before is not None


class PageInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_cursor: Optional[str] = Field(default=None, alias="startCursor")
    end_cursor: Optional[str] = Field(default=None, alias="endCursor")
    has_next_page: bool = Field(default=False, alias="hasNextPage")
    has_previous_page: bool = Field(default=False, alias="hasPreviousPage")


class Edge(BaseModel):
    cursor: str
    node: Any


class Connection(BaseModel):
    """
    Relay connection envelope.

    Serialize with ``model_dump(by_alias=True)`` to get the wire names
    (totalCount, pageInfo, edges).
    """
    model_config = ConfigDict(populate_by_name=True)

    total_count: int = Field(alias="totalCount")
    page_info: PageInfo = Field(alias="pageInfo")
    edges: list[Edge] = Field(default_factory=list)

    @property
    def nodes(self) -> list[Any]:
        return [edge.node for edge in self.edges]


# --- Input types (from the query parser / client) ---

class SelectionNode(BaseModel):
    """
    Selection node - defines what to return at each level.

    Relations carry their own selection and, for "many" relations,
    their own filter and pagination arguments.
    """
    fields: list[str] = Field(default_factory=list)
    args: dict[str, Any] = Field(default_factory=dict)
    relations: dict[str, SelectionNode] = Field(default_factory=dict)


class OperationRequest(BaseModel):
    """
    A single parsed operation.

    Example:
    {
        "operation": "query",
        "resource": "Offer",
        "args": {"product_color_list": ["red", "green"], "first": 10},
        "select": {
            "fields": ["id", "price"],
            "relations": {"product": {"fields": ["color"]}}
        }
    }
    """
    operation: Literal["query", "create", "update", "delete"]
    resource: str
    collection: Optional[bool] = None  # defaults to True for queries without id
    id: Any = None
    args: dict[str, Any] = Field(default_factory=dict)
    input: dict[str, Any] = Field(default_factory=dict)
    select: SelectionNode = Field(default_factory=SelectionNode)

    @property
    def is_mutation(self) -> bool:
        return self.operation != "query"

    @property
    def is_collection(self) -> bool:
        if self.operation != "query":
            return False
        if self.collection is not None:
            return self.collection
        return self.id is None


# --- Backend (internal service) request/response types ---

class InternalCountRequest(BaseModel):
    """POST /internal/count"""
    resource: str
    filters: list[NormalizedFilter] = Field(default_factory=list)


class InternalCountResponse(BaseModel):
    total: int


class InternalWindowRequest(BaseModel):
    """POST /internal/window"""
    resource: str
    filters: list[NormalizedFilter] = Field(default_factory=list)
    order: list[NormalizedOrder] = Field(default_factory=list)
    offset: int = 0
    limit: int


class InternalWindowResponse(BaseModel):
    items: list[dict[str, Any]]


class InternalGetRequest(BaseModel):
    """POST /internal/get"""
    resource: str
    id: Any


class InternalGetResponse(BaseModel):
    item: Optional[dict[str, Any]] = None


class InternalMutationRequest(BaseModel):
    """POST /internal/mutate"""
    resource: str
    operation: Literal["create", "update", "delete"]
    data: dict[str, Any] = Field(default_factory=dict)


class InternalMutationResponse(BaseModel):
    item: dict[str, Any]
