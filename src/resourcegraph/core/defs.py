"""
Core dataclass definitions for resourcegraph.

These describe resources, their fields, relations, filters and per-operation
overrides. Everything here is immutable once built: descriptors are compiled
once at startup and shared read-only by every operation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Literal, Mapping, Optional

from .errors import ValidationError

if TYPE_CHECKING:
    from ..runtime.context import Principal


OperationName = Literal["query", "create", "update", "delete"]

OPERATION_NAMES: tuple[str, ...] = ("query", "create", "update", "delete")
MUTATION_OPERATIONS = frozenset({"create", "update", "delete"})

# Scalar field types; anything else must be a relation field.
FIELD_TYPES = frozenset({"int", "float", "string", "bool", "datetime", "date", "json"})


@dataclass(frozen=True)
class RefDef:
    """
    Reference between two resources.

    For a "one" relation the parent's ``from_field`` holds the value of the
    target's ``to_field``. For a "many" relation the targets' ``to_field``
    holds the parent's ``from_field``.
    """
    from_field: str
    to_field: str = "id"


@dataclass(frozen=True)
class RelationDef:
    """Definition of a relation between resources."""
    target: str
    cardinality: Literal["one", "many"]
    ref: RefDef


@dataclass(frozen=True)
class FieldDef:
    """Definition of a resource field."""
    name: str
    type: str  # int, float, string, bool, datetime, date, json or a resource name
    nullable: bool = True
    groups: frozenset[str] = frozenset()
    relation: Optional[RelationDef] = None

    @property
    def is_relation(self) -> bool:
        return self.relation is not None


@dataclass(frozen=True)
class FilterDef:
    """
    A declared filter.

    ``properties`` maps a dotted property path to the filter strategy for
    that path (search strategy, default order direction) or None.
    """
    kind: str  # search, numeric, boolean, range, date, exists, order
    properties: Mapping[str, Optional[str]] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties)))


@dataclass(frozen=True)
class AccessRule:
    """
    A compiled access-control rule.

    ``predicate`` receives the principal and the target object (None for
    collection-level and create checks).
    """
    expression: str
    predicate: Callable[["Principal", Any], bool]
    message: Optional[str] = None
    uses_object: bool = False


@dataclass(frozen=True)
class OperationOverride:
    """Per-operation overrides. None means "inherit from the resource"."""
    filters: Optional[Mapping[str, FilterDef]] = None
    access: Optional[AccessRule] = None
    normalization_groups: Optional[frozenset[str]] = None
    denormalization_groups: Optional[frozenset[str]] = None

    def __post_init__(self):
        if self.filters is not None:
            object.__setattr__(self, "filters", MappingProxyType(dict(self.filters)))


@dataclass(frozen=True)
class ResourceDescriptor:
    """
    Complete definition of a resource.

    ``operations`` set to None means the resource never declared its
    operations: all of them are exposed with the base rule set. A declared
    mapping exposes exactly the operations it names.
    """
    name: str
    fields: tuple[FieldDef, ...]
    keys: tuple[str, ...] = ("id",)
    filters: Mapping[str, FilterDef] = field(default_factory=dict)
    order: tuple[tuple[str, str], ...] = ()  # (dotted path, "asc" | "desc")
    access: Optional[AccessRule] = None
    normalization_groups: Optional[frozenset[str]] = None
    denormalization_groups: Optional[frozenset[str]] = None
    operations: Optional[Mapping[str, OperationOverride]] = None
    _fields_by_name: Mapping[str, FieldDef] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self):
        object.__setattr__(self, "fields", tuple(self.fields))
        object.__setattr__(self, "keys", tuple(self.keys))
        object.__setattr__(self, "filters", MappingProxyType(dict(self.filters)))
        if self.operations is not None:
            object.__setattr__(self, "operations", MappingProxyType(dict(self.operations)))
        object.__setattr__(
            self, "_fields_by_name", MappingProxyType({f.name: f for f in self.fields})
        )

    def get_field(self, name: str) -> Optional[FieldDef]:
        """Get field definition by name."""
        return self._fields_by_name.get(name)

    @property
    def exposed_operations(self) -> tuple[str, ...]:
        if self.operations is None:
            return OPERATION_NAMES
        return tuple(op for op in OPERATION_NAMES if op in self.operations)

    def exposes(self, operation: str) -> bool:
        return operation in self.exposed_operations

    def get_operation(self, operation: str) -> OperationOverride:
        """
        Resolve the override bundle for an operation.

        Raises:
            ValidationError: If the operation is not exposed for this resource
        """
        if not self.exposes(operation):
            raise ValidationError(
                f"Operation '{operation}' is not exposed for resource '{self.name}'",
                argument="operation",
            )
        if self.operations is None:
            return OperationOverride()
        return self.operations[operation]

    def active_filters(self, operation: str = "query") -> Mapping[str, FilterDef]:
        """Override filters if the operation declares them, else the base filters."""
        override = self.get_operation(operation)
        if override.filters is not None:
            return override.filters
        return self.filters
