"""
Resource compiler - converts resource configuration to a ResourceRegistry.

Validates the configuration, compiles access expressions to predicates and
builds the immutable registry. All errors are collected before failing.

Configuration format (usually loaded from YAML):

    resources:
      Offer:
        keys: [id]
        fields:
          id: int
          price: float
          product_id: int?
          product:
            type: Product
            relation: {cardinality: one, ref: {from_field: product_id, to_field: id}}
        filters:
          colors: {kind: search, properties: {product.color: exact}}
          by_date: {kind: order, properties: {product.releaseDate: DESC}}
        order: {id: ASC}
        access: "user.id != null"
        operations:
          query: {}
          update: {access: {expression: "object.owner == user.id", message: "Not yours."}}

Usage:
    from resourcegraph.core.compiler import ResourceCompiler, compile_resources

    result = ResourceCompiler().compile(config)
    if not result.success:
        print(result.error_messages())

    registry = compile_resources(config)  # raises GraphConfigError
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from ..iam.expressions import ExpressionError, compile_expression
from .defs import (
    FIELD_TYPES,
    OPERATION_NAMES,
    AccessRule,
    FieldDef,
    FilterDef,
    OperationOverride,
    RefDef,
    RelationDef,
    ResourceDescriptor,
)
from .errors import GraphConfigError, ValidationError
from .filters import ORDER_DIRECTIONS
from .registry import ResourceRegistry


@dataclass
class CompilationError:
    """Single compilation error."""
    resource: Optional[str]
    field: Optional[str]
    message: str

    def __str__(self) -> str:
        parts = []
        if self.resource:
            parts.append(self.resource)
        if self.field:
            parts.append(self.field)
        if not parts:
            return self.message
        return f"[{'.'.join(parts)}] {self.message}"


@dataclass
class CompilationResult:
    """Result of compilation."""
    success: bool
    registry: Optional[ResourceRegistry] = None
    errors: list[CompilationError] = field(default_factory=list)

    def error_messages(self) -> list[str]:
        """Get all error messages as strings."""
        return [str(e) for e in self.errors]


class ResourceCompiler:
    """
    Compiles resource configuration to a ResourceRegistry.

    Performs validation:
    - Field types are scalar types or known resources
    - Keys exist and are scalar fields
    - Relation targets exist and their refs point at scalar fields
    - Access expressions compile
    - Operation names are known
    - Filters and default ordering resolve (checked by the registry)
    """

    def __init__(self):
        self.errors: list[CompilationError] = []

    def compile(self, config: dict[str, Any]) -> CompilationResult:
        """
        Compile configuration to a registry.

        Args:
            config: {"resources": {name: definition}} or {name: definition}

        Returns:
            CompilationResult with either registry or errors
        """
        self.errors = []
        resources = config.get("resources", config) if isinstance(config, dict) else None
        if not isinstance(resources, dict) or not resources:
            self._add_error("No resources defined")
            return CompilationResult(success=False, errors=self.errors)

        descriptors = []
        for name, definition in resources.items():
            if not isinstance(definition, dict):
                self._add_error("Definition must be a mapping", resource=name)
                continue
            descriptor = self._compile_resource(name, definition, resources)
            if descriptor is not None:
                descriptors.append(descriptor)

        if self.errors:
            return CompilationResult(success=False, errors=self.errors)

        try:
            registry = ResourceRegistry(descriptors)
        except GraphConfigError as e:
            for message in e.errors:
                self._add_error(message)
            return CompilationResult(success=False, errors=self.errors)

        self._validate_default_order(registry)
        if self.errors:
            return CompilationResult(success=False, errors=self.errors)

        return CompilationResult(success=True, registry=registry)

    def _add_error(
        self,
        message: str,
        resource: Optional[str] = None,
        field: Optional[str] = None,
    ):
        """Add a compilation error."""
        self.errors.append(CompilationError(resource=resource, field=field, message=message))

    # --- resources ---

    def _compile_resource(
        self,
        name: str,
        definition: dict[str, Any],
        resources: dict[str, Any],
    ) -> Optional[ResourceDescriptor]:
        error_count = len(self.errors)

        raw_fields = definition.get("fields") or {}
        if not raw_fields:
            self._add_error("No fields defined", resource=name)
        fields = [
            f for f in (
                self._compile_field(name, field_name, raw, resources)
                for field_name, raw in raw_fields.items()
            )
            if f is not None
        ]
        by_name = {f.name: f for f in fields}

        keys = definition.get("keys", ["id"])
        if isinstance(keys, str):
            keys = [keys]
        if not keys:
            self._add_error("No primary keys defined", resource=name)
        for key in keys:
            key_field = by_name.get(key)
            if key_field is None:
                self._add_error(f"Key '{key}' not in fields", resource=name)
            elif key_field.is_relation:
                self._add_error(f"Key '{key}' must be a scalar field", resource=name)

        for f in fields:
            if f.relation is not None:
                self._validate_relation(name, f, by_name, resources)

        filters = self._compile_filters(name, definition.get("filters") or {})
        order = self._compile_order(name, definition.get("order") or {})
        access = self._compile_access(name, "access", definition.get("access"))
        normalization_groups = self._compile_groups(
            name, "normalization_groups", definition.get("normalization_groups")
        )
        denormalization_groups = self._compile_groups(
            name, "denormalization_groups", definition.get("denormalization_groups")
        )
        operations = self._compile_operations(name, definition.get("operations"))

        if len(self.errors) > error_count:
            return None

        return ResourceDescriptor(
            name=name,
            fields=tuple(fields),
            keys=tuple(keys),
            filters=filters,
            order=order,
            access=access,
            normalization_groups=normalization_groups,
            denormalization_groups=denormalization_groups,
            operations=operations,
        )

    def _compile_field(
        self,
        resource: str,
        name: str,
        raw: Any,
        resources: dict[str, Any],
    ) -> Optional[FieldDef]:
        """
        Compile one field.

        Shorthand: "int" is a required int, "int?" a nullable one.
        """
        if isinstance(raw, str):
            raw = {"type": raw}
        if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
            self._add_error("Field needs a type", resource=resource, field=name)
            return None

        field_type = raw["type"]
        nullable = bool(raw.get("nullable", False))
        if field_type.endswith("?"):
            field_type = field_type[:-1]
            nullable = True

        groups = self._compile_groups(resource, name, raw.get("groups")) or frozenset()

        if field_type in FIELD_TYPES:
            if "relation" in raw:
                self._add_error(
                    f"Scalar field of type '{field_type}' cannot declare a relation",
                    resource=resource, field=name,
                )
                return None
            return FieldDef(name=name, type=field_type, nullable=nullable, groups=groups)

        if field_type not in resources:
            self._add_error(
                f"Invalid type '{field_type}', must be one of {sorted(FIELD_TYPES)} "
                f"or a resource name",
                resource=resource, field=name,
            )
            return None

        raw_relation = raw.get("relation") or {}
        cardinality = raw_relation.get("cardinality", "one")
        if cardinality not in ("one", "many"):
            self._add_error(
                f"Invalid cardinality '{cardinality}', must be 'one' or 'many'",
                resource=resource, field=name,
            )
            return None

        raw_ref = raw_relation.get("ref") or {}
        if cardinality == "one":
            ref = RefDef(
                from_field=raw_ref.get("from_field", f"{name}_id"),
                to_field=raw_ref.get("to_field", "id"),
            )
        else:
            if "to_field" not in raw_ref:
                self._add_error(
                    "A 'many' relation needs ref.to_field", resource=resource, field=name
                )
                return None
            ref = RefDef(from_field=raw_ref.get("from_field", "id"), to_field=raw_ref["to_field"])

        return FieldDef(
            name=name,
            type=field_type,
            nullable=nullable,
            groups=groups,
            relation=RelationDef(target=field_type, cardinality=cardinality, ref=ref),
        )

    def _validate_relation(
        self,
        resource: str,
        field_def: FieldDef,
        by_name: dict[str, FieldDef],
        resources: dict[str, Any],
    ):
        """Validate that a relation's ref fields exist and are scalars."""
        relation = field_def.relation
        source = by_name.get(relation.ref.from_field)
        if source is None or source.is_relation:
            self._add_error(
                f"ref.from_field '{relation.ref.from_field}' is not a scalar field of '{resource}'",
                resource=resource, field=field_def.name,
            )

        target_fields = (resources.get(relation.target) or {}).get("fields") or {}
        raw_target = target_fields.get(relation.ref.to_field)
        target_type = raw_target if isinstance(raw_target, str) else (raw_target or {}).get("type")
        if not isinstance(target_type, str) or target_type.rstrip("?") not in FIELD_TYPES:
            self._add_error(
                f"ref.to_field '{relation.ref.to_field}' is not a scalar field of "
                f"'{relation.target}'",
                resource=resource, field=field_def.name,
            )

    # --- filters, order, access, groups ---

    def _compile_filters(self, resource: str, raw: Any) -> dict[str, FilterDef]:
        if not isinstance(raw, dict):
            self._add_error("filters must be a mapping", resource=resource)
            return {}

        filters = {}
        for filter_name, filter_raw in raw.items():
            location = f"filters.{filter_name}"
            if not isinstance(filter_raw, dict) or "kind" not in filter_raw:
                self._add_error("Filter needs a kind", resource=resource, field=location)
                continue
            properties = filter_raw.get("properties") or {}
            if isinstance(properties, list):
                properties = {path: None for path in properties}
            if not isinstance(properties, dict) or not properties:
                self._add_error("Filter needs properties", resource=resource, field=location)
                continue
            filters[filter_name] = FilterDef(kind=filter_raw["kind"], properties=properties)
        return filters

    def _compile_order(self, resource: str, raw: Any) -> tuple[tuple[str, str], ...]:
        if isinstance(raw, list) and all(isinstance(mapping, dict) for mapping in raw):
            entries = [item for mapping in raw for item in mapping.items()]
        elif isinstance(raw, dict):
            entries = list(raw.items())
        else:
            self._add_error("order must be a mapping of path: ASC|DESC", resource=resource)
            return ()

        order = []
        for path, direction in entries:
            if direction is not None and not isinstance(direction, str):
                self._add_error(
                    f"Invalid order direction {direction!r} for '{path}'",
                    resource=resource, field="order",
                )
                continue
            direction = (direction or "ASC").upper()
            if direction not in ORDER_DIRECTIONS:
                self._add_error(
                    f"Invalid order direction '{direction}' for '{path}'",
                    resource=resource, field="order",
                )
                continue
            order.append((path, ORDER_DIRECTIONS[direction]))
        return tuple(order)

    def _compile_access(self, resource: str, location: str, raw: Any) -> Optional[AccessRule]:
        if raw is None:
            return None
        if isinstance(raw, str):
            raw = {"expression": raw}
        if not isinstance(raw, dict) or not isinstance(raw.get("expression"), str):
            self._add_error("Access rule needs an expression", resource=resource, field=location)
            return None
        try:
            return compile_expression(raw["expression"], raw.get("message"))
        except ExpressionError as e:
            self._add_error(str(e), resource=resource, field=location)
            return None

    def _compile_groups(self, resource: str, location: str, raw: Any) -> Optional[frozenset[str]]:
        if raw is None:
            return None
        if isinstance(raw, str):
            raw = [raw]
        if not isinstance(raw, list) or not all(isinstance(g, str) for g in raw):
            self._add_error("Groups must be a list of names", resource=resource, field=location)
            return None
        return frozenset(raw)

    def _compile_operations(self, resource: str, raw: Any) -> Optional[dict[str, OperationOverride]]:
        if raw is None:
            return None
        if isinstance(raw, list):
            raw = {name: {} for name in raw}
        if not isinstance(raw, dict):
            self._add_error("operations must be a mapping or a list", resource=resource)
            return None

        operations = {}
        for op_name, op_raw in raw.items():
            location = f"operations.{op_name}"
            if op_name not in OPERATION_NAMES:
                self._add_error(
                    f"Unknown operation '{op_name}', must be one of {list(OPERATION_NAMES)}",
                    resource=resource,
                )
                continue
            op_raw = op_raw or {}
            if not isinstance(op_raw, dict):
                self._add_error(f"{location} must be a mapping", resource=resource)
                continue
            filters = None
            if "filters" in op_raw:
                filters = self._compile_filters(resource, op_raw["filters"] or {})
            operations[op_name] = OperationOverride(
                filters=filters,
                access=self._compile_access(resource, f"{location}.access", op_raw.get("access")),
                normalization_groups=self._compile_groups(
                    resource, f"{location}.normalization_groups", op_raw.get("normalization_groups")
                ),
                denormalization_groups=self._compile_groups(
                    resource, f"{location}.denormalization_groups", op_raw.get("denormalization_groups")
                ),
            )
        return operations

    def _validate_default_order(self, registry: ResourceRegistry):
        for descriptor in registry:
            for path, _ in descriptor.order:
                try:
                    resolved = registry.resolve_path(descriptor.name, path)
                except ValidationError as e:
                    self._add_error(str(e), resource=descriptor.name, field="order")
                    continue
                if resolved.leaf.is_relation or resolved.crosses_many:
                    self._add_error(
                        f"Cannot order by '{path}'", resource=descriptor.name, field="order"
                    )


def compile_resources(config: dict[str, Any]) -> ResourceRegistry:
    """
    Compile configuration or raise.

    Raises:
        GraphConfigError: With every compilation error
    """
    result = ResourceCompiler().compile(config)
    if not result.success:
        raise GraphConfigError(result.error_messages())
    return result.registry
