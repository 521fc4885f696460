"""
Resource registry - the read-only set of resource descriptors.

Built once at startup (usually by the compiler) and shared by every
operation. Filter argument schemas are derived here eagerly, so a registry
that constructs without error is ready to serve.

Usage:
    from resourcegraph.core.registry import ResourceRegistry

    registry = ResourceRegistry([offer_descriptor, product_descriptor])
    translator = registry.translator("Offer")
    translated = translator.translate({"product_color": "red"})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Iterator

from .defs import FieldDef, ResourceDescriptor
from .errors import GraphConfigError, ValidationError
from .filters import FilterArgumentTranslator


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedPath:
    """A dotted property path resolved through the relation graph."""
    path: str
    resource: str  # resource owning the leaf field
    leaf: FieldDef
    crosses_many: bool = False


class ResourceRegistry:
    """
    Immutable collection of ResourceDescriptors.

    Example:
        registry = ResourceRegistry(descriptors)
        offer = registry.get("Offer")
        registry.resolve_path("Offer", "product.color").leaf.type  # "string"
    """

    def __init__(self, descriptors: Iterable[ResourceDescriptor]):
        by_name: dict[str, ResourceDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in by_name:
                raise GraphConfigError(f"Resource '{descriptor.name}' registered twice")
            by_name[descriptor.name] = descriptor
        self._descriptors = MappingProxyType(by_name)

        # Filters only drive collection queries, so only "query" needs a translator.
        translators: dict[str, FilterArgumentTranslator] = {}
        errors: list[str] = []
        for name, descriptor in by_name.items():
            if not descriptor.exposes("query"):
                continue
            try:
                translators[name] = FilterArgumentTranslator(
                    self, descriptor, descriptor.active_filters("query")
                )
            except GraphConfigError as e:
                errors.extend(e.errors)
        if errors:
            raise GraphConfigError(errors)
        self._translators = MappingProxyType(translators)

        logger.info(f"Resource registry built with {len(by_name)} resources")

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __iter__(self) -> Iterator[ResourceDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)

    @property
    def names(self) -> list[str]:
        return list(self._descriptors)

    def get(self, name: str) -> ResourceDescriptor:
        """
        Get a descriptor by resource name.

        Raises:
            ValidationError: If the resource is unknown
        """
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise ValidationError(f"Unknown resource '{name}'", argument="resource")
        return descriptor

    def resolve_path(self, resource: str, path: str) -> ResolvedPath:
        """
        Walk a dotted property path from ``resource`` through its relations.

        Raises:
            ValidationError: If a segment is missing or a non-relation is traversed
        """
        current = self.get(resource)
        parts = path.split(".")
        crosses_many = False

        for index, part in enumerate(parts):
            field_def = current.get_field(part)
            if field_def is None:
                raise ValidationError(
                    f"Property '{path}' does not resolve on '{resource}': "
                    f"'{part}' not found on '{current.name}'",
                    argument=path,
                )
            if index == len(parts) - 1:
                return ResolvedPath(
                    path=path,
                    resource=current.name,
                    leaf=field_def,
                    crosses_many=crosses_many,
                )
            if field_def.relation is None:
                raise ValidationError(
                    f"Property '{path}' does not resolve on '{resource}': "
                    f"'{part}' on '{current.name}' is not a relation",
                    argument=path,
                )
            if field_def.relation.cardinality == "many":
                crosses_many = True
            current = self.get(field_def.relation.target)

        # Unreachable: split() always yields at least one part.
        raise ValidationError(f"Empty property path on '{resource}'", argument=path)

    def translator(self, resource: str) -> FilterArgumentTranslator:
        """
        Get the cached filter translator for a resource's query operation.

        Raises:
            ValidationError: If the resource does not expose queries
        """
        descriptor = self.get(resource)
        descriptor.get_operation("query")
        return self._translators[resource]

    def describe(self) -> dict[str, Any]:
        """Argument schema for every resource, used by GET /__schema."""
        return {
            name: {
                "keys": list(descriptor.keys),
                "operations": list(descriptor.exposed_operations),
                "fields": {
                    f.name: {
                        "type": f.type,
                        "nullable": f.nullable,
                        **({"cardinality": f.relation.cardinality} if f.relation else {}),
                    }
                    for f in descriptor.fields
                },
                "arguments": (
                    self._translators[name].describe() if name in self._translators else []
                ),
            }
            for name, descriptor in self._descriptors.items()
        }
