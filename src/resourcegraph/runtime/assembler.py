"""
Response assembler - shapes fetched items into the response.

Handles:
- Validating a selection against the resource's fields
- Dropping fields outside the active output groups
- Building the connection envelope for collections
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from ..core.defs import FieldDef, ResourceDescriptor
from ..core.errors import ValidationError
from ..core.query_types import Connection, SelectionNode
from .serialization import SerializationContext


@dataclass
class SelectionPlan:
    """Fields and relations an operation will actually return."""
    fields: list[str] = field(default_factory=list)
    relations: dict[str, tuple[FieldDef, SelectionNode]] = field(default_factory=dict)


class ResponseAssembler:
    """
    Assembles the response for one resource level.

    Usage:
        assembler = ResponseAssembler()
        plan = assembler.plan(descriptor, selection, serialization_context)
        data = assembler.shape(item, plan, related={"product": {...}})
    """

    def check_selection(self, descriptor: ResourceDescriptor, selection: SelectionNode, path: str):
        """
        Validate that every selected name exists on the resource.

        Raises:
            ValidationError: Unknown field, or a scalar used as a relation
        """
        for name in selection.fields:
            if descriptor.get_field(name) is None:
                raise ValidationError(
                    f"Unknown field '{name}' on resource '{descriptor.name}'",
                    argument=f"{path}.{name}",
                )
        for name in selection.relations:
            field_def = descriptor.get_field(name)
            if field_def is None:
                raise ValidationError(
                    f"Unknown relation '{name}' on resource '{descriptor.name}'",
                    argument=f"{path}.{name}",
                )
            if not field_def.is_relation:
                raise ValidationError(
                    f"Field '{name}' on resource '{descriptor.name}' is not a relation",
                    argument=f"{path}.{name}",
                )

    def plan(
        self,
        descriptor: ResourceDescriptor,
        selection: SelectionNode,
        context: SerializationContext,
    ) -> SelectionPlan:
        """
        Work out what to return.

        An empty selection returns every eligible scalar field. Fields and
        relations outside the output groups are left out entirely.
        """
        plan = SelectionPlan()

        if not selection.fields and not selection.relations:
            plan.fields = [
                f.name for f in context.output_fields(descriptor) if not f.is_relation
            ]
            return plan

        for name in selection.fields:
            field_def = descriptor.get_field(name)
            if field_def is None or not context.exposes(field_def):
                continue
            if field_def.is_relation:
                plan.relations[name] = (field_def, SelectionNode())
            elif name not in plan.fields:
                plan.fields.append(name)

        for name, node in selection.relations.items():
            field_def = descriptor.get_field(name)
            if field_def is None or not context.exposes(field_def):
                continue
            plan.relations[name] = (field_def, node)

        return plan

    def shape(self, item: dict[str, Any], plan: SelectionPlan, related: dict[str, Any]) -> dict[str, Any]:
        """Build the response object for one item."""
        data = {name: item.get(name) for name in plan.fields}
        for name in plan.relations:
            data[name] = related.get(name)
        return data

    def shape_connection(self, connection: Connection, nodes: Sequence[Any]) -> dict[str, Any]:
        """Build the connection envelope with already-shaped nodes."""
        return {
            "totalCount": connection.total_count,
            "pageInfo": connection.page_info.model_dump(by_alias=True),
            "edges": [
                {"cursor": edge.cursor, "node": node}
                for edge, node in zip(connection.edges, nodes)
            ],
        }
