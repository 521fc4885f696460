"""
Serialization context resolver.

Decides which fields an operation may accept (denormalization groups) and
which it may return (normalization groups). Input and output group sets are
resolved independently from each other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..core.defs import MUTATION_OPERATIONS, FieldDef, ResourceDescriptor
from ..core.errors import ValidationError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SerializationContext:
    """
    Active group sets for one operation.

    None means no groups are configured: every field is eligible.
    """
    operation: str
    output_groups: Optional[frozenset[str]] = None
    input_groups: Optional[frozenset[str]] = None

    def exposes(self, field_def: FieldDef) -> bool:
        return _in_groups(field_def, self.output_groups)

    def accepts(self, field_def: FieldDef) -> bool:
        return _in_groups(field_def, self.input_groups)

    def output_fields(self, descriptor: ResourceDescriptor) -> list[FieldDef]:
        """Fields eligible for the response, in declaration order."""
        return [f for f in descriptor.fields if self.exposes(f)]


def _in_groups(field_def: FieldDef, groups: Optional[frozenset[str]]) -> bool:
    if groups is None:
        return True
    return bool(field_def.groups & groups)


class SerializationContextResolver:
    """
    Resolves group sets per operation kind.

    Query: normalization groups only.
    Mutation: denormalization groups for input, normalization groups for output.
    Each comes from the operation override if set, else from the resource.
    """

    def resolve(self, descriptor: ResourceDescriptor, operation: str) -> SerializationContext:
        override = descriptor.get_operation(operation)

        output_groups = override.normalization_groups
        if output_groups is None:
            output_groups = descriptor.normalization_groups

        input_groups = None
        if operation in MUTATION_OPERATIONS:
            input_groups = override.denormalization_groups
            if input_groups is None:
                input_groups = descriptor.denormalization_groups

        return SerializationContext(
            operation=operation,
            output_groups=output_groups,
            input_groups=input_groups,
        )

    def filter_input(
        self,
        descriptor: ResourceDescriptor,
        context: SerializationContext,
        data: Mapping[str, Any],
    ) -> dict[str, Any]:
        """
        Keep submitted fields that the input groups accept.

        Fields outside the groups are dropped silently; unknown names and
        relation fields are rejected.

        Raises:
            ValidationError: Unknown field or relation submitted
        """
        accepted: dict[str, Any] = {}
        for name, value in data.items():
            field_def = descriptor.get_field(name)
            if field_def is None:
                raise ValidationError(
                    f"Unknown field '{name}' for resource '{descriptor.name}'",
                    argument=f"input.{name}",
                )
            if field_def.is_relation:
                raise ValidationError(
                    f"Relation '{name}' cannot be written directly",
                    argument=f"input.{name}",
                )
            if not context.accepts(field_def):
                logger.debug(f"Ignoring input field {descriptor.name}.{name} outside input groups")
                continue
            accepted[name] = value
        return accepted
