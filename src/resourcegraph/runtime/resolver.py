"""
Resolver - orchestrates one operation from request to response.

Every operation walks the same states and stops at the first failure:

    PARSE -> AUTHORIZE_COLLECTION -> TRANSLATE_ARGS -> PAGINATE
          -> FETCH / MUTATE -> AUTHORIZE_ITEM
          -> RESOLVE_SERIALIZATION_CONTEXT -> SHAPE_RESPONSE

Update and delete fetch their target and authorize it before mutating.
Nested relations resolve through the target resource's query operation and
run as concurrent tasks; the first failure cancels the rest.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from ..core.defs import FieldDef, ResourceDescriptor
from ..core.errors import PersistenceError, ResourceGraphError, ValidationError
from ..core.filters import coerce_scalar
from ..core.query_types import (
    NormalizedFilter,
    OperationRequest,
    SelectionNode,
    WindowSpec,
)
from ..core.registry import ResourceRegistry
from ..iam.evaluator import AccessControlEvaluator
from .assembler import ResponseAssembler, SelectionPlan
from .context import ExecutionContext, Principal
from .pagination import PaginationEngine, split_pagination_args
from .persistence import Backend, GuardedBackend
from .serialization import SerializationContextResolver
from .tasks import gather_or_cancel


logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 8


class ResolutionState(str, Enum):
    PARSE = "PARSE"
    AUTHORIZE_COLLECTION = "AUTHORIZE_COLLECTION"
    TRANSLATE_ARGS = "TRANSLATE_ARGS"
    PAGINATE = "PAGINATE"
    FETCH = "FETCH"
    MUTATE = "MUTATE"
    AUTHORIZE_ITEM = "AUTHORIZE_ITEM"
    RESOLVE_SERIALIZATION_CONTEXT = "RESOLVE_SERIALIZATION_CONTEXT"
    SHAPE_RESPONSE = "SHAPE_RESPONSE"


class Resolver:
    """
    Resolves operations against a persistence backend.

    Usage:
        resolver = Resolver(registry, backend)
        data = await resolver.resolve(operation, principal)
        data, errors = await resolver.resolve_many({"offers": op1, "book": op2}, principal)
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        backend: Backend,
        *,
        evaluator: Optional[AccessControlEvaluator] = None,
        serialization: Optional[SerializationContextResolver] = None,
        pagination: Optional[PaginationEngine] = None,
        assembler: Optional[ResponseAssembler] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.registry = registry
        self.backend = GuardedBackend(backend)
        self.evaluator = evaluator or AccessControlEvaluator()
        self.serialization = serialization or SerializationContextResolver()
        self.pagination = pagination or PaginationEngine()
        self.assembler = assembler or ResponseAssembler()
        self.max_depth = max_depth

    async def resolve(self, operation: OperationRequest, principal: Principal) -> Any:
        """
        Resolve one operation.

        Returns:
            A connection payload for collection queries, an object (or None)
            for item queries, and the shaped result object for mutations.

        Raises:
            ResourceGraphError: Any failure; nothing partial is returned
        """
        context = ExecutionContext(self.registry, principal)

        self._enter(ResolutionState.PARSE, operation.resource, operation.operation)
        descriptor = self.registry.get(operation.resource)
        descriptor.get_operation(operation.operation)
        self._check_selection(descriptor, operation.select, "select", depth=0)

        if operation.is_mutation:
            if operation.args:
                raise ValidationError(
                    f"Operation '{operation.operation}' does not take arguments",
                    argument=next(iter(operation.args)),
                )
            return await self._resolve_mutation(descriptor, operation, context)

        if operation.input:
            raise ValidationError("Queries do not take input", argument="input")
        if operation.is_collection:
            if operation.id is not None:
                raise ValidationError("Collection queries do not take an id", argument="id")
            return await self._resolve_collection(
                descriptor, operation.args, operation.select, context
            )
        return await self._resolve_item(descriptor, operation, context)

    async def resolve_many(
        self,
        operations: Mapping[str, OperationRequest],
        principal: Principal,
    ) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        """
        Resolve a batch concurrently. A failure affects only its own alias.

        Returns:
            (data by alias, error payloads with their alias as "path")
        """

        async def run(alias: str, operation: OperationRequest):
            try:
                return alias, await self.resolve(operation, principal), None
            except ResourceGraphError as e:
                logger.debug(f"Operation {alias!r} failed: {type(e).__name__}: {e}")
                return alias, None, {**e.to_payload(), "path": [alias]}
            except Exception as e:
                logger.error(f"Operation {alias!r} failed unexpectedly: {e}", exc_info=True)
                return alias, None, {**PersistenceError(str(e)).to_payload(), "path": [alias]}

        results = await asyncio.gather(
            *(run(alias, operation) for alias, operation in operations.items())
        )

        data: dict[str, Any] = {}
        errors: list[dict[str, Any]] = []
        for alias, value, error in results:
            data[alias] = value
            if error is not None:
                errors.append(error)
        return data, errors

    # --- operation kinds ---

    async def _resolve_collection(
        self,
        descriptor: ResourceDescriptor,
        args: Mapping[str, Any],
        selection: SelectionNode,
        context: ExecutionContext,
        scope: Sequence[NormalizedFilter] = (),
    ) -> dict[str, Any]:
        principal = context.principal

        self._enter(ResolutionState.AUTHORIZE_COLLECTION, descriptor.name, "query")
        self.evaluator.check_collection(descriptor, "query", principal)

        self._enter(ResolutionState.TRANSLATE_ARGS, descriptor.name, "query")
        pagination_args, filter_args = split_pagination_args(args)
        translated = self.registry.translator(descriptor.name).translate(filter_args)
        filters = [*scope, *translated.filters]

        self._enter(ResolutionState.PAGINATE, descriptor.name, "query")
        request = self.pagination.window_request(pagination_args)

        self._enter(ResolutionState.FETCH, descriptor.name, "query")
        connection = await self.pagination.paginate(
            self.backend, descriptor.name, filters, translated.order, request
        )

        self._enter(ResolutionState.AUTHORIZE_ITEM, descriptor.name, "query")
        for node in connection.nodes:
            self.evaluator.check_item(descriptor, "query", principal, node)

        self._enter(ResolutionState.RESOLVE_SERIALIZATION_CONTEXT, descriptor.name, "query")
        plan = self.assembler.plan(
            descriptor, selection, self.serialization.resolve(descriptor, "query")
        )

        self._enter(ResolutionState.SHAPE_RESPONSE, descriptor.name, "query")
        nodes = await gather_or_cancel(
            *(self._shape_item(node, plan, context) for node in connection.nodes)
        )
        return self.assembler.shape_connection(connection, nodes)

    async def _resolve_item(
        self,
        descriptor: ResourceDescriptor,
        operation: OperationRequest,
        context: ExecutionContext,
    ) -> Optional[dict[str, Any]]:
        principal = context.principal

        self._enter(ResolutionState.AUTHORIZE_COLLECTION, descriptor.name, "query")
        self.evaluator.check_collection(descriptor, "query", principal)

        self._enter(ResolutionState.TRANSLATE_ARGS, descriptor.name, "query")
        if operation.id is None:
            raise ValidationError("Item queries require an id", argument="id")
        if operation.args:
            raise ValidationError(
                "Item queries do not take filter arguments",
                argument=next(iter(operation.args)),
            )

        self._enter(ResolutionState.FETCH, descriptor.name, "query")
        item = await self.backend.fetch_one(descriptor.name, operation.id)
        if item is None:
            if self.evaluator.requires_item_check(descriptor, "query"):
                raise self.evaluator.deny_missing(descriptor, "query")
            return None

        self._enter(ResolutionState.AUTHORIZE_ITEM, descriptor.name, "query")
        self.evaluator.check_item(descriptor, "query", principal, item)

        self._enter(ResolutionState.RESOLVE_SERIALIZATION_CONTEXT, descriptor.name, "query")
        plan = self.assembler.plan(
            descriptor, operation.select, self.serialization.resolve(descriptor, "query")
        )

        self._enter(ResolutionState.SHAPE_RESPONSE, descriptor.name, "query")
        return await self._shape_item(item, plan, context)

    async def _resolve_mutation(
        self,
        descriptor: ResourceDescriptor,
        operation: OperationRequest,
        context: ExecutionContext,
    ) -> Optional[dict[str, Any]]:
        kind = operation.operation
        principal = context.principal

        self._enter(ResolutionState.AUTHORIZE_COLLECTION, descriptor.name, kind)
        self.evaluator.check_collection(descriptor, kind, principal)

        self._enter(ResolutionState.TRANSLATE_ARGS, descriptor.name, kind)
        serialization = self.serialization.resolve(descriptor, kind)
        if kind == "create":
            data = self._coerce_input(
                descriptor, self.serialization.filter_input(descriptor, serialization, operation.input)
            )
        else:
            if operation.id is None:
                raise ValidationError(f"Operation '{kind}' requires an id", argument="id")
            data = {}
            if kind == "update":
                data = self._coerce_input(
                    descriptor,
                    self.serialization.filter_input(descriptor, serialization, operation.input),
                )

            self._enter(ResolutionState.FETCH, descriptor.name, kind)
            existing = await self.backend.fetch_one(descriptor.name, operation.id)
            if existing is None:
                if self.evaluator.requires_item_check(descriptor, kind):
                    raise self.evaluator.deny_missing(descriptor, kind)
                raise ValidationError(
                    f"{descriptor.name} '{operation.id}' not found", argument="id"
                )

            self._enter(ResolutionState.AUTHORIZE_ITEM, descriptor.name, kind)
            self.evaluator.check_item(descriptor, kind, principal, existing)

            # The key always comes from the id, never from the input.
            data[descriptor.keys[0]] = operation.id

        self._enter(ResolutionState.MUTATE, descriptor.name, kind)
        result = await self.backend.mutate(descriptor.name, kind, data)
        if kind == "delete" and result is None:
            return None

        self._enter(ResolutionState.RESOLVE_SERIALIZATION_CONTEXT, descriptor.name, kind)
        plan = self.assembler.plan(descriptor, operation.select, serialization)

        self._enter(ResolutionState.SHAPE_RESPONSE, descriptor.name, kind)
        return await self._shape_item(result, plan, context)

    # --- nested relations ---

    async def _shape_item(
        self,
        item: dict[str, Any],
        plan: SelectionPlan,
        context: ExecutionContext,
    ) -> dict[str, Any]:
        names = list(plan.relations)
        values = await gather_or_cancel(
            *(
                self._resolve_relation(item, field_def, node, context.nested())
                for field_def, node in plan.relations.values()
            )
        )
        return self.assembler.shape(item, plan, dict(zip(names, values)))

    async def _resolve_relation(
        self,
        parent: dict[str, Any],
        field_def: FieldDef,
        selection: SelectionNode,
        context: ExecutionContext,
    ) -> Any:
        relation = field_def.relation
        target = self.registry.get(relation.target)
        target.get_operation("query")
        value = parent.get(relation.ref.from_field)

        if relation.cardinality == "many":
            if value is None:
                return self._empty_connection()
            scope = [NormalizedFilter(field=relation.ref.to_field, op="eq", value=value)]
            return await self._resolve_collection(
                target, selection.args, selection, context, scope=scope
            )

        if value is None:
            return None
        return await self._resolve_one(target, relation.ref.to_field, value, selection, context)

    async def _resolve_one(
        self,
        target: ResourceDescriptor,
        to_field: str,
        value: Any,
        selection: SelectionNode,
        context: ExecutionContext,
    ) -> Optional[dict[str, Any]]:
        principal = context.principal

        self._enter(ResolutionState.AUTHORIZE_COLLECTION, target.name, "query")
        self.evaluator.check_collection(target, "query", principal)

        self._enter(ResolutionState.FETCH, target.name, "query")
        if target.keys == (to_field,):
            item = await self.backend.fetch_one(target.name, value)
        else:
            translator = self.registry.translator(target.name)
            items = await self.backend.fetch_window(
                target.name,
                [NormalizedFilter(field=to_field, op="eq", value=value)],
                translator.ordering([]),
                WindowSpec(offset=0, limit=1),
            )
            item = items[0] if items else None
        if item is None:
            return None

        self._enter(ResolutionState.AUTHORIZE_ITEM, target.name, "query")
        self.evaluator.check_item(target, "query", principal, item)

        self._enter(ResolutionState.RESOLVE_SERIALIZATION_CONTEXT, target.name, "query")
        plan = self.assembler.plan(target, selection, self.serialization.resolve(target, "query"))

        self._enter(ResolutionState.SHAPE_RESPONSE, target.name, "query")
        return await self._shape_item(item, plan, context)

    def _empty_connection(self) -> dict[str, Any]:
        connection = self.pagination.build_connection(
            [], first_position=0, total=0, digest="", has_next=False, has_previous=False
        )
        return self.assembler.shape_connection(connection, [])

    # --- validation ---

    def _check_selection(
        self,
        descriptor: ResourceDescriptor,
        selection: SelectionNode,
        path: str,
        depth: int,
    ):
        """
        Validate a selection tree before anything is fetched.

        Nested arguments are translated here too so a bad argument deep in
        the tree fails before the first backend call.
        """
        if depth > self.max_depth:
            raise ValidationError(
                f"Selection nests deeper than {self.max_depth} levels", argument=path
            )
        self.assembler.check_selection(descriptor, selection, path)

        for name, node in selection.relations.items():
            relation = descriptor.get_field(name).relation
            target = self.registry.get(relation.target)
            target.get_operation("query")
            location = f"{path}.{name}"
            if relation.cardinality == "many":
                pagination_args, filter_args = split_pagination_args(node.args)
                self.registry.translator(target.name).translate(filter_args)
                self.pagination.window_request(pagination_args)
            elif node.args:
                raise ValidationError(
                    f"Relation '{name}' returns a single item and takes no arguments",
                    argument=location,
                )
            self._check_selection(target, node, location, depth + 1)

    def _coerce_input(self, descriptor: ResourceDescriptor, data: dict[str, Any]) -> dict[str, Any]:
        coerced = {}
        for name, value in data.items():
            field_def = descriptor.get_field(name)
            location = f"input.{name}"
            if value is None:
                if not field_def.nullable:
                    raise ValidationError(f"Field '{name}' must not be null", argument=location)
                coerced[name] = None
                continue
            coerced[name] = coerce_scalar(value, field_def.type, location)
        return coerced

    def _enter(self, state: ResolutionState, resource: str, operation: str):
        logger.debug(f"{resource}.{operation}: {state.value}")
