"""
Request parser for resourcegraph operation requests.

Supports multiple request formats:

1. Single operation:
   {"operation": "query", "resource": "Offer", "args": {...}, "select": {...}}

2. Batch of aliased operations:
   {"operations": {"offers": {...}, "book": {...}}}

3. Operation-keyed shorthand (alias is the resource name):
   {"query": {"Offer": {"args": {...}}}, "update": {"Book": {"id": 1, "input": {...}}}}

4. HTTP method aliases, as operation names or shorthand keys:
   "POST"   -> create
   "PATCH"  -> update
   "DELETE" -> delete
"""

from __future__ import annotations

from typing import Any

import pydantic

from .defs import OPERATION_NAMES
from .errors import ValidationError
from .query_types import OperationRequest


HTTP_ALIASES: dict[str, str] = {
    "POST": "create",
    "PATCH": "update",
    "DELETE": "delete",
}

OPERATION_KEYS = set(OPERATION_NAMES) | set(HTTP_ALIASES)


def normalize_operation_name(name: Any) -> Any:
    """POST -> create, PATCH -> update, DELETE -> delete; others unchanged."""
    if isinstance(name, str):
        return HTTP_ALIASES.get(name.upper(), name)
    return name


def parse_operation(data: Any, location: str = "operation") -> OperationRequest:
    """
    Parse one operation dict.

    Raises:
        ValidationError: If the operation is malformed
    """
    if not isinstance(data, dict):
        raise ValidationError("Operation must be an object", argument=location)

    data = {**data, "operation": normalize_operation_name(data.get("operation"))}
    try:
        return OperationRequest.model_validate(data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        path = ".".join(str(part) for part in first["loc"])
        raise ValidationError(
            [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
            argument=path or location,
        ) from e


def parse_request(body: Any) -> dict[str, OperationRequest]:
    """
    Parse a request body into aliased operations.

    Returns:
        Dict alias -> OperationRequest, in request order

    Raises:
        ValidationError: If the body matches no supported format
    """
    if not isinstance(body, dict) or not body:
        raise ValidationError("Request body must be a non-empty object")

    if "operations" in body:
        operations = body["operations"]
        if not isinstance(operations, dict) or not operations:
            raise ValidationError(
                "'operations' must map aliases to operations", argument="operations"
            )
        return {
            alias: parse_operation(op, location=alias)
            for alias, op in operations.items()
        }

    if "operation" in body:
        operation = parse_operation(body)
        return {operation.resource: operation}

    unknown = [key for key in body if key.upper() not in OPERATION_KEYS and key not in OPERATION_KEYS]
    if unknown:
        raise ValidationError(f"Unknown request keys: {unknown}", argument=unknown[0])

    parsed: dict[str, OperationRequest] = {}
    for key, by_resource in body.items():
        if not isinstance(by_resource, dict):
            raise ValidationError(f"'{key}' must map resources to operations", argument=key)
        for resource, op in by_resource.items():
            if resource in parsed:
                raise ValidationError(
                    f"Resource '{resource}' appears twice; use 'operations' with aliases",
                    argument=resource,
                )
            if not isinstance(op, dict):
                raise ValidationError("Operation must be an object", argument=resource)
            parsed[resource] = parse_operation(
                {**op, "operation": key, "resource": resource}, location=resource
            )
    return parsed
