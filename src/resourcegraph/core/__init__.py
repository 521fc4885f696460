"""
Core module - definitions, types, registry and compilation.
"""

from __future__ import annotations

from .compiler import CompilationError, CompilationResult, ResourceCompiler, compile_resources
from .defs import (
    AccessRule,
    FieldDef,
    FilterDef,
    OperationOverride,
    RefDef,
    RelationDef,
    ResourceDescriptor,
)
from .errors import (
    AuthorizationError,
    GraphConfigError,
    PaginationError,
    PersistenceError,
    ResourceGraphError,
    ServiceError,
    ValidationError,
)
from .filters import FilterArgument, FilterArgumentTranslator, TranslatedArguments
from .query_types import (
    Connection,
    CursorWindowRequest,
    Edge,
    NormalizedFilter,
    NormalizedOrder,
    OperationRequest,
    PageInfo,
    SelectionNode,
    WindowSpec,
)
from .registry import ResolvedPath, ResourceRegistry
from .request_parser import parse_operation, parse_request

__all__ = [
    # Definitions
    "AccessRule",
    "FieldDef",
    "FilterDef",
    "OperationOverride",
    "RefDef",
    "RelationDef",
    "ResourceDescriptor",
    # Errors
    "AuthorizationError",
    "GraphConfigError",
    "PaginationError",
    "PersistenceError",
    "ResourceGraphError",
    "ServiceError",
    "ValidationError",
    # Filters
    "FilterArgument",
    "FilterArgumentTranslator",
    "TranslatedArguments",
    # Query types
    "Connection",
    "CursorWindowRequest",
    "Edge",
    "NormalizedFilter",
    "NormalizedOrder",
    "OperationRequest",
    "PageInfo",
    "SelectionNode",
    "WindowSpec",
    # Registry and compilation
    "CompilationError",
    "CompilationResult",
    "ResolvedPath",
    "ResourceCompiler",
    "ResourceRegistry",
    "compile_resources",
    # Requests
    "parse_operation",
    "parse_request",
]
