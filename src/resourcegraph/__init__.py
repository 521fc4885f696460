"""
resourcegraph - declarative resource API resolution.

Resources are declared once (fields, relations, filters, access rules,
serialization groups, per-operation overrides) and compiled into an
immutable registry. The resolver turns operation requests into filtered,
ordered, cursor-paginated and access-checked responses over any
persistence backend.

Usage:
    from resourcegraph import Resolver, ServiceClient, compile_resources, create_app

    registry = compile_resources(yaml.safe_load(open("resources.yaml")))
    resolver = Resolver(registry, ServiceClient("http://catalog:8002"))
    app = create_app(resolver)
"""

from __future__ import annotations

__version__ = "0.1.0"

from .api import create_app, create_router, get_principal
from .core import (
    AccessRule,
    AuthorizationError,
    CompilationError,
    CompilationResult,
    Connection,
    FieldDef,
    FilterArgumentTranslator,
    FilterDef,
    GraphConfigError,
    NormalizedFilter,
    NormalizedOrder,
    OperationOverride,
    OperationRequest,
    PaginationError,
    PersistenceError,
    RefDef,
    RelationDef,
    ResourceCompiler,
    ResourceDescriptor,
    ResourceGraphError,
    ResourceRegistry,
    SelectionNode,
    ServiceError,
    ValidationError,
    compile_resources,
    parse_request,
)
from .iam import AccessControlEvaluator, compile_expression
from .runtime import (
    Backend,
    ExecutionContext,
    PaginationEngine,
    Principal,
    Resolver,
    ResponseAssembler,
    SerializationContextResolver,
    ServiceClient,
)

__all__ = [
    "__version__",
    # Core
    "AccessRule",
    "CompilationError",
    "CompilationResult",
    "Connection",
    "FieldDef",
    "FilterArgumentTranslator",
    "FilterDef",
    "NormalizedFilter",
    "NormalizedOrder",
    "OperationOverride",
    "OperationRequest",
    "RefDef",
    "RelationDef",
    "ResourceCompiler",
    "ResourceDescriptor",
    "ResourceRegistry",
    "SelectionNode",
    "compile_resources",
    "parse_request",
    # Errors
    "AuthorizationError",
    "GraphConfigError",
    "PaginationError",
    "PersistenceError",
    "ResourceGraphError",
    "ServiceError",
    "ValidationError",
    # IAM
    "AccessControlEvaluator",
    "compile_expression",
    # Runtime
    "Backend",
    "ExecutionContext",
    "PaginationEngine",
    "Principal",
    "Resolver",
    "ResponseAssembler",
    "SerializationContextResolver",
    "ServiceClient",
    # API
    "create_app",
    "create_router",
    "get_principal",
]
