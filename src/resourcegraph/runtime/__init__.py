"""
Runtime module - operation resolution pipeline.
"""

from __future__ import annotations

from .assembler import ResponseAssembler, SelectionPlan
from .context import ExecutionContext, Principal
from .pagination import PaginationEngine
from .persistence import Backend, GuardedBackend
from .resolver import ResolutionState, Resolver
from .serialization import SerializationContext, SerializationContextResolver
from .service_client import ServiceClient
from .tasks import gather_or_cancel

__all__ = [
    "Principal",
    "ExecutionContext",
    "Backend",
    "GuardedBackend",
    "ServiceClient",
    "PaginationEngine",
    "SerializationContext",
    "SerializationContextResolver",
    "ResponseAssembler",
    "SelectionPlan",
    "ResolutionState",
    "Resolver",
    "gather_or_cancel",
]
