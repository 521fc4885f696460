"""
Execution context for operation resolution.

Contains everything one operation needs while it is being resolved.
Nothing here is shared between operations except the read-only registry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Union

if TYPE_CHECKING:
    from ..core.registry import ResourceRegistry


@dataclass(frozen=True)
class Principal:
    """
    Represents the authenticated user/service making the request.

    Supplied by the transport layer; used only by access rules.
    """
    id: Optional[Union[int, str]] = None
    roles: tuple[str, ...] = ()
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return self.id is not None

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @classmethod
    def anonymous(cls) -> "Principal":
        return cls()


@dataclass
class ExecutionContext:
    """
    Context passed through one operation's resolution.

    Contains:
    - registry: The immutable resource registry
    - principal: Authenticated user info for access rules
    - depth: Nesting level of the current relation resolution
    """
    registry: "ResourceRegistry"
    principal: Principal
    depth: int = 0

    def nested(self) -> "ExecutionContext":
        return ExecutionContext(self.registry, self.principal, self.depth + 1)
