"""
Custom exceptions for the resourcegraph resolution engine.

Every failure raised while resolving an operation is a ResourceGraphError.
Each one knows how to render itself for the caller via ``to_payload()``.
"""

from __future__ import annotations

from typing import Any, Optional


DEFAULT_DENIAL_MESSAGE = "Access Denied."
OPAQUE_FAILURE_MESSAGE = "Operation failed."


class ResourceGraphError(Exception):
    """Base exception for all resourcegraph errors."""

    def to_payload(self) -> dict[str, Any]:
        return {"message": str(self), "type": type(self).__name__}


class ValidationError(ResourceGraphError):
    """Raised when arguments, selections or operations are invalid."""

    def __init__(self, errors: list[str] | str, argument: Optional[str] = None):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = errors
        self.argument = argument
        super().__init__("; ".join(errors))

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.argument:
            payload["argument"] = self.argument
        return payload


class AuthorizationError(ResourceGraphError):
    """Raised when an access rule denies the operation."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or DEFAULT_DENIAL_MESSAGE)


class PaginationError(ResourceGraphError):
    """Raised when a cursor cannot be decoded or no longer matches the query."""

    def __init__(self, message: str, argument: Optional[str] = None):
        self.argument = argument
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.argument:
            payload["argument"] = self.argument
        return payload


class PersistenceError(ResourceGraphError):
    """Raised when the persistence backend fails."""

    def __init__(self, message: str, resource: Optional[str] = None):
        self.resource = resource
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        # Backend details stay in the logs.
        return {"message": OPAQUE_FAILURE_MESSAGE, "type": type(self).__name__}


class ServiceError(PersistenceError):
    """Raised when a backend service call fails."""

    def __init__(self, service: str, status_code: int, message: str, resource: Optional[str] = None):
        self.service = service
        self.status_code = status_code
        super().__init__(f"Service '{service}' returned {status_code}: {message}", resource=resource)


class GraphConfigError(ResourceGraphError):
    """Raised when resource configuration is invalid."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = errors
        super().__init__("Resource configuration is invalid:\n" + "\n".join(errors))
