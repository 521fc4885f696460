"""
Access control evaluator.

Picks the access rule that applies to an operation and evaluates it for a
principal and an optional target object.

Rule precedence:
1. The operation override's rule, if declared (the base rule is then never consulted)
2. The resource's base rule
3. No rule: allow
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from ..core.defs import AccessRule, ResourceDescriptor
from ..core.errors import AuthorizationError

if TYPE_CHECKING:
    from ..runtime.context import Principal


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessDecision:
    """Result of evaluating an access rule."""
    allowed: bool
    message: Optional[str] = None


class AccessControlEvaluator:
    """
    Evaluates compiled access rules.

    Usage:
        evaluator = AccessControlEvaluator()
        evaluator.check_collection(descriptor, "query", principal)  # before fetch
        evaluator.check_item(descriptor, "query", principal, item)  # after fetch
    """

    def rule_for(self, descriptor: ResourceDescriptor, operation: str) -> Optional[AccessRule]:
        """Resolve which rule applies: override first, then base, then none."""
        override = descriptor.get_operation(operation)
        if override.access is not None:
            return override.access
        return descriptor.access

    def evaluate(
        self,
        rule: Optional[AccessRule],
        principal: Principal,
        obj: Any = None,
    ) -> AccessDecision:
        """
        Evaluate a rule. No rule means allow.

        A predicate that fails at runtime counts as a denial.
        """
        if rule is None:
            return AccessDecision(allowed=True)

        try:
            allowed = rule.predicate(principal, obj)
        except Exception as e:
            logger.warning(f"Access expression {rule.expression!r} failed: {e}", exc_info=True)
            allowed = False

        if allowed:
            return AccessDecision(allowed=True)
        return AccessDecision(allowed=False, message=rule.message)

    def requires_item_check(self, descriptor: ResourceDescriptor, operation: str) -> bool:
        """True if the applicable rule needs the fetched object."""
        rule = self.rule_for(descriptor, operation)
        return rule is not None and rule.uses_object and operation != "create"

    def check_collection(
        self,
        descriptor: ResourceDescriptor,
        operation: str,
        principal: Principal,
    ):
        """
        Pre-fetch check.

        Runs rules that do not reference the object, and every create rule
        (there is no object yet).

        Raises:
            AuthorizationError: If denied
        """
        rule = self.rule_for(descriptor, operation)
        if rule is None:
            return
        if rule.uses_object and operation != "create":
            return
        self._enforce(rule, descriptor, operation, principal, None)

    def check_item(
        self,
        descriptor: ResourceDescriptor,
        operation: str,
        principal: Principal,
        obj: Any,
    ):
        """
        Post-fetch check against one item.

        Raises:
            AuthorizationError: If denied
        """
        rule = self.rule_for(descriptor, operation)
        if rule is None or not rule.uses_object:
            return
        self._enforce(rule, descriptor, operation, principal, obj)

    def deny_missing(self, descriptor: ResourceDescriptor, operation: str) -> AuthorizationError:
        """
        The error for a missing item under an item-level rule.

        Identical to a denial so callers cannot tell whether the item exists.
        """
        rule = self.rule_for(descriptor, operation)
        return AuthorizationError(rule.message if rule else None)

    def _enforce(
        self,
        rule: AccessRule,
        descriptor: ResourceDescriptor,
        operation: str,
        principal: Principal,
        obj: Any,
    ):
        decision = self.evaluate(rule, principal, obj)
        if not decision.allowed:
            logger.warning(
                f"Access denied: {operation} on {descriptor.name} for principal {principal.id!r}"
            )
            raise AuthorizationError(decision.message)
