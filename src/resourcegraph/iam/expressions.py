"""
Access expression compiler.

Access rules are written as small boolean expressions in the resource
configuration, e.g.:

    is_granted('ROLE_ADMIN') or object.owner_id == user.id

They are parsed once at startup and checked against a whitelist of syntax.
The resulting predicate ``(principal, object) -> bool`` walks the checked
tree directly.

Available names:
    user        the Principal (id, roles, claims, is_authenticated)
    object      the target item, or None for collection-level checks
    is_granted  is_granted(role) -> principal has the role
    true, false, null
"""

from __future__ import annotations

import ast
import operator
from typing import Any, Mapping, Optional

from ..core.defs import AccessRule


class ExpressionError(ValueError):
    """Raised when an access expression is invalid."""
    pass


_ALLOWED_NODES = (
    ast.Expression,
    ast.BoolOp, ast.And, ast.Or,
    ast.UnaryOp, ast.Not,
    ast.Compare, ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE,
    ast.In, ast.NotIn, ast.Is, ast.IsNot,
    ast.Name, ast.Load, ast.Constant, ast.Attribute, ast.Call,
    ast.List, ast.Tuple,
)

_VARIABLES = frozenset({"user", "object"})
_CONSTANTS = {"true": True, "false": False, "null": None}
_FUNCTIONS = frozenset({"is_granted"})


class _Checker(ast.NodeVisitor):
    """Rejects anything outside the expression whitelist."""

    def generic_visit(self, node: ast.AST):
        if not isinstance(node, _ALLOWED_NODES):
            raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")
        super().generic_visit(node)

    def visit_Name(self, node: ast.Name):
        if node.id not in _VARIABLES and node.id not in _CONSTANTS:
            raise ExpressionError(f"Unknown name '{node.id}'")

    def visit_Attribute(self, node: ast.Attribute):
        if node.attr.startswith("_"):
            raise ExpressionError(f"Private attribute '{node.attr}' is not accessible")
        self.visit(node.value)

    def visit_Call(self, node: ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
            raise ExpressionError("Only is_granted(...) may be called")
        if node.keywords or len(node.args) != 1:
            raise ExpressionError(f"{node.func.id}() takes exactly one argument")
        for arg in node.args:
            self.visit(arg)


_COMPARISONS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}


def _attr(target: Any, name: str) -> Any:
    """Attribute or key lookup; missing values read as None."""
    if target is None:
        return None
    if isinstance(target, Mapping):
        return target.get(name)
    return getattr(target, name, None)


def _evaluate(node: ast.AST, env: dict[str, Any]) -> Any:
    """Evaluate a checked expression tree against ``env``."""
    if isinstance(node, ast.Expression):
        return _evaluate(node.body, env)

    if isinstance(node, ast.BoolOp):
        # and/or short-circuit and return the deciding operand
        value = None
        for operand in node.values:
            value = _evaluate(operand, env)
            if isinstance(node.op, ast.And) and not value:
                return value
            if isinstance(node.op, ast.Or) and value:
                return value
        return value

    if isinstance(node, ast.UnaryOp):
        return not _evaluate(node.operand, env)

    if isinstance(node, ast.Compare):
        left = _evaluate(node.left, env)
        for op, comparator in zip(node.ops, node.comparators):
            right = _evaluate(comparator, env)
            if not _COMPARISONS[type(op)](left, right):
                return False
            left = right
        return True

    if isinstance(node, ast.Attribute):
        return _attr(_evaluate(node.value, env), node.attr)

    if isinstance(node, ast.Name):
        if node.id in _CONSTANTS:
            return _CONSTANTS[node.id]
        return env[node.id]

    if isinstance(node, ast.Constant):
        return node.value

    if isinstance(node, (ast.List, ast.Tuple)):
        return [_evaluate(element, env) for element in node.elts]

    if isinstance(node, ast.Call):
        return env["user"].has_role(_evaluate(node.args[0], env))

    raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")


def compile_expression(expression: str, message: Optional[str] = None) -> AccessRule:
    """
    Compile an access expression to an AccessRule.

    Raises:
        ExpressionError: If the expression is not valid
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"Invalid expression {expression!r}: {e.msg}") from e

    _Checker().visit(tree)

    uses_object = any(
        isinstance(node, ast.Name) and node.id == "object" for node in ast.walk(tree)
    )

    def predicate(principal: Any, obj: Any) -> bool:
        return bool(_evaluate(tree, {"user": principal, "object": obj}))

    return AccessRule(
        expression=expression,
        predicate=predicate,
        message=message,
        uses_object=uses_object,
    )
