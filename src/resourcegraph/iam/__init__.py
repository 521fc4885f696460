"""
IAM (Identity and Access Management) module.
"""

from __future__ import annotations

from .evaluator import AccessControlEvaluator, AccessDecision
from .expressions import ExpressionError, compile_expression

__all__ = [
    "AccessControlEvaluator",
    "AccessDecision",
    "ExpressionError",
    "compile_expression",
]
