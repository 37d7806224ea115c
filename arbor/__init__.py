"""
arbor - expression trees with pattern-based rewriting

Evaluates addition trees and simplifies them with an ordered list of
rewrite rules. Rules are trees too: wildcard leaves in the input pattern
bind to parts of the matched tree, and the output template copies their
values into the replacement.

Quick Start:
    from arbor import E, evaluate, optimize

    tree = E.add(0, E.add(1, 0))    # (+ 0 (+ 1 0))
    result = optimize(tree)         # 1
    evaluate(result)                # => 1

Built-in rules (applied once each, in this order):
    @add-zero-left:  (+ 0 ?right) => ?right
    @add-zero-right: (+ ?left 0) => ?left

Tracing:
    from arbor import Optimizer

    result, trace = Optimizer().optimize(tree, trace=True)
    print(trace.format("chain"))
"""

__version__ = "0.1.0"

# Expression model
from .expr import (
    ANY,
    AnyNumber,
    BinaryAddition,
    E,
    Expr,
    ExprKind,
    InvariantViolation,
    NumericConstant,
    evaluate,
    expr_depth,
    expr_size,
    fold,
    format_expr,
    is_concrete,
    postorder,
    to_data,
)

# Matching and substitution
from .rewriter import (
    Bindings,
    RuleError,
    apply_transform,
    bind,
    flatten_expressions,
    flatten_identifiers,
    instantiate,
    match,
    rewrite_at,
)

# Rule set and driver
from .engine import (
    DEFAULT_TRANSFORMS,
    Optimizer,
    RewriteStep,
    RewriteTrace,
    Transform,
    optimize,
    transform_add_zero_left,
    transform_add_zero_right,
)

# Public API
__all__ = [
    # Version
    "__version__",
    # Expressions
    "ANY",
    "AnyNumber",
    "BinaryAddition",
    "E",
    "Expr",
    "ExprKind",
    "NumericConstant",
    "evaluate",
    "expr_depth",
    "expr_size",
    "fold",
    "format_expr",
    "is_concrete",
    "postorder",
    "to_data",
    # Errors
    "InvariantViolation",
    "RuleError",
    # Matching
    "Bindings",
    "bind",
    "match",
    # Rewriting
    "apply_transform",
    "flatten_expressions",
    "flatten_identifiers",
    "instantiate",
    "rewrite_at",
    # Rules and driver
    "DEFAULT_TRANSFORMS",
    "Optimizer",
    "RewriteStep",
    "RewriteTrace",
    "Transform",
    "optimize",
    "transform_add_zero_left",
    "transform_add_zero_right",
]
