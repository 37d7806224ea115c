"""
Core rewriter module for arbor.

This module provides structural matching, flattening, and instantiation
for rule-based rewriting of expression trees.

Binding works positionally. A pattern that matches a query is
structurally isomorphic to it, so flattening both in the same post-order
gives two sequences of equal length whose positions line up:

    pattern (+ 0 ?right)  ->  identifiers  ["", "right", ""]
    query   (+ 0 7)       ->  expressions  [0, 7, (+ 0 7)]

A placeholder in the output template is resolved by finding the first
occurrence of its name in the identifiers and reading the expression at
the same index. This requires binding names to be unique within a single
pattern; Transform checks that when a rule is built.

All whole-tree walks use explicit stacks, so chains of any length can be
matched and rewritten.
"""

from collections.abc import Mapping
from typing import Callable, Dict, Iterator, List, Optional

from .expr import (
    BinaryAddition, Expr, InvariantViolation, NumericConstant,
    fold, format_expr, postorder, unreachable,
)

# Called with (matched subtree, replacement) for every rewrite
RewriteCallback = Callable[[Expr, Expr], None]


class RuleError(InvariantViolation):
    """A rewrite rule is malformed (unbound placeholder, duplicate name)."""


# ============================================================
# Bindings - named view of the positional correspondence
# ============================================================

class Bindings(Mapping):
    """
    Read-only view of the names bound by a successful match.

    Built from the same two flattened sequences that instantiation reads,
    so each name maps to the query node at the position of its first
    occurrence in the pattern. Mapping values are the matched query nodes
    themselves (not copies).

        bindings = bind(E.add(0, E.any("right")), E.add(0, 7))
        bindings["right"]            # => NumericConstant(7)
        bindings.value("right")      # => 7
        bindings.position("right")   # => 1

    A match that binds no names is still a match: Bindings objects are
    truthy even when empty. ``bind`` returns None for a failed match.
    """

    __slots__ = ('_nodes', '_positions')

    def __init__(self, identifiers: List[str], expressions: List[Expr]):
        self._nodes: Dict[str, Expr] = {}
        self._positions: Dict[str, int] = {}
        for position, (name, node) in enumerate(zip(identifiers, expressions)):
            if name and name not in self._nodes:
                self._nodes[name] = node
                self._positions[name] = position

    def __getitem__(self, name: str) -> Expr:
        return self._nodes[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __bool__(self) -> bool:
        return True

    def position(self, name: str) -> int:
        """Post-order index of ``name`` in the pattern and the query."""
        return self._positions[name]

    def value(self, name: str) -> int:
        """The value of the subtree bound to ``name``."""
        return self._nodes[name].evaluate()

    def to_dict(self) -> Dict[str, str]:
        """Convert to a plain dictionary of rendered subtrees."""
        return {name: format_expr(node) for name, node in self._nodes.items()}

    def __repr__(self) -> str:
        inner = ", ".join(f"{name!r}: {format_expr(node)}"
                          for name, node in self._nodes.items())
        return f"Bindings({{{inner}}})"


# ============================================================
# Pattern Matching
# ============================================================

def match(pattern: Expr, query: Expr) -> bool:
    """
    Decide whether a pattern structurally matches a query.

    Rules:
        - nodes of different kinds never match
        - additions match when left matches left and right matches right
          (addition is not matched commutatively)
        - numeric leaves match when either one is a wildcard, or both are
          concrete and equal
        - binding names are ignored

    Args:
        pattern: The pattern tree (may contain wildcards)
        query: The tree to test

    Returns:
        True if ``pattern`` matches ``query``
    """
    pending = [(pattern, query)]
    while pending:
        p, q = pending.pop()
        if p.kind is not q.kind:
            return False
        if isinstance(p, BinaryAddition):
            pending.append((p.right, q.right))
            pending.append((p.left, q.left))
        elif isinstance(p, NumericConstant):
            if p.is_wildcard or q.is_wildcard:
                # A wildcard matches a literal value or another wildcard
                continue
            if p.value != q.value:
                return False
        else:
            unreachable(p)
    return True


# ============================================================
# Flattening
# ============================================================

def flatten_expressions(root: Expr) -> List[Expr]:
    """
    Flatten a tree into its nodes in post-order (left, right, self).

    The returned list holds references into ``root``; it must not outlive
    the substitution it is built for.
    """
    return postorder(root)


def flatten_identifiers(root: Expr) -> List[str]:
    """Flatten a tree into its binding names in post-order (left, right, self)."""
    return [node.id for node in postorder(root)]


def bind(pattern: Expr, query: Expr) -> Optional[Bindings]:
    """
    Match and expose the positional correspondence by name.

    Args:
        pattern: The pattern tree
        query: The tree to match against

    Returns:
        Bindings for each non-empty binding name, or None if the pattern
        does not match.
    """
    if not match(pattern, query):
        return None
    return Bindings(flatten_identifiers(pattern), flatten_expressions(query))


# ============================================================
# Instantiation
# ============================================================

def instantiate(
    template: Expr,
    expressions: List[Expr],
    identifiers: List[str],
) -> Expr:
    """
    Build a fresh tree from an output template.

    Template nodes:
        addition        - rebuilt with both children instantiated
        wildcard ?name  - replaced by a leaf holding the value of the node
                          bound to ``name``
        literal         - copied as a new leaf

    Binding names are not carried into the output.

    Args:
        template: The rule's output template
        expressions: Flattened nodes of the matched query subtree
        identifiers: Flattened binding names of the rule's input pattern

    Returns:
        The instantiated tree, sharing nothing with its inputs

    Raises:
        RuleError: If a placeholder is anonymous or not bound by the pattern
    """
    def leaf(node: NumericConstant) -> NumericConstant:
        if not node.is_wildcard:
            return NumericConstant(node.value)

        name = node.id
        if not name or name not in identifiers:
            raise RuleError(
                f"placeholder {format_expr(node)} is not bound by the input pattern")
        bound = expressions[identifiers.index(name)]
        if not isinstance(bound, NumericConstant):
            raise RuleError(
                f"placeholder ?{name} is bound to {format_expr(bound)}, "
                "only numeric leaves can be substituted")
        return NumericConstant(bound.value)

    return fold(template, leaf, lambda node, left, right: BinaryAddition(left, right))


def rewrite_at(transform, query: Expr) -> Expr:
    """
    Replace a matched subtree with the transform's instantiated output.

    The caller guarantees ``match(transform.input_pattern, query)``.

    Args:
        transform: The rule to apply (anything with ``input_pattern`` and
            ``output_template``)
        query: The matched subtree

    Returns:
        The replacement subtree
    """
    expressions = flatten_expressions(query)
    identifiers = flatten_identifiers(transform.input_pattern)
    return instantiate(transform.output_template, expressions, identifiers)


def apply_transform(
    transform,
    root: Expr,
    on_rewrite: Optional[RewriteCallback] = None,
) -> Expr:
    """
    Apply one transform across a whole tree in a single top-down pass.

    The outermost match wins: a matched subtree is replaced wholesale and
    neither its old children nor the replacement are visited again.
    Non-matching additions are rebuilt from their rewritten children;
    leaves are cloned. Matches are visited left to right.

    Args:
        transform: The rule to apply
        root: The tree to rewrite (left untouched)
        on_rewrite: Optional callback receiving (matched, replacement)

    Returns:
        A new, independently owned tree
    """
    pattern = transform.input_pattern
    template = transform.output_template
    identifiers = flatten_identifiers(pattern)

    # Work items are (node, rebuild); rebuild entries pop two finished children
    results: List[Expr] = []
    stack = [(root, False)]
    while stack:
        node, rebuild = stack.pop()
        if rebuild:
            right = results.pop()
            left = results.pop()
            results.append(BinaryAddition(left, right, node.id))
        elif isinstance(node, BinaryAddition):
            if match(pattern, node):
                replacement = instantiate(template, flatten_expressions(node), identifiers)
                if on_rewrite is not None:
                    on_rewrite(node, replacement)
                results.append(replacement)
            else:
                # No match here, consider the left and right subtrees
                stack.append((node, True))
                stack.append((node.right, False))
                stack.append((node.left, False))
        elif isinstance(node, NumericConstant):
            results.append(node.clone())
        else:
            unreachable(node)
    return results[0]
