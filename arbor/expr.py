"""
Expression model for arbor.

Expressions are trees built from exactly two node kinds:

    NumericConstant   - a concrete non-negative integer, or the ANY wildcard
    BinaryAddition    - left + right, owning both children

Every node carries an optional binding name (``id``). The empty string
means "unbound" and is never looked up. Binding names only matter inside
rewrite rules, where they correlate pattern positions with matched nodes.

Building trees:

    from arbor import E

    tree = E.add(0, E.add(1, 2))          # (+ 0 (+ 1 2))
    pattern = E.add(0, E.any("right"))    # (+ 0 ?right)
    chain = E.sum(1, 0, 2)                # (+ (+ 1 0) 2)

Evaluating trees:

    evaluate(tree)  # => 3
"""

import enum
from typing import Any, Callable, List, TypeVar, Union


class InvariantViolation(RuntimeError):
    """
    A programming error inside the expression core.

    Raised when a pattern is used as concrete data (evaluating a wildcard)
    or a traversal meets a node outside the known kinds. These are never
    recovered from.
    """


class ExprKind(enum.Enum):
    """Discriminant for the closed set of expression nodes."""

    NUMERIC_CONSTANT = "numeric-constant"
    BINARY_ADDITION = "binary-addition"


# ============================================================
# Wildcard marker
# ============================================================

class AnyNumber:
    """
    Singleton marking a numeric leaf as "any number".

    Only rule patterns and templates contain it. It matches any concrete
    value and any other wildcard.
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ANY"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


ANY = AnyNumber()

NumericValue = Union[int, AnyNumber]

T = TypeVar('T')


# ============================================================
# Nodes
# ============================================================

class NumericConstant:
    """
    A numeric leaf: a concrete non-negative integer or the ANY wildcard.

    Leaves are immutable once built.

    Examples:
        NumericConstant(5)              # concrete 5
        NumericConstant(ANY, "right")   # wildcard bound to "right"
    """

    __slots__ = ('_value', '_id')

    kind = ExprKind.NUMERIC_CONSTANT

    def __init__(self, value: NumericValue, id: str = ""):
        if value is not ANY:
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(
                    f"numeric constant must be a non-negative int or ANY, got {value!r}")
            if value < 0:
                raise ValueError(f"numeric constant must be non-negative, got {value}")
        if not isinstance(id, str):
            raise TypeError(f"binding name must be a string, got {id!r}")
        self._value = value
        self._id = id

    @property
    def value(self) -> NumericValue:
        """The concrete value, or ANY."""
        return self._value

    @property
    def id(self) -> str:
        """The binding name ("" when unbound)."""
        return self._id

    @property
    def is_wildcard(self) -> bool:
        return self._value is ANY

    def evaluate(self) -> int:
        """
        Return the concrete value.

        Raises:
            InvariantViolation: If this leaf is a wildcard
        """
        if self._value is ANY:
            raise InvariantViolation(
                f"cannot evaluate wildcard {format_expr(self)}: "
                "patterns are not evaluable data")
        return self._value

    def clone(self) -> 'NumericConstant':
        return NumericConstant(self._value, self._id)

    def __eq__(self, other):
        if isinstance(other, NumericConstant):
            if self.is_wildcard or other.is_wildcard:
                same_value = self._value is other._value
            else:
                same_value = self._value == other._value
            return same_value and self._id == other._id
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        if self._id:
            return f"NumericConstant({self._value!r}, {self._id!r})"
        return f"NumericConstant({self._value!r})"


class BinaryAddition:
    """
    An addition node owning its left and right subtrees.

    Children are owned exclusively: a node must not appear twice in one
    tree. Use ``clone()`` before reusing a subtree elsewhere.
    """

    __slots__ = ('_left', '_right', '_id')

    kind = ExprKind.BINARY_ADDITION

    def __init__(self, left: 'Expr', right: 'Expr', id: str = ""):
        _check_node(left)
        _check_node(right)
        if left is right:
            raise ValueError("left and right children must be distinct nodes")
        if not isinstance(id, str):
            raise TypeError(f"binding name must be a string, got {id!r}")
        self._left = left
        self._right = right
        self._id = id

    @property
    def left(self) -> 'Expr':
        return self._left

    @property
    def right(self) -> 'Expr':
        return self._right

    @property
    def id(self) -> str:
        """The binding name ("" when unbound)."""
        return self._id

    def replace_left(self, left: 'Expr') -> None:
        """
        Replace the left subtree with ``left``.

        Raises:
            ValueError: If ``left`` is this node or its right child
        """
        _check_node(left)
        if left is self or left is self._right:
            raise ValueError("left and right children must be distinct nodes")
        self._left = left

    def replace_right(self, right: 'Expr') -> None:
        """
        Replace the right subtree with ``right``.

        Raises:
            ValueError: If ``right`` is this node or its left child
        """
        _check_node(right)
        if right is self or right is self._left:
            raise ValueError("left and right children must be distinct nodes")
        self._right = right

    def evaluate(self) -> int:
        return fold(self, NumericConstant.evaluate,
                    lambda node, left, right: left + right)

    def clone(self) -> 'BinaryAddition':
        return fold(self, NumericConstant.clone,
                    lambda node, left, right: BinaryAddition(left, right, node.id))

    def __eq__(self, other):
        if not isinstance(other, BinaryAddition):
            return NotImplemented
        pending = [(self, other)]
        while pending:
            a, b = pending.pop()
            if isinstance(a, BinaryAddition) and isinstance(b, BinaryAddition):
                if a.id != b.id:
                    return False
                pending.append((a.right, b.right))
                pending.append((a.left, b.left))
            elif a != b:
                return False
        return True

    __hash__ = None

    def __repr__(self) -> str:
        def add(node, left, right):
            if node.id:
                return f"BinaryAddition({left}, {right}, {node.id!r})"
            return f"BinaryAddition({left}, {right})"
        return fold(self, repr, add)


Expr = Union[NumericConstant, BinaryAddition]


def _check_node(node: Any) -> None:
    if not isinstance(node, (NumericConstant, BinaryAddition)):
        raise TypeError(f"expected an expression node, got {node!r}")


def unreachable(node: Any):
    """Fail on a node outside the closed set of expression kinds."""
    raise InvariantViolation(f"unreachable: unknown expression node {node!r}")


# ============================================================
# Traversal
# ============================================================
#
# Trees built by E.sum or by the CLI are long chains, so every whole-tree
# walk uses an explicit stack instead of Python recursion.

def postorder(root: Expr) -> List[Expr]:
    """
    All nodes of a tree in post-order (left, right, self).

    Raises:
        InvariantViolation: If a node outside the known kinds is found
    """
    # Pre-order with right before left, reversed, is left-right-self
    nodes: List[Expr] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if isinstance(node, BinaryAddition):
            stack.append(node.left)
            stack.append(node.right)
        elif not isinstance(node, NumericConstant):
            unreachable(node)
        nodes.append(node)
    nodes.reverse()
    return nodes


def fold(root: Expr,
         on_leaf: Callable[[NumericConstant], T],
         on_add: Callable[[BinaryAddition, T, T], T]) -> T:
    """
    Combine a tree bottom-up without recursion.

    Args:
        root: The tree to fold
        on_leaf: Called with each numeric leaf
        on_add: Called with each addition and the results for its children

    Returns:
        The result for ``root``
    """
    results: List[T] = []
    for node in postorder(root):
        if isinstance(node, BinaryAddition):
            right = results.pop()
            left = results.pop()
            results.append(on_add(node, left, right))
        else:
            results.append(on_leaf(node))
    return results[0]


# ============================================================
# Tree queries
# ============================================================

def evaluate(root: Expr) -> int:
    """
    Evaluate a concrete expression tree.

    Args:
        root: The root of the tree

    Returns:
        The sum of all numeric leaves

    Raises:
        InvariantViolation: If the tree contains a wildcard
    """
    return root.evaluate()


def is_concrete(root: Expr) -> bool:
    """True if no leaf in the tree is a wildcard."""
    return not any(isinstance(node, NumericConstant) and node.is_wildcard
                   for node in postorder(root))


def expr_size(root: Expr) -> int:
    """Number of nodes in the tree."""
    return len(postorder(root))


def expr_depth(root: Expr) -> int:
    """Height of the tree. Leaves have depth 0."""
    return fold(root, lambda leaf: 0,
                lambda node, left, right: 1 + max(left, right))


# ============================================================
# Rendering
# ============================================================

def format_expr(root: Expr) -> str:
    """
    Format a tree as an s-expression string.

    Binding names are shown on wildcards only.

    Examples:
        E.add(0, 1)                -> "(+ 0 1)"
        E.add(0, E.any("right"))   -> "(+ 0 ?right)"
        E.any()                    -> "?"
    """
    return fold(root, _format_leaf, lambda node, left, right: f"(+ {left} {right})")


def _format_leaf(leaf: NumericConstant) -> str:
    if leaf.is_wildcard:
        return f"?{leaf.id}"
    return str(leaf.value)


def to_data(root: Expr) -> Union[int, str, List]:
    """
    Convert a tree to JSON-friendly nested lists.

    Examples:
        E.add(0, 1)               -> ["+", 0, 1]
        E.add(0, E.any("right"))  -> ["+", 0, "?right"]
    """
    def leaf(node: NumericConstant):
        return f"?{node.id}" if node.is_wildcard else node.value
    return fold(root, leaf, lambda node, left, right: ["+", left, right])


# ============================================================
# Expression Builder
# ============================================================

class _ExprBuilder:
    """
    Expression builder for arbor.

    Plain ints are accepted wherever a subtree is expected and are wrapped
    as unbound numeric constants.

    Examples:
        from arbor import E

        E.num(3)                        # 3
        E.any("x")                      # ?x
        E.add(0, E.any("right"))        # (+ 0 ?right)
        E.sum(1, 2, 3)                  # (+ (+ 1 2) 3)
    """

    def num(self, value: NumericValue, id: str = "") -> NumericConstant:
        """Create a numeric constant (or wildcard when value is ANY)."""
        return NumericConstant(value, id)

    def any(self, id: str = "") -> NumericConstant:
        """Create a wildcard leaf, optionally bound to ``id``."""
        return NumericConstant(ANY, id)

    def add(self, left: Union[int, Expr], right: Union[int, Expr],
            id: str = "") -> BinaryAddition:
        """Create an addition node."""
        return BinaryAddition(self._wrap(left), self._wrap(right), id)

    def sum(self, *terms: Union[int, Expr]) -> Expr:
        """
        Build a left-leaning chain of additions.

        Examples:
            E.sum(5)        -> 5
            E.sum(1, 2, 3)  -> (+ (+ 1 2) 3)
        """
        if not terms:
            raise ValueError("sum needs at least one term")
        result = self._wrap(terms[0])
        for term in terms[1:]:
            result = BinaryAddition(result, self._wrap(term))
        return result

    def rsum(self, *terms: Union[int, Expr]) -> Expr:
        """
        Build a right-leaning chain of additions.

        Example:
            E.rsum(1, 2, 3) -> (+ 1 (+ 2 3))
        """
        if not terms:
            raise ValueError("sum needs at least one term")
        result = self._wrap(terms[-1])
        for term in reversed(terms[:-1]):
            result = BinaryAddition(self._wrap(term), result)
        return result

    @staticmethod
    def _wrap(term: Union[int, Expr]) -> Expr:
        if isinstance(term, (NumericConstant, BinaryAddition)):
            return term
        return NumericConstant(term)

    def __repr__(self) -> str:
        return "E (expression builder)"


# Singleton instance
E = _ExprBuilder()
