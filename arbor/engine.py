"""
Rule set and optimizer driver for arbor.

A Transform is an immutable rewrite rule: a name, an input pattern and an
output template, both expression trees. The Optimizer owns an ordered list
of transforms and applies each one exactly once, in order, as a single
top-down pass over the whole tree:

    from arbor import Optimizer, E

    optimizer = Optimizer()
    optimizer.optimize(E.add(0, 1))           # => NumericConstant(1)

    result, trace = optimizer.optimize(E.add(E.add(0, 2), 0), trace=True)
    print(trace.format("rules"))              # add-zero-left -> add-zero-right

Built-in rules:
    @add-zero-left:  (+ 0 ?right) => ?right
    @add-zero-right: (+ ?left 0) => ?left

There is no fixpoint iteration. A rewrite opportunity created by one rule
is only picked up by a rule that runs later in the list.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .expr import (
    ANY, BinaryAddition, Expr, NumericConstant, format_expr, to_data,
)
from .rewriter import (
    Bindings, RuleError, apply_transform, bind, flatten_expressions,
    flatten_identifiers,
)

logger = logging.getLogger(__name__)


# ============================================================
# Transforms
# ============================================================

class Transform:
    """
    An immutable rewrite rule.

    The input pattern and output template are cloned on construction, so
    later changes to the trees passed in do not affect the rule.

    Rules are checked when built:
        - the input pattern must be an addition (leaves are never rewritten)
        - binding names must be unique within the input pattern
        - every placeholder in the template must name a numeric leaf of
          the input pattern

    Raises:
        RuleError: If any of the checks above fails
    """

    __slots__ = ('_name', '_description', '_input_pattern', '_output_template')

    def __init__(self, name: str, input_pattern: Expr, output_template: Expr,
                 description: Optional[str] = None):
        if not name:
            raise RuleError("transform name must not be empty")
        self._name = name
        self._description = description
        self._input_pattern = input_pattern.clone()
        self._output_template = output_template.clone()
        self._validate()

    def _validate(self) -> None:
        if not isinstance(self._input_pattern, BinaryAddition):
            raise RuleError(
                f"{self._name}: input pattern {format_expr(self._input_pattern)} "
                "must be an addition")

        seen = set()
        leaf_names = set()
        for node, name in zip(flatten_expressions(self._input_pattern),
                              flatten_identifiers(self._input_pattern)):
            if not name:
                continue
            if name in seen:
                raise RuleError(
                    f"{self._name}: binding name '{name}' appears more than once "
                    "in the input pattern")
            seen.add(name)
            if isinstance(node, NumericConstant):
                leaf_names.add(name)

        for node in flatten_expressions(self._output_template):
            if isinstance(node, NumericConstant) and node.is_wildcard:
                if not node.id:
                    raise RuleError(
                        f"{self._name}: anonymous placeholder in output template")
                if node.id not in leaf_names:
                    raise RuleError(
                        f"{self._name}: placeholder ?{node.id} is not bound to a "
                        "numeric leaf of the input pattern")

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> Optional[str]:
        return self._description

    @property
    def input_pattern(self) -> Expr:
        """A copy of the input pattern."""
        return self._input_pattern.clone()

    @property
    def output_template(self) -> Expr:
        """A copy of the output template."""
        return self._output_template.clone()

    def __setattr__(self, key, value):
        if hasattr(self, key):
            raise AttributeError(f"Transform is immutable, cannot set '{key}'")
        object.__setattr__(self, key, value)

    def __repr__(self) -> str:
        base = (f"@{self._name}: {format_expr(self._input_pattern)} => "
                f"{format_expr(self._output_template)}")
        if self._description:
            return f"{base} \"{self._description}\""
        return base


def transform_add_zero_left() -> Transform:
    """
    Left-wise addition with zero.

        (+ 0 ?right) => ?right       e.g. 0 + 1 -> 1
    """
    return Transform(
        "add-zero-left",
        BinaryAddition(NumericConstant(0), NumericConstant(ANY, "right")),
        NumericConstant(ANY, "right"),
        description="Left-wise Binary Addition with Zero",
    )


def transform_add_zero_right() -> Transform:
    """
    Right-wise addition with zero.

        (+ ?left 0) => ?left         e.g. 1 + 0 -> 1
    """
    return Transform(
        "add-zero-right",
        BinaryAddition(NumericConstant(ANY, "left"), NumericConstant(0)),
        NumericConstant(ANY, "left"),
        description="Right-wise Binary Addition with Zero",
    )


# Order matters: rules run in this order, once each
DEFAULT_TRANSFORMS: Tuple[Transform, ...] = (
    transform_add_zero_left(),
    transform_add_zero_right(),
)


# ============================================================
# Tracing
# ============================================================

class RewriteStep:
    """A single rewrite: one matched subtree replaced during one pass."""

    def __init__(self, rule_index: int, transform: Transform,
                 before: Expr, after: Expr, bindings: Bindings):
        self.rule_index = rule_index
        self.transform = transform
        self.before = before
        self.after = after
        self.bindings = bindings

    def __repr__(self) -> str:
        return f"{self.transform.name}: {format_expr(self.before)} => {format_expr(self.after)}"

    def to_dict(self) -> Dict:
        """Convert step to dictionary for serialization."""
        return {
            "rule_index": self.rule_index,
            "rule_name": self.transform.name,
            "description": self.transform.description,
            "before": to_data(self.before),
            "after": to_data(self.after),
            "bindings": self.bindings.to_dict(),
        }


class RewriteTrace:
    """
    A trace of one optimization run.

    Records every rewrite in the order it happened and the tree after each
    rule's pass.

    Formatting options:
        - Default repr: verbose multi-line format
        - format("compact"): single line showing rule chain
        - format("rules"): just the rule names applied
        - format("chain"): tree after each pass that changed something
        - to_dict(): JSON-serializable dictionary
    """

    def __init__(self):
        self.steps: List[RewriteStep] = []
        self.passes: List[Tuple[str, Expr]] = []
        self.initial: Optional[Expr] = None
        self.final: Optional[Expr] = None

    def add_step(self, step: RewriteStep):
        self.steps.append(step)

    def add_pass(self, name: str, result: Expr):
        self.passes.append((name, result))

    def format(self, style: str = "verbose") -> str:
        """
        Format the trace in different styles.

        Args:
            style: One of "verbose", "compact", "rules", "chain"

        Returns:
            Formatted string representation of the trace.
        """
        if style == "compact":
            rules = self.rules_applied()
            return f"{format_expr(self.initial)} --[{', '.join(rules)}]--> {format_expr(self.final)}"

        elif style == "rules":
            rules = self.rules_applied()
            return " -> ".join(rules) if rules else "(no rules applied)"

        elif style == "chain":
            parts = [format_expr(self.initial)]
            previous = self.initial
            for name, result in self.passes:
                if result == previous:
                    continue
                parts.append(f"  --({name})-->")
                parts.append(format_expr(result))
                previous = result
            return "\n".join(parts)

        elif style == "verbose":
            return repr(self)

        raise ValueError(f"Unknown trace style: {style}. "
                         f"Valid options: verbose, compact, rules, chain")

    def __repr__(self) -> str:
        lines = [f"Initial: {format_expr(self.initial)}"]
        for i, step in enumerate(self.steps, 1):
            if step.transform.description:
                lines.append(f"  {i}. {step} ({step.transform.description})")
            else:
                lines.append(f"  {i}. {step}")
        lines.append(f"Final: {format_expr(self.final)}")
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)

    def __bool__(self) -> bool:
        """True if any rewriting was done."""
        return len(self.steps) > 0

    def to_dict(self) -> Dict:
        """Convert trace to dictionary for JSON serialization."""
        return {
            "initial": to_data(self.initial),
            "final": to_data(self.final),
            "steps": [step.to_dict() for step in self.steps],
            "passes": [{"rule_name": name, "result": to_data(result)}
                       for name, result in self.passes],
            "step_count": len(self.steps),
        }

    def rule_counts(self) -> Dict[str, int]:
        """Count how many times each rule was applied."""
        return dict(Counter(step.transform.name for step in self.steps))

    def rules_applied(self) -> List[str]:
        """Get list of rule names in order of application."""
        return [step.transform.name for step in self.steps]

    def summary(self) -> str:
        """Get a brief summary of the rewriting."""
        if not self.steps:
            return "No rewriting performed"
        counts = self.rule_counts()
        most_used = max(counts.items(), key=lambda x: x[1])
        return (f"{len(self.steps)} rewrites using {len(counts)} unique rules. "
                f"Most used: {most_used[0]} ({most_used[1]}x)")


# ============================================================
# Optimizer
# ============================================================

class Optimizer:
    """
    Applies an ordered list of transforms to expression trees.

    Each transform runs exactly once per optimization, in list order, as
    one top-down pass; the tree produced by one pass is the input of the
    next. The input tree is never modified.

    Example:
        optimizer = Optimizer()                      # built-in rules
        optimizer(E.add(1, 0))                       # => NumericConstant(1)

        left_only = optimizer.select("add-zero-left")
        left_only(E.add(1, 0))                       # unchanged
    """

    def __init__(self, transforms: Optional[Iterable[Transform]] = None):
        """
        Initialize an Optimizer.

        Args:
            transforms: Ordered transforms to apply.
                Default: DEFAULT_TRANSFORMS.
        """
        if transforms is None:
            transforms = DEFAULT_TRANSFORMS
        self._transforms: Tuple[Transform, ...] = tuple(transforms)
        self._rule_names: Dict[str, int] = {}
        for idx, transform in enumerate(self._transforms):
            if transform.name in self._rule_names:
                raise RuleError(f"Duplicate transform name: {transform.name}")
            self._rule_names[transform.name] = idx

    @property
    def transforms(self) -> Tuple[Transform, ...]:
        return self._transforms

    def optimize(self, root: Expr, trace: bool = False
                 ) -> Union[Expr, Tuple[Expr, RewriteTrace]]:
        """
        Optimize an expression tree.

        Args:
            root: The tree to optimize (not modified)
            trace: If True, return (result, trace) tuple

        Returns:
            A new tree, or (tree, trace) if trace=True
        """
        trace_obj = RewriteTrace() if trace else None
        if trace_obj is not None:
            trace_obj.initial = root.clone()

        # Rendering a tree walks all of it, so only render when it is logged
        debug_on = logger.isEnabledFor(logging.DEBUG)
        rewrites = 0
        rule_idx, transform = 0, None

        def on_rewrite(before: Expr, after: Expr) -> None:
            nonlocal rewrites
            rewrites += 1
            if debug_on:
                logger.debug("%s rewrote %s to %s", transform.name,
                             format_expr(before), format_expr(after))
            if trace_obj is not None:
                matched = before.clone()
                trace_obj.add_step(RewriteStep(
                    rule_index=rule_idx,
                    transform=transform,
                    before=matched,
                    after=after.clone(),
                    bindings=bind(transform.input_pattern, matched),
                ))

        current = root
        for rule_idx, transform in enumerate(self._transforms):
            current = apply_transform(transform, current, on_rewrite)
            if debug_on:
                logger.debug("pass %s: %s", transform.name, format_expr(current))
            if trace_obj is not None:
                trace_obj.add_pass(transform.name, current.clone())

        if current is root:
            # Only possible with an empty rule list
            current = root.clone()

        if logger.isEnabledFor(logging.INFO):
            logger.info("optimized %s to %s (%d rewrites)",
                        format_expr(root), format_expr(current), rewrites)

        if trace_obj is not None:
            trace_obj.final = current.clone()
            return current, trace_obj
        return current

    def rules_matching(self, root: Expr) -> List[Tuple[Transform, Bindings]]:
        """
        Find all rules whose input pattern matches at the root of a tree.

        Useful for understanding why an expression does or does not
        simplify.

        Returns:
            List of (transform, bindings) for each rule that matches.
        """
        matching = []
        for transform in self._transforms:
            bindings = bind(transform.input_pattern, root)
            if bindings is not None:
                matching.append((transform, bindings))
        return matching

    def select(self, *names: str) -> 'Optimizer':
        """
        Create an optimizer restricted to the named rules.

        Rules keep their original relative order, whatever order the names
        are given in.

        Raises:
            KeyError: If a name does not match any rule
        """
        for name in names:
            if name not in self._rule_names:
                raise KeyError(f"No rule named '{name}'")
        wanted = set(names)
        return Optimizer(t for t in self._transforms if t.name in wanted)

    def list_rules(self) -> List[str]:
        """List all rules in order, one formatted line each."""
        return [repr(transform) for transform in self._transforms]

    def __len__(self) -> int:
        return len(self._transforms)

    def __iter__(self):
        return iter(self._transforms)

    def __contains__(self, name: str) -> bool:
        """Check if a named rule exists: 'add-zero-left' in optimizer."""
        return name in self._rule_names

    def __getitem__(self, name: str) -> Transform:
        """Get rule by name: optimizer['add-zero-left']."""
        if name not in self._rule_names:
            raise KeyError(f"No rule named '{name}'")
        return self._transforms[self._rule_names[name]]

    def __repr__(self) -> str:
        return f"Optimizer({len(self._transforms)} rules)"

    def __call__(self, root: Expr, **kwargs):
        """Make optimizer callable: optimizer(tree) is shorthand for optimizer.optimize(tree)."""
        return self.optimize(root, **kwargs)


def optimize(root: Expr) -> Expr:
    """
    Optimize a tree with the built-in rules.

    Args:
        root: The tree to optimize (not modified)

    Returns:
        The optimized tree, independently owned
    """
    return Optimizer().optimize(root)


def rules_from_names(names: Sequence[str]) -> Optimizer:
    """Build an optimizer from built-in rule names (all rules when empty)."""
    optimizer = Optimizer()
    if not names:
        return optimizer
    return optimizer.select(*names)
