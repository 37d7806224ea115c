#!/usr/bin/env python3
"""
arbor Feature Demonstration

This script walks through building, evaluating and optimizing trees.
"""

from arbor import (
    E, Optimizer, Transform, evaluate, format_expr, match, bind, optimize,
)


def section(title: str):
    """Print a section header."""
    print(f"\n{'='*60}")
    print(f" {title}")
    print('='*60)


def demo_basic_usage():
    """Optimize a few trees with the built-in rules."""
    section("Basic Usage")

    examples = [
        E.add(0, 1),
        E.add(1, 0),
        E.add(2, 3),
        E.add(E.add(0, 4), E.add(5, 0)),
    ]

    for tree in examples:
        result = optimize(tree)
        print(f"  {format_expr(tree)} => {format_expr(result)}"
              f"    (value {evaluate(result)})")


def demo_matching():
    """Show structural matching and the bindings it produces."""
    section("Matching")

    pattern = E.add(0, E.any("right"))
    for tree in (E.add(0, 9), E.add(9, 0), E.add(0, E.add(1, 2))):
        bindings = bind(pattern, tree)
        print(f"  {format_expr(pattern)} vs {format_expr(tree)}: "
              f"{match(pattern, tree)} {bindings!r}")


def demo_single_pass():
    """Each rule runs once: opportunities created by a rule stay put."""
    section("Single Pass Per Rule")

    tree = E.add(0, E.add(0, 5))
    result, trace = Optimizer().optimize(tree, trace=True)
    print(trace.format("chain"))
    print(f"  value still {evaluate(result)}")


def demo_custom_rules():
    """Build an optimizer with a rule of your own."""
    section("Custom Rules")

    collapse = Transform(
        "collapse-inner-zero",
        E.add(E.any("a"), E.add(0, E.any("b"))),
        E.add(E.any("a"), E.any("b")),
        description="a + (0 + b) = a + b",
    )
    optimizer = Optimizer([collapse])
    for line in optimizer.list_rules():
        print(f"  {line}")

    tree = E.add(3, E.add(0, 4))
    print(f"  {format_expr(tree)} => {format_expr(optimizer(tree))}")


def main():
    demo_basic_usage()
    demo_matching()
    demo_single_pass()
    demo_custom_rules()


if __name__ == "__main__":
    main()
