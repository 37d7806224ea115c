#!/usr/bin/env python3
"""
arbor Command-Line Interface

Runs the built-in optimizer on programmatically built trees.

Usage:
    arbor demo                      # Run the end-to-end scenarios
    arbor rules                     # List the built-in rules in order
    arbor sum 0 1 0 2               # Optimize (+ (+ (+ 0 1) 0) 2)
    arbor sum --right 1 0 0         # Optimize (+ 1 (+ 0 0))
    arbor -t sum 0 5                # Show the rewrite trace
    arbor --rule add-zero-left sum 1 0   # Run only the named rule(s)

Options:
    -t, --trace        Print the rewrite trace after each optimization
    --rule NAME        Restrict to a built-in rule (repeatable)
    -v, --verbose      Log passes (-v for info, -vv for debug)
"""

import argparse
import logging
import sys
from typing import List, Optional, Sequence

from . import __version__
from .engine import Optimizer, rules_from_names
from .expr import E, Expr, evaluate, expr_size, format_expr

logger = logging.getLogger(__name__)

# Verbosity count -> logging level
LOG_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]


def demo_scenarios() -> List[tuple]:
    """The end-to-end scenarios: (label, input tree, expected value)."""
    return [
        ("left-wise", E.add(0, 1), 1),
        ("right-wise", E.add(1, 0), 1),
    ]


class Driver:
    """Runs optimizer commands and prints their results."""

    def __init__(self, optimizer: Optional[Optimizer] = None, trace: bool = False):
        self.optimizer = optimizer if optimizer is not None else Optimizer()
        self.trace = trace

    def _optimize(self, tree: Expr) -> Expr:
        if self.trace:
            result, trace = self.optimizer(tree, trace=True)
            print(trace.format("verbose"))
            return result
        return self.optimizer(tree)

    def run_demo(self) -> int:
        """
        Optimize each demo scenario and check the values agree.

        Returns:
            Exit code (0 when every scenario passes)
        """
        failures = 0
        for label, tree, expected in demo_scenarios():
            result = self._optimize(tree)
            before, after = evaluate(tree), evaluate(result)
            ok = before == expected and after == expected
            status = "ok" if ok else "FAILED"
            print(f"{label}: {format_expr(tree)} => {format_expr(result)} "
                  f"[{before} == {after}] {status}")
            if not ok:
                failures += 1

        if failures:
            print(f"{failures} scenario(s) failed!", file=sys.stderr)
            return 1
        print("All tests passed!")
        return 0

    def list_rules(self) -> int:
        """Print the active rules in application order."""
        for line in self.optimizer.list_rules():
            print(line)
        return 0

    def run_sum(self, values: Sequence[int], right: bool = False) -> int:
        """
        Build a chain of additions over ``values`` and optimize it.

        Returns:
            Exit code (1 if optimization changed the value)
        """
        tree = E.rsum(*values) if right else E.sum(*values)
        result = self._optimize(tree)
        before, after = evaluate(tree), evaluate(result)
        print(f"{format_expr(tree)} => {format_expr(result)}")
        print(f"size: {expr_size(tree)} -> {expr_size(result)}")
        print(f"value: {after}")
        if before != after:
            print(f"Error: value changed from {before} to {after}", file=sys.stderr)
            return 1
        return 0


def non_negative_int(text: str) -> int:
    """argparse type for leaf values."""
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}")
    if value < 0:
        raise argparse.ArgumentTypeError(f"negative numbers are not supported: {value}")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="arbor",
        description="arbor - expression tree evaluator and rewrite optimizer",
        epilog="Examples:\n"
               "  arbor demo                 Run the end-to-end scenarios\n"
               "  arbor rules                List the built-in rules\n"
               "  arbor sum 0 1 0 2          Optimize (+ (+ (+ 0 1) 0) 2)\n"
               "  arbor -t sum --right 1 0   Trace (+ 1 0)\n",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "-t", "--trace",
        action="store_true",
        help="Print the rewrite trace"
    )

    parser.add_argument(
        "--rule",
        action="append",
        default=[],
        metavar="NAME",
        help="Only apply the named built-in rule (can be specified multiple times)"
    )

    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v info, -vv debug)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("demo", help="Run the end-to-end scenarios")
    commands.add_parser("rules", help="List the rules in application order")

    sum_parser = commands.add_parser("sum", help="Optimize a chain of additions")
    sum_parser.add_argument(
        "values",
        nargs="+",
        type=non_negative_int,
        help="Leaf values, left to right"
    )
    sum_parser.add_argument(
        "--right",
        action="store_true",
        help="Nest to the right instead of the left"
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    level = LOG_LEVELS[min(args.verbose, len(LOG_LEVELS) - 1)]
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        optimizer = rules_from_names(args.rule)
    except KeyError as e:
        available = ", ".join(t.name for t in Optimizer())
        parser.error(f"{e.args[0]} (available: {available})")

    driver = Driver(optimizer, trace=args.trace)

    if args.command == "demo":
        return driver.run_demo()
    elif args.command == "rules":
        return driver.list_rules()
    else:
        return driver.run_sum(args.values, right=args.right)


if __name__ == "__main__":
    sys.exit(main())
