"""Tests for matching, flattening and instantiation."""

import pytest
from arbor import (
    ANY, E, InvariantViolation, NumericConstant, RuleError,
    apply_transform, flatten_expressions, flatten_identifiers,
    instantiate, match, rewrite_at, transform_add_zero_left,
    transform_add_zero_right, evaluate,
)


class TestMatchNumeric:
    """Tests for matching numeric leaves."""

    def test_wildcard_matches_wildcard(self):
        assert match(E.any(), E.any()) == True

    def test_wildcard_matches_any_concrete(self):
        for k in (0, 1, 7, 10 ** 9):
            assert match(E.any(), E.num(k)) == True
            assert match(E.num(k), E.any()) == True

    def test_equal_concrete_values_match(self):
        for k in (0, 3, 42):
            assert match(E.num(k), E.num(k)) == True

    def test_different_concrete_values_do_not_match(self):
        assert match(E.num(0), E.num(1)) == False
        assert match(E.num(5), E.num(4)) == False

    def test_binding_names_ignored(self):
        assert match(E.num(2, "a"), E.num(2, "b")) == True
        assert match(E.any("x"), E.num(9, "y")) == True


class TestMatchStructure:
    """Tests for structural matching of additions."""

    def test_kind_mismatch(self):
        """A leaf never matches an addition and vice versa."""
        assert match(E.num(1), E.add(0, 1)) == False
        assert match(E.add(0, 1), E.num(1)) == False
        assert match(E.any(), E.add(0, 1)) == False

    def test_addition_matches(self):
        assert match(E.add(0, E.any("r")), E.add(0, 5)) == True

    def test_addition_child_mismatch(self):
        assert match(E.add(0, E.any("r")), E.add(1, 5)) == False

    def test_not_commutative(self):
        """0 + x and x + 0 are different patterns."""
        left_zero = E.add(0, E.any("x"))
        assert match(left_zero, E.add(0, 3)) == True
        assert match(left_zero, E.add(3, 1)) == False

    def test_nested(self):
        pattern = E.add(E.add(E.any(), 1), E.any())
        assert match(pattern, E.add(E.add(7, 1), 2)) == True
        assert match(pattern, E.add(E.add(7, 2), 2)) == False
        assert match(pattern, E.add(7, E.add(1, 2))) == False

    def test_only_matches_at_root(self):
        """Matching is not a subtree search."""
        assert match(E.add(0, E.any()), E.add(1, E.add(0, 2))) == False


class TestFlatten:
    """Tests for post-order flattening."""

    def test_leaf(self):
        leaf = E.num(3, "x")
        assert flatten_expressions(leaf) == [leaf]
        assert flatten_identifiers(leaf) == ["x"]

    def test_post_order(self):
        """Left subtree, right subtree, then the node itself."""
        a, b, c = E.num(1, "a"), E.num(2, "b"), E.num(3, "c")
        inner = E.add(a, b, "inner")
        root = E.add(inner, c, "root")

        nodes = flatten_expressions(root)
        assert [n is m for n, m in zip(nodes, [a, b, inner, c, root])] == [True] * 5
        assert flatten_identifiers(root) == ["a", "b", "inner", "c", "root"]

    def test_references_not_copies(self):
        tree = E.add(1, 2)
        assert flatten_expressions(tree)[-1] is tree

    def test_unbound_names_are_empty(self):
        assert flatten_identifiers(E.add(0, E.any("right"))) == ["", "right", ""]

    def test_same_length_for_matching_trees(self):
        pattern = E.add(E.any("a"), E.add(0, E.any("b")))
        query = E.add(4, E.add(0, 6))
        assert match(pattern, query)
        assert len(flatten_identifiers(pattern)) == len(flatten_expressions(query))


class TestInstantiate:
    """Tests for template instantiation."""

    def setup_method(self):
        self.query = E.add(4, E.add(0, 6))
        self.pattern = E.add(E.any("a"), E.add(0, E.any("b")))
        self.expressions = flatten_expressions(self.query)
        self.identifiers = flatten_identifiers(self.pattern)

    def test_placeholder_copies_value(self):
        result = instantiate(E.any("b"), self.expressions, self.identifiers)
        assert result == E.num(6)

    def test_placeholder_drops_binding_name(self):
        result = instantiate(E.any("a"), self.expressions, self.identifiers)
        assert result.id == ""
        assert result.value == 4

    def test_literal_copied(self):
        result = instantiate(E.num(9, "lit"), self.expressions, self.identifiers)
        assert result == E.num(9)

    def test_addition_rebuilt(self):
        template = E.add(E.any("b"), E.add(E.any("a"), 1))
        result = instantiate(template, self.expressions, self.identifiers)
        assert result == E.add(6, E.add(4, 1))

    def test_result_shares_nothing(self):
        template = E.add(E.any("a"), E.any("b"))
        result = instantiate(template, self.expressions, self.identifiers)
        originals = flatten_expressions(self.query) + flatten_expressions(template)
        for node in flatten_expressions(result):
            assert all(node is not other for other in originals)

    def test_unbound_placeholder_is_rule_error(self):
        with pytest.raises(RuleError):
            instantiate(E.any("missing"), self.expressions, self.identifiers)

    def test_anonymous_placeholder_is_rule_error(self):
        """An empty binding name is never looked up."""
        with pytest.raises(RuleError):
            instantiate(E.any(), self.expressions, self.identifiers)

    def test_rule_error_is_invariant_violation(self):
        assert issubclass(RuleError, InvariantViolation)

    def test_placeholder_bound_to_addition_is_rule_error(self):
        identifiers = flatten_identifiers(E.add(4, E.add(0, 6, "whole")))
        with pytest.raises(RuleError):
            instantiate(E.any("whole"), self.expressions, identifiers)


class TestRewriteAt:
    """Tests for rewriting a matched subtree."""

    def test_left_zero(self):
        transform = transform_add_zero_left()
        assert rewrite_at(transform, E.add(0, 8)) == E.num(8)

    def test_right_zero(self):
        transform = transform_add_zero_right()
        assert rewrite_at(transform, E.add(8, 0)) == E.num(8)

    def test_query_untouched(self):
        query = E.add(0, 8)
        before = query.clone()
        rewrite_at(transform_add_zero_left(), query)
        assert query == before


class TestApplyTransform:
    """Tests for a single rule pass over a whole tree."""

    def setup_method(self):
        self.left = transform_add_zero_left()
        self.right = transform_add_zero_right()

    def test_root_match(self):
        assert apply_transform(self.left, E.add(0, 5)) == E.num(5)

    def test_leaf_cloned(self):
        leaf = E.num(3, "x")
        result = apply_transform(self.left, leaf)
        assert result == leaf
        assert result is not leaf

    def test_no_match_rebuilds(self):
        tree = E.add(2, 3, "top")
        result = apply_transform(self.left, tree)
        assert result == tree
        assert result is not tree

    def test_rewrites_every_subtree(self):
        """All non-overlapping occurrences are rewritten left to right."""
        tree = E.add(E.add(0, 1), E.add(0, 2))
        assert apply_transform(self.left, tree) == E.add(1, 2)

    def test_rewrite_in_deep_subtree(self):
        tree = E.add(1, E.add(2, E.add(3, 0)))
        assert apply_transform(self.right, tree) == E.add(1, E.add(2, 3))

    def test_outermost_match_wins(self):
        """(+ 0 0) is replaced as a whole, children are not revisited."""
        rewrites = []
        result = apply_transform(self.left, E.add(0, 0),
                                 lambda before, after: rewrites.append(before))
        assert result == E.num(0)
        assert len(rewrites) == 1

    def test_new_opportunity_not_revisited(self):
        """A pass does not re-examine the trees it produced."""
        tree = E.add(0, E.add(0, 5))
        result = apply_transform(self.left, tree)
        # The inner sum collapses, leaving a fresh (+ 0 5) behind
        assert result == E.add(0, 5)

    def test_callback_receives_pairs(self):
        seen = []
        tree = E.add(E.add(0, 1), E.add(0, 2))
        apply_transform(self.left, tree, lambda b, a: seen.append((b, a)))
        assert [(b.right.value, a.value) for b, a in seen] == [(1, 1), (2, 2)]

    def test_input_not_mutated(self):
        tree = E.add(E.add(0, 1), E.add(3, 0))
        before = tree.clone()
        apply_transform(self.left, tree)
        apply_transform(self.right, tree)
        assert tree == before

    def test_value_preserved(self):
        tree = E.add(E.add(0, 4), E.add(E.add(6, 0), 0))
        for transform in (self.left, self.right):
            assert evaluate(apply_transform(transform, tree)) == evaluate(tree)

    def test_wildcards_only_in_rules(self):
        """Rules keep their wildcard leaves after being applied."""
        apply_transform(self.left, E.add(0, 1))
        assert self.left.input_pattern.right.value is ANY
        assert isinstance(self.left.output_template, NumericConstant)
