"""
tests/unit/test_formula.py
==========================
Tests for proofwork/logic/formula.py — the immutable formula model.
"""

import pytest

from proofwork.logic.formula import And, Atom, Exists, Forall, Implies, Not, Or, conjoin, is_symbol


class TestEquality:
    def test_structural_equality(self, P, Q):
        assert And(P, Q) == And(Atom("P"), Atom("Q"))

    def test_operand_order_matters(self, P, Q):
        assert And(P, Q) != And(Q, P)

    def test_hashable(self, P, Q):
        assert len({And(P, Q), And(P, Q), Or(P, Q)}) == 2

    def test_first_order_atoms_compare_args(self):
        assert Atom("R", ("a", "b")) != Atom("R", ("b", "a"))
        assert Atom("R", ["a"]) == Atom("R", ("a",))

    def test_empty_atom_name_rejected(self):
        with pytest.raises(ValueError):
            Atom("")

    @pytest.mark.parametrize("build", [
        lambda: Atom("P!1"),
        lambda: Atom("P", ("x!1",)),
        lambda: Forall("x!1", Atom("P")),
        lambda: Exists("y!2", Atom("P")),
    ])
    def test_reserved_character_rejected(self, build):
        with pytest.raises(ValueError, match="!"):
            build()

    def test_is_symbol(self):
        assert is_symbol("butler")
        assert not is_symbol("x!1")
        assert not is_symbol("")


class TestOrdering:
    def test_total_order_is_deterministic(self, P, Q, R):
        items = [Implies(P, Q), Q, Not(P), And(P, R), P, Forall("x", P)]
        assert sorted(items) == sorted(reversed(items))

    def test_atoms_sort_before_compounds(self, P, Q):
        assert P < Not(P) < And(P, Q) < Or(P, Q) < Implies(P, Q)

    def test_atoms_sorted_by_name(self, P, Q):
        assert sorted([Q, P]) == [P, Q]


class TestPrinting:
    def test_minimal_parentheses(self, P, Q, R):
        assert And(P, Or(Q, R)).pretty() == "P ∧ (Q ∨ R)"
        assert Or(And(P, Q), R).pretty() == "P ∧ Q ∨ R"

    def test_implication_right_associative(self, P, Q, R):
        assert Implies(P, Implies(Q, R)).pretty() == "P → Q → R"
        assert Implies(Implies(P, Q), R).pretty() == "(P → Q) → R"

    def test_negation(self, P, Q):
        assert Not(And(P, Q)).pretty() == "¬(P ∧ Q)"
        assert Not(Not(P)).pretty() == "¬¬P"

    def test_quantifiers(self):
        f = Forall("x", Implies(Atom("P", ("x",)), Exists("y", Atom("R", ("x", "y")))))
        assert f.pretty() == "∀x. P(x) → (∃y. R(x, y))"

    def test_str_is_pretty(self, P, Q):
        assert str(And(P, Q)) == And(P, Q).pretty()


class TestVariables:
    def test_free_vars(self):
        f = Forall("x", Atom("R", ("x", "y")))
        assert f.free_vars() == frozenset({"y"})
        assert f.bound_vars() == frozenset({"x"})

    def test_atoms(self, P, Q):
        assert Implies(P, And(Q, P)).atoms() == frozenset({P, Q})

    def test_depth_and_subformulas(self, P, Q):
        f = Not(And(P, Q))
        assert f.depth() == 3
        assert list(f.subformulas()) == [f, And(P, Q), P, Q]

    def test_is_first_order(self, P):
        assert not Implies(P, P).is_first_order()
        assert Atom("P", ("a",)).is_first_order()
        assert Forall("x", P).is_first_order()


class TestSubstitution:
    def test_replaces_free_occurrences(self):
        f = And(Atom("P", ("a",)), Atom("Q", ("a", "b")))
        assert f.substitute("a", "x") == And(Atom("P", ("x",)), Atom("Q", ("x", "b")))

    def test_bound_occurrences_untouched(self):
        f = Forall("a", Atom("P", ("a",)))
        assert f.substitute("a", "x") is f

    def test_capture_detected(self):
        f = Forall("x", Atom("R", ("a", "x")))
        assert f.substitute("a", "x") is None

    def test_unrelated_binder_allows_substitution(self):
        f = Exists("y", Atom("R", ("a", "y")))
        assert f.substitute("a", "x") == Exists("y", Atom("R", ("x", "y")))


class TestConjoin:
    def test_left_nested(self, P, Q, R):
        assert conjoin([P, Q, R]) == And(And(P, Q), R)

    def test_empty(self):
        assert conjoin([]) is None
