"""
tests/unit/test_encoder.py
==========================
Tests for proofwork/verification/encoder.py — SMT-LIB2 text, logic
selection, binder renaming, skolemization and signature errors.
"""

import pytest

from proofwork.core.config import EncoderConfig
from proofwork.core.exceptions import EncodingError
from proofwork.logic.formula import Atom
from proofwork.logic.parser import parse_formula
from proofwork.verification.encoder import (
    encode_entailment,
    encode_proof,
    isabelle_theory,
    quote_symbol,
)
from proofwork.verification.rules import check_rules


def f(text):
    return parse_formula(text)


class TestEncodeProof:
    def test_propositional_query(self, and_graph):
        graph, _ = and_graph
        query = encode_proof(check_rules(graph))
        lines = query.smt2.splitlines()
        assert "(set-logic QF_UF)" in lines
        assert "(declare-const P Bool)" in lines
        assert "(declare-const Q Bool)" in lines
        assert "(assert P) ; hyp_1" in lines
        assert "(assert Q) ; hyp_2" in lines
        assert lines[-2] == "(assert (not (and P Q))) ; goal"
        assert lines[-1] == "(check-sat)"
        assert query.labels == ("hyp_1", "hyp_2", "goal")
        assert query.logic == "QF_UF"
        assert "declare-sort" not in query.smt2

    def test_byte_identical_across_runs(self, and_graph):
        graph, _ = and_graph
        first = encode_proof(check_rules(graph))
        for piece in graph.pieces():
            piece.invalidate()
        second = encode_proof(check_rules(graph))
        assert first.smt2 == second.smt2
        assert first.digest == second.digest

    def test_goal_not_derived(self, goal_only_graph):
        graph, goal = goal_only_graph
        with pytest.raises(EncodingError) as info:
            encode_proof(check_rules(graph))
        assert info.value.piece_id == goal

    def test_declarations_sorted(self):
        query = encode_entailment([f("Zeta"), f("Alpha")], f("Mid"))
        decls = [l for l in query.smt2.splitlines() if l.startswith("(declare")]
        assert decls == [
            "(declare-const Alpha Bool)",
            "(declare-const Mid Bool)",
            "(declare-const Zeta Bool)",
        ]
        assert query.symbols == ("Alpha", "Mid", "Zeta")


class TestFirstOrder:
    def test_quantified_query_uses_uf(self):
        query = encode_entailment([f("forall x. P(x)")], f("P(a)"))
        lines = query.smt2.splitlines()
        assert query.logic == "UF"
        assert "(declare-sort Obj 0)" in lines
        assert "(declare-fun P (Obj) Bool)" in lines
        assert "(declare-const a Obj)" in lines
        assert "(assert (forall ((x!1 Obj)) (P x!1))) ; hyp_1" in lines
        assert "(assert (not (P a))) ; goal" in lines

    def test_ground_first_order_stays_quantifier_free(self):
        query = encode_entailment([f("P(a)")], f("P(a)"))
        assert query.logic == "QF_UF"
        assert "(declare-sort Obj 0)" in query.smt2.splitlines()

    def test_binders_renamed_per_query(self):
        query = encode_entailment([f("forall x. P(x)")], f("exists x. P(x)"))
        assert "(forall ((x!1 Obj)) (P x!1))" in query.smt2
        assert "(exists ((x!2 Obj)) (P x!2))" in query.smt2

    def test_free_and_bound_same_name(self):
        query = encode_entailment([f("P(x)")], f("exists x. P(x)"))
        assert "(declare-const x Obj)" in query.smt2
        assert "(exists ((x!1 Obj)) (P x!1))" in query.smt2

    def test_custom_sort_name(self):
        query = encode_entailment([], f("forall x. P(x) -> P(x)"), EncoderConfig(sort_name="Thing"))
        assert "(declare-sort Thing 0)" in query.smt2
        assert "((x!1 Thing))" in query.smt2


class TestSkolemize:
    def test_existential_hypothesis_becomes_constant(self):
        config = EncoderConfig(skolemize_hypotheses=True)
        query = encode_entailment([f("exists x. P(x)")], f("exists y. P(y)"), config)
        lines = query.smt2.splitlines()
        assert "(declare-const sk!1 Obj)" in lines
        assert "(assert (P sk!1)) ; hyp_1" in lines
        assert "(exists ((y!1 Obj)) (P y!1))" in query.smt2

    def test_existential_under_universal_becomes_function(self):
        config = EncoderConfig(skolemize_hypotheses=True)
        query = encode_entailment([f("forall y. exists x. R(y, x)")], f("Q"), config)
        lines = query.smt2.splitlines()
        assert "(declare-fun sk!1 (Obj) Obj)" in lines
        assert "(assert (forall ((y!1 Obj)) (R y!1 (sk!1 y!1)))) ; hyp_1" in lines

    def test_negative_positions_untouched(self):
        config = EncoderConfig(skolemize_hypotheses=True)
        query = encode_entailment([f("~(exists x. P(x))")], f("Q"), config)
        assert "sk!" not in query.smt2
        assert "(not (exists ((x!1 Obj)) (P x!1)))" in query.smt2


class TestSignatureErrors:
    def test_arity_clash_names_piece(self):
        with pytest.raises(EncodingError) as info:
            encode_entailment([f("P(a)"), f("P(a, b)")], f("Q"), sources=[3, 4])
        assert info.value.piece_id == 4
        assert info.value.context["symbol"] == "P"

    def test_goal_clash_names_goal_piece(self):
        with pytest.raises(EncodingError) as info:
            encode_entailment([f("P(a)")], f("P"), sources=[3], goal_source=9)
        assert info.value.piece_id == 9

    def test_term_used_as_predicate(self):
        with pytest.raises(EncodingError):
            encode_entailment([f("P(a)")], f("a"))

    def test_labels_must_match(self):
        with pytest.raises(ValueError):
            encode_entailment([f("P")], f("P"), labels=["a", "b"])


class TestQuoting:
    @pytest.mark.parametrize("name", ["and", "true", "Bool", "assert"])
    def test_reserved_words_quoted(self, name):
        assert quote_symbol(name) == f"|{name}|"

    def test_plain_symbol_untouched(self):
        assert quote_symbol("Raining") == "Raining"

    def test_reserved_atom_in_query(self):
        query = encode_entailment([Atom("true")], Atom("true"))
        assert "(declare-const |true| Bool)" in query.smt2
        assert "(assert (not |true|)) ; goal" in query.smt2


class TestIsabelle:
    def test_theory_for_and_proof(self, and_graph):
        graph, _ = and_graph
        theory = isabelle_theory(encode_proof(check_rules(graph)), "tutorial-1")
        assert theory.startswith("theory tutorial_1\n  imports Main\nbegin\n")
        assert '  assumes h1: "P"' in theory
        assert '    and h2: "Q"' in theory
        assert '  shows "(P \\<and> Q)"' in theory
        assert "using assms by blast" in theory
        assert theory.rstrip().endswith("end")

    def test_theory_without_hypotheses(self):
        query = encode_entailment([], f("forall x. P(x) -> P(x)"))
        theory = isabelle_theory(query, "42")
        assert "theory p_42" in theory
        assert '  shows "(\\<forall>x. ((P x) \\<longrightarrow> (P x)))"' in theory
        assert "assumes" not in theory
