"""
tests/unit/test_proof_graph.py
==============================
Tests for proofwork/graph/proof_graph.py — edits, invariants, topology.
"""

import pytest

from proofwork.core.exceptions import CycleDetected, NotAGoalPiece, SlotOutOfRange, UnknownPiece
from proofwork.core.types import PieceParams, PiecePlacement, PuzzleSpec, RuleKind
from proofwork.graph.proof_graph import ProofGraph
from proofwork.logic.formula import And
from proofwork.verification.rules import check_rules


@pytest.fixture
def graph(P, Q):
    return ProofGraph(target=And(P, Q), premises=[P, Q])


class TestAddPiece:
    def test_ids_are_monotonic(self, graph):
        a = graph.add_piece(RuleKind.AND_INTRO, (0, 0))
        b = graph.add_piece(RuleKind.AND_INTRO, (1, 0))
        graph.remove_piece(b)
        c = graph.add_piece(RuleKind.AND_INTRO, (2, 0))
        assert a < b < c

    def test_slots_start_empty(self, graph):
        pid = graph.add_piece(RuleKind.NOT_INTRO, (0, 0))
        assert graph.piece(pid).slots == [None, None]

    def test_kind_from_string(self, graph):
        pid = graph.add_piece("or_intro", (0, 0), other=graph.target)
        assert graph.piece(pid).kind == RuleKind.OR_INTRO
        assert graph.piece(pid).params.other == graph.target

    def test_first_goal_becomes_designated(self, graph):
        first = graph.add_piece(RuleKind.GOAL, (5, 5))
        graph.add_piece(RuleKind.GOAL, (6, 5))
        assert graph.goal_id == first

    def test_revision_increments(self, graph):
        before = graph.revision
        graph.add_piece(RuleKind.GOAL, (5, 5))
        assert graph.revision == before + 1

    def test_ill_formed_params_are_stored(self, graph):
        pid = graph.add_piece(RuleKind.OR_INTRO, (0, 0), side="sideways")
        assert graph.piece(pid).params.side == "sideways"

    def test_unknown_parameter_name(self, graph):
        with pytest.raises(TypeError):
            graph.add_piece(RuleKind.OR_INTRO, (0, 0), colour="red")
        assert len(graph) == 0


class TestWire:
    def test_unknown_piece(self, graph):
        a = graph.add_piece(RuleKind.GOAL, (0, 0))
        with pytest.raises(UnknownPiece):
            graph.wire(a, 0, 99)
        with pytest.raises(UnknownPiece):
            graph.wire(99, 0, a)

    def test_slot_out_of_range(self, graph, P):
        src = graph.add_piece(RuleKind.ASSUMPTION, (0, 0), formula=P)
        goal = graph.add_piece(RuleKind.GOAL, (1, 0))
        with pytest.raises(SlotOutOfRange) as info:
            graph.wire(goal, 1, src)
        assert info.value.arity == 1
        with pytest.raises(SlotOutOfRange):
            graph.wire(goal, -1, src)

    def test_self_loop_rejected(self, graph):
        a = graph.add_piece(RuleKind.AND_INTRO, (0, 0))
        with pytest.raises(CycleDetected):
            graph.wire(a, 0, a)

    def test_cycle_rejected_and_graph_unchanged(self, graph):
        a = graph.add_piece(RuleKind.OR_INTRO, (0, 0))
        b = graph.add_piece(RuleKind.OR_INTRO, (1, 0))
        graph.wire(a, 0, b)
        snapshot, revision = graph.snapshot(), graph.revision
        with pytest.raises(CycleDetected):
            graph.wire(b, 0, a)
        assert graph.snapshot() == snapshot
        assert graph.revision == revision

    def test_transitive_cycle_rejected(self, graph):
        a, b, c = (graph.add_piece(RuleKind.OR_INTRO, (i, 0)) for i in range(3))
        graph.wire(b, 0, a)
        graph.wire(c, 0, b)
        with pytest.raises(CycleDetected):
            graph.wire(a, 0, c)

    def test_diamond_is_allowed(self, graph, P):
        src = graph.add_piece(RuleKind.ASSUMPTION, (0, 0), formula=P)
        conj = graph.add_piece(RuleKind.AND_INTRO, (1, 0))
        graph.wire(conj, 0, src)
        graph.wire(conj, 1, src)
        assert graph.piece(conj).slots == [src, src]

    def test_rewire_replaces_slot(self, graph, P, Q):
        p = graph.add_piece(RuleKind.ASSUMPTION, (0, 0), formula=P)
        q = graph.add_piece(RuleKind.ASSUMPTION, (0, 1), formula=Q)
        goal = graph.add_piece(RuleKind.GOAL, (1, 0))
        graph.wire(goal, 0, p)
        graph.wire(goal, 0, q)
        assert graph.piece(goal).slots == [q]


class TestRemoveAndUnwire:
    def test_remove_clears_referencing_slots(self, and_graph):
        graph, ids = and_graph
        graph.remove_piece(ids["p"])
        assert graph.piece(ids["and"]).slots == [None, ids["q"]]
        assert ids["p"] not in graph

    def test_wire_then_remove_source_leaves_no_dangling_reference(self, graph, P):
        src = graph.add_piece(RuleKind.ASSUMPTION, (0, 0), formula=P)
        consumers = [graph.add_piece(RuleKind.AND_INTRO, (1, i)) for i in range(3)]
        for i, c in enumerate(consumers):
            graph.wire(c, i % 2, src)
        graph.remove_piece(src)
        for c in consumers:
            assert graph.piece(c).slots == [None, None]

    def test_remove_goal_clears_designation(self, and_graph):
        graph, ids = and_graph
        graph.remove_piece(ids["goal"])
        assert graph.goal_id is None

    def test_remove_unknown(self, graph):
        with pytest.raises(UnknownPiece):
            graph.remove_piece(42)

    def test_unwire(self, and_graph):
        graph, ids = and_graph
        graph.unwire(ids["and"], 1)
        assert graph.piece(ids["and"]).slots == [ids["p"], None]

    def test_unwire_slot_out_of_range(self, and_graph):
        graph, ids = and_graph
        with pytest.raises(SlotOutOfRange):
            graph.unwire(ids["and"], 2)


class TestGoal:
    def test_set_goal_requires_goal_kind(self, and_graph):
        graph, ids = and_graph
        with pytest.raises(NotAGoalPiece):
            graph.set_goal(ids["and"])

    def test_set_goal_switches_designation(self, and_graph):
        graph, _ = and_graph
        other = graph.add_piece(RuleKind.GOAL, (7, 7))
        graph.set_goal(other)
        assert graph.goal_id == other


class TestCacheInvalidation:
    def test_wire_invalidates_downstream(self, and_graph, R):
        graph, ids = and_graph
        check_rules(graph)
        assert graph.piece(ids["goal"]).derived_formula is not None
        r = graph.add_piece(RuleKind.ASSUMPTION, (0, 5), formula=R)
        graph.wire(ids["and"], 1, r)
        assert graph.piece(ids["and"]).cache is None
        assert graph.piece(ids["goal"]).cache is None
        assert graph.piece(ids["p"]).cache is not None

    def test_move_keeps_cache(self, and_graph):
        graph, ids = and_graph
        check_rules(graph)
        graph.move_piece(ids["and"], (4, 4))
        assert graph.piece(ids["and"]).position == (4, 4)
        assert graph.piece(ids["and"]).cache is not None


class TestTopology:
    def test_topological_order(self, and_graph):
        graph, ids = and_graph
        assert graph.topological_order() == [ids["p"], ids["q"], ids["and"], ids["goal"]]

    def test_order_prefers_lower_ids(self, graph, P, Q):
        goal = graph.add_piece(RuleKind.GOAL, (5, 0))
        q = graph.add_piece(RuleKind.ASSUMPTION, (0, 1), formula=Q)
        p = graph.add_piece(RuleKind.ASSUMPTION, (0, 0), formula=P)
        graph.wire(goal, 0, p)
        assert graph.topological_order() == [q, p, goal]

    def test_upstream_downstream(self, and_graph):
        graph, ids = and_graph
        assert graph.upstream(ids["goal"]) == {ids["p"], ids["q"], ids["and"]}
        assert graph.downstream(ids["p"]) == {ids["and"], ids["goal"]}
        assert graph.consumers(ids["and"]) == [ids["goal"]]


class TestFromPuzzle:
    def test_pre_placed_pieces(self, P, Q):
        puzzle = PuzzleSpec(
            puzzle_id="t", name="T", target=And(P, Q), premises=(P, Q),
            pieces=(
                PiecePlacement(RuleKind.ASSUMPTION, (0, 0), PieceParams(formula=P)),
                PiecePlacement(RuleKind.GOAL, (5, 0)),
            ),
        )
        graph = ProofGraph.from_puzzle(puzzle)
        assert len(graph) == 2
        assert graph.goal is not None
        assert graph.premises == (P, Q)
        assert graph.puzzle_id == "t"

    def test_palette_carried(self, P, Q):
        palette = frozenset({RuleKind.ASSUMPTION, RuleKind.AND_INTRO})
        puzzle = PuzzleSpec(puzzle_id="t", name="T", target=And(P, Q), available_rules=palette)
        assert ProofGraph.from_puzzle(puzzle).available_rules == palette

    def test_default_palette_is_every_rule(self, graph):
        assert graph.available_rules == frozenset(RuleKind)
