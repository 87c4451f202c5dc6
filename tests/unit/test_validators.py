"""
tests/unit/test_validators.py
=============================
Tests for proofwork/core/validators.py — puzzle publishing checks and
grid layout checks.
"""

import pytest

from proofwork.core.exceptions import PuzzleFormatError
from proofwork.core.types import (
    GridConstraints,
    PieceParams,
    PiecePlacement,
    PuzzleSpec,
    RuleKind,
)
from proofwork.core.validators import assert_valid_puzzle, validate_layout, validate_puzzle
from proofwork.graph.proof_graph import ProofGraph
from proofwork.levels import tutorial_puzzles
from proofwork.logic.formula import And


def make_puzzle(P, Q, **overrides):
    fields = dict(
        puzzle_id="level-1",
        name="Level",
        target=And(P, Q),
        premises=(P, Q),
        available_rules=frozenset({RuleKind.ASSUMPTION, RuleKind.AND_INTRO}),
    )
    fields.update(overrides)
    return PuzzleSpec(**fields)


class TestValidatePuzzle:
    def test_valid(self, P, Q):
        assert validate_puzzle(make_puzzle(P, Q)) == []

    @pytest.mark.parametrize("puzzle", tutorial_puzzles(), ids=lambda p: p.puzzle_id)
    def test_tutorials_are_publishable(self, puzzle):
        assert validate_puzzle(puzzle) == []

    def test_bad_id(self, P, Q):
        errors = validate_puzzle(make_puzzle(P, Q, puzzle_id="bad id!"))
        assert any("invalid characters" in e for e in errors)

    def test_blank_name(self, P, Q):
        errors = validate_puzzle(make_puzzle(P, Q, name="  "))
        assert "Puzzle must have a name" in errors

    def test_premises_without_assumptions(self, P, Q):
        puzzle = make_puzzle(P, Q, available_rules=frozenset({RuleKind.AND_INTRO}))
        errors = validate_puzzle(puzzle)
        assert any("ASSUMPTION" in e for e in errors)

    def test_pre_placed_assumption_is_enough(self, P, Q):
        puzzle = make_puzzle(
            P, Q,
            available_rules=frozenset({RuleKind.AND_INTRO}),
            pieces=(
                PiecePlacement(RuleKind.ASSUMPTION, (0, 0), PieceParams(formula=P)),
                PiecePlacement(RuleKind.ASSUMPTION, (0, 1), PieceParams(formula=Q)),
            ),
        )
        assert validate_puzzle(puzzle) == []

    def test_nothing_to_start_from(self, P, Q):
        errors = validate_puzzle(make_puzzle(P, Q, premises=()))
        assert any("no derivation can start" in e for e in errors)

    def test_duplicate_premises(self, P, Q):
        errors = validate_puzzle(make_puzzle(P, Q, premises=(P, Q, P)))
        assert "Duplicate premise formulas" in errors

    def test_pre_placed_layout(self, P, Q):
        goal = PiecePlacement(RuleKind.GOAL, (3, 3))
        puzzle = make_puzzle(
            P, Q,
            grid=GridConstraints(width=4, height=4, max_pieces=2),
            pieces=(goal, goal, PiecePlacement(RuleKind.GOAL, (9, 0))),
        )
        errors = validate_puzzle(puzzle)
        assert any("out of bounds" in e for e in errors)
        assert any("overlaps" in e for e in errors)
        assert any("exceed max_pieces=2" in e for e in errors)

    def test_assert_valid_raises_with_context(self, P, Q):
        with pytest.raises(PuzzleFormatError) as info:
            assert_valid_puzzle(make_puzzle(P, Q, name=""))
        assert info.value.context["puzzle_id"] == "level-1"
        assert info.value.context["errors"] == ["Puzzle must have a name"]


class TestValidateLayout:
    def test_clean_layout(self, and_graph, P, Q):
        graph, _ = and_graph
        report = validate_layout(graph, make_puzzle(P, Q))
        assert report.is_valid
        assert report.warnings == []

    def test_out_of_bounds_and_overlap(self, and_graph, P, Q):
        graph, ids = and_graph
        graph.move_piece(ids["q"], (1, 1))
        graph.move_piece(ids["goal"], (20, 2))
        report = validate_layout(graph, make_puzzle(P, Q))
        assert len(report.errors) == 2
        assert any("outside the 10x10 grid" in e for e in report.errors)
        assert any("overlaps piece" in e for e in report.errors)

    def test_rule_not_in_palette(self, and_graph, P, Q):
        graph, ids = and_graph
        puzzle = make_puzzle(P, Q, available_rules=frozenset({RuleKind.ASSUMPTION}))
        report = validate_layout(graph, puzzle)
        assert report.errors == [f"Piece {ids['and']}: rule ∧I is not available in this puzzle"]

    def test_piece_budget(self, and_graph, P, Q):
        graph, _ = and_graph
        puzzle = make_puzzle(P, Q, grid=GridConstraints(max_pieces=3))
        report = validate_layout(graph, puzzle)
        assert report.errors == ["4 pieces placed, limit is 3"]

    def test_warnings_do_not_block(self, P, Q):
        graph = ProofGraph(target=And(P, Q), premises=[P, Q])
        graph.add_piece(RuleKind.ASSUMPTION, (0, 0), formula=P)
        report = validate_layout(graph, make_puzzle(P, Q))
        assert report.is_valid
        assert report.warnings == ["No goal piece placed"]

    def test_disconnected_piece_warning(self, and_graph, P, Q, R):
        graph, _ = and_graph
        stray = graph.add_piece(RuleKind.ASSUMPTION, (7, 7), formula=R)
        report = validate_layout(graph, make_puzzle(P, Q))
        assert report.warnings == [f"Piece {stray} (R) is not connected to the goal"]
