"""
proofwork/core/validators.py
============================
Input validation utilities for proofwork.

Validates:
    - Puzzle definitions authored in the level editor (publishable?)
    - Grid layout of a proof graph against the puzzle's constraints
      (bounds, overlaps, palette, piece budget)

These validators run at API boundaries (level load, editor save, grid
rendering), not in the verification hot path. Logical soundness is the
rule checker's job; nothing here looks at formulas beyond their syntax.

``validate_*`` functions return lists of error strings.
``assert_valid_*`` raise PuzzleFormatError with structured context.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List

from proofwork.core.exceptions import PuzzleFormatError
from proofwork.core.types import PuzzleSpec, RuleKind

if TYPE_CHECKING:
    from proofwork.graph.proof_graph import ProofGraph


# ─── REGEX PATTERNS ───────────────────────────────────────────────

PUZZLE_ID_RE = re.compile(r'^[A-Za-z0-9_][A-Za-z0-9_.\-]*$')

# Always placeable regardless of the palette.
IMPLICIT_RULES = frozenset({RuleKind.GOAL})


# ─── PUZZLE VALIDATION ────────────────────────────────────────────

def validate_puzzle(puzzle: PuzzleSpec) -> List[str]:
    """Validate a puzzle definition before publishing. Returns list of errors.

    Checks:
        1. id matches ``[A-Za-z0-9_][A-Za-z0-9_.-]*`` and name is non-empty
        2. The player can start a derivation: premises are declared and
           ASSUMPTION is in the palette, or a discharging rule is offered
        3. Premises are pairwise distinct
        4. Pre-placed pieces are in bounds, non-overlapping and within budget
    """
    errors: List[str] = []

    if not PUZZLE_ID_RE.match(puzzle.puzzle_id or ""):
        errors.append(f"Puzzle id '{puzzle.puzzle_id}' has invalid characters")
    if not puzzle.name or not puzzle.name.strip():
        errors.append("Puzzle must have a name")

    rules = puzzle.available_rules
    can_assume = RuleKind.ASSUMPTION in rules
    can_discharge = any(k.discharges for k in rules)
    if puzzle.premises and not can_assume and not any(
        p.kind == RuleKind.ASSUMPTION for p in puzzle.pieces
    ):
        errors.append("Premises are declared but ASSUMPTION pieces are not available")
    if not puzzle.premises and not (can_assume and can_discharge):
        errors.append(
            "Puzzle has no premises and offers no discharging rule: "
            "no derivation can start"
        )

    if len(set(puzzle.premises)) != len(puzzle.premises):
        errors.append("Duplicate premise formulas")

    seen_positions = set()
    for i, placement in enumerate(puzzle.pieces):
        if not puzzle.grid.in_bounds(placement.position):
            errors.append(f"Pre-placed piece {i} at {placement.position} is out of bounds")
        if placement.position in seen_positions:
            errors.append(f"Pre-placed piece {i} overlaps another at {placement.position}")
        seen_positions.add(placement.position)
    if puzzle.grid.max_pieces is not None and len(puzzle.pieces) > puzzle.grid.max_pieces:
        errors.append(
            f"{len(puzzle.pieces)} pre-placed pieces exceed max_pieces={puzzle.grid.max_pieces}"
        )

    return errors


# ─── LAYOUT VALIDATION ────────────────────────────────────────────

@dataclass
class LayoutReport:
    """Result of checking a graph's grid layout.

    ``errors`` block submission; ``warnings`` are shown but never block
    (e.g. a piece not connected to the goal).
    """
    errors:   List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_layout(graph: "ProofGraph", puzzle: PuzzleSpec) -> LayoutReport:
    """Check piece placement against ``puzzle``'s grid and palette."""
    report = LayoutReport()
    grid = puzzle.grid
    allowed = set(puzzle.available_rules) | IMPLICIT_RULES | {p.kind for p in puzzle.pieces}

    occupied = {}
    for piece in graph.pieces():
        if not grid.in_bounds(piece.position):
            report.errors.append(
                f"Piece {piece.piece_id} at {piece.position} is outside the "
                f"{grid.width}x{grid.height} grid"
            )
        other = occupied.get(piece.position)
        if other is not None:
            report.errors.append(
                f"Piece {piece.piece_id} overlaps piece {other} at {piece.position}"
            )
        else:
            occupied[piece.position] = piece.piece_id
        if piece.kind not in allowed:
            report.errors.append(
                f"Piece {piece.piece_id}: rule {piece.kind.label} is not available in this puzzle"
            )

    if grid.max_pieces is not None and len(graph) > grid.max_pieces:
        report.errors.append(f"{len(graph)} pieces placed, limit is {grid.max_pieces}")

    if graph.goal_id is None:
        report.warnings.append("No goal piece placed")
    else:
        connected = graph.upstream(graph.goal_id) | {graph.goal_id}
        for piece in graph.pieces():
            if piece.piece_id not in connected:
                report.warnings.append(
                    f"Piece {piece.piece_id} ({piece.label()}) is not connected to the goal"
                )

    return report


# ─── CONVENIENCE VALIDATORS ──────────────────────────────────────

def assert_valid_puzzle(puzzle: PuzzleSpec) -> None:
    """Validate puzzle and raise PuzzleFormatError on any violation."""
    errors = validate_puzzle(puzzle)
    if errors:
        raise PuzzleFormatError(
            f"Invalid puzzle '{puzzle.puzzle_id}': {'; '.join(errors)}",
            context={"puzzle_id": puzzle.puzzle_id, "errors": errors},
        )
