"""
proofwork/levels/tutorial.py
============================
Built-in tutorial pack, in the deserialized storage form.

Levels are kept as plain dicts (what the level-pack loader hands over)
and turned into PuzzleSpec on access, so the built-ins exercise the same
path as externally authored levels.
"""
from __future__ import annotations

from typing import Dict, List

from proofwork.core.exceptions import PuzzleFormatError
from proofwork.core.types import PuzzleSpec

PACK_ID = "tutorial"
PACK_NAME = "Tutorial"

TUTORIAL_LEVELS: List[Dict] = [
    {
        "id": "tutorial-1",
        "name": "First Steps",
        "description": "Place an AND piece to join P and Q, then feed it to the goal",
        "target": "P & Q",
        "premises": ["P", "Q"],
        "available_rules": ["assumption", "and_intro"],
        "pieces": [
            {"kind": "assumption", "position": [2, 5], "params": {"formula": "P"}},
            {"kind": "assumption", "position": [2, 3], "params": {"formula": "Q"}},
            {"kind": "goal", "position": [8, 4]},
        ],
    },
    {
        "id": "tutorial-2",
        "name": "Either Way",
        "description": "Use OR introduction to prove A ∨ B from A",
        "target": "A | B",
        "premises": ["A"],
        "available_rules": ["assumption", "or_intro"],
        "pieces": [
            {"kind": "assumption", "position": [2, 5], "params": {"formula": "A"}},
            {"kind": "goal", "position": [8, 5]},
        ],
    },
    {
        "id": "tutorial-3",
        "name": "Conjunction Junction",
        "description": "Combine X, Y and Z using two AND pieces",
        "target": "(X & Y) & Z",
        "premises": ["X", "Y", "Z"],
        "available_rules": ["assumption", "and_intro"],
        "pieces": [
            {"kind": "assumption", "position": [1, 7], "params": {"formula": "X"}},
            {"kind": "assumption", "position": [1, 5], "params": {"formula": "Y"}},
            {"kind": "assumption", "position": [1, 3], "params": {"formula": "Z"}},
            {"kind": "goal", "position": [9, 5]},
        ],
    },
    {
        "id": "tutorial-4",
        "name": "Chain of Logic",
        "description": "Assume A for a moment: then A ∧ B holds, so A → (A ∧ B)",
        "target": "A -> (A & B)",
        "premises": ["B"],
        "available_rules": ["assumption", "and_intro", "implies_intro"],
        "pieces": [
            {"kind": "assumption", "position": [1, 4], "params": {"formula": "B"}},
            {"kind": "goal", "position": [9, 5]},
        ],
    },
    {
        "id": "tutorial-5",
        "name": "Someone Did It",
        "description": "From a concrete witness, introduce an existential",
        "target": "exists x. Guilty(x)",
        "premises": ["Guilty(butler)"],
        "available_rules": ["assumption", "exists_intro"],
        "pieces": [
            {"kind": "goal", "position": [8, 5]},
        ],
    },
    {
        "id": "tutorial-6",
        "name": "For All Of Them",
        "description": "Prove P(x) → P(x) for an arbitrary x, then generalise",
        "target": "forall x. P(x) -> P(x)",
        "premises": [],
        "available_rules": ["assumption", "implies_intro", "forall_intro"],
        "pieces": [
            {"kind": "goal", "position": [9, 5]},
        ],
    },
]


def tutorial_puzzles() -> List[PuzzleSpec]:
    return [PuzzleSpec.from_dict(level) for level in TUTORIAL_LEVELS]


def get_tutorial(puzzle_id: str) -> PuzzleSpec:
    """Look up a built-in level by id.

    Raises:
        PuzzleFormatError: no built-in level has that id.
    """
    for level in TUTORIAL_LEVELS:
        if level["id"] == puzzle_id:
            return PuzzleSpec.from_dict(level)
    raise PuzzleFormatError(
        f"No tutorial level '{puzzle_id}'",
        context={"puzzle_id": puzzle_id, "known": [lv["id"] for lv in TUTORIAL_LEVELS]},
    )
