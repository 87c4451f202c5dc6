"""
proofwork/core/exceptions.py
============================
Custom exception hierarchy for proofwork.

All exceptions carry structured context so callers (grid UI, level
editor, bug reporter) can programmatically handle different failure modes.

Taxonomy:
    GraphEditError   — structural edit rejected; graph left unchanged.
    EncodingError    — implementation defect while lowering to SMT-LIB2.
    SolverUnavailable — no usable solver engine could be constructed.
    FormulaSyntaxError / PuzzleFormatError — malformed external input.

Rule violations are NOT exceptions: they are data (``Violation``
records) carried by an ``Invalid`` verdict.
"""

from __future__ import annotations

from typing import Optional


class ProofworkError(Exception):
    """Base exception for all proofwork errors."""

    def __init__(self, message: str, context: Optional[dict] = None):
        super().__init__(message)
        self.context = context or {}


# ─── GRAPH EDITS ──────────────────────────────────────────────────


class GraphEditError(ProofworkError):
    """A structural edit was rejected. Always recoverable locally."""


class UnknownPiece(GraphEditError):
    """Raised when an edit references a piece id absent from the graph."""

    def __init__(self, piece_id: int):
        super().__init__(
            f"No piece with id {piece_id} in this graph",
            context={"piece_id": piece_id},
        )
        self.piece_id = piece_id


class SlotOutOfRange(GraphEditError):
    """Raised when a premise slot index exceeds the rule's declared arity."""

    def __init__(self, piece_id: int, slot: int, arity: int):
        super().__init__(
            f"Slot {slot} out of range for piece {piece_id} (arity {arity})",
            context={"piece_id": piece_id, "slot": slot, "arity": arity},
        )
        self.piece_id = piece_id
        self.slot = slot
        self.arity = arity


class CycleDetected(GraphEditError):
    """Raised when wiring ``source_id`` into ``piece_id`` would close a cycle."""

    def __init__(self, piece_id: int, source_id: int):
        super().__init__(
            f"Wiring piece {source_id} into piece {piece_id} would create a cycle",
            context={"piece_id": piece_id, "source_id": source_id},
        )
        self.piece_id = piece_id
        self.source_id = source_id


class NotAGoalPiece(GraphEditError):
    """Raised when ``set_goal`` targets a piece whose kind is not GOAL."""

    def __init__(self, piece_id: int, kind: str):
        super().__init__(
            f"Piece {piece_id} is a {kind} piece and cannot be the goal",
            context={"piece_id": piece_id, "kind": kind},
        )
        self.piece_id = piece_id
        self.kind = kind


# ─── ENCODING / SOLVING ───────────────────────────────────────────


class EncodingError(ProofworkError):
    """Raised when a validated graph cannot be lowered to solver input.

    This indicates a defect (in the encoder or in puzzle authoring), not
    a puzzle mistake by the player. ``piece_id`` names the piece whose
    formula triggered the failure so the report is actionable.
    """

    def __init__(self, message: str, piece_id: Optional[int] = None, context: Optional[dict] = None):
        ctx = dict(context or {})
        ctx["piece_id"] = piece_id
        super().__init__(message, ctx)
        self.piece_id = piece_id


class SolverUnavailable(ProofworkError):
    """Raised when a solver backend cannot be constructed (missing binary, etc.)."""


# ─── INPUT FORMATS ────────────────────────────────────────────────


class FormulaSyntaxError(ProofworkError):
    """Raised when formula text cannot be parsed."""

    def __init__(self, message: str, text: str, position: int):
        super().__init__(
            f"{message} at position {position} in {text!r}",
            context={"text": text, "position": position},
        )
        self.text = text
        self.position = position


class PuzzleFormatError(ProofworkError):
    """Raised when a deserialized puzzle definition is structurally invalid."""
