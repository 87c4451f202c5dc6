"""
proofwork/graph/pieces.py
=========================
InferencePiece — one rule instance placed on the grid.

A piece never owns its premise producers: each premise slot stores the
producer's piece id (or None when empty). The owning ProofGraph resolves
ids, which keeps ownership a tree even though the logical dependency
structure is a DAG.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from proofwork.core.types import PieceParams, Position, RuleKind
from proofwork.logic.formula import Formula


@dataclass
class InferencePiece:
    piece_id: int
    kind:     RuleKind
    position: Position
    params:   PieceParams = field(default_factory=PieceParams)
    slots:    List[Optional[int]] = field(default_factory=list)
    # Local derivation result written by the rule checker; None = stale.
    cache:    Optional[object] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if not self.slots:
            self.slots = [None] * self.kind.arity
        if len(self.slots) != self.kind.arity:
            raise ValueError(
                f"{self.kind.value} piece needs {self.kind.arity} slots, got {len(self.slots)}"
            )

    @property
    def arity(self) -> int:
        return self.kind.arity

    @property
    def premise_ids(self) -> Tuple[int, ...]:
        """Ids of wired producers, in slot order (empty slots skipped)."""
        return tuple(s for s in self.slots if s is not None)

    @property
    def missing_slots(self) -> Tuple[int, ...]:
        return tuple(i for i, s in enumerate(self.slots) if s is None)

    @property
    def is_complete(self) -> bool:
        return not self.missing_slots

    @property
    def derived_formula(self) -> Optional[Formula]:
        """Cached conclusion, or None if not derived or not yet recomputed."""
        return getattr(self.cache, "formula", None)

    def invalidate(self) -> None:
        self.cache = None

    def label(self) -> str:
        if self.kind == RuleKind.ASSUMPTION and self.params.formula is not None:
            return str(self.params.formula)
        if self.kind.binds and self.params.variable:
            return f"{self.kind.label} {self.params.variable}"
        return self.kind.label
