"""
proofwork/graph/proof_graph.py
==============================
ProofGraph — the player-editable arena of inference pieces.

Structure:
    pieces:   id → InferencePiece (exclusively owned)
    edges:    premise slot of piece B holds id of producer A   (A ⟶ B)
    goal_id:  the single designated GOAL piece

Invariants (maintained by every edit, checked before mutation):
    1. Acyclic: wire(B, i, A) is rejected when B already reaches A's
       premises, i.e. A depends (transitively) on B.
    2. No dangling references: every non-empty slot names a piece that
       exists in this graph. remove_piece clears referencing slots.
    3. Failed edits leave the graph unchanged (validation precedes mutation).

Every successful edit bumps ``revision`` and invalidates the cached
derivation of the edited piece and everything downstream of it.
No solver interaction happens here.
"""

from __future__ import annotations

import heapq
import logging
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple, Union

from proofwork.core.exceptions import CycleDetected, NotAGoalPiece, SlotOutOfRange, UnknownPiece
from proofwork.core.types import ALL_RULES, PieceParams, Position, PuzzleSpec, RuleKind
from proofwork.graph.pieces import InferencePiece
from proofwork.logic.formula import Formula

logger = logging.getLogger(__name__)


class ProofGraph:
    """Arena of inference pieces with premise wiring.

    Usage:
        graph = ProofGraph(target=And(P, Q), premises=[P, Q])
        p = graph.add_piece(RuleKind.ASSUMPTION, (1, 1), formula=P)
        q = graph.add_piece(RuleKind.ASSUMPTION, (1, 3), formula=Q)
        conj = graph.add_piece(RuleKind.AND_INTRO, (3, 2))
        goal = graph.add_piece(RuleKind.GOAL, (5, 2))
        graph.wire(conj, 0, p)
        graph.wire(conj, 1, q)
        graph.wire(goal, 0, conj)
    """

    def __init__(
        self,
        target: Formula,
        premises: Optional[Iterable[Formula]] = None,
        puzzle_id: Optional[str] = None,
        available_rules: Optional[Iterable[RuleKind]] = None,
    ):
        self.target = target
        # None = puzzle does not restrict which assumptions may stay open
        self.premises: Optional[Tuple[Formula, ...]] = (
            tuple(premises) if premises is not None else None
        )
        self.puzzle_id = puzzle_id
        # palette offered to the player; hints only suggest these kinds
        self.available_rules: FrozenSet[RuleKind] = (
            frozenset(available_rules) if available_rules is not None else ALL_RULES
        )
        self.goal_id: Optional[int] = None
        self._pieces: Dict[int, InferencePiece] = {}
        self._next_id = 1
        self._revision = 0

    @classmethod
    def from_puzzle(cls, puzzle: PuzzleSpec) -> "ProofGraph":
        """Fresh graph for one attempt at ``puzzle`` (pre-placed pieces included)."""
        graph = cls(
            target=puzzle.target, premises=puzzle.premises, puzzle_id=puzzle.puzzle_id,
            available_rules=puzzle.available_rules,
        )
        for placement in puzzle.pieces:
            graph.add_piece(placement.kind, placement.position, params=placement.params)
        return graph

    # ─── ACCESS ────────────────────────────────────────────────────

    @property
    def revision(self) -> int:
        return self._revision

    def piece(self, piece_id: int) -> InferencePiece:
        try:
            return self._pieces[piece_id]
        except KeyError:
            raise UnknownPiece(piece_id) from None

    def pieces(self) -> List[InferencePiece]:
        return [self._pieces[i] for i in sorted(self._pieces)]

    def pieces_of_kind(self, kind: RuleKind) -> List[InferencePiece]:
        return [p for p in self.pieces() if p.kind == kind]

    def piece_at(self, position: Position) -> Optional[InferencePiece]:
        for p in self.pieces():
            if p.position == position:
                return p
        return None

    def __contains__(self, piece_id: object) -> bool:
        return piece_id in self._pieces

    def __len__(self) -> int:
        return len(self._pieces)

    def __iter__(self) -> Iterator[InferencePiece]:
        return iter(self.pieces())

    @property
    def goal(self) -> Optional[InferencePiece]:
        return self._pieces.get(self.goal_id) if self.goal_id is not None else None

    # ─── EDITS ─────────────────────────────────────────────────────

    def add_piece(
        self,
        kind: Union[RuleKind, str],
        position: Position,
        params: Optional[PieceParams] = None,
        **param_values,
    ) -> int:
        """Place a new piece with all premise slots empty.

        Side parameters are given either as a PieceParams or as keyword
        arguments (``formula=``, ``other=``, ``hypothesis=``, ...). Missing
        or ill-formed values are stored as given and reported by the rule
        checker, so placement never fails on parameter content.

        Raises:
            ValueError: ``kind`` is not a RuleKind value.
            TypeError:  an unknown keyword parameter name.
        """
        kind = RuleKind(kind)
        if params is None:
            params = PieceParams(**param_values)
        piece_id = self._next_id
        self._next_id += 1
        self._pieces[piece_id] = InferencePiece(
            piece_id=piece_id, kind=kind, position=tuple(position), params=params
        )
        if kind == RuleKind.GOAL and self.goal_id is None:
            self.goal_id = piece_id
        self._bump()
        logger.debug("Added %s piece %d at %s", kind.value, piece_id, position)
        return piece_id

    def wire(self, piece_id: int, slot: int, source_id: int) -> None:
        """Connect ``source_id``'s conclusion into premise ``slot`` of ``piece_id``.

        Raises:
            UnknownPiece:   either id is absent.
            SlotOutOfRange: ``slot`` is not in [0, arity).
            CycleDetected:  ``source_id`` already depends on ``piece_id``.
        """
        target = self.piece(piece_id)
        self.piece(source_id)
        if not 0 <= slot < target.arity:
            raise SlotOutOfRange(piece_id, slot, target.arity)
        if source_id == piece_id or piece_id in self.upstream(source_id):
            raise CycleDetected(piece_id, source_id)

        target.slots[slot] = source_id
        self._invalidate_from(piece_id)
        self._bump()
        logger.debug("Wired %d → %d[%d]", source_id, piece_id, slot)

    def unwire(self, piece_id: int, slot: int) -> None:
        target = self.piece(piece_id)
        if not 0 <= slot < target.arity:
            raise SlotOutOfRange(piece_id, slot, target.arity)
        if target.slots[slot] is None:
            return
        target.slots[slot] = None
        self._invalidate_from(piece_id)
        self._bump()

    def remove_piece(self, piece_id: int) -> None:
        """Remove a piece and clear every slot that referenced it."""
        self.piece(piece_id)
        consumers = self.consumers(piece_id)
        for consumer_id in consumers:
            consumer = self._pieces[consumer_id]
            consumer.slots = [None if s == piece_id else s for s in consumer.slots]
        for consumer_id in consumers:
            self._invalidate_from(consumer_id)
        del self._pieces[piece_id]
        if self.goal_id == piece_id:
            self.goal_id = None
        self._bump()
        logger.debug("Removed piece %d (cleared %d referencing slot owners)", piece_id, len(consumers))

    def set_goal(self, piece_id: int) -> None:
        piece = self.piece(piece_id)
        if piece.kind != RuleKind.GOAL:
            raise NotAGoalPiece(piece_id, piece.kind.value)
        if self.goal_id != piece_id:
            self.goal_id = piece_id
            self._bump()

    def move_piece(self, piece_id: int, position: Position) -> None:
        """Reposition on the grid. Logical structure is unaffected."""
        self.piece(piece_id).position = tuple(position)
        self._bump()

    # ─── TOPOLOGY ──────────────────────────────────────────────────

    def consumers(self, piece_id: int) -> List[int]:
        """Ids of pieces with at least one slot wired from ``piece_id``."""
        return [p.piece_id for p in self.pieces() if piece_id in p.slots]

    def upstream(self, piece_id: int) -> Set[int]:
        """All pieces ``piece_id`` transitively depends on (excluding itself)."""
        seen: Set[int] = set()
        stack = list(self.piece(piece_id).premise_ids)
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._pieces[current].premise_ids)
        return seen

    def downstream(self, piece_id: int) -> Set[int]:
        """All pieces that transitively depend on ``piece_id``."""
        self.piece(piece_id)
        seen: Set[int] = set()
        stack = self.consumers(piece_id)
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self.consumers(current))
        return seen

    def topological_order(self) -> List[int]:
        """Producers before consumers; ties broken by ascending id (deterministic)."""
        indegree = {pid: len(set(p.premise_ids)) for pid, p in self._pieces.items()}
        consumers: Dict[int, Set[int]] = {pid: set() for pid in self._pieces}
        for pid, p in self._pieces.items():
            for src in set(p.premise_ids):
                consumers[src].add(pid)
        ready = [pid for pid, d in indegree.items() if d == 0]
        heapq.heapify(ready)
        order: List[int] = []
        while ready:
            pid = heapq.heappop(ready)
            order.append(pid)
            for c in consumers[pid]:
                indegree[c] -= 1
                if indegree[c] == 0:
                    heapq.heappush(ready, c)
        return order

    # ─── STATE ─────────────────────────────────────────────────────

    def snapshot(self) -> tuple:
        """Immutable description of the full logical + layout state."""
        return (
            self.target,
            self.premises,
            self.goal_id,
            tuple(
                (p.piece_id, p.kind.value, p.position, p.params, tuple(p.slots))
                for p in self.pieces()
            ),
        )

    # ─── PRIVATE HELPERS ───────────────────────────────────────────

    def _invalidate_from(self, piece_id: int) -> None:
        stale = {piece_id} | self.downstream(piece_id)
        for pid in stale:
            self._pieces[pid].invalidate()
        logger.debug("Invalidated %d cached derivation(s) from piece %d", len(stale), piece_id)

    def _bump(self) -> None:
        self._revision += 1
