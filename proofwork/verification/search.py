"""
proofwork/verification/search.py
================================
Construction search — finds a piece layout that derives a formula.

The solver can say *that* premises entail a target; the level editor also
needs *an example construction* using only the puzzle's palette, and the
hint feature needs *the next piece to place*. Both come from a bounded,
goal-directed search over the same introduction rules the rule checker
enforces:

    goal ∈ context            → ASSUMPTION(goal)
    A ∧ B                     → AND_INTRO(prove A, prove B)
    A ∨ B                     → OR_INTRO(prove A, other=B) | OR_INTRO(prove B, other=A, side=right)
    H → C                     → IMPLIES_INTRO(prove C under H, hypothesis=H)
    ¬H                        → NOT_INTRO(prove B, prove ¬B under H) for B drawn from the context
    ∀x. P                     → FORALL_INTRO(prove P[x:=t]) with t fresh when x is free in the context
    ∃x. P                     → EXISTS_INTRO(prove P[x:=t]) for witnesses t drawn from the context

Every candidate is re-checked against the eigenvariable condition on the
open assumptions it actually uses, so a construction the search returns
is accepted by ``check_rules``.

Search is depth-first recursion bounded by ``SearchConfig.max_depth``
(rule nesting) and ``SearchConfig.max_nodes`` (expansions). Alternatives
are tried in a fixed order, so results are deterministic. An optional
``max_pieces`` caps how many new pieces a construction may add; pieces
already on the grid are reused for free.

``find_construction`` works on top of the puzzle's pre-placed pieces and
only returns an example that passes ``validate_layout`` for the puzzle:
in bounds, no overlaps, palette respected, piece budget respected.

Because introduction rules alone are incomplete for classical logic, a
failed search does NOT mean the target is unprovable; callers combine
it with a solver entailment check.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from proofwork.core.config import SearchConfig
from proofwork.core.types import GridConstraints, PieceParams, Position, PuzzleSpec, RuleKind
from proofwork.core.validators import validate_layout
from proofwork.graph.proof_graph import ProofGraph
from proofwork.logic.formula import And, Exists, Forall, Formula, Implies, Not, Or

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProofNode:
    """One step of a found construction.

    ``existing_id`` is set when the step reuses a piece already on the
    player's grid; such nodes have no children.
    """
    kind:        RuleKind
    formula:     Formula
    params:      PieceParams = field(default_factory=PieceParams)
    children:    Tuple["ProofNode", ...] = ()
    open:        FrozenSet[Formula] = frozenset()
    existing_id: Optional[int] = None

    @property
    def is_existing(self) -> bool:
        return self.existing_id is not None

    def size(self) -> int:
        return 1 + sum(c.size() for c in self.children)

    def new_pieces(self) -> int:
        """Pieces this construction adds to the grid (reused ones excluded)."""
        if self.is_existing:
            return 0
        return 1 + sum(c.new_pieces() for c in self.children)

    def post_order(self) -> Iterable["ProofNode"]:
        for child in self.children:
            yield from child.post_order()
        yield self


class _Budget(Exception):
    """Raised internally when the node budget is exhausted."""


class ConstructionSearch:
    """Bounded backward search for an introduction-rule derivation.

    Args:
        premises:  formulas available as open assumptions.
        rules:     rule kinds the construction may use.
        config:    depth / expansion limits.
        existing:  formula → (piece id, rule kind, open assumption formulas)
                   of pieces already derived on the grid, reused as-is.
        max_pieces: upper bound on new pieces per construction (None = no cap).
    """

    def __init__(
        self,
        premises: Iterable[Formula],
        rules: Iterable[RuleKind],
        config: Optional[SearchConfig] = None,
        existing: Optional[Dict[Formula, Tuple[int, RuleKind, FrozenSet[Formula]]]] = None,
        max_pieces: Optional[int] = None,
    ):
        self.premises = frozenset(premises)
        self.rules = frozenset(rules)
        self.config = config or SearchConfig()
        self.existing = dict(existing or {})
        self.max_pieces = max_pieces
        self.expanded = 0
        self.exhausted = False

    def prove(self, goal: Formula) -> Optional[ProofNode]:
        """Return a derivation of ``goal`` from the premises, or None."""
        self.expanded = 0
        self.exhausted = False
        try:
            node = self._prove(goal, self.premises, self.config.max_depth, self.max_pieces)
        except _Budget:
            self.exhausted = True
            node = None
        logger.debug(
            "Construction search for %s: %s after %d expansion(s)%s",
            goal, "found" if node else "none", self.expanded,
            " (budget exhausted)" if self.exhausted else "",
        )
        return node

    # ─── RECURSION ─────────────────────────────────────────────────

    def _prove(self, goal: Formula, ctx: FrozenSet[Formula], depth: int,
               limit: Optional[int]) -> Optional[ProofNode]:
        self.expanded += 1
        if self.expanded > self.config.max_nodes:
            raise _Budget()

        reused = self.existing.get(goal)
        if reused is not None and reused[2] <= ctx:
            piece_id, kind, open_ = reused
            return ProofNode(kind, goal, open=open_, existing_id=piece_id)
        if limit is not None and limit < 1:
            return None
        if goal in ctx and RuleKind.ASSUMPTION in self.rules:
            return ProofNode(RuleKind.ASSUMPTION, goal, PieceParams(formula=goal),
                             open=frozenset({goal}))
        if depth <= 1:
            return None
        sub = depth - 1
        room = _spend(limit, 1)

        if isinstance(goal, And) and RuleKind.AND_INTRO in self.rules:
            left = self._prove(goal.left, ctx, sub, room)
            right = self._prove(goal.right, ctx, sub, _spend(room, left.new_pieces())) if left else None
            if left and right:
                return self._node(RuleKind.AND_INTRO, goal, PieceParams(), (left, right))

        if isinstance(goal, Or) and RuleKind.OR_INTRO in self.rules:
            left = self._prove(goal.left, ctx, sub, room)
            if left:
                return self._node(RuleKind.OR_INTRO, goal,
                                  PieceParams(other=goal.right, side="left"), (left,))
            right = self._prove(goal.right, ctx, sub, room)
            if right:
                return self._node(RuleKind.OR_INTRO, goal,
                                  PieceParams(other=goal.left, side="right"), (right,))

        if isinstance(goal, Implies) and RuleKind.IMPLIES_INTRO in self.rules:
            body = self._prove(goal.right, ctx | {goal.left}, sub, room)
            if body:
                return self._node(RuleKind.IMPLIES_INTRO, goal,
                                  PieceParams(hypothesis=goal.left), (body,))

        if isinstance(goal, Not) and RuleKind.NOT_INTRO in self.rules:
            node = self._prove_negation(goal, ctx, sub, room)
            if node:
                return node

        if isinstance(goal, Forall) and RuleKind.FORALL_INTRO in self.rules:
            node = self._prove_forall(goal, ctx, sub, room)
            if node:
                return node

        if isinstance(goal, Exists) and RuleKind.EXISTS_INTRO in self.rules:
            node = self._prove_exists(goal, ctx, sub, room)
            if node:
                return node

        return None

    def _prove_negation(self, goal: Not, ctx: FrozenSet[Formula], depth: int,
                        limit: Optional[int]) -> Optional[ProofNode]:
        inner = ctx | {goal.operand}
        candidates: List[Formula] = []
        for f in sorted(inner):
            if isinstance(f, Not) and f.operand not in candidates:
                candidates.append(f.operand)
        for f in sorted(inner):
            if f not in candidates:
                candidates.append(f)
        for b in candidates:
            pos = self._prove(b, inner, depth, limit)
            if not pos:
                continue
            neg = self._prove(Not(b), inner, depth, _spend(limit, pos.new_pieces()))
            if neg:
                return self._node(RuleKind.NOT_INTRO, goal,
                                  PieceParams(hypothesis=goal.operand), (pos, neg))
        return None

    def _prove_forall(self, goal: Forall, ctx: FrozenSet[Formula], depth: int,
                      limit: Optional[int]) -> Optional[ProofNode]:
        v = goal.var
        term = v
        if any(v in f.free_vars() for f in ctx):
            term = self._fresh(v, ctx | {goal})
        instance = goal.body if term == v else goal.body.substitute(v, term)
        if instance is None:
            return None
        body = self._prove(instance, ctx, depth, limit)
        if not body or any({v, term} & f.free_vars() for f in body.open):
            return None
        params = PieceParams(variable=v, term=None if term == v else term)
        return self._node(RuleKind.FORALL_INTRO, goal, params, (body,))

    def _prove_exists(self, goal: Exists, ctx: FrozenSet[Formula], depth: int,
                      limit: Optional[int]) -> Optional[ProofNode]:
        v = goal.var
        witnesses = [v] + sorted({t for f in ctx for t in f.free_vars()} - {v})
        for t in witnesses:
            if t != v and t in goal.body.free_vars():
                continue
            instance = goal.body if t == v else goal.body.substitute(v, t)
            if instance is None or (t != v and v in instance.free_vars()):
                continue
            body = self._prove(instance, ctx, depth, limit)
            if body and not any(v in f.free_vars() for f in body.open):
                params = PieceParams(variable=v, term=None if t == v else t)
                return self._node(RuleKind.EXISTS_INTRO, goal, params, (body,))
        return None

    # ─── HELPERS ───────────────────────────────────────────────────

    @staticmethod
    def _node(kind: RuleKind, formula: Formula, params: PieceParams,
              children: Tuple[ProofNode, ...]) -> ProofNode:
        open_: FrozenSet[Formula] = frozenset()
        for c in children:
            open_ = open_ | c.open
        if kind.discharges:
            open_ = open_ - {params.hypothesis}
        return ProofNode(kind, formula, params, children, open_)

    @staticmethod
    def _fresh(base: str, formulas: Iterable[Formula]) -> str:
        used: Set[str] = set()
        for f in formulas:
            used |= f.free_vars() | f.bound_vars()
        i = 1
        while f"{base}{i}" in used:
            i += 1
        return f"{base}{i}"


def _spend(limit: Optional[int], used: int) -> Optional[int]:
    return None if limit is None else limit - used


# ─────────────────────────────────────────────
#  MATERIALISATION
# ─────────────────────────────────────────────

def _free_cell(occupied: Set[Position], wanted: Position,
               grid: Optional[GridConstraints]) -> Optional[Position]:
    """Nearest unoccupied cell to ``wanted``; None when the grid is full."""
    if grid is None:
        x, y = wanted
        while (x, y) in occupied:
            y += 1
        return x, y
    best = None
    for x in range(grid.width):
        for y in range(grid.height):
            if (x, y) in occupied:
                continue
            key = (abs(x - wanted[0]) + abs(y - wanted[1]), x, y)
            if best is None or key < best:
                best = key
    return None if best is None else (best[1], best[2])


def build_graph(node: ProofNode, target: Formula, premises: Optional[Iterable[Formula]] = None,
                puzzle_id: Optional[str] = None, base: Optional[ProofGraph] = None,
                grid: Optional[GridConstraints] = None) -> Optional[ProofGraph]:
    """Lay out a found construction as a ProofGraph with a wired goal.

    New pieces go one column right of their deepest premise (leaves in
    column 0), on the nearest free cell. With ``base`` the construction is
    added to that graph, reusing its pieces and its goal; ``target`` and
    ``premises`` are then taken from it. With ``grid`` every piece stays
    inside the grid and None is returned when a piece does not fit.
    """
    graph = base if base is not None else ProofGraph(target=target, premises=premises,
                                                     puzzle_id=puzzle_id)
    occupied = {p.position for p in graph.pieces()}
    next_row = [0]

    def place(n: ProofNode) -> Optional[Tuple[Position, int]]:
        if n.is_existing:
            return graph.piece(n.existing_id).position, n.existing_id
        child_cells = []
        for c in n.children:
            cell = place(c)
            if cell is None:
                return None
            child_cells.append(cell)
        if child_cells:
            wanted = (1 + max(pos[0] for pos, _ in child_cells), child_cells[0][0][1])
        else:
            wanted = (0, next_row[0])
            next_row[0] += 1
        position = _free_cell(occupied, wanted, grid)
        if position is None:
            return None
        occupied.add(position)
        pid = graph.add_piece(n.kind, position, params=n.params)
        for slot, (_, child_id) in enumerate(child_cells):
            graph.wire(pid, slot, child_id)
        return position, pid

    root = place(node)
    if root is None:
        return None
    (column, row), root_id = root
    goal_id = graph.goal_id
    if goal_id is None:
        position = _free_cell(occupied, (column + 1, row), grid)
        if position is None:
            return None
        goal_id = graph.add_piece(RuleKind.GOAL, position)
    graph.wire(goal_id, 0, root_id)
    return graph


def _placed_material(graph: ProofGraph) -> Dict[Formula, Tuple[int, RuleKind, FrozenSet[Formula]]]:
    material: Dict[Formula, Tuple[int, RuleKind, FrozenSet[Formula]]] = {}
    for piece in graph.pieces_of_kind(RuleKind.ASSUMPTION):
        formula = piece.params.formula
        if formula is not None:
            material.setdefault(formula, (piece.piece_id, RuleKind.ASSUMPTION, frozenset({formula})))
    return material


def find_construction(puzzle: PuzzleSpec, config: Optional[SearchConfig] = None) -> Optional[ProofGraph]:
    """Example ProofGraph solving ``puzzle`` as a player could, or None.

    Starts from the puzzle's pre-placed pieces, uses only its palette and
    stays within its grid and piece budget.
    """
    graph = ProofGraph.from_puzzle(puzzle)
    grid = puzzle.grid
    reserved = len(graph) + (0 if graph.goal_id is not None else 1)
    room = grid.width * grid.height - reserved
    if grid.max_pieces is not None:
        room = min(room, grid.max_pieces - reserved)
    if room < 0:
        logger.debug("Puzzle %s: no room left for a construction", puzzle.puzzle_id)
        return None

    search = ConstructionSearch(puzzle.premises, puzzle.available_rules, config,
                                existing=_placed_material(graph), max_pieces=room)
    node = search.prove(puzzle.target)
    if node is None:
        return None
    example = build_graph(node, puzzle.target, base=graph, grid=grid)
    if example is None:
        logger.debug("Puzzle %s: construction does not fit the grid", puzzle.puzzle_id)
        return None
    layout = validate_layout(example, puzzle)
    if not layout.is_valid:
        logger.warning("Puzzle %s: discarding example with layout errors: %s",
                       puzzle.puzzle_id, "; ".join(layout.errors))
        return None
    return example


def next_step(node: ProofNode) -> Optional[ProofNode]:
    """First step (post-order) not already on the grid: all its premises exist."""
    for n in node.post_order():
        if not n.is_existing:
            return n
    return None
