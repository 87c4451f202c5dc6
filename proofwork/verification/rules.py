"""
proofwork/verification/rules.py
===============================
Rule Checker — local, structural validation of every inference piece.

Pieces are visited in topological order (producers first). Each piece
ends up in exactly one state:

    Derived(formula, open_assumptions)   — the rule's contract holds
    Incomplete(missing_slots, blocked_by) — an empty slot, or a premise
                                            that is itself not Derived
    Violated(violation)                   — premises present but wrong

Open assumptions are tracked per derivation as the set of ASSUMPTION
piece ids still undischarged on some path into the piece. A discharging
rule (→I, ¬I) removes the upstream assumptions whose formula equals its
``hypothesis``; its sub-proof region is exactly what lies upstream of
its premise slots.

Eigenvariable condition (checked against the formulas of the premise's
open assumptions):
    ∀I  neither the generalised term nor the bound variable may occur free
    ∃I  the bound variable may not occur free

Local results are cached on each piece (``InferencePiece.cache``); the
graph clears that cache for everything downstream of an edit, so a
re-check only recomputes what changed. Goal-level policy (exact target
match, declared premises) is re-applied on every call.

Violations are data, never exceptions: checking continues across
independent pieces so one submission reports everything at once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from proofwork.core.config import CheckerConfig
from proofwork.core.types import RuleKind, Violation, ViolationKind
from proofwork.graph.pieces import InferencePiece
from proofwork.graph.proof_graph import ProofGraph
from proofwork.logic.formula import And, Exists, Forall, Formula, Implies, Not, Or, is_symbol

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────
#  PIECE STATUS
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class Derived:
    formula:          Formula
    open_assumptions: FrozenSet[int] = frozenset()


@dataclass(frozen=True)
class Incomplete:
    missing_slots: Tuple[int, ...] = ()
    blocked_by:    Tuple[int, ...] = ()   # premises that are not Derived


@dataclass(frozen=True)
class Violated:
    violation: Violation


PieceStatus = Union[Derived, Incomplete, Violated]


@dataclass
class RuleReport:
    """Result of one rule-checking pass over a graph."""
    statuses:       Dict[int, PieceStatus]
    violations:     List[Violation]
    goal_id:        Optional[int]
    target:         Formula
    graph_revision: int
    premises:       Optional[Tuple[Formula, ...]] = None
    _assumption_formulas: Dict[int, Formula] = field(default_factory=dict, repr=False)

    @property
    def goal_status(self) -> Optional[PieceStatus]:
        if self.goal_id is None:
            return None
        return self.statuses.get(self.goal_id)

    @property
    def is_sound(self) -> bool:
        return not self.violations

    @property
    def goal_derived(self) -> Optional[Derived]:
        status = self.goal_status
        return status if isinstance(status, Derived) else None

    @property
    def goal_matches_target(self) -> bool:
        derived = self.goal_derived
        return derived is not None and derived.formula == self.target

    @property
    def ready_to_encode(self) -> bool:
        """True iff the solver should be consulted: sound and goal matches exactly."""
        return self.is_sound and self.goal_matches_target

    def derived(self, piece_id: int) -> Optional[Derived]:
        status = self.statuses.get(piece_id)
        return status if isinstance(status, Derived) else None

    def hypotheses(self) -> List[Tuple[int, Formula]]:
        """Open assumptions of the goal as (piece_id, formula), by id, deduplicated."""
        derived = self.goal_derived
        if derived is None:
            return []
        seen = set()
        out: List[Tuple[int, Formula]] = []
        for pid in sorted(derived.open_assumptions):
            formula = self._assumption_formulas[pid]
            if formula not in seen:
                seen.add(formula)
                out.append((pid, formula))
        return out

    def violations_for(self, piece_id: int) -> List[Violation]:
        return [v for v in self.violations if v.piece_id == piece_id]


# ─────────────────────────────────────────────
#  PER-RULE DERIVATION FUNCTIONS
# ─────────────────────────────────────────────

def _violated(piece: InferencePiece, kind: ViolationKind, message: str,
              expected: str = "", actual: str = "") -> Violated:
    return Violated(Violation(piece.piece_id, kind, message, expected, actual))


def _missing_param(piece: InferencePiece, name: str) -> Violated:
    return _violated(
        piece, ViolationKind.MISSING_PARAMETER,
        f"{piece.kind.label} needs the '{name}' parameter",
    )


def _union(premises: Sequence[Derived]) -> FrozenSet[int]:
    out: FrozenSet[int] = frozenset()
    for p in premises:
        out = out | p.open_assumptions
    return out


def _discharge(graph: ProofGraph, open_ids: FrozenSet[int], hypothesis: Formula) -> FrozenSet[int]:
    return frozenset(
        a for a in open_ids if graph.piece(a).params.formula != hypothesis
    )


def _derive_assumption(graph, piece, premises) -> PieceStatus:
    if piece.params.formula is None:
        return _missing_param(piece, "formula")
    return Derived(piece.params.formula, frozenset({piece.piece_id}))


def _derive_goal(graph, piece, premises) -> PieceStatus:
    (p0,) = premises
    return Derived(p0.formula, p0.open_assumptions)


def _derive_and(graph, piece, premises) -> PieceStatus:
    p0, p1 = premises
    return Derived(And(p0.formula, p1.formula), _union(premises))


def _derive_or(graph, piece, premises) -> PieceStatus:
    (p0,) = premises
    other = piece.params.other
    if other is None:
        return _missing_param(piece, "other")
    if piece.params.side not in ("left", "right"):
        return _violated(
            piece, ViolationKind.MISSING_PARAMETER,
            f"{piece.kind.label} needs 'side' set to 'left' or 'right'",
            expected="left | right", actual=str(piece.params.side),
        )
    if piece.params.side == "left":
        formula = Or(p0.formula, other)
    else:
        formula = Or(other, p0.formula)
    return Derived(formula, p0.open_assumptions)


def _derive_implies(graph, piece, premises) -> PieceStatus:
    (p0,) = premises
    hypothesis = piece.params.hypothesis
    if hypothesis is None:
        return _missing_param(piece, "hypothesis")
    remaining = _discharge(graph, p0.open_assumptions, hypothesis)
    return Derived(Implies(hypothesis, p0.formula), remaining)


def _derive_not(graph, piece, premises) -> PieceStatus:
    p0, p1 = premises
    hypothesis = piece.params.hypothesis
    if hypothesis is None:
        return _missing_param(piece, "hypothesis")
    expected = Not(p0.formula)
    if p1.formula != expected:
        return _violated(
            piece, ViolationKind.RULE_VIOLATION,
            "Second premise must be the negation of the first",
            expected=expected.pretty(), actual=p1.formula.pretty(),
        )
    remaining = _discharge(graph, _union(premises), hypothesis)
    return Derived(Not(hypothesis), remaining)


def _derive_quantifier(graph, piece, premises) -> PieceStatus:
    (p0,) = premises
    variable = piece.params.variable
    if not variable:
        return _missing_param(piece, "variable")
    term = piece.params.abstracted_term
    is_forall = piece.kind == RuleKind.FORALL_INTRO
    for name in (variable, term):
        if not is_symbol(name):
            return _violated(
                piece, ViolationKind.RULE_VIOLATION,
                f"'{name}' is not a usable variable name",
                expected="a name without '!'", actual=name,
            )

    if term != variable and variable in p0.formula.free_vars():
        return _violated(
            piece, ViolationKind.RULE_VIOLATION,
            f"'{variable}' already occurs free in the premise; abstracting "
            f"'{term}' into it would conflate the two",
            expected=f"premise without free {variable}", actual=p0.formula.pretty(),
        )
    body = p0.formula.substitute(term, variable)
    if body is None:
        return _violated(
            piece, ViolationKind.RULE_VIOLATION,
            f"Replacing '{term}' by '{variable}' would be captured by an inner quantifier",
            expected=f"{term} free for {variable}", actual=p0.formula.pretty(),
        )

    watched = {term, variable} if is_forall else {variable}
    for aid in sorted(p0.open_assumptions):
        assumed = graph.piece(aid).params.formula
        clash = sorted(watched & assumed.free_vars())
        if clash:
            return _violated(
                piece, ViolationKind.VIOLATES_EIGENVARIABLE_CONDITION,
                f"'{clash[0]}' occurs free in undischarged assumption {aid} ({assumed})",
                expected=f"{clash[0]} not free in open assumptions",
                actual=assumed.pretty(),
            )

    quantified = Forall(variable, body) if is_forall else Exists(variable, body)
    return Derived(quantified, p0.open_assumptions)


_Deriver = Callable[[ProofGraph, InferencePiece, Sequence[Derived]], PieceStatus]

_DERIVERS: Dict[RuleKind, _Deriver] = {
    RuleKind.ASSUMPTION:    _derive_assumption,
    RuleKind.GOAL:          _derive_goal,
    RuleKind.AND_INTRO:     _derive_and,
    RuleKind.OR_INTRO:      _derive_or,
    RuleKind.IMPLIES_INTRO: _derive_implies,
    RuleKind.NOT_INTRO:     _derive_not,
    RuleKind.FORALL_INTRO:  _derive_quantifier,
    RuleKind.EXISTS_INTRO:  _derive_quantifier,
}

assert set(_DERIVERS) == set(RuleKind), "every rule kind needs a derivation function"


def derive_piece(graph: ProofGraph, piece: InferencePiece,
                 statuses: Dict[int, PieceStatus]) -> PieceStatus:
    """Local status of ``piece`` given the statuses of its producers."""
    missing = piece.missing_slots
    if missing:
        return Incomplete(missing_slots=missing)
    blocked = tuple(
        pid for pid in piece.slots if not isinstance(statuses.get(pid), Derived)
    )
    if blocked:
        return Incomplete(blocked_by=blocked)
    premises = [statuses[pid] for pid in piece.slots]
    return _DERIVERS[piece.kind](graph, piece, premises)


# ─────────────────────────────────────────────
#  CHECKER
# ─────────────────────────────────────────────

def check_rules(graph: ProofGraph, config: Optional[CheckerConfig] = None) -> RuleReport:
    """Run every rule contract plus the goal policy over ``graph``."""
    config = config or CheckerConfig()
    statuses: Dict[int, PieceStatus] = {}
    recomputed = 0

    for pid in graph.topological_order():
        piece = graph.piece(pid)
        status = piece.cache
        if status is None:
            status = derive_piece(graph, piece, statuses)
            piece.cache = status
            recomputed += 1
        statuses[pid] = status

    violations = [s.violation for s in statuses.values() if isinstance(s, Violated)]
    assumption_formulas = {
        p.piece_id: p.params.formula
        for p in graph.pieces_of_kind(RuleKind.ASSUMPTION)
        if p.params.formula is not None
    }

    violations.extend(_goal_violations(graph, statuses, config, violations))
    violations.sort(key=lambda v: -1 if v.piece_id is None else v.piece_id)

    report = RuleReport(
        statuses=statuses,
        violations=violations,
        goal_id=graph.goal_id,
        target=graph.target,
        graph_revision=graph.revision,
        premises=graph.premises,
        _assumption_formulas=assumption_formulas,
    )
    logger.debug(
        "Rule check rev %d: %d piece(s), %d recomputed, %d violation(s)",
        graph.revision, len(statuses), recomputed, len(violations),
    )
    return report


def _goal_violations(graph: ProofGraph, statuses: Dict[int, PieceStatus],
                     config: CheckerConfig, found: List[Violation]) -> List[Violation]:
    if graph.goal_id is None:
        return [Violation(None, ViolationKind.NO_GOAL, "No goal piece has been placed")]

    goal_id = graph.goal_id
    status = statuses[goal_id]

    if isinstance(status, Incomplete):
        region = graph.upstream(goal_id)
        if any(v.piece_id in region for v in found):
            return []   # the upstream violation already explains it
        if status.missing_slots:
            message = "Goal premise is not connected"
        else:
            message = "Goal premise is not yet derived"
        return [Violation(
            goal_id, ViolationKind.INCOMPLETE_PREMISE, message,
            expected=graph.target.pretty(), actual="",
        )]

    if not isinstance(status, Derived):
        return []

    out: List[Violation] = []
    if status.formula != graph.target:
        out.append(Violation(
            goal_id, ViolationKind.GOAL_MISMATCH,
            "Derived formula does not match the target exactly",
            expected=graph.target.pretty(), actual=status.formula.pretty(),
        ))

    if config.require_declared_premises and graph.premises is not None:
        declared = set(graph.premises)
        for aid in sorted(status.open_assumptions):
            assumed = graph.piece(aid).params.formula
            if assumed not in declared:
                out.append(Violation(
                    aid, ViolationKind.UNDECLARED_ASSUMPTION,
                    f"{assumed} is not a premise of this puzzle and is never discharged",
                    expected=", ".join(p.pretty() for p in graph.premises) or "no open assumptions",
                    actual=assumed.pretty(),
                ))
    return out


# ─────────────────────────────────────────────
#  SOLUTION STEPS
# ─────────────────────────────────────────────

def describe_steps(graph: ProofGraph, report: RuleReport) -> List[str]:
    """Human-readable derivation of the goal, producers first.

    Each line reads ``n. RULE [premise steps] ⊢ formula``; only pieces that
    contribute to the goal are listed.
    """
    if report.goal_id is None:
        return []
    contributing = graph.upstream(report.goal_id) | {report.goal_id}
    step_of: Dict[int, int] = {}
    lines: List[str] = []
    for pid in graph.topological_order():
        if pid not in contributing:
            continue
        derived = report.derived(pid)
        if derived is None:
            continue
        piece = graph.piece(pid)
        step_of[pid] = len(step_of) + 1
        refs = [str(step_of[s]) for s in piece.slots if s in step_of]
        label = piece.kind.label
        if piece.kind.discharges:
            label += f" (discharging {piece.params.hypothesis})"
        elif piece.kind.binds:
            label += f" {piece.params.variable}"
        wiring = f" [{', '.join(refs)}]" if refs else ""
        lines.append(f"{step_of[pid]}. {label}{wiring} ⊢ {derived.formula}")
    return lines
