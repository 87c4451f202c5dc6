"""
proofwork/core/types.py
=======================
Foundation type system for proofwork.
Every module imports from here. No circular dependencies.

  - RuleKind / PieceParams describe an inference piece declaratively
  - Violation / Verdict / Certificate are the immutable verification results
  - SolverStatus / SolverResult are the solver-boundary vocabulary
  - PuzzleSpec is the declarative level definition consumed from storage
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Optional, Tuple

from proofwork.core.exceptions import FormulaSyntaxError, PuzzleFormatError
from proofwork.logic.formula import Formula
from proofwork.logic.parser import parse_formula

if TYPE_CHECKING:
    from proofwork.graph.proof_graph import ProofGraph


Position = Tuple[int, int]


# ─────────────────────────────────────────────
#  ENUMERATIONS
# ─────────────────────────────────────────────

class RuleKind(Enum):
    """Closed set of inference rules a piece can instantiate."""
    ASSUMPTION    = "assumption"
    GOAL          = "goal"
    AND_INTRO     = "and_intro"
    OR_INTRO      = "or_intro"
    IMPLIES_INTRO = "implies_intro"
    NOT_INTRO     = "not_intro"
    FORALL_INTRO  = "forall_intro"
    EXISTS_INTRO  = "exists_intro"

    @property
    def arity(self) -> int:
        """Number of premise slots the rule requires."""
        return _ARITY[self]

    @property
    def discharges(self) -> bool:
        """True for rules that close a local hypothesis (sub-proof region)."""
        return self in (RuleKind.IMPLIES_INTRO, RuleKind.NOT_INTRO)

    @property
    def binds(self) -> bool:
        return self in (RuleKind.FORALL_INTRO, RuleKind.EXISTS_INTRO)

    @property
    def label(self) -> str:
        return _LABELS[self]


_ARITY = {
    RuleKind.ASSUMPTION:    0,
    RuleKind.GOAL:          1,
    RuleKind.AND_INTRO:     2,
    RuleKind.OR_INTRO:      1,
    RuleKind.IMPLIES_INTRO: 1,
    RuleKind.NOT_INTRO:     2,
    RuleKind.FORALL_INTRO:  1,
    RuleKind.EXISTS_INTRO:  1,
}

_LABELS = {
    RuleKind.ASSUMPTION:    "ASSUME",
    RuleKind.GOAL:          "GOAL",
    RuleKind.AND_INTRO:     "∧I",
    RuleKind.OR_INTRO:      "∨I",
    RuleKind.IMPLIES_INTRO: "→I",
    RuleKind.NOT_INTRO:     "¬I",
    RuleKind.FORALL_INTRO:  "∀I",
    RuleKind.EXISTS_INTRO:  "∃I",
}


class ViolationKind(Enum):
    INCOMPLETE_PREMISE               = "incomplete_premise"
    RULE_VIOLATION                   = "rule_violation"
    VIOLATES_EIGENVARIABLE_CONDITION = "violates_eigenvariable_condition"
    MISSING_PARAMETER                = "missing_parameter"
    UNDECLARED_ASSUMPTION            = "undeclared_assumption"
    GOAL_MISMATCH                    = "goal_mismatch"
    NO_GOAL                          = "no_goal"


class VerdictKind(Enum):
    VALID   = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"


class SolverStatus(Enum):
    """Raw outcome reported by a solver backend."""
    SAT       = "sat"
    UNSAT     = "unsat"
    UNKNOWN   = "unknown"
    TIMEOUT   = "timeout"
    CANCELLED = "cancelled"
    ERROR     = "error"

    @property
    def is_definitive(self) -> bool:
        return self in (SolverStatus.SAT, SolverStatus.UNSAT)


class SolvabilityKind(Enum):
    SOLVABLE   = "solvable"
    UNSOLVABLE = "unsolvable"
    UNKNOWN    = "unknown"


class HintKind(Enum):
    SUGGEST_PIECE       = "suggest_piece"
    MISSING_PREMISE     = "missing_premise"
    BLOCKING_CONSTRAINT = "blocking_constraint"
    COMPLETE            = "complete"
    UNKNOWN             = "unknown"


# ─────────────────────────────────────────────
#  PIECE DESCRIPTION
# ─────────────────────────────────────────────

def _formula_field(value: Any, name: str) -> Optional[Formula]:
    if value is None or isinstance(value, Formula):
        return value
    if isinstance(value, str):
        try:
            return parse_formula(value)
        except FormulaSyntaxError as exc:
            raise PuzzleFormatError(
                f"Invalid formula for '{name}': {exc}", context={"field": name}
            ) from exc
    raise PuzzleFormatError(
        f"Field '{name}' must be a formula or formula text, got {type(value).__name__}",
        context={"field": name},
    )


@dataclass(frozen=True)
class PieceParams:
    """Side parameters a piece carries in addition to its premise slots.

    formula:    ASSUMPTION — the assumed formula.
    other:      OR_INTRO — the disjunct chosen by the player (never inferred).
    side:       OR_INTRO — where the premise goes: "left" or "right".
                Other values are stored as given; the rule checker
                reports them.
    hypothesis: IMPLIES_INTRO / NOT_INTRO — the locally assumed formula.
    variable:   FORALL_INTRO / EXISTS_INTRO — the bound variable.
    term:       FORALL_INTRO / EXISTS_INTRO — the term abstracted into
                ``variable`` (defaults to ``variable`` itself).
    """
    formula:    Optional[Formula] = None
    other:      Optional[Formula] = None
    side:       str = "left"
    hypothesis: Optional[Formula] = None
    variable:   Optional[str] = None
    term:       Optional[str] = None

    @property
    def abstracted_term(self) -> Optional[str]:
        return self.term or self.variable

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PieceParams":
        unknown = set(data) - {"formula", "other", "side", "hypothesis", "variable", "term"}
        if unknown:
            raise PuzzleFormatError(f"Unknown piece parameters: {sorted(unknown)}")
        if data.get("side", "left") not in ("left", "right"):
            raise PuzzleFormatError(
                f"side must be 'left' or 'right', got {data['side']!r}", context={"field": "side"}
            )
        return cls(
            formula=_formula_field(data.get("formula"), "formula"),
            other=_formula_field(data.get("other"), "other"),
            side=data.get("side", "left"),
            hypothesis=_formula_field(data.get("hypothesis"), "hypothesis"),
            variable=data.get("variable"),
            term=data.get("term"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for name in ("formula", "other", "hypothesis"):
            value = getattr(self, name)
            if value is not None:
                out[name] = value.pretty()
        if self.side != "left":
            out["side"] = self.side
        if self.variable is not None:
            out["variable"] = self.variable
        if self.term is not None:
            out["term"] = self.term
        return out

    def describe(self) -> str:
        parts = [f"{k}={v}" for k, v in self.to_dict().items()]
        return ", ".join(parts)


# ─────────────────────────────────────────────
#  VERIFICATION RESULTS
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class Violation:
    """A single rule-level problem attributed to one piece.

    ``piece_id`` is None only for graph-level problems (NO_GOAL).
    ``expected`` is the structural pattern the rule requires and
    ``actual`` what the wired premises provided, both pretty-printed.
    """
    piece_id: Optional[int]
    kind:     ViolationKind
    message:  str
    expected: str = ""
    actual:   str = ""

    def __str__(self) -> str:
        where = "graph" if self.piece_id is None else f"piece {self.piece_id}"
        text = f"[{self.kind.value}] {where}: {self.message}"
        if self.expected or self.actual:
            text += f" (expected {self.expected or '-'}, got {self.actual or '-'})"
        return text


@dataclass(frozen=True)
class SolverResult:
    """Solver-level answer, before interpretation into a domain verdict."""
    status:      SolverStatus
    model:       Dict[str, str] = field(default_factory=dict)
    unsat_core:  Tuple[str, ...] = ()
    reason:      str = ""
    elapsed_ms:  float = field(default=0.0, compare=False)
    solver_name: str = ""


@dataclass(frozen=True)
class Certificate:
    """Exportable evidence accompanying a Valid verdict."""
    solver_status: SolverStatus
    solver_name:   str
    smt2:          str
    query_digest:  str
    isabelle:      Optional[str] = None
    elapsed_ms:    float = field(default=0.0, compare=False)


@dataclass(frozen=True)
class Verdict:
    """Tri-state outcome of a verification attempt. Immutable snapshot."""
    kind:           VerdictKind
    certificate:    Optional[Certificate] = None
    violations:     Tuple[Violation, ...] = ()
    reason:         str = ""
    graph_revision: Optional[int] = None

    @classmethod
    def valid(cls, certificate: Certificate, graph_revision: Optional[int] = None) -> "Verdict":
        return cls(VerdictKind.VALID, certificate=certificate, graph_revision=graph_revision)

    @classmethod
    def invalid(cls, violations, graph_revision: Optional[int] = None) -> "Verdict":
        return cls(VerdictKind.INVALID, violations=tuple(violations), graph_revision=graph_revision)

    @classmethod
    def unknown(cls, reason: str, graph_revision: Optional[int] = None) -> "Verdict":
        return cls(VerdictKind.UNKNOWN, reason=reason, graph_revision=graph_revision)

    @property
    def is_valid(self) -> bool:
        return self.kind == VerdictKind.VALID

    @property
    def is_invalid(self) -> bool:
        return self.kind == VerdictKind.INVALID

    @property
    def is_unknown(self) -> bool:
        return self.kind == VerdictKind.UNKNOWN

    def violations_for(self, piece_id: int) -> List[Violation]:
        return [v for v in self.violations if v.piece_id == piece_id]

    def summary(self) -> str:
        if self.is_valid:
            return f"VALID ({self.certificate.solver_name}, {self.certificate.elapsed_ms:.1f} ms)"
        if self.is_invalid:
            n = len(self.violations)
            return f"INVALID ({n} violation{'s' if n != 1 else ''})"
        return f"UNKNOWN ({self.reason})"


# ─────────────────────────────────────────────
#  PUZZLE DEFINITION
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class GridConstraints:
    width:      int = 10
    height:     int = 10
    max_pieces: Optional[int] = None

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError("Grid dimensions must be positive")
        if self.max_pieces is not None and self.max_pieces <= 0:
            raise ValueError("max_pieces must be positive when set")

    def in_bounds(self, position: Position) -> bool:
        x, y = position
        return 0 <= x < self.width and 0 <= y < self.height


@dataclass(frozen=True)
class PiecePlacement:
    """A piece pre-placed by the level author."""
    kind:     RuleKind
    position: Position
    params:   PieceParams = field(default_factory=PieceParams)


ALL_RULES: FrozenSet[RuleKind] = frozenset(RuleKind)


@dataclass(frozen=True)
class PuzzleSpec:
    """Declarative level definition authored in the level editor.

    target:          the formula the player's Goal must derive, verbatim.
    premises:        formulas the player may use as open assumptions.
    available_rules: rule kinds offered in the piece palette.
    """
    puzzle_id:       str
    name:            str
    target:          Formula
    premises:        Tuple[Formula, ...] = ()
    available_rules: FrozenSet[RuleKind] = ALL_RULES
    grid:            GridConstraints = field(default_factory=GridConstraints)
    description:     str = ""
    pieces:          Tuple[PiecePlacement, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PuzzleSpec":
        """Build from the deserialized (JSON-compatible) level form.

        Raises:
            PuzzleFormatError: on missing fields or malformed values.
        """
        for required in ("id", "name", "target"):
            if required not in data:
                raise PuzzleFormatError(f"Puzzle is missing required field '{required}'")
        try:
            rules = frozenset(RuleKind(r) for r in data.get("available_rules", [k.value for k in RuleKind]))
            grid_data = data.get("grid", {})
            grid = GridConstraints(
                width=int(grid_data.get("width", 10)),
                height=int(grid_data.get("height", 10)),
                max_pieces=grid_data.get("max_pieces"),
            )
            pieces = tuple(
                PiecePlacement(
                    kind=RuleKind(p["kind"]),
                    position=(int(p["position"][0]), int(p["position"][1])),
                    params=PieceParams.from_dict(p.get("params", {})),
                )
                for p in data.get("pieces", [])
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise PuzzleFormatError(
                f"Malformed puzzle '{data.get('id')}': {exc}", context={"puzzle_id": data.get("id")}
            ) from exc
        return cls(
            puzzle_id=str(data["id"]),
            name=data["name"],
            target=_formula_field(data["target"], "target"),
            premises=tuple(_formula_field(p, "premises") for p in data.get("premises", [])),
            available_rules=rules,
            grid=grid,
            description=data.get("description", ""),
            pieces=pieces,
        )

    def to_dict(self) -> Dict[str, Any]:
        grid: Dict[str, Any] = {"width": self.grid.width, "height": self.grid.height}
        if self.grid.max_pieces is not None:
            grid["max_pieces"] = self.grid.max_pieces
        return {
            "id": self.puzzle_id,
            "name": self.name,
            "description": self.description,
            "target": self.target.pretty(),
            "premises": [p.pretty() for p in self.premises],
            "available_rules": sorted(k.value for k in self.available_rules),
            "grid": grid,
            "pieces": [
                {"kind": p.kind.value, "position": list(p.position), "params": p.params.to_dict()}
                for p in self.pieces
            ],
        }


# ─────────────────────────────────────────────
#  EDITOR / INTERACTIVE RESULTS
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class SolvabilityResult:
    kind:        SolvabilityKind
    example:     Optional["ProofGraph"] = None
    countermodel: Dict[str, str] = field(default_factory=dict)
    reason:      str = ""

    @property
    def is_solvable(self) -> bool:
        return self.kind == SolvabilityKind.SOLVABLE


@dataclass(frozen=True)
class PieceSuggestion:
    """Next piece to place: its rule, which existing pieces to wire, and params."""
    kind:        RuleKind
    premise_ids: Tuple[int, ...]
    params:      PieceParams
    produces:    Formula

    def describe(self) -> str:
        wiring = ", ".join(str(i) for i in self.premise_ids) or "nothing"
        return f"Place {self.kind.label} wired from [{wiring}] to obtain {self.produces}"


@dataclass(frozen=True)
class HintResult:
    kind:            HintKind
    message:         str
    suggestion:      Optional[PieceSuggestion] = None
    missing_premise: Optional[Formula] = None
    countermodel:    Dict[str, str] = field(default_factory=dict)


# ─────────────────────────────────────────────
#  EXPORT
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class ExportedProof:
    """Opaque artifact handed to the network-submission collaborator."""
    level_id:        str
    player_id:       str
    proof_smt2:      str
    proof_isabelle:  Optional[str]
    solution_steps:  Tuple[str, ...]
    time_taken_secs: int
    success:         bool

    @property
    def checksum(self) -> str:
        """SHA-256 over the proof texts, for tamper detection."""
        h = hashlib.sha256(self.proof_smt2.encode("utf-8"))
        if self.proof_isabelle:
            h.update(self.proof_isabelle.encode("utf-8"))
        return h.hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level_id": self.level_id,
            "player_id": self.player_id,
            "proof_smt2": self.proof_smt2,
            "proof_isabelle": self.proof_isabelle,
            "solution_steps": list(self.solution_steps),
            "time_taken_secs": self.time_taken_secs,
            "success": self.success,
            "checksum": self.checksum,
        }
