"""
proofwork/verification/verifier.py
==================================
ProofVerifier — turns graphs and puzzles into domain-level answers.

    check(graph)              → Verdict            (player submits)
    solvability_check(puzzle) → SolvabilityResult  (editor publishes)
    hint(graph, goal)         → HintResult         (player asks for help)

Pipeline for ``check``:
    1. Rule checker. Any violation → INVALID, solver never called.
    2. Encode the goal derivation (pure, deterministic).
    3. Solve under ``check_timeout_ms``.
    4. UNSAT → VALID(certificate); anything else → UNKNOWN(reason).
       A rule-valid derivation is never reported INVALID: a SAT answer
       for one means an encoder or solver defect and is logged as such.

Each operation is split into a *prepare* step (reads the graph; must run
on the thread that owns the graph) and a *solve* step (touches only
immutable values; may run anywhere). The blocking methods chain both;
VerificationSession runs the solve step on a worker thread.

Hints combine the solver with ConstructionSearch:
    material ⊨ goal ?   (material = derived formulas resting on premises)
      UNSAT → search from the material for the next piece to place
      SAT   → try each unplaced premise for a single missing one;
              failing that, report the countermodel as the blocking constraint
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from proofwork.core.config import VerifierConfig
from proofwork.core.types import (
    Certificate,
    HintKind,
    HintResult,
    PieceParams,
    PieceSuggestion,
    PuzzleSpec,
    RuleKind,
    SolvabilityKind,
    SolvabilityResult,
    SolverResult,
    SolverStatus,
    Verdict,
    ViolationKind,
)
from proofwork.graph.proof_graph import ProofGraph
from proofwork.logic.formula import Formula
from proofwork.verification.encoder import EncodedQuery, encode_entailment, encode_proof, isabelle_theory
from proofwork.verification.rules import RuleReport, check_rules
from proofwork.verification.search import ConstructionSearch, find_construction, next_step
from proofwork.verification.solver import SolverBackend, SolverHandle, make_backend

logger = logging.getLogger(__name__)

# Violations the player resolves by continuing to build, not by fixing.
_PROGRESS_KINDS = frozenset({ViolationKind.INCOMPLETE_PREMISE, ViolationKind.NO_GOAL})


def _format_model(model: Dict[str, str]) -> str:
    return ", ".join(f"{k} = {v}" for k, v in model.items()) or "any interpretation"


# ─────────────────────────────────────────────
#  PREPARED WORK ITEMS
# ─────────────────────────────────────────────

@dataclass(frozen=True)
class CheckJob:
    """Everything ``check`` needs after the graph has been read."""
    report:   RuleReport
    query:    Optional[EncodedQuery]
    early:    Optional[Verdict]
    name:     str


@dataclass
class HintJob:
    """Immutable hint inputs plus a cancellation flag for the running job."""
    goal:       Formula
    material:   Tuple[Formula, ...]
    unplaced:   Tuple[Formula, ...]
    context:    FrozenSet[Formula]
    rules:      FrozenSet[RuleKind]
    existing:   Dict[Formula, Tuple[int, RuleKind, FrozenSet[Formula]]]
    early:      Optional[HintResult] = None
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)
    _handle:    Optional[SolverHandle] = field(default=None, repr=False)
    _lock:      threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self, backend: SolverBackend) -> None:
        with self._lock:
            self._cancelled.set()
            handle = self._handle
        if handle is not None:
            backend.cancel(handle)

    def _track(self, handle: SolverHandle) -> bool:
        with self._lock:
            self._handle = handle
            return not self._cancelled.is_set()


class ProofVerifier:
    """Verification orchestrator. Stateless apart from its solver backend.

    Usage:
        verifier = ProofVerifier()
        verdict = verifier.check(graph)
        if verdict.is_valid:
            print(verdict.certificate.smt2)
    """

    def __init__(self, backend: Optional[SolverBackend] = None,
                 config: Optional[VerifierConfig] = None):
        self.config = config or VerifierConfig()
        self._owns_backend = backend is None
        self.backend = backend or make_backend(self.config.solver)

    def close(self) -> None:
        if self._owns_backend:
            self.backend.shutdown()

    def __enter__(self) -> "ProofVerifier":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ─── CHECK ─────────────────────────────────────────────────────

    def check(self, graph: ProofGraph) -> Verdict:
        """Verify ``graph``. Idempotent for an unchanged graph.

        Raises:
            EncodingError: implementation defect while encoding (carries piece id).
        """
        job = self.prepare_check(graph)
        if job.early is not None:
            return job.early
        result = self.backend.solve(job.query, self.config.solver.check_timeout_ms)
        return self.interpret_check(job, result)

    def prepare_check(self, graph: ProofGraph) -> CheckJob:
        report = check_rules(graph, self.config.checker)
        name = graph.puzzle_id or "proof"
        if report.violations:
            verdict = Verdict.invalid(report.violations, graph_revision=report.graph_revision)
            logger.info("Check rev %d: INVALID by rule check (%d violation(s))",
                        report.graph_revision, len(report.violations))
            return CheckJob(report, None, verdict, name)
        query = encode_proof(report, self.config.encoder, title=f"{name} rev {report.graph_revision}")
        return CheckJob(report, query, None, name)

    def interpret_check(self, job: CheckJob, result: SolverResult) -> Verdict:
        report, query = job.report, job.query
        revision = report.graph_revision

        if result.status == SolverStatus.UNSAT:
            isabelle = isabelle_theory(query, job.name) if self.config.encoder.export_isabelle else None
            certificate = Certificate(
                solver_status=result.status,
                solver_name=result.solver_name,
                smt2=query.smt2,
                query_digest=query.digest,
                isabelle=isabelle,
                elapsed_ms=result.elapsed_ms,
            )
            logger.info("Check rev %d: VALID (%s, %.1f ms)", revision, result.solver_name, result.elapsed_ms)
            return Verdict.valid(certificate, graph_revision=revision)

        if result.status == SolverStatus.SAT:
            model = _format_model(result.model)
            logger.error(
                "Solver refuted a rule-valid derivation (rev %d, query %s): %s",
                revision, query.digest[:12], model,
            )
            return Verdict.unknown(
                f"encoder/solver defect: countermodel for a rule-valid derivation ({model})",
                graph_revision=revision,
            )

        reason = f"{result.status.value}: {result.reason}" if result.reason else result.status.value
        logger.warning("Check rev %d: UNKNOWN (%s)", revision, reason)
        return Verdict.unknown(reason, graph_revision=revision)

    # ─── SOLVABILITY ───────────────────────────────────────────────

    def solvability_check(self, puzzle: PuzzleSpec) -> SolvabilityResult:
        """Confirm a valid construction exists before a level is published.

        The solver decides whether the premises entail the target; a
        construction search then produces an example a player could build:
        on top of the pre-placed pieces, with the puzzle's palette, inside
        its grid and piece budget.
        """
        query = encode_entailment(
            puzzle.premises, puzzle.target, self.config.encoder,
            labels=[f"premise_{i}" for i in range(1, len(puzzle.premises) + 1)],
            title=f"solvability {puzzle.puzzle_id}",
        )
        result = self.backend.solve(query, self.config.solver.solvability_timeout_ms)

        if result.status == SolverStatus.SAT:
            logger.info("Puzzle %s: UNSOLVABLE (target not entailed)", puzzle.puzzle_id)
            return SolvabilityResult(
                SolvabilityKind.UNSOLVABLE, countermodel=result.model,
                reason=f"Premises do not entail the target: {_format_model(result.model)}",
            )
        if result.status != SolverStatus.UNSAT:
            logger.warning("Puzzle %s: solvability UNKNOWN (%s)", puzzle.puzzle_id, result.status.value)
            return SolvabilityResult(
                SolvabilityKind.UNKNOWN, reason=result.reason or result.status.value
            )

        example = find_construction(puzzle, self.config.search)
        if example is None:
            logger.warning("Puzzle %s: entailed but no construction found", puzzle.puzzle_id)
            return SolvabilityResult(
                SolvabilityKind.UNKNOWN,
                reason="Target is entailed, but no construction was found with the "
                       "available rules and pre-placed pieces that fits the grid "
                       "and piece budget within the search limits",
            )
        logger.info("Puzzle %s: SOLVABLE (%d-piece example)", puzzle.puzzle_id, len(example))
        return SolvabilityResult(SolvabilityKind.SOLVABLE, example=example)

    # ─── HINT ──────────────────────────────────────────────────────

    def hint(self, graph: ProofGraph, goal: Optional[Formula] = None) -> HintResult:
        """Best-effort next step towards ``goal`` (default: the puzzle target)."""
        return self.run_hint(self.prepare_hint(graph, goal))

    def prepare_hint(self, graph: ProofGraph, goal: Optional[Formula] = None) -> HintJob:
        goal = goal if goal is not None else graph.target
        report = check_rules(graph, self.config.checker)
        declared = set(graph.premises) if graph.premises is not None else None

        placed = {
            p.params.formula for p in graph.pieces_of_kind(RuleKind.ASSUMPTION)
            if p.params.formula is not None
        }
        context = frozenset(declared if declared is not None else placed)

        material: List[Formula] = []
        existing: Dict[Formula, Tuple[int, RuleKind, FrozenSet[Formula]]] = {}
        for pid in sorted(report.statuses):
            derived = report.derived(pid)
            piece = graph.piece(pid)
            if derived is None or piece.kind == RuleKind.GOAL:
                continue
            open_formulas = frozenset(graph.piece(a).params.formula for a in derived.open_assumptions)
            existing.setdefault(derived.formula, (pid, piece.kind, open_formulas))
            if open_formulas <= context and derived.formula not in material:
                material.append(derived.formula)

        unplaced = tuple(p for p in (graph.premises or ()) if p not in placed)
        job = HintJob(
            goal=goal, material=tuple(material), unplaced=unplaced, context=context,
            rules=graph.available_rules, existing=existing,
        )

        if goal == graph.target and report.ready_to_encode:
            job.early = HintResult(HintKind.COMPLETE, "The proof is complete: submit it for checking")
            return job
        blocking = [v for v in report.violations if v.kind not in _PROGRESS_KINDS]
        if blocking:
            first = blocking[0]
            job.early = HintResult(HintKind.BLOCKING_CONSTRAINT, f"Fix this first: {first}")
        return job

    def run_hint(self, job: HintJob) -> HintResult:
        """Solver/search part of ``hint``. Touches no graph state."""
        if job.early is not None:
            return job.early
        budget = self.config.solver.hint_timeout_ms

        first = self._hint_solve(job, job.material, budget)
        if first is None or not first.status.is_definitive:
            return self._hint_unknown(job, first)
        if first.status == SolverStatus.UNSAT:
            return self._suggest(job)

        placeable = job.unplaced if RuleKind.ASSUMPTION in job.rules else ()
        for premise in placeable:
            attempt = self._hint_solve(job, job.material + (premise,), budget)
            if attempt is None or not attempt.status.is_definitive:
                return self._hint_unknown(job, attempt)
            if attempt.status == SolverStatus.UNSAT:
                return HintResult(
                    HintKind.MISSING_PREMISE,
                    f"Place an assumption for the premise {premise}",
                    suggestion=PieceSuggestion(RuleKind.ASSUMPTION, (), PieceParams(formula=premise), premise),
                    missing_premise=premise,
                )

        blocking_model = first.model
        if len(placeable) > 1:
            combined = self._hint_solve(job, job.material + placeable, budget)
            if combined is None or not combined.status.is_definitive:
                return self._hint_unknown(job, combined)
            if combined.status == SolverStatus.UNSAT:
                return self._suggest(job)
            blocking_model = combined.model

        return HintResult(
            HintKind.BLOCKING_CONSTRAINT,
            f"{job.goal} does not follow from what is available: {_format_model(blocking_model)}",
            countermodel=blocking_model,
        )

    def _hint_solve(self, job: HintJob, hypotheses: Tuple[Formula, ...],
                    budget: int) -> Optional[SolverResult]:
        if job.cancelled:
            return None
        query = encode_entailment(hypotheses, job.goal, self.config.encoder, title="hint")
        handle = self.backend.submit(query, budget)
        if not job._track(handle):
            self.backend.cancel(handle)
        return handle.result()

    def _hint_unknown(self, job: HintJob, result: Optional[SolverResult]) -> HintResult:
        if result is None or job.cancelled:
            reason = "cancelled"
        else:
            reason = result.reason or result.status.value
        logger.warning("Hint for %s: UNKNOWN (%s)", job.goal, reason)
        return HintResult(HintKind.UNKNOWN, f"No hint available right now ({reason})")

    def _suggest(self, job: HintJob) -> HintResult:
        search = ConstructionSearch(job.context, job.rules, self.config.search, existing=job.existing)
        node = search.prove(job.goal)
        if node is None:
            if search.exhausted:
                return HintResult(HintKind.UNKNOWN, "The goal is reachable, but no next step was found in budget")
            palette = ", ".join(sorted(k.label for k in job.rules))
            return HintResult(
                HintKind.UNKNOWN,
                f"{job.goal} follows from what is placed, but no construction with the "
                f"available rules ({palette}) was found",
            )

        step = next_step(node)
        if step is None:
            suggestion = PieceSuggestion(RuleKind.GOAL, (node.existing_id,), PieceParams(), job.goal)
            return HintResult(
                HintKind.SUGGEST_PIECE,
                f"Piece {node.existing_id} already derives {job.goal}: wire it into the goal",
                suggestion=suggestion,
            )
        suggestion = PieceSuggestion(
            step.kind, tuple(c.existing_id for c in step.children), step.params, step.formula
        )
        return HintResult(HintKind.SUGGEST_PIECE, suggestion.describe(), suggestion=suggestion)
