"""
proofwork/__init__.py — Public API exports
"""

from proofwork.core.exceptions import (
    CycleDetected,
    EncodingError,
    FormulaSyntaxError,
    GraphEditError,
    NotAGoalPiece,
    ProofworkError,
    PuzzleFormatError,
    SlotOutOfRange,
    SolverUnavailable,
    UnknownPiece,
)
from proofwork.core.config import DEFAULT_CONFIG, VerifierConfig
from proofwork.core.types import (
    ExportedProof,
    HintKind,
    HintResult,
    PieceParams,
    PuzzleSpec,
    RuleKind,
    SolvabilityKind,
    SolvabilityResult,
    Verdict,
    VerdictKind,
    Violation,
    ViolationKind,
)
from proofwork.graph.proof_graph import ProofGraph
from proofwork.logic import And, Atom, Exists, Forall, Formula, Implies, Not, Or, parse_formula
from proofwork.verification import ProofVerifier, VerificationSession, export_proof
from proofwork.version import __version__

__all__ = [
    "ProofGraph",
    "ProofVerifier",
    "VerificationSession",
    "export_proof",
    "VerifierConfig",
    "DEFAULT_CONFIG",
    "Formula",
    "Atom",
    "Not",
    "And",
    "Or",
    "Implies",
    "Forall",
    "Exists",
    "parse_formula",
    "RuleKind",
    "PieceParams",
    "PuzzleSpec",
    "Verdict",
    "VerdictKind",
    "Violation",
    "ViolationKind",
    "HintKind",
    "HintResult",
    "SolvabilityKind",
    "SolvabilityResult",
    "ExportedProof",
    "ProofworkError",
    "GraphEditError",
    "UnknownPiece",
    "SlotOutOfRange",
    "CycleDetected",
    "NotAGoalPiece",
    "EncodingError",
    "SolverUnavailable",
    "FormulaSyntaxError",
    "PuzzleFormatError",
    "__version__",
]
