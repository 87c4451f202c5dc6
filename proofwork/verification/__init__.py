"""proofwork/verification — rule checking, SMT encoding, solving, orchestration."""

from proofwork.verification.encoder import EncodedQuery, encode_entailment, encode_proof, isabelle_theory
from proofwork.verification.export import export_proof, save_export
from proofwork.verification.rules import (
    Derived,
    Incomplete,
    RuleReport,
    Violated,
    check_rules,
    describe_steps,
)
from proofwork.verification.search import ConstructionSearch, find_construction
from proofwork.verification.session import SessionState, VerificationSession
from proofwork.verification.solver import (
    SmtLibProcessBackend,
    SolverBackend,
    SolverHandle,
    Z3Backend,
    make_backend,
)
from proofwork.verification.verifier import ProofVerifier

__all__ = [
    "ProofVerifier",
    "VerificationSession",
    "SessionState",
    "check_rules",
    "describe_steps",
    "RuleReport",
    "Derived",
    "Incomplete",
    "Violated",
    "EncodedQuery",
    "encode_proof",
    "encode_entailment",
    "isabelle_theory",
    "SolverBackend",
    "SolverHandle",
    "Z3Backend",
    "SmtLibProcessBackend",
    "make_backend",
    "ConstructionSearch",
    "find_construction",
    "export_proof",
    "save_export",
]
