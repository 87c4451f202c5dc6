"""proofwork/graph — the player-editable proof graph."""

from proofwork.graph.pieces import InferencePiece
from proofwork.graph.proof_graph import ProofGraph

__all__ = ["InferencePiece", "ProofGraph"]
