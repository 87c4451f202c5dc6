"""
proofwork/verification/export.py
================================
Package a finished attempt for the network-submission collaborator.

Export contract:
    Every export produces an ``ExportedProof`` (JSON-serialisable via
    ``to_dict()``) containing level_id, player_id, the SMT-LIB2 query that
    was certified, the optional Isabelle/HOL theory, the human-readable
    solution steps, the time taken, a success flag and a SHA-256 checksum
    over the proof texts.

Only a VALID verdict exports with ``success=True`` and proof texts. Any
other verdict still exports (the collaborator records attempts) but with
empty proof texts. No placeholder success.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path

from proofwork.core.config import CheckerConfig
from proofwork.core.types import ExportedProof, PuzzleSpec, Verdict
from proofwork.graph.proof_graph import ProofGraph
from proofwork.verification.rules import check_rules, describe_steps

logger = logging.getLogger(__name__)


def export_proof(
    verdict: Verdict,
    graph: ProofGraph,
    puzzle: PuzzleSpec,
    player_id: str,
    elapsed_secs: float,
    checker: CheckerConfig = None,
) -> ExportedProof:
    """Build the exportable record for ``verdict`` on ``graph``.

    Raises:
        ValueError: the verdict describes a different graph revision.
    """
    if verdict.graph_revision is not None and verdict.graph_revision != graph.revision:
        raise ValueError(
            f"Verdict is for revision {verdict.graph_revision}, graph is at {graph.revision}"
        )
    report = check_rules(graph, checker)
    certificate = verdict.certificate if verdict.is_valid else None

    exported = ExportedProof(
        level_id=puzzle.puzzle_id,
        player_id=player_id,
        proof_smt2=certificate.smt2 if certificate else "",
        proof_isabelle=certificate.isabelle if certificate else None,
        solution_steps=tuple(describe_steps(graph, report)),
        time_taken_secs=int(elapsed_secs),
        success=verdict.is_valid,
    )
    logger.info(
        "Exported %s attempt on %s for %s (checksum %s)",
        "successful" if exported.success else "failed",
        puzzle.puzzle_id, player_id, exported.checksum[:12],
    )
    return exported


def save_export(exported: ExportedProof, path: str) -> None:
    """Write the export as JSON (the collaborator's upload payload)."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    Path(path).write_text(
        json.dumps(exported.to_dict(), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    logger.info("Export saved → %s", path)
