"""
examples/basic_proof.py
=======================
Minimal proofwork example: build the P ∧ Q proof by hand, check it,
ask for a hint on a half-built graph, and export the certificate.
"""
import logging

from proofwork.core.types import RuleKind
from proofwork.graph.proof_graph import ProofGraph
from proofwork.logic import And, Atom
from proofwork.verification.export import export_proof
from proofwork.verification.verifier import ProofVerifier
from proofwork.levels.tutorial import get_tutorial


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    P, Q = Atom("P"), Atom("Q")
    puzzle = get_tutorial("tutorial-1")

    with ProofVerifier() as verifier:
        graph = ProofGraph(target=And(P, Q), premises=[P, Q], puzzle_id=puzzle.puzzle_id)
        p = graph.add_piece(RuleKind.ASSUMPTION, (1, 1), formula=P)
        q = graph.add_piece(RuleKind.ASSUMPTION, (1, 3), formula=Q)
        goal = graph.add_piece(RuleKind.GOAL, (5, 2))

        hint = verifier.hint(graph)
        print(f"Hint: {hint.message}")

        conj = graph.add_piece(RuleKind.AND_INTRO, (3, 2))
        graph.wire(conj, 0, p)
        graph.wire(conj, 1, q)
        graph.wire(goal, 0, conj)

        verdict = verifier.check(graph)
        print(verdict.summary())
        assert verdict.is_valid, "P, Q ⊢ P ∧ Q should verify"

        exported = export_proof(verdict, graph, puzzle, player_id="demo", elapsed_secs=12)
        print("\n".join(exported.solution_steps))
        print(exported.proof_smt2)
        print(f"checksum {exported.checksum}")
    print("✓ Basic proof example passed.")


if __name__ == "__main__":
    main()
