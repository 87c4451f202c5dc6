#!/usr/bin/env python3
"""
scripts/check_puzzle.py
=======================
Check that a level can be published: validate it, ask the solver whether
its premises entail its target, and print an example construction.

Usage:
    python scripts/check_puzzle.py levels/my_level.json
    python scripts/check_puzzle.py --tutorial tutorial-4 --mode editor
    python scripts/check_puzzle.py --all-tutorials --backend process --command z3

Exit status: 0 solvable, 1 unsolvable or invalid, 2 unknown.
"""
import argparse
import json
import logging
import sys


def report_puzzle(puzzle, verifier) -> int:
    from proofwork.core.types import SolvabilityKind
    from proofwork.core.validators import validate_puzzle
    from proofwork.verification.rules import check_rules, describe_steps

    print(f"== {puzzle.puzzle_id}: {puzzle.name}")
    print(f"   {', '.join(p.pretty() for p in puzzle.premises) or '(no premises)'} ⊢ {puzzle.target}")

    errors = validate_puzzle(puzzle)
    if errors:
        for e in errors:
            print(f"   ✗ {e}")
        return 1

    result = verifier.solvability_check(puzzle)
    print(f"   {result.kind.value.upper()}" + (f": {result.reason}" if result.reason else ""))
    if result.kind == SolvabilityKind.SOLVABLE:
        example = result.example
        for step in describe_steps(example, check_rules(example, verifier.config.checker)):
            print(f"     {step}")
        return 0
    return 1 if result.kind == SolvabilityKind.UNSOLVABLE else 2


def main():
    parser = argparse.ArgumentParser(description="proofwork puzzle solvability checker")
    parser.add_argument("puzzle", nargs="?", default=None,
                        help="Path to a puzzle JSON file")
    parser.add_argument("--tutorial", default=None,
                        help="Id of a built-in tutorial level, e.g. tutorial-1")
    parser.add_argument("--all-tutorials", action="store_true")
    parser.add_argument("--mode", default="editor", choices=["player", "editor", "interactive"])
    parser.add_argument("--backend", default="z3", choices=["z3", "process"])
    parser.add_argument("--command", nargs="+", default=None,
                        help="Solver command for --backend process, e.g. cvc5 --lang=smt2")
    parser.add_argument("--timeout", type=int, default=None, help="Solvability timeout in ms")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from proofwork.core.config import VerifierConfig
    from proofwork.core.exceptions import ProofworkError
    from proofwork.core.types import PuzzleSpec
    from proofwork.levels.tutorial import get_tutorial, tutorial_puzzles
    from proofwork.verification.verifier import ProofVerifier

    config = VerifierConfig.for_mode(args.mode)
    config.solver.backend = args.backend
    if args.command:
        config.solver.process_command = tuple(args.command)
    if args.timeout:
        config.solver.solvability_timeout_ms = args.timeout

    try:
        if args.all_tutorials:
            puzzles = tutorial_puzzles()
        elif args.tutorial:
            puzzles = [get_tutorial(args.tutorial)]
        elif args.puzzle:
            with open(args.puzzle, encoding="utf-8") as f:
                puzzles = [PuzzleSpec.from_dict(json.load(f))]
        else:
            parser.error("give a puzzle file, --tutorial ID or --all-tutorials")

        with ProofVerifier(config=config) as verifier:
            codes = [report_puzzle(p, verifier) for p in puzzles]
    except ProofworkError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)

    sys.exit(max(codes))


if __name__ == "__main__":
    main()
