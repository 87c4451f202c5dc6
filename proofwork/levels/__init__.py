"""proofwork/levels — built-in puzzle packs."""

from proofwork.levels.tutorial import get_tutorial, tutorial_puzzles

__all__ = ["get_tutorial", "tutorial_puzzles"]
