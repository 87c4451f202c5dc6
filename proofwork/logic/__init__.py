"""proofwork/logic — Formula model and parser."""

from proofwork.logic.formula import (
    And,
    Atom,
    Exists,
    Forall,
    Formula,
    Implies,
    Not,
    Or,
    conjoin,
)
from proofwork.logic.parser import parse_formula, tokenize

__all__ = [
    "Formula",
    "Atom",
    "Not",
    "And",
    "Or",
    "Implies",
    "Forall",
    "Exists",
    "conjoin",
    "parse_formula",
    "tokenize",
]
