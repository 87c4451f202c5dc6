"""
proofwork/logic/formula.py
==========================
Formula model: immutable propositional / first-order formula trees.

Variants:
    Atom(name, args)      — proposition P, or first-order atom P(x, c)
    Not(f)
    And(l, r), Or(l, r), Implies(l, r)
    Forall(var, body), Exists(var, body)

Properties:
  - Value types: frozen dataclasses, hashable, safe to share across threads.
  - Equality is syntactic: And(P, Q) != And(Q, P).
  - ``sort_key()`` gives a deterministic total order across variants,
    used by the encoder to canonicalise symbol tables.
  - ``pretty()`` renders Unicode notation with minimal parentheses.

No simplification happens here. Rewriting belongs to the encoder.

Term convention:
    Atom arguments are individual term names. An occurrence is free
    unless an enclosing quantifier binds the same name.

Symbol names (predicates, terms, bound variables) may not contain '!'.
That character is reserved for names the encoder generates.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import total_ordering
from typing import FrozenSet, Iterator, Optional, Tuple

# Binding strength used by the printer (higher binds tighter).
_PREC_QUANT = 0
_PREC_IMPLIES = 1
_PREC_OR = 2
_PREC_AND = 3
_PREC_NOT = 4
_PREC_ATOM = 5

RESERVED_CHAR = "!"


def is_symbol(name: str) -> bool:
    """True if ``name`` may be used as a user symbol."""
    return bool(name) and RESERVED_CHAR not in name


def _check_symbol(name: str, what: str) -> None:
    if not name:
        raise ValueError(f"{what} must be non-empty")
    if RESERVED_CHAR in name:
        raise ValueError(f"{what} '{name}' may not contain '{RESERVED_CHAR}'")


@total_ordering
class Formula:
    """Base class for every formula variant."""

    # rank of the variant inside sort_key(); overridden per subclass
    _rank: int = 0

    def sort_key(self) -> tuple:
        raise NotImplementedError

    def __lt__(self, other: "Formula") -> bool:
        if not isinstance(other, Formula):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    # ─── TRAVERSAL ─────────────────────────────────────────────────

    def children(self) -> Tuple["Formula", ...]:
        return ()

    def subformulas(self) -> Iterator["Formula"]:
        """Pre-order walk including ``self``."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children()))

    def depth(self) -> int:
        kids = self.children()
        if not kids:
            return 1
        return 1 + max(k.depth() for k in kids)

    def atoms(self) -> FrozenSet["Atom"]:
        return frozenset(f for f in self.subformulas() if isinstance(f, Atom))

    def is_first_order(self) -> bool:
        return any(
            isinstance(f, (Forall, Exists)) or (isinstance(f, Atom) and f.args)
            for f in self.subformulas()
        )

    # ─── VARIABLES ─────────────────────────────────────────────────

    def free_vars(self) -> FrozenSet[str]:
        raise NotImplementedError

    def bound_vars(self) -> FrozenSet[str]:
        return frozenset(
            f.var for f in self.subformulas() if isinstance(f, (Forall, Exists))
        )

    def substitute(self, term: str, replacement: str) -> Optional["Formula"]:
        """Replace free occurrences of ``term`` with ``replacement``.

        Returns None when a replaced occurrence would be captured by a
        quantifier binding ``replacement``.
        """
        raise NotImplementedError

    # ─── PRINTING ──────────────────────────────────────────────────

    def _prec(self) -> int:
        raise NotImplementedError

    def _render(self) -> str:
        raise NotImplementedError

    def _wrapped(self, min_prec: int) -> str:
        text = self._render()
        if self._prec() < min_prec:
            return f"({text})"
        return text

    def pretty(self) -> str:
        return self._render()

    def __str__(self) -> str:
        return self.pretty()


@dataclass(frozen=True, eq=True)
class Atom(Formula):
    name: str
    args: Tuple[str, ...] = field(default_factory=tuple)

    _rank = 0

    def __post_init__(self):
        _check_symbol(self.name, "Atom name")
        if not isinstance(self.args, tuple):
            object.__setattr__(self, "args", tuple(self.args))
        for arg in self.args:
            _check_symbol(arg, "Term name")

    @property
    def arity(self) -> int:
        return len(self.args)

    def sort_key(self) -> tuple:
        return (self._rank, self.name, self.args)

    def free_vars(self) -> FrozenSet[str]:
        return frozenset(self.args)

    def substitute(self, term: str, replacement: str) -> Optional[Formula]:
        if term not in self.args:
            return self
        return Atom(self.name, tuple(replacement if a == term else a for a in self.args))

    def _prec(self) -> int:
        return _PREC_ATOM

    def _render(self) -> str:
        if not self.args:
            return self.name
        return f"{self.name}({', '.join(self.args)})"

    def __repr__(self) -> str:
        return f"Atom({self._render()})"


@dataclass(frozen=True, eq=True)
class Not(Formula):
    operand: Formula

    _rank = 1

    def sort_key(self) -> tuple:
        return (self._rank, self.operand.sort_key())

    def children(self) -> Tuple[Formula, ...]:
        return (self.operand,)

    def free_vars(self) -> FrozenSet[str]:
        return self.operand.free_vars()

    def substitute(self, term: str, replacement: str) -> Optional[Formula]:
        inner = self.operand.substitute(term, replacement)
        if inner is None:
            return None
        return self if inner is self.operand else Not(inner)

    def _prec(self) -> int:
        return _PREC_NOT

    def _render(self) -> str:
        return "¬" + self.operand._wrapped(_PREC_NOT)

    def __repr__(self) -> str:
        return f"Not({self.operand!r})"


@dataclass(frozen=True, eq=True)
class _Binary(Formula):
    left: Formula
    right: Formula

    _symbol = "?"

    def sort_key(self) -> tuple:
        return (self._rank, self.left.sort_key(), self.right.sort_key())

    def children(self) -> Tuple[Formula, ...]:
        return (self.left, self.right)

    def free_vars(self) -> FrozenSet[str]:
        return self.left.free_vars() | self.right.free_vars()

    def substitute(self, term: str, replacement: str) -> Optional[Formula]:
        left = self.left.substitute(term, replacement)
        right = self.right.substitute(term, replacement)
        if left is None or right is None:
            return None
        if left is self.left and right is self.right:
            return self
        return type(self)(left, right)

    # Left-associative by default: the right operand needs one level tighter.
    def _operand_precs(self) -> Tuple[int, int]:
        return self._prec(), self._prec() + 1

    def _render(self) -> str:
        lp, rp = self._operand_precs()
        return f"{self.left._wrapped(lp)} {self._symbol} {self.right._wrapped(rp)}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.left!r}, {self.right!r})"


@dataclass(frozen=True, eq=True, repr=False)
class And(_Binary):
    _rank = 2
    _symbol = "∧"

    def _prec(self) -> int:
        return _PREC_AND


@dataclass(frozen=True, eq=True, repr=False)
class Or(_Binary):
    _rank = 3
    _symbol = "∨"

    def _prec(self) -> int:
        return _PREC_OR


@dataclass(frozen=True, eq=True, repr=False)
class Implies(_Binary):
    _rank = 4
    _symbol = "→"

    def _prec(self) -> int:
        return _PREC_IMPLIES

    # Right-associative: a → b → c == a → (b → c)
    def _operand_precs(self) -> Tuple[int, int]:
        return _PREC_IMPLIES + 1, _PREC_IMPLIES


@dataclass(frozen=True, eq=True)
class _Quantifier(Formula):
    var: str
    body: Formula

    _symbol = "?"

    def __post_init__(self):
        _check_symbol(self.var, "Quantified variable name")

    def sort_key(self) -> tuple:
        return (self._rank, self.var, self.body.sort_key())

    def children(self) -> Tuple[Formula, ...]:
        return (self.body,)

    def free_vars(self) -> FrozenSet[str]:
        return self.body.free_vars() - {self.var}

    def substitute(self, term: str, replacement: str) -> Optional[Formula]:
        if term == self.var:
            return self   # term is rebound here: no free occurrences below
        if term not in self.body.free_vars():
            return self
        if replacement == self.var:
            return None   # would be captured by this binder
        body = self.body.substitute(term, replacement)
        if body is None:
            return None
        return type(self)(self.var, body)

    def _prec(self) -> int:
        return _PREC_QUANT

    def _render(self) -> str:
        return f"{self._symbol}{self.var}. {self.body._wrapped(_PREC_QUANT)}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.var!r}, {self.body!r})"


@dataclass(frozen=True, eq=True, repr=False)
class Forall(_Quantifier):
    _rank = 5
    _symbol = "∀"


@dataclass(frozen=True, eq=True, repr=False)
class Exists(_Quantifier):
    _rank = 6
    _symbol = "∃"


def conjoin(formulas) -> Optional[Formula]:
    """Left-nested conjunction of ``formulas`` (None when empty)."""
    result: Optional[Formula] = None
    for f in formulas:
        result = f if result is None else And(result, f)
    return result
