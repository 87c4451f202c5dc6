"""
proofwork/logic/parser.py
=========================
Text → Formula parser for puzzle definitions and tests.

Accepted notation (ASCII and Unicode may be mixed):

    negation     ~P   !P   ¬P
    conjunction  P & Q    P /\\ Q    P ∧ Q      (left-associative)
    disjunction  P | Q    P \\/ Q    P ∨ Q      (left-associative)
    implication  P -> Q   P => Q    P → Q      (right-associative)
    quantifiers  forall x. P(x)   ∀x. P(x)   exists x. P(x)   ∃x. P(x)
    atoms        P   Raining   Likes(alice, x)

Precedence (tightest first): ¬, ∧, ∨, →, quantifier bodies extend as
far right as possible. ``parse_formula(f.pretty()) == f`` holds for every
formula produced by the model.
"""

from __future__ import annotations

import re
from typing import List, Tuple

from proofwork.core.exceptions import FormulaSyntaxError
from proofwork.logic.formula import And, Atom, Exists, Forall, Formula, Implies, Not, Or

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<arrow>->|=>|→)"
    r"|(?P<and>&|/\\|∧)"
    r"|(?P<or>\||\\/|∨)"
    r"|(?P<not>~|!|¬)"
    r"|(?P<forall>∀)"
    r"|(?P<exists>∃)"
    r"|(?P<ident>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<punct>[(),.])"
    r")"
)

KEYWORDS = {"forall": "forall", "exists": "exists"}

Token = Tuple[str, str, int]   # (kind, text, position)


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    end = len(text.rstrip())
    while pos < end:
        m = _TOKEN_RE.match(text, pos)
        if m is None or m.end() == pos:
            bad = len(text) - len(text[pos:].lstrip())
            raise FormulaSyntaxError("Unexpected character", text, bad)
        kind = m.lastgroup
        value = m.group(kind)
        start = m.start(kind)
        if kind == "ident" and value in KEYWORDS:
            kind = KEYWORDS[value]
        elif kind == "punct":
            kind = value
        tokens.append((kind, value, start))
        pos = m.end()
    tokens.append(("eof", "", end))
    return tokens


class _Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0

    # ─── TOKEN HELPERS ─────────────────────────────────────────────

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        tok = self.tokens[self.index]
        self.index += 1
        return tok

    def expect(self, kind: str, what: str) -> Token:
        tok = self.current
        if tok[0] != kind:
            raise FormulaSyntaxError(f"Expected {what}, found {tok[1]!r}", self.text, tok[2])
        return self.advance()

    # ─── GRAMMAR ───────────────────────────────────────────────────

    def parse(self) -> Formula:
        formula = self.implication()
        if self.current[0] != "eof":
            raise FormulaSyntaxError(
                f"Unexpected trailing {self.current[1]!r}", self.text, self.current[2]
            )
        return formula

    def implication(self) -> Formula:
        left = self.disjunction()
        if self.current[0] == "arrow":
            self.advance()
            return Implies(left, self.implication())
        return left

    def disjunction(self) -> Formula:
        left = self.conjunction()
        while self.current[0] == "or":
            self.advance()
            left = Or(left, self.conjunction())
        return left

    def conjunction(self) -> Formula:
        left = self.unary()
        while self.current[0] == "and":
            self.advance()
            left = And(left, self.unary())
        return left

    def unary(self) -> Formula:
        kind = self.current[0]
        if kind == "not":
            self.advance()
            return Not(self.unary())
        if kind in ("forall", "exists"):
            self.advance()
            var = self.expect("ident", "bound variable")[1]
            self.expect(".", "'.' after bound variable")
            body = self.implication()
            return Forall(var, body) if kind == "forall" else Exists(var, body)
        return self.primary()

    def primary(self) -> Formula:
        tok = self.current
        if tok[0] == "(":
            self.advance()
            inner = self.implication()
            self.expect(")", "')'")
            return inner
        if tok[0] == "ident":
            self.advance()
            if self.current[0] != "(":
                return Atom(tok[1])
            self.advance()
            args = [self.expect("ident", "term name")[1]]
            while self.current[0] == ",":
                self.advance()
                args.append(self.expect("ident", "term name")[1])
            self.expect(")", "')' closing argument list")
            return Atom(tok[1], tuple(args))
        raise FormulaSyntaxError(f"Expected formula, found {tok[1]!r}", self.text, tok[2])


def parse_formula(text: str) -> Formula:
    """Parse ``text`` into a Formula.

    Raises:
        FormulaSyntaxError: on any lexical or grammatical error.
    """
    if not text or not text.strip():
        raise FormulaSyntaxError("Empty formula", text or "", 0)
    return _Parser(text).parse()
