"""
proofwork/verification/encoder.py
=================================
SMT Encoder — lowers a rule-checked proof graph to an SMT-LIB2 query.

Query shape (valid iff the solver answers UNSAT):

    hypotheses H1 … Hn  (open assumptions of the goal's derivation)
    (assert H1) … (assert Hn)
    (assert (not G))    where G is the goal's derived formula
    (check-sat)

Encoding rules:
    Atom P               → Bool constant ``P``
    Atom P(t1, …, tk)    → uninterpreted predicate ``(declare-fun P (Obj … Obj) Bool)``
    free term t          → ``(declare-const t Obj)``
    bound variable x     → renamed ``x!n`` (n counts binders over the whole
                           query, in traversal order) so that equal surface
                           names in different pieces never clash and never
                           collide with user symbols (Formula rejects any
                           user symbol containing '!')

The logic is QF_UF for propositional queries, UF once a quantifier is
emitted. Quantifiers are preserved structurally; the solver's own
quantifier handling is used. With ``EncoderConfig.skolemize_hypotheses``
positive existentials in hypotheses (reached through ∧ / ∀ only) become
Skolem constants or functions ``sk!n``.

Encoding is a pure function of its inputs: declarations are sorted by
name and counters restart per query, so the same graph state always
yields byte-identical text (and the same digest).

Inconsistent signatures (one name used with two arities, or both as a
term and as a predicate) raise EncodingError naming the piece whose
formula introduced the clash.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from proofwork.core.config import EncoderConfig
from proofwork.core.exceptions import EncodingError
from proofwork.logic.formula import And, Atom, Exists, Forall, Formula, Implies, Not, Or
from proofwork.verification.rules import RuleReport

logger = logging.getLogger(__name__)

# Symbols that must be written as |quoted| to be read as user symbols.
SMT_RESERVED = frozenset({
    "and", "or", "not", "xor", "true", "false", "ite", "distinct", "let",
    "forall", "exists", "match", "par", "as", "assert", "check-sat",
    "declare-const", "declare-fun", "declare-sort", "define-fun", "Bool",
    "Int", "Real", "NUMERAL", "DECIMAL", "STRING", "BINARY", "HEXADECIMAL",
})

_SIMPLE_SYMBOL_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

GOAL_LABEL = "goal"


@dataclass(frozen=True)
class EncodedQuery:
    """Immutable solver input, safe to hand to another thread.

    ``labels`` has one entry per ``(assert …)`` in ``smt2``, in order
    (``hyp_<piece id>`` / ``goal``), so solvers can report unsat cores.
    """
    smt2:        str
    labels:      Tuple[str, ...]
    symbols:     Tuple[str, ...]
    logic:       str
    digest:      str
    hypotheses:  Tuple[Formula, ...]
    conclusion:  Formula


def quote_symbol(name: str) -> str:
    if name in SMT_RESERVED or not _SIMPLE_SYMBOL_RE.match(name):
        return f"|{name}|"
    return name


# ─────────────────────────────────────────────
#  EMITTER
# ─────────────────────────────────────────────

class _Emitter:
    """Stateful single-query translator. One instance per query."""

    def __init__(self, config: EncoderConfig):
        self.config = config
        self.sort = quote_symbol(config.sort_name)
        # name → arity for predicates (0 = proposition), None for Obj constants
        self.signature: Dict[str, Optional[int]] = {}
        self.skolems: Dict[str, int] = {}   # skolem symbol → arity
        self.binder_count = 0
        self.skolem_count = 0
        self.quantified = False
        self.first_order = False
        self.current_piece: Optional[int] = None

    # ─── SIGNATURE ─────────────────────────────────────────────────

    def _declare(self, name: str, kind: Optional[int]) -> None:
        known = self.signature.get(name, kind)
        if name in self.signature and known != kind:
            def describe(k):
                return "an individual term" if k is None else f"a predicate of arity {k}"
            raise EncodingError(
                f"Symbol '{name}' used both as {describe(known)} and as {describe(kind)}",
                piece_id=self.current_piece,
                context={"symbol": name},
            )
        self.signature[name] = kind

    # ─── FORMULAS ──────────────────────────────────────────────────

    def emit(self, f: Formula, env: Dict[str, str], universals: Tuple[str, ...] = (),
             skolemize: bool = False) -> str:
        if isinstance(f, Atom):
            self._declare(f.name, f.arity)
            if not f.args:
                return quote_symbol(f.name)
            self.first_order = True
            terms = [self._term(a, env) for a in f.args]
            return f"({quote_symbol(f.name)} {' '.join(terms)})"
        if isinstance(f, Not):
            return f"(not {self.emit(f.operand, env)})"
        if isinstance(f, And):
            left = self.emit(f.left, env, universals, skolemize)
            right = self.emit(f.right, env, universals, skolemize)
            return f"(and {left} {right})"
        if isinstance(f, Or):
            return f"(or {self.emit(f.left, env)} {self.emit(f.right, env)})"
        if isinstance(f, Implies):
            return f"(=> {self.emit(f.left, env)} {self.emit(f.right, env)})"
        if isinstance(f, Forall):
            self.first_order = True
            name = self._fresh_binder(f.var)
            body = self.emit(f.body, {**env, f.var: name}, universals + (name,), skolemize)
            self.quantified = True
            return f"(forall (({name} {self.sort})) {body})"
        if isinstance(f, Exists):
            self.first_order = True
            if skolemize:
                witness = self._skolem(universals)
                return self.emit(f.body, {**env, f.var: witness}, universals, skolemize)
            name = self._fresh_binder(f.var)
            body = self.emit(f.body, {**env, f.var: name})
            self.quantified = True
            return f"(exists (({name} {self.sort})) {body})"
        raise EncodingError(
            f"Cannot encode formula node {type(f).__name__}", piece_id=self.current_piece
        )

    def _term(self, name: str, env: Dict[str, str]) -> str:
        if name in env:
            return env[name]
        self._declare(name, None)
        return quote_symbol(name)

    def _fresh_binder(self, surface: str) -> str:
        self.binder_count += 1
        return f"{surface}!{self.binder_count}"

    def _skolem(self, universals: Tuple[str, ...]) -> str:
        self.skolem_count += 1
        name = f"sk!{self.skolem_count}"
        self.skolems[name] = len(universals)
        if not universals:
            return name
        return f"({name} {' '.join(universals)})"

    # ─── DECLARATIONS ──────────────────────────────────────────────

    def declarations(self) -> List[str]:
        lines: List[str] = []
        for name in sorted(self.signature):
            kind = self.signature[name]
            symbol = quote_symbol(name)
            if kind is None:
                lines.append(f"(declare-const {symbol} {self.sort})")
            elif kind == 0:
                lines.append(f"(declare-const {symbol} Bool)")
            else:
                lines.append(f"(declare-fun {symbol} ({' '.join([self.sort] * kind)}) Bool)")
        for name in sorted(self.skolems, key=lambda s: int(s.split("!")[1])):
            arity = self.skolems[name]
            if arity == 0:
                lines.append(f"(declare-const {name} {self.sort})")
            else:
                lines.append(f"(declare-fun {name} ({' '.join([self.sort] * arity)}) {self.sort})")
        return lines


# ─────────────────────────────────────────────
#  PUBLIC API
# ─────────────────────────────────────────────

def encode_entailment(
    hypotheses: Sequence[Formula],
    goal: Formula,
    config: Optional[EncoderConfig] = None,
    labels: Optional[Sequence[str]] = None,
    sources: Optional[Sequence[Optional[int]]] = None,
    goal_source: Optional[int] = None,
    title: str = "entailment",
) -> EncodedQuery:
    """Encode ``hypotheses ⊨ goal`` as an SMT-LIB2 unsatisfiability query.

    Args:
        labels:      per-hypothesis assertion labels (default ``hyp_1`` …).
        sources:     per-hypothesis piece ids, used only for error reports.
        goal_source: piece id reported when the goal fails to encode.
        title:       free text for the header comment.

    Raises:
        EncodingError: on an inconsistent symbol signature.
    """
    config = config or EncoderConfig()
    hypotheses = tuple(hypotheses)
    labels = tuple(labels) if labels is not None else tuple(
        f"hyp_{i}" for i in range(1, len(hypotheses) + 1)
    )
    sources = tuple(sources) if sources is not None else (None,) * len(hypotheses)
    if len(labels) != len(hypotheses) or len(sources) != len(hypotheses):
        raise ValueError("labels and sources must match hypotheses one-to-one")

    emitter = _Emitter(config)
    asserts: List[str] = []
    for formula, label, source in zip(hypotheses, labels, sources):
        emitter.current_piece = source
        body = emitter.emit(formula, {}, skolemize=config.skolemize_hypotheses)
        asserts.append(f"(assert {body}) ; {label}")
    emitter.current_piece = goal_source
    asserts.append(f"(assert (not {emitter.emit(goal, {})})) ; {GOAL_LABEL}")

    logic = "UF" if emitter.quantified else "QF_UF"
    lines = [
        f"; proofwork {title}",
        f"; {' ∧ '.join(h.pretty() for h in hypotheses) or '⊤'} ⊢ {goal.pretty()}",
        f"(set-logic {logic})",
    ]
    if emitter.first_order:
        lines.append(f"(declare-sort {emitter.sort} 0)")
    lines.extend(emitter.declarations())
    lines.extend(asserts)
    lines.append("(check-sat)")
    smt2 = "\n".join(lines) + "\n"

    query = EncodedQuery(
        smt2=smt2,
        labels=labels + (GOAL_LABEL,),
        symbols=tuple(sorted(emitter.signature)),
        logic=logic,
        digest=hashlib.sha256(smt2.encode("utf-8")).hexdigest(),
        hypotheses=hypotheses,
        conclusion=goal,
    )
    logger.debug(
        "Encoded %s: %d hypothesis(es), logic %s, digest %s",
        title, len(hypotheses), logic, query.digest[:12],
    )
    return query


def encode_proof(report: RuleReport, config: Optional[EncoderConfig] = None,
                 title: Optional[str] = None) -> EncodedQuery:
    """Encode the goal derivation described by ``report``.

    Hypotheses are the goal's open assumptions, ordered by piece id and
    structurally de-duplicated; the goal's derived formula is the conclusion.

    Raises:
        EncodingError: the goal is not derived, or the signature is inconsistent.
    """
    derived = report.goal_derived
    if derived is None:
        raise EncodingError("Goal is not derived; nothing to encode", piece_id=report.goal_id)
    hyps = report.hypotheses()
    return encode_entailment(
        [f for _, f in hyps],
        derived.formula,
        config=config,
        labels=[f"hyp_{pid}" for pid, _ in hyps],
        sources=[pid for pid, _ in hyps],
        goal_source=report.goal_id,
        title=title or f"proof rev {report.graph_revision}",
    )


# ─────────────────────────────────────────────
#  ISABELLE EXPORT
# ─────────────────────────────────────────────

def _isabelle(f: Formula) -> str:
    if isinstance(f, Atom):
        if not f.args:
            return f.name
        return f"({f.name} {' '.join(f.args)})"
    if isinstance(f, Not):
        return f"(\\<not> {_isabelle(f.operand)})"
    if isinstance(f, And):
        return f"({_isabelle(f.left)} \\<and> {_isabelle(f.right)})"
    if isinstance(f, Or):
        return f"({_isabelle(f.left)} \\<or> {_isabelle(f.right)})"
    if isinstance(f, Implies):
        return f"({_isabelle(f.left)} \\<longrightarrow> {_isabelle(f.right)})"
    if isinstance(f, Forall):
        return f"(\\<forall>{f.var}. {_isabelle(f.body)})"
    if isinstance(f, Exists):
        return f"(\\<exists>{f.var}. {_isabelle(f.body)})"
    raise EncodingError(f"Cannot export formula node {type(f).__name__}")


def isabelle_theory(query: EncodedQuery, name: str) -> str:
    """Isabelle/HOL theory stating the query's entailment as a lemma."""
    ident = re.sub(r"[^A-Za-z0-9_]", "_", name) or "proof"
    if not ident[0].isalpha():
        ident = "p_" + ident
    lines = [f"theory {ident}", "  imports Main", "begin", "", f"lemma {ident}:"]
    for i, h in enumerate(query.hypotheses, 1):
        keyword = "assumes" if i == 1 else "    and"
        lines.append(f"  {keyword} h{i}: \"{_isabelle(h)}\"")
    lines.append(f"  shows \"{_isabelle(query.conclusion)}\"")
    lines.append("  using assms by blast" if query.hypotheses else "  by blast")
    lines.extend(["", "end", ""])
    return "\n".join(lines)
