"""
tests/conftest.py
=================
Shared pytest fixtures for all proofwork tests.
"""

import threading

import pytest

from proofwork.core.types import RuleKind, SolverResult, SolverStatus
from proofwork.graph.proof_graph import ProofGraph
from proofwork.logic.formula import And, Atom
from proofwork.verification.solver import SolverBackend, Z3Backend
from proofwork.verification.verifier import ProofVerifier


# ─── FORMULAS ─────────────────────────────────────────────────────


@pytest.fixture
def P():
    return Atom("P")


@pytest.fixture
def Q():
    return Atom("Q")


@pytest.fixture
def R():
    return Atom("R")


# ─── GRAPHS ───────────────────────────────────────────────────────


def build_and_graph(target, premises=None):
    """Assumption(P), Assumption(Q) → AndIntro → Goal, with ``target``."""
    P, Q = Atom("P"), Atom("Q")
    graph = ProofGraph(target=target, premises=premises)
    ids = {
        "p": graph.add_piece(RuleKind.ASSUMPTION, (1, 1), formula=P),
        "q": graph.add_piece(RuleKind.ASSUMPTION, (1, 3), formula=Q),
        "and": graph.add_piece(RuleKind.AND_INTRO, (3, 2)),
        "goal": graph.add_piece(RuleKind.GOAL, (5, 2)),
    }
    graph.wire(ids["and"], 0, ids["p"])
    graph.wire(ids["and"], 1, ids["q"])
    graph.wire(ids["goal"], 0, ids["and"])
    return graph, ids


@pytest.fixture
def and_graph(P, Q):
    return build_and_graph(And(P, Q), premises=[P, Q])


@pytest.fixture
def swapped_and_graph(P, Q):
    return build_and_graph(And(Q, P), premises=[P, Q])


@pytest.fixture
def goal_only_graph(P, Q):
    graph = ProofGraph(target=And(P, Q), premises=[P, Q])
    goal = graph.add_piece(RuleKind.GOAL, (5, 2))
    return graph, goal


# ─── SOLVER BACKENDS ──────────────────────────────────────────────


class ScriptedBackend(SolverBackend):
    """Fake solver returning scripted results in order (UNSAT when exhausted).

    With ``block=True`` every query waits for ``release`` (or for a
    cancellation), which lets tests observe in-flight behaviour.
    """

    name = "scripted"

    def __init__(self, results=None, block=False):
        super().__init__(max_workers=4)
        self.results = list(results or [])
        self.queries = []
        self.started = threading.Event()
        self.release = threading.Event()
        self.cancelled_runs = 0
        if not block:
            self.release.set()

    def _run(self, handle):
        self.queries.append(handle.query)
        interrupted = threading.Event()
        if not handle._set_interrupt(interrupted.set):
            return self._cancelled_result(handle, 0.0)
        self.started.set()
        while not self.release.wait(0.01):
            if interrupted.is_set():
                break
        if interrupted.is_set():
            self.cancelled_runs += 1
            return SolverResult(status=SolverStatus.CANCELLED, reason="canceled",
                                solver_name=self.name)
        if self.results:
            return self.results.pop(0)
        return SolverResult(status=SolverStatus.UNSAT, solver_name=self.name)


@pytest.fixture
def scripted_backend():
    backends = []

    def make(results=None, block=False):
        backend = ScriptedBackend(results, block)
        backends.append(backend)
        return backend

    yield make
    for backend in backends:
        backend.release.set()
        backend.shutdown()


@pytest.fixture
def z3_backend():
    backend = Z3Backend(max_workers=2)
    yield backend
    backend.shutdown()


@pytest.fixture
def verifier(z3_backend):
    return ProofVerifier(backend=z3_backend)


@pytest.fixture
def make_and_graph():
    return build_and_graph
