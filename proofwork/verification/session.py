"""
proofwork/verification/session.py
=================================
VerificationSession — per-attempt state machine around a ProofVerifier.

States:
    EDITING ──submit──▶ CHECKING ──▶ VALID | INVALID | UNKNOWN
       ▲                                         │
       └──────────────── any graph edit ─────────┘

Threading model:
    - The graph is only read on the calling (grid/input) thread: rule
      checking, encoding and hint preparation happen inside submit_*.
    - Solver work runs on the backend's pool (checks) or on the session's
      single worker thread (hints, which chain several solver calls).
    - At most one request is in flight. A new request cancels the old
      one through the backend; a superseded result is never published:
      its Future is cancelled and the session state ignores it.
    - An edit is noticed through ``graph.revision``: a verdict describing
      an older revision is discarded and the session reads EDITING.

Sessions are independent: two sessions (e.g. two editor tabs) may check
in parallel against the same backend.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Optional

from proofwork.core.types import HintResult, Verdict, VerdictKind
from proofwork.graph.proof_graph import ProofGraph
from proofwork.verification.rules import RuleReport, check_rules
from proofwork.verification.solver import SolverHandle
from proofwork.verification.verifier import CheckJob, HintJob, ProofVerifier

logger = logging.getLogger(__name__)


class SessionState(Enum):
    EDITING  = "editing"
    CHECKING = "checking"
    VALID    = "valid"
    INVALID  = "invalid"
    UNKNOWN  = "unknown"


_VERDICT_STATE = {
    VerdictKind.VALID:   SessionState.VALID,
    VerdictKind.INVALID: SessionState.INVALID,
    VerdictKind.UNKNOWN: SessionState.UNKNOWN,
}


class _Request:
    """The single in-flight request of a session."""

    def __init__(self, generation: int, revision: int, future: Future):
        self.generation = generation
        self.revision = revision
        self.future = future
        self.handle: Optional[SolverHandle] = None
        self.hint_job: Optional[HintJob] = None


class VerificationSession:
    """One puzzle attempt: a graph, its verifier, and the latest verdict.

    Usage:
        session = VerificationSession(graph, verifier)
        future = session.submit_check()      # returns immediately
        ...                                  # player keeps editing
        verdict = future.result()
    """

    def __init__(self, graph: ProofGraph, verifier: ProofVerifier):
        self.graph = graph
        self.verifier = verifier
        self._lock = threading.Lock()
        self._state = SessionState.EDITING
        self._verdict: Optional[Verdict] = None
        self._verdict_revision: Optional[int] = None
        self._generation = 0
        self._inflight: Optional[_Request] = None
        self._report: Optional[RuleReport] = None
        self._hint_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="proofwork-hint")

    # ─── STATE ─────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        self._sync()
        return self._state

    @property
    def verdict(self) -> Optional[Verdict]:
        """Latest verdict, or None once the graph has been edited since."""
        self._sync()
        return self._verdict

    def _sync(self) -> None:
        revision = self.graph.revision
        with self._lock:
            if self._verdict is not None and self._verdict_revision != revision:
                logger.debug("Graph edited (rev %d): discarding verdict for rev %s",
                             revision, self._verdict_revision)
                self._verdict = None
                self._verdict_revision = None
                if self._inflight is None:
                    self._state = SessionState.EDITING
            stale = self._inflight is not None and self._inflight.revision != revision
        if stale:
            self._cancel_inflight()

    def live_report(self) -> RuleReport:
        """Rule-checker report for the current revision (cheap, cached)."""
        if self._report is None or self._report.graph_revision != self.graph.revision:
            self._report = check_rules(self.graph, self.verifier.config.checker)
        return self._report

    # ─── REQUESTS ──────────────────────────────────────────────────

    def submit_check(self) -> "Future[Verdict]":
        """Start verifying the current graph; cancels any in-flight request."""
        self._sync()
        self._cancel_inflight()
        job = self.verifier.prepare_check(self.graph)
        request = self._begin(job.report.graph_revision)

        if job.early is not None:
            self._finish(request, job.early, verdict=job.early)
            return request.future

        handle = self.verifier.backend.submit(job.query, self.verifier.config.solver.check_timeout_ms)
        request.handle = handle
        handle.add_done_callback(lambda h: self._on_check_done(request, job, h))
        return request.future

    def submit_hint(self, goal=None) -> "Future[HintResult]":
        """Start computing a hint; cancels any in-flight request."""
        self._sync()
        self._cancel_inflight()
        job = self.verifier.prepare_hint(self.graph, goal)
        request = self._begin(self.graph.revision)
        request.hint_job = job
        inner = self._hint_pool.submit(self.verifier.run_hint, job)
        inner.add_done_callback(lambda f: self._on_hint_done(request, f))
        return request.future

    def check(self) -> Verdict:
        return self.submit_check().result()

    def hint(self, goal=None) -> HintResult:
        return self.submit_hint(goal).result()

    def cancel(self) -> None:
        """Abort the in-flight request, if any."""
        self._cancel_inflight()

    def close(self) -> None:
        self.cancel()
        self._hint_pool.shutdown(wait=False)

    # ─── INTERNALS ─────────────────────────────────────────────────

    def _begin(self, revision: int) -> _Request:
        future: Future = Future()
        with self._lock:
            self._generation += 1
            request = _Request(self._generation, revision, future)
            self._inflight = request
            self._state = SessionState.CHECKING
        return request

    def _settled_state(self) -> SessionState:
        if self._verdict is not None:
            return _VERDICT_STATE[self._verdict.kind]
        return SessionState.EDITING

    def _cancel_inflight(self) -> None:
        with self._lock:
            request = self._inflight
            self._inflight = None
            if request is None:
                return
            self._state = self._settled_state()
        request.future.cancel()
        logger.debug("Superseding request %d (rev %d)", request.generation, request.revision)
        if request.handle is not None:
            self.verifier.backend.cancel(request.handle)
        if request.hint_job is not None:
            request.hint_job.cancel(self.verifier.backend)

    def _claim(self, request: _Request) -> bool:
        """Make ``request`` no longer in flight; False if it was superseded."""
        if request.future.cancelled() or self._inflight is not request:
            logger.debug("Discarding superseded result of request %d", request.generation)
            return False
        self._inflight = None
        return True

    def _finish(self, request: _Request, value, verdict: Optional[Verdict] = None) -> None:
        with self._lock:
            if not self._claim(request):
                return
            if verdict is not None:
                self._verdict = verdict
                self._verdict_revision = request.revision
            self._state = self._settled_state()
        request.future.set_result(value)

    def _fail(self, request: _Request, exc: BaseException) -> None:
        with self._lock:
            if not self._claim(request):
                return
            self._state = self._settled_state()
        request.future.set_exception(exc)

    def _on_check_done(self, request: _Request, job: CheckJob, handle: SolverHandle) -> None:
        try:
            verdict = self.verifier.interpret_check(job, handle.result())
        except Exception as exc:
            self._fail(request, exc)
            return
        self._finish(request, verdict, verdict=verdict)

    def _on_hint_done(self, request: _Request, inner: Future) -> None:
        if inner.cancelled():
            return
        exc = inner.exception()
        if exc is not None:
            self._fail(request, exc)
        else:
            self._finish(request, inner.result())
