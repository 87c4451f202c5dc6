"""
proofwork/verification/solver.py
================================
Solver boundary — the only place that talks to an SMT engine.

Narrow capability interface:

    handle = backend.submit(query, timeout_ms)   # never blocks
    backend.cancel(handle)                       # cooperative abort
    result = handle.result()                     # SolverResult

Queries run on the backend's ThreadPoolExecutor, so the caller's thread
(grid editing) never blocks on the engine. Each query gets its own engine
state: a fresh ``z3.Context`` for Z3Backend, a fresh process for
SmtLibProcessBackend. Nothing mutable is shared between queries; the
``EncodedQuery`` and the ``SolverResult`` are immutable values.

Every call carries a mandatory timeout. Engine failures are reported as
a SolverResult with status ERROR (never raised past this boundary);
only backend *construction* raises SolverUnavailable.

Status mapping:
    Z3 unsat                    → UNSAT (with unsat core labels)
    Z3 sat                      → SAT   (with model)
    Z3 unknown "timeout"        → TIMEOUT
    Z3 unknown "canceled"       → CANCELLED
    anything else undecided     → UNKNOWN
"""
from __future__ import annotations

import logging
import shutil
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence

import z3

from proofwork.core.config import SolverConfig
from proofwork.core.exceptions import SolverUnavailable
from proofwork.core.types import SolverResult, SolverStatus
from proofwork.verification.encoder import EncodedQuery

logger = logging.getLogger(__name__)

# Prefix for assertion-tracking literals; user symbols cannot contain '!'.
TRACK_PREFIX = "track!"


# ─────────────────────────────────────────────
#  HANDLE
# ─────────────────────────────────────────────

class SolverHandle:
    """One submitted query. Thread-safe; created only by SolverBackend.submit."""

    def __init__(self, query: EncodedQuery, timeout_ms: int, solver_name: str):
        self.query = query
        self.timeout_ms = timeout_ms
        self.solver_name = solver_name
        self._future: Optional[Future] = None
        self._lock = threading.Lock()
        self._cancelled = False
        self._interrupt: Optional[Callable[[], None]] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def done(self) -> bool:
        return self._future is not None and self._future.done()

    def result(self, timeout: Optional[float] = None) -> SolverResult:
        """Block until the engine answers (``timeout`` in seconds, None = engine timeout)."""
        try:
            return self._future.result(timeout)
        except CancelledError:
            return SolverResult(
                status=SolverStatus.CANCELLED,
                reason="cancelled before the query started",
                solver_name=self.solver_name,
            )

    def add_done_callback(self, fn: Callable[["SolverHandle"], None]) -> None:
        self._future.add_done_callback(lambda _f: fn(self))

    # ─── used by backends ──────────────────────────────────────────

    def _set_interrupt(self, interrupt: Callable[[], None]) -> bool:
        """Register how to abort the running engine. False if already cancelled."""
        with self._lock:
            if self._cancelled:
                return False
            self._interrupt = interrupt
            return True

    def _request_cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            interrupt = self._interrupt
        if self._future is not None and self._future.cancel():
            return
        if interrupt is not None:
            interrupt()


# ─────────────────────────────────────────────
#  BACKEND BASE
# ─────────────────────────────────────────────

class SolverBackend(ABC):
    """Abstract solver engine with asynchronous, cancellable queries.

    Subclasses implement ``_run(handle)``: solve ``handle.query`` within
    ``handle.timeout_ms``, registering an interrupt via
    ``handle._set_interrupt`` as soon as one exists.
    """

    name = "abstract"

    def __init__(self, max_workers: int = 2):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=f"proofwork-{self.name}"
        )

    def submit(self, query: EncodedQuery, timeout_ms: int) -> SolverHandle:
        if timeout_ms <= 0:
            raise ValueError("Solver timeout must be positive")
        handle = SolverHandle(query, timeout_ms, self.name)
        handle._future = self._executor.submit(self._run_guarded, handle)
        logger.debug("Submitted query %s to %s (timeout %d ms)",
                     query.digest[:12], self.name, timeout_ms)
        return handle

    def cancel(self, handle: SolverHandle) -> None:
        """Abort ``handle``. Idempotent; a finished query keeps its result."""
        if handle.done():
            return
        logger.debug("Cancelling query %s on %s", handle.query.digest[:12], self.name)
        handle._request_cancel()

    def solve(self, query: EncodedQuery, timeout_ms: int) -> SolverResult:
        """Blocking convenience: submit and wait."""
        return self.submit(query, timeout_ms).result()

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "SolverBackend":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()

    def _run_guarded(self, handle: SolverHandle) -> SolverResult:
        if handle.cancelled:
            return self._cancelled_result(handle, 0.0)
        start = time.perf_counter()
        try:
            result = self._run(handle)
        except Exception as exc:
            logger.warning("Solver %s failed on query %s: %s",
                           self.name, handle.query.digest[:12], exc, exc_info=True)
            result = SolverResult(
                status=SolverStatus.ERROR,
                reason=f"{type(exc).__name__}: {exc}",
                elapsed_ms=(time.perf_counter() - start) * 1000,
                solver_name=self.name,
            )
        if result.status in (SolverStatus.TIMEOUT, SolverStatus.CANCELLED):
            logger.warning("Solver %s: %s after %.1f ms (%s)",
                           self.name, result.status.value, result.elapsed_ms, result.reason)
        else:
            logger.info("Solver %s: %s in %.1f ms",
                        self.name, result.status.value, result.elapsed_ms)
        return result

    def _cancelled_result(self, handle: SolverHandle, elapsed_ms: float) -> SolverResult:
        return SolverResult(
            status=SolverStatus.CANCELLED, reason="cancelled",
            elapsed_ms=elapsed_ms, solver_name=self.name,
        )

    @abstractmethod
    def _run(self, handle: SolverHandle) -> SolverResult:
        ...


# ─────────────────────────────────────────────
#  Z3 (in-process)
# ─────────────────────────────────────────────

class Z3Backend(SolverBackend):
    """In-process Z3 via the ``z3-solver`` bindings.

    One ``z3.Context`` per query: contexts are not shared across threads,
    and ``Context.interrupt()`` is the supported way to abort a running
    ``check()`` from another thread.
    """

    name = "z3"

    def _run(self, handle: SolverHandle) -> SolverResult:
        query = handle.query
        ctx = z3.Context()
        if not handle._set_interrupt(ctx.interrupt):
            return self._cancelled_result(handle, 0.0)

        start = time.perf_counter()
        text = "\n".join(
            line for line in query.smt2.splitlines() if not line.startswith("(check-sat")
        )
        try:
            assertions = z3.parse_smt2_string(text, ctx=ctx)
        except z3.Z3Exception as exc:
            return SolverResult(
                status=SolverStatus.ERROR, reason=f"Z3 rejected the query: {exc}",
                solver_name=self.name,
            )

        solver = z3.Solver(ctx=ctx)
        solver.set("timeout", int(handle.timeout_ms))
        tracked = len(assertions) == len(query.labels)
        for i, assertion in enumerate(assertions):
            if tracked:
                solver.assert_and_track(assertion, z3.Bool(TRACK_PREFIX + query.labels[i], ctx))
            else:
                solver.add(assertion)

        outcome = solver.check()
        elapsed_ms = (time.perf_counter() - start) * 1000

        if outcome == z3.unsat:
            core = tuple(sorted(
                str(c)[len(TRACK_PREFIX):] for c in solver.unsat_core()
                if str(c).startswith(TRACK_PREFIX)
            ))
            return SolverResult(status=SolverStatus.UNSAT, unsat_core=core,
                                elapsed_ms=elapsed_ms, solver_name=self.name)
        if outcome == z3.sat:
            return SolverResult(status=SolverStatus.SAT, model=self._model_dict(solver.model()),
                                elapsed_ms=elapsed_ms, solver_name=self.name)

        reason = solver.reason_unknown()
        if handle.cancelled or "cancel" in reason:
            status = SolverStatus.CANCELLED
        elif "timeout" in reason:
            status = SolverStatus.TIMEOUT
        else:
            status = SolverStatus.UNKNOWN
        return SolverResult(status=status, reason=reason,
                            elapsed_ms=elapsed_ms, solver_name=self.name)

    @staticmethod
    def _model_dict(model) -> Dict[str, str]:
        out: Dict[str, str] = {}
        for decl in model.decls():
            name = decl.name()
            if name.startswith(TRACK_PREFIX):
                continue
            out[name] = str(model[decl])
        return dict(sorted(out.items()))


# ─────────────────────────────────────────────
#  EXTERNAL SMT-LIB2 PROCESS
# ─────────────────────────────────────────────

class SmtLibProcessBackend(SolverBackend):
    """Any SMT-LIB2 binary reading the query on stdin (cvc5, z3 -in, …).

    The engine-side time limit is passed on the command line where the
    binary is known; a wall-clock limit slightly above it kills the
    process regardless. Cancellation kills the process.
    """

    name = "process"

    # Extra grace before the wall-clock kill, in seconds.
    KILL_GRACE_S = 2.0

    def __init__(self, command: Sequence[str] = ("cvc5", "--lang=smt2"), max_workers: int = 2):
        if not command:
            raise SolverUnavailable("Empty solver command")
        if shutil.which(command[0]) is None:
            raise SolverUnavailable(
                f"Solver binary '{command[0]}' not found on PATH",
                context={"command": list(command)},
            )
        self.command = tuple(command)
        self.name = command[0].rsplit("/", 1)[-1]
        super().__init__(max_workers=max_workers)

    def _argv(self, timeout_ms: int) -> List[str]:
        argv = list(self.command)
        if self.name.startswith("cvc"):
            argv.append(f"--tlimit-per={timeout_ms}")
        elif self.name == "z3":
            if "-in" not in argv:
                argv.append("-in")
            argv.append(f"-t:{timeout_ms}")
        return argv

    def _run(self, handle: SolverHandle) -> SolverResult:
        start = time.perf_counter()
        proc = subprocess.Popen(
            self._argv(handle.timeout_ms),
            stdin=subprocess.PIPE, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
            text=True,
        )
        if not handle._set_interrupt(proc.kill):
            proc.kill()
            proc.communicate()
            return self._cancelled_result(handle, 0.0)

        try:
            out, err = proc.communicate(
                input=handle.query.smt2,
                timeout=handle.timeout_ms / 1000 + self.KILL_GRACE_S,
            )
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            return SolverResult(
                status=SolverStatus.TIMEOUT, reason="wall-clock limit exceeded",
                elapsed_ms=(time.perf_counter() - start) * 1000, solver_name=self.name,
            )
        elapsed_ms = (time.perf_counter() - start) * 1000

        if handle.cancelled:
            return self._cancelled_result(handle, elapsed_ms)

        first = out.strip().splitlines()[0].strip() if out.strip() else ""
        if first == "unsat":
            status, reason = SolverStatus.UNSAT, ""
        elif first == "sat":
            status, reason = SolverStatus.SAT, ""
        elif first in ("unknown", "timeout"):
            status = SolverStatus.TIMEOUT if first == "timeout" else SolverStatus.UNKNOWN
            reason = first
        else:
            status = SolverStatus.ERROR
            reason = (err.strip() or out.strip() or f"exit code {proc.returncode}")[:500]
        return SolverResult(status=status, reason=reason,
                            elapsed_ms=elapsed_ms, solver_name=self.name)


# ─────────────────────────────────────────────
#  FACTORY
# ─────────────────────────────────────────────

def make_backend(config: Optional[SolverConfig] = None) -> SolverBackend:
    """Construct the backend selected by ``config.backend``.

    Raises:
        SolverUnavailable: the configured engine cannot be used.
    """
    config = config or SolverConfig()
    if config.backend == "process":
        return SmtLibProcessBackend(config.process_command, max_workers=config.max_workers)
    return Z3Backend(max_workers=config.max_workers)
