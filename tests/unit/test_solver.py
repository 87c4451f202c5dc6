"""
tests/unit/test_solver.py
=========================
Tests for proofwork/verification/solver.py — Z3 backend answers,
asynchronous submission, cancellation and the process backend factory.
"""

import threading

import pytest

from proofwork.core.config import SolverConfig
from proofwork.core.exceptions import SolverUnavailable
from proofwork.core.types import SolverResult, SolverStatus
from proofwork.logic.parser import parse_formula
from proofwork.verification.encoder import encode_entailment
from proofwork.verification.solver import (
    SmtLibProcessBackend,
    SolverBackend,
    Z3Backend,
    make_backend,
)


def query(hyps, goal):
    return encode_entailment([parse_formula(h) for h in hyps], parse_formula(goal))


class FailingBackend(SolverBackend):
    name = "failing"

    def _run(self, handle):
        raise RuntimeError("engine exploded")


@pytest.mark.z3
class TestZ3Backend:
    def test_valid_entailment_is_unsat(self, z3_backend):
        result = z3_backend.solve(query(["P", "Q"], "P & Q"), 5000)
        assert result.status == SolverStatus.UNSAT
        assert result.solver_name == "z3"
        assert "goal" in result.unsat_core

    def test_unsat_core_omits_unused_hypothesis(self, z3_backend):
        result = z3_backend.solve(query(["P", "Q"], "P"), 5000)
        assert result.status == SolverStatus.UNSAT
        assert {"goal", "hyp_1"} <= set(result.unsat_core)

    def test_invalid_entailment_has_countermodel(self, z3_backend):
        result = z3_backend.solve(query(["P"], "Q"), 5000)
        assert result.status == SolverStatus.SAT
        assert result.model["P"] == "True"
        assert result.model["Q"] == "False"

    def test_first_order_entailment(self, z3_backend):
        result = z3_backend.solve(query(["forall x. P(x)"], "P(a)"), 5000)
        assert result.status == SolverStatus.UNSAT

    def test_existential_witness(self, z3_backend):
        result = z3_backend.solve(query(["Guilty(butler)"], "exists x. Guilty(x)"), 5000)
        assert result.status == SolverStatus.UNSAT

    def test_submit_does_not_block(self, z3_backend):
        handle = z3_backend.submit(query(["P"], "P | Q"), 5000)
        assert handle.result(timeout=10).status == SolverStatus.UNSAT
        assert handle.done()

    def test_cancel_after_finish_keeps_result(self, z3_backend):
        handle = z3_backend.submit(query(["P"], "P"), 5000)
        handle.result(timeout=10)
        z3_backend.cancel(handle)
        assert handle.result().status == SolverStatus.UNSAT

    def test_concurrent_queries_are_independent(self, z3_backend):
        handles = [
            z3_backend.submit(query(["P"], "P" if i % 2 else "Q"), 5000)
            for i in range(6)
        ]
        statuses = [h.result(timeout=10).status for h in handles]
        assert statuses == [SolverStatus.SAT, SolverStatus.UNSAT] * 3


class TestSubmission:
    def test_timeout_is_mandatory(self, scripted_backend):
        backend = scripted_backend()
        with pytest.raises(ValueError):
            backend.submit(query(["P"], "P"), 0)

    def test_scripted_results_in_order(self, scripted_backend):
        sat = SolverResult(status=SolverStatus.SAT, solver_name="scripted")
        backend = scripted_backend([sat])
        assert backend.solve(query(["P"], "Q"), 100).status == SolverStatus.SAT
        assert backend.solve(query(["P"], "P"), 100).status == SolverStatus.UNSAT
        assert len(backend.queries) == 2

    def test_cancel_running_query(self, scripted_backend):
        backend = scripted_backend(block=True)
        handle = backend.submit(query(["P"], "P"), 1000)
        assert backend.started.wait(5)
        backend.cancel(handle)
        result = handle.result(timeout=5)
        assert result.status == SolverStatus.CANCELLED
        assert backend.cancelled_runs == 1
        assert handle.cancelled

    def test_cancel_is_idempotent(self, scripted_backend):
        backend = scripted_backend(block=True)
        handle = backend.submit(query(["P"], "P"), 1000)
        assert backend.started.wait(5)
        backend.cancel(handle)
        backend.cancel(handle)
        assert handle.result(timeout=5).status == SolverStatus.CANCELLED

    def test_engine_failure_becomes_error_result(self):
        with FailingBackend(max_workers=1) as backend:
            result = backend.solve(query(["P"], "P"), 100)
        assert result.status == SolverStatus.ERROR
        assert "engine exploded" in result.reason

    def test_done_callback_receives_handle(self, scripted_backend):
        backend = scripted_backend()
        seen = []
        fired = threading.Event()
        handle = backend.submit(query(["P"], "P"), 100)
        handle.add_done_callback(lambda h: (seen.append(h), fired.set()))
        assert fired.wait(5)
        assert seen == [handle]


class TestProcessBackend:
    def test_missing_binary(self):
        with pytest.raises(SolverUnavailable):
            SmtLibProcessBackend(["definitely-not-a-solver-binary"])

    def test_empty_command(self):
        with pytest.raises(SolverUnavailable):
            SmtLibProcessBackend([])

    def test_factory_reports_unavailable(self):
        config = SolverConfig(backend="process", process_command=("definitely-not-a-solver-binary",))
        with pytest.raises(SolverUnavailable):
            make_backend(config)

    def test_factory_default_is_z3(self):
        backend = make_backend(SolverConfig(max_workers=1))
        try:
            assert isinstance(backend, Z3Backend)
        finally:
            backend.shutdown()

    def test_engine_time_limit_flags(self, monkeypatch):
        monkeypatch.setattr(
            "proofwork.verification.solver.shutil.which", lambda name: f"/usr/bin/{name}"
        )
        cvc5 = SmtLibProcessBackend(["cvc5", "--lang=smt2"], max_workers=1)
        z3_bin = SmtLibProcessBackend(["z3"], max_workers=1)
        try:
            assert cvc5._argv(500) == ["cvc5", "--lang=smt2", "--tlimit-per=500"]
            assert z3_bin._argv(500) == ["z3", "-in", "-t:500"]
            assert cvc5.name == "cvc5"
        finally:
            cvc5.shutdown()
            z3_bin.shutdown()
