"""
proofwork/core/config.py
========================
Global configuration for proofwork.
All tunables in one place — validated at construction.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple


@dataclass
class SolverConfig:
    backend:                str   = "z3"       # "z3" | "process"
    check_timeout_ms:       int   = 5000
    hint_timeout_ms:        int   = 1500
    solvability_timeout_ms: int   = 10000
    max_workers:            int   = 2
    process_command:        Tuple[str, ...] = ("cvc5", "--lang=smt2")

    def __post_init__(self):
        if self.backend not in ("z3", "process"):
            raise ValueError(f"Unknown solver backend '{self.backend}'")
        for name in ("check_timeout_ms", "hint_timeout_ms", "solvability_timeout_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive (timeouts are mandatory)")
        if self.max_workers < 1:
            raise ValueError("max_workers must be >= 1")


@dataclass
class EncoderConfig:
    sort_name:            str  = "Obj"   # uninterpreted sort for individuals
    skolemize_hypotheses: bool = False
    export_isabelle:      bool = True


@dataclass
class CheckerConfig:
    require_declared_premises: bool = True   # open assumptions must be puzzle premises


@dataclass
class SearchConfig:
    max_depth: int = 6
    max_nodes: int = 5000

    def __post_init__(self):
        if self.max_depth < 1 or self.max_nodes < 1:
            raise ValueError("Search limits must be positive")


@dataclass
class VerifierConfig:
    mode:    str           = "player"
    solver:  SolverConfig  = field(default_factory=SolverConfig)
    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    checker: CheckerConfig = field(default_factory=CheckerConfig)
    search:  SearchConfig  = field(default_factory=SearchConfig)

    @classmethod
    def for_mode(cls, mode: str) -> "VerifierConfig":
        """Pre-tuned configs per calling surface."""
        cfg = cls(mode=mode)
        if mode == "editor":
            cfg.solver.solvability_timeout_ms = 30000   # publishing can wait
            cfg.search.max_depth = 8
            cfg.search.max_nodes = 20000
        elif mode == "interactive":
            cfg.solver.hint_timeout_ms = 750             # keep the grid responsive
            cfg.solver.check_timeout_ms = 3000
            cfg.search.max_depth = 4
        elif mode != "player":
            raise ValueError(f"Unknown mode '{mode}'")
        return cfg


# Singleton default config
DEFAULT_CONFIG = VerifierConfig()
