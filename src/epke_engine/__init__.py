"""epke_engine analytic point-kinetics integrator package."""

from __future__ import annotations

from .acceptance import (
    AcceptanceContext,
    AcceptancePolicy,
    accept_always,
    linear_difference_test,
    resolve_acceptance,
)
from .assembly import assemble_global_output
from .errors import (
    EPKEError,
    ErrorCode,
    IncompleteSolveError,
    InvalidStepRegimeError,
    MalformedInputError,
    NumericDomainError,
)
from .hierarchy import ROOT, SolverNode, SolverTree
from .history import EPKEOutput, HistoryBuffers
from .kernels import E, KernelValues, exponential_moments, k0, k1, k2
from .parameters import EPKEParameters
from .propagator import StepPropagator, StepResult, solve_step_quadratic
from .solver import RunConfig, Solver, SolverState

__all__ = [
    "ROOT",
    "AcceptanceContext",
    "AcceptancePolicy",
    "E",
    "EPKEError",
    "EPKEOutput",
    "EPKEParameters",
    "ErrorCode",
    "HistoryBuffers",
    "IncompleteSolveError",
    "InvalidStepRegimeError",
    "KernelValues",
    "MalformedInputError",
    "NumericDomainError",
    "RunConfig",
    "Solver",
    "SolverNode",
    "SolverState",
    "SolverTree",
    "StepPropagator",
    "StepResult",
    "accept_always",
    "assemble_global_output",
    "exponential_moments",
    "k0",
    "k1",
    "k2",
    "linear_difference_test",
    "resolve_acceptance",
    "solve_step_quadratic",
]

__version__ = "0.1.0"
