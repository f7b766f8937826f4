# src/epke_engine/solver.py
"""Sequential step loop for the analytic point-kinetics integrator.

A Solver is built from a parameter set and a seed history. It owns
full-length history buffers whose leading entries are copied from the seed,
and it drives the step propagator over every remaining index, strictly in
increasing order:

    IDLE -> STEPPING(seed_length) -> ... -> STEPPING(N-1) -> DONE

Any error raised while stepping moves the solver to FAILED, is logged with
its time index, and propagates to the caller. No partial result is exposed.

A Solver can also build independent fine solvers over refined sub-intervals
(``spawn_fine_solver``). Each fine solver gets a parameter set interpolated
onto its own grid and a by-value copy of this solver's history up to the
coarse index. Registration and execution of such children is handled by
:class:`epke_engine.hierarchy.SolverTree`.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final

import numpy as np

from .acceptance import AcceptanceSpec, resolve_acceptance
from .errors import (
    EPKEError,
    ErrorCode,
    IncompleteSolveError,
    InvalidStepRegimeError,
    raise_malformed_input,
)
from .history import EPKEOutput, HistoryBuffers
from .parameters import validate_time_grid
from .propagator import StepPropagator

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    from .parameters import EPKEParameters


logger = logging.getLogger(__name__)


# =============================================================================
# Errors / messages
# =============================================================================

_NOT_DONE_ERROR_MSG: Final[str] = "Solver result requested in state {state}"
_ALREADY_FAILED_MSG: Final[str] = "Solver failed earlier without a classified error"
_ARITHMETIC_ERROR_MSG: Final[str] = (
    "Invalid step regime at time index {idx}: {kind}: {detail}"
)
_COARSE_INDEX_OOB_MSG: Final[str] = (
    "coarse_index {idx} is outside the solver grid of {size} points"
)
_COARSE_INDEX_UNSOLVED_MSG: Final[str] = (
    "coarse_index {idx} has not been computed yet; {filled} indices available"
)
_FINE_GRID_START_MSG: Final[str] = (
    "fine grid starts at t={start!r} but the coarse grid point at index {idx} is "
    "t={coarse!r}"
)
_GRID_ATOL_ERROR_MSG: Final[str] = "grid_atol must be finite and >= 0"
_MAX_WORKERS_ERROR_MSG: Final[str] = "max_workers must be None or >= 1"


# =============================================================================
# Configuration dataclasses
# =============================================================================


@dataclass(slots=True, frozen=True)
class RunConfig:
    """Configuration for Solver runs.

    Attributes:
        acceptance: Step-acceptance policy for the extrapolation rate, either
            "always", "linear" or a callable policy.
        strict: If True, recoverable configuration problems raise; otherwise
            a RuntimeWarning is emitted and the input is repaired.
        grid_atol: Absolute tolerance when matching time points across grids.
        max_workers: Thread count used to run sibling fine solvers
            (None lets the executor choose).
    """

    acceptance: AcceptanceSpec = "always"
    strict: bool = True
    grid_atol: float = 1e-12
    max_workers: int | None = None

    def __post_init__(self) -> None:
        """Validate scalar options.

        Raises:
            MalformedInputError: If grid_atol or max_workers is invalid.
        """
        if not np.isfinite(self.grid_atol) or self.grid_atol < 0.0:
            raise_malformed_input(detail=_GRID_ATOL_ERROR_MSG)
        if self.max_workers is not None and self.max_workers < 1:
            raise_malformed_input(detail=_MAX_WORKERS_ERROR_MSG)


class SolverState(StrEnum):
    """Lifecycle of a Solver."""

    IDLE = "idle"
    STEPPING = "stepping"
    DONE = "done"
    FAILED = "failed"


# =============================================================================
# Solver
# =============================================================================


class Solver:
    """Analytic point-kinetics solver over one time grid."""

    def __init__(
        self,
        params: EPKEParameters,
        seed: EPKEOutput,
        *,
        config: RunConfig | None = None,
    ) -> None:
        """
        Initialize Solver.

        Args:
            params: Parameter set; captured, never mutated.
            seed: Precomputed histories for the leading indices (copied).
            config: Optional run configuration. If None, defaults are used.

        Raises:
            MalformedInputError: If the seed is inconsistent with params.
        """
        self.params = params
        self.config = config or RunConfig()

        self.buffers = HistoryBuffers(
            params.num_time_steps,
            params.num_precursors,
            seed,
        )
        self._propagator = StepPropagator(
            params,
            self.buffers,
            resolve_acceptance(self.config.acceptance),
        )

        self.state = SolverState.IDLE
        self.error: EPKEError | None = None
        self.step_indices: list[int] = []
        self.rejected_indices: list[int] = []
        self._result: EPKEOutput | None = None

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def time(self) -> NDArray[np.floating]:
        """Time grid of this solver."""
        return self.params.time

    @property
    def num_time_steps(self) -> int:
        """Number of time indices on this solver's grid."""
        return self.params.num_time_steps

    @property
    def seed_length(self) -> int:
        """Number of leading indices copied from the seed."""
        return self.buffers.seed_length

    @property
    def result(self) -> EPKEOutput:
        """
        Immutable full-length histories of a completed run.

        Raises:
            IncompleteSolveError: If the solver is not DONE.

        Returns:
            EPKEOutput over the whole grid, with times attached.
        """
        if self.state is not SolverState.DONE or self._result is None:
            raise IncompleteSolveError(
                _NOT_DONE_ERROR_MSG.format(state=self.state.value),
                code=ErrorCode.INCOMPLETE_SOLVE,
            )
        return self._result

    def normalized_power(self) -> NDArray[np.floating]:
        """
        Return f(n) * P(n) over the completed run.

        Raises:
            IncompleteSolveError: If the solver is not DONE.

        Returns:
            Normalized power, shape (N,).
        """
        return self.params.pow_norm * self.result.power

    def history(self) -> EPKEOutput:
        """Return a copy of every index written so far, with times attached."""
        return self.buffers.snapshot(self.params.time)

    # ------------------------------------------------------------------
    # Step loop
    # ------------------------------------------------------------------

    def solve(self) -> EPKEOutput:
        """
        Run the step loop from the seed length to the end of the grid.

        Calling solve() again after completion returns the same result, and
        calling it after a failure re-raises the original error.

        Raises:
            EPKEError: If any step fails; the solver is left FAILED.
                Floating-point errors raised by a step are reported as
                InvalidStepRegimeError at that step's index.

        Returns:
            The completed histories.
        """
        if self.state is SolverState.DONE:
            return self.result
        if self.state is SolverState.FAILED:
            if self.error is not None:
                raise self.error
            raise IncompleteSolveError(
                _ALREADY_FAILED_MSG, code=ErrorCode.INCOMPLETE_SOLVE
            )

        n_steps = self.params.num_time_steps
        logger.info(
            "Solving %d step(s) over time indices [%d, %d)",
            n_steps - self.seed_length,
            self.seed_length,
            n_steps,
        )

        self.state = SolverState.STEPPING
        n = self.seed_length
        try:
            for n in range(self.seed_length, n_steps):
                step = self._propagator.step(n)
                self.buffers.write(n, step.power, step.rho, step.concentrations)
                self.step_indices.append(n)
                if not step.accepted:
                    self.rejected_indices.append(n)
        except EPKEError as exc:
            self._mark_failed(n, exc)
            raise
        except ArithmeticError as exc:
            err = InvalidStepRegimeError(
                _ARITHMETIC_ERROR_MSG.format(
                    idx=n, kind=type(exc).__name__, detail=exc
                ),
                code=ErrorCode.INVALID_STEP_REGIME,
                step_index=n,
            )
            self._mark_failed(n, err)
            raise err from exc
        except Exception:
            self.state = SolverState.FAILED
            logger.exception("Solve aborted at time index %d", n)
            raise

        self.state = SolverState.DONE
        self._result = self.buffers.snapshot(self.params.time)
        if self.rejected_indices:
            logger.info(
                "Extrapolation rate rejected at %d step(s)",
                len(self.rejected_indices),
            )
        logger.info("Completed solve at t=%.6e", float(self.params.time[-1]))
        return self._result

    def _mark_failed(self, n: int, exc: EPKEError) -> None:
        """Record a classified failure at time index n and log it."""
        if exc.step_index is None:
            exc.step_index = n
        self.state = SolverState.FAILED
        self.error = exc
        logger.error(
            "Solve failed at time index %d (%s): %s",
            exc.step_index,
            exc.code,
            exc,
        )

    # ------------------------------------------------------------------
    # Fine solver construction
    # ------------------------------------------------------------------

    def _resolve_fine_grid(
        self,
        fine_grid: ArrayLike,
        coarse_index: int,
    ) -> NDArray[np.floating]:
        """
        Validate a fine grid against the coarse point it must start at.

        Args:
            fine_grid: Candidate fine grid.
            coarse_index: Index of the coarse starting point.

        Raises:
            MalformedInputError: If strict and the grid does not start at the
                coarse point.

        Returns:
            A fine grid whose first point is exactly the coarse time.
        """
        fine = validate_time_grid(fine_grid, name="fine_grid")
        t_coarse = float(self.params.time[coarse_index])
        atol = self.config.grid_atol

        if abs(float(fine[0]) - t_coarse) <= atol:
            out = fine.copy()
            out[0] = t_coarse
            return out

        msg = _FINE_GRID_START_MSG.format(
            start=float(fine[0]), idx=coarse_index, coarse=t_coarse
        )
        if self.config.strict:
            raise_malformed_input(detail=msg, step_index=coarse_index)
        warnings.warn(
            f"{msg}; re-anchoring the fine grid at the coarse point.",
            RuntimeWarning,
            stacklevel=3,
        )
        return np.concatenate(([t_coarse], fine[fine > t_coarse + atol]))

    def spawn_fine_solver(self, fine_grid: ArrayLike, coarse_index: int) -> Solver:
        """
        Build an independent fine solver starting at a coarse index.

        The child's grid is this grid up to (but excluding) coarse_index,
        followed by fine_grid, whose first point must coincide with
        time[coarse_index]. Its parameters are this parameter set
        interpolated onto that grid, and its seed is a by-value copy of this
        solver's history over indices 0..coarse_index. The child is not run.

        Args:
            fine_grid: Refined, strictly increasing grid for the sub-interval.
            coarse_index: Coarse index where the sub-interval starts.

        Raises:
            MalformedInputError: If coarse_index is out of range or not yet
                computed, or if the fine grid is invalid.

        Returns:
            The new, unstarted Solver.
        """
        if not (0 <= coarse_index < self.num_time_steps):
            raise_malformed_input(
                detail=_COARSE_INDEX_OOB_MSG.format(
                    idx=coarse_index, size=self.num_time_steps
                ),
                step_index=coarse_index,
            )
        if coarse_index >= self.buffers.n_filled:
            raise_malformed_input(
                detail=_COARSE_INDEX_UNSOLVED_MSG.format(
                    idx=coarse_index, filled=self.buffers.n_filled
                ),
                step_index=coarse_index,
            )

        fine = self._resolve_fine_grid(fine_grid, coarse_index)
        grid = np.concatenate((self.params.time[:coarse_index], fine))

        fine_params = self.params.interpolate(grid)
        seed = self.history().slice(coarse_index)

        logger.debug(
            "Spawned fine solver at coarse index %d: %d fine point(s) over "
            "[%.6e, %.6e]",
            coarse_index,
            fine.size,
            float(fine[0]),
            float(fine[-1]),
        )
        return Solver(fine_params, seed, config=self.config)
