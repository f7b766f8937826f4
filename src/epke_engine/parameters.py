# src/epke_engine/parameters.py
"""Per-time-index physical parameters for the point-kinetics model.

EPKEParameters is the read-only parameter set consumed by the step
propagator. It owns:

- the time grid (strictly increasing) and per-step dt accessors,
- per-group, per-index decay constants and delayed fractions, shape (K, N),
- per-index total delayed fraction, generation time, feedback decay constant,
  power normalization and imposed reactivity, shape (N,),
- the scalar blend factor theta, feedback gain gamma_d and feedback
  efficiency eta,
- the reference generation time Lambda(0) used to scale stored
  concentrations.

All arrays are copied on construction and frozen (non-writeable), so a
parameter set can be captured by several solvers, including ones running on
other threads, without sharing mutable state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import numpy as np
import numpy.typing as npt

from .errors import raise_malformed_input, raise_numeric_domain

if TYPE_CHECKING:
    from numpy.typing import ArrayLike


FloatArray = npt.NDArray[np.floating[Any]]

# Error / message constants -------------------------------------------------

_TIMEGRID_1D_ERROR: Final[str] = "time grid must be a 1D array"
_TIMEGRID_MIN_POINTS_ERROR: Final[str] = "time grid must contain at least one point"
_TIMEGRID_MONOTONE_ERROR: Final[str] = "time grid must be strictly increasing"
_PER_INDEX_SHAPE_ERROR: Final[str] = "{name} has shape {actual}; expected {expected}"
_THETA_RANGE_ERROR: Final[str] = "theta must lie in [0, 1]; got {theta!r}"
_GEN_TIME_ERROR: Final[str] = "generation times must be finite and > 0"
_INTERP_RANGE_ERROR: Final[str] = (
    "target grid [{lo}, {hi}] is outside the parameter grid [{t0}, {tn}]"
)
_TIME_INDEX_OOB_ERROR: Final[str] = "time index out of bounds: {idx}"
_DT_INDEX_ERROR: Final[str] = "dt is undefined at time index {idx}"


def _frozen(arr: ArrayLike) -> FloatArray:
    """Return a float64 copy of arr that cannot be written to."""
    out = np.array(arr, dtype=np.float64, copy=True)
    out.setflags(write=False)
    return out


def validate_time_grid(time: ArrayLike, *, name: str = "time") -> FloatArray:
    """
    Validate a time grid and return it as a frozen float64 array.

    Args:
        time: Candidate time grid.
        name: Name used in error messages.

    Returns:
        The validated, frozen grid.
    """
    grid = _frozen(time)
    if grid.ndim != 1:
        raise_malformed_input(detail=f"{name}: {_TIMEGRID_1D_ERROR}")
    if grid.size < 1:
        raise_malformed_input(detail=f"{name}: {_TIMEGRID_MIN_POINTS_ERROR}")
    if not np.all(np.isfinite(grid)) or np.any(np.diff(grid) <= 0.0):
        raise_malformed_input(detail=f"{name}: {_TIMEGRID_MONOTONE_ERROR}")
    return grid


@dataclass(slots=True, frozen=True, eq=False)
class EPKEParameters:
    """Parameter set over a time grid.

    Attributes:
        time: Time grid, shape (N,).
        decay_constants: Precursor decay constants lambda(k, n), shape (K, N).
        delayed_fractions: Delayed fractions beta(k, n), shape (K, N).
        beta_eff: Total delayed fraction, shape (N,).
        gen_time: Generation time Lambda(n), shape (N,).
        lambda_h: Feedback decay constant, shape (N,).
        pow_norm: Power normalization f(n), shape (N,).
        rho_imp: Imposed reactivity, shape (N,).
        theta: Implicit/explicit blend factor in [0, 1].
        gamma_d: Feedback gain.
        eta: Feedback efficiency.
        reference_gen_time: Generation time used to scale concentrations. It
            defaults to gen_time[0] and is carried unchanged by interpolate().
    """

    time: FloatArray
    decay_constants: FloatArray
    delayed_fractions: FloatArray
    beta_eff: FloatArray
    gen_time: FloatArray
    lambda_h: FloatArray
    pow_norm: FloatArray
    rho_imp: FloatArray
    theta: float
    gamma_d: float
    eta: float
    reference_gen_time: float | None = None

    def __post_init__(self) -> None:
        """Copy, freeze and validate every array.

        Raises:
            MalformedInputError: If shapes, grid or generation times are invalid.
            NumericDomainError: If any decay constant is negative or not finite.
        """
        time = validate_time_grid(self.time)
        n_steps = int(time.size)
        object.__setattr__(self, "time", time)

        for name in ("decay_constants", "delayed_fractions"):
            arr = _frozen(getattr(self, name))
            if arr.ndim != 2 or arr.shape[1] != n_steps:  # noqa: PLR2004
                raise_malformed_input(
                    detail=_PER_INDEX_SHAPE_ERROR.format(
                        name=name, actual=arr.shape, expected=f"(K, {n_steps})"
                    )
                )
            object.__setattr__(self, name, arr)

        if self.decay_constants.shape != self.delayed_fractions.shape:
            raise_malformed_input(
                detail=_PER_INDEX_SHAPE_ERROR.format(
                    name="delayed_fractions",
                    actual=self.delayed_fractions.shape,
                    expected=self.decay_constants.shape,
                )
            )

        for name in ("beta_eff", "gen_time", "lambda_h", "pow_norm", "rho_imp"):
            arr = _frozen(getattr(self, name))
            if arr.shape != (n_steps,):
                raise_malformed_input(
                    detail=_PER_INDEX_SHAPE_ERROR.format(
                        name=name, actual=arr.shape, expected=(n_steps,)
                    )
                )
            object.__setattr__(self, name, arr)

        for name in ("decay_constants", "lambda_h"):
            arr = getattr(self, name)
            if not np.all(np.isfinite(arr)) or np.any(arr < 0.0):
                raise_numeric_domain(
                    name=name, expected="finite values >= 0", got=arr.min()
                )

        if not np.all(np.isfinite(self.gen_time)) or np.any(self.gen_time <= 0.0):
            raise_malformed_input(detail=_GEN_TIME_ERROR)

        theta = float(self.theta)
        if not 0.0 <= theta <= 1.0:
            raise_malformed_input(detail=_THETA_RANGE_ERROR.format(theta=theta))
        object.__setattr__(self, "theta", theta)
        object.__setattr__(self, "gamma_d", float(self.gamma_d))
        object.__setattr__(self, "eta", float(self.eta))

        ref = (
            float(self.gen_time[0])
            if self.reference_gen_time is None
            else float(self.reference_gen_time)
        )
        if not np.isfinite(ref) or ref <= 0.0:
            raise_malformed_input(detail=_GEN_TIME_ERROR)
        object.__setattr__(self, "reference_gen_time", ref)

    # ------------------------------------------------------------------
    # Shape helpers
    # ------------------------------------------------------------------

    @property
    def num_time_steps(self) -> int:
        """Number of points in the time grid."""
        return int(self.time.size)

    @property
    def num_precursors(self) -> int:
        """Number of delayed-neutron precursor groups."""
        return int(self.decay_constants.shape[0])

    # ------------------------------------------------------------------
    # Per-index accessors
    # ------------------------------------------------------------------

    def get_time(self, n: int) -> float:
        """
        Return the time at index n.

        Args:
            n: Time index in [0, num_time_steps).

        Raises:
            IndexError: If n is out of bounds.

        Returns:
            Time as a float.
        """
        if not (0 <= n < self.num_time_steps):
            raise IndexError(_TIME_INDEX_OOB_ERROR.format(idx=n))
        return float(self.time[n])

    def dt(self, n: int) -> float:
        """
        Return dt(n) = t(n) - t(n-1).

        Args:
            n: Time index in [1, num_time_steps).

        Raises:
            IndexError: If n has no predecessor on the grid.

        Returns:
            Step size as a float.
        """
        if not (1 <= n < self.num_time_steps):
            raise IndexError(_DT_INDEX_ERROR.format(idx=n))
        return float(self.time[n] - self.time[n - 1])

    def get_decay_constant(self, k: int, n: int) -> float:
        """Decay constant of group k at index n."""
        return float(self.decay_constants[k, n])

    def get_delayed_fraction(self, k: int, n: int) -> float:
        """Delayed fraction of group k at index n."""
        return float(self.delayed_fractions[k, n])

    def get_beta_eff(self, n: int) -> float:
        """Total delayed fraction at index n."""
        return float(self.beta_eff[n])

    def get_gen_time(self, n: int) -> float:
        """Generation time at index n."""
        return float(self.gen_time[n])

    def get_lambda_h(self, n: int) -> float:
        """Feedback decay constant at index n."""
        return float(self.lambda_h[n])

    def get_pow_norm(self, n: int) -> float:
        """Power normalization at index n."""
        return float(self.pow_norm[n])

    def get_rho_imp(self, n: int) -> float:
        """Imposed reactivity at index n."""
        return float(self.rho_imp[n])

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def interpolate(self, target_grid: ArrayLike) -> EPKEParameters:
        """
        Project this parameter set onto another time grid.

        Every per-index quantity is linearly interpolated in time; per-group
        quantities are interpolated group by group. Scalars and the reference
        generation time are carried over unchanged. No extrapolation is done.

        Args:
            target_grid: Strictly increasing grid inside [time[0], time[-1]].

        Raises:
            MalformedInputError: If target_grid is invalid or out of range.

        Returns:
            A new, independent EPKEParameters on target_grid.
        """
        grid = validate_time_grid(target_grid, name="target_grid")
        t0 = float(self.time[0])
        tn = float(self.time[-1])
        span = max(abs(t0), abs(tn), 1.0)
        tol = 1e-12 * span
        if grid[0] < t0 - tol or grid[-1] > tn + tol:
            raise_malformed_input(
                detail=_INTERP_RANGE_ERROR.format(
                    lo=float(grid[0]), hi=float(grid[-1]), t0=t0, tn=tn
                )
            )

        def _interp(values: FloatArray) -> FloatArray:
            return np.interp(grid, self.time, values)

        def _interp_groups(values: FloatArray) -> FloatArray:
            out = np.empty((values.shape[0], grid.size), dtype=np.float64)
            for k, row in enumerate(values):
                out[k] = _interp(row)
            return out

        return EPKEParameters(
            time=grid,
            decay_constants=_interp_groups(self.decay_constants),
            delayed_fractions=_interp_groups(self.delayed_fractions),
            beta_eff=_interp(self.beta_eff),
            gen_time=_interp(self.gen_time),
            lambda_h=_interp(self.lambda_h),
            pow_norm=_interp(self.pow_norm),
            rho_imp=_interp(self.rho_imp),
            theta=self.theta,
            gamma_d=self.gamma_d,
            eta=self.eta,
            reference_gen_time=self.reference_gen_time,
        )
