# src/epke_engine/kernels.py
"""Analytic exponential kernels used by the step propagator.

For a decay constant lam >= 0 and a step size dt > 0 the kernels are

    E(lam, dt)  = exp(-lam * dt)
    k_m(lam, dt) = integral_0^dt u**m * exp(-lam * (dt - u)) du,   m = 0, 1, 2

i.e. the polynomial moments of the decay kernel exp(-lam * s) taken over the
step. With the substitution u = dt * v they reduce to

    k_m = dt**(m + 1) * J_m(x),   J_m(x) = integral_0^1 v**m exp(-x (1 - v)) dv

with x = lam * dt. J_0 is scipy's ``exprel(-x)``; J_1 and J_2 follow from the
recurrence J_m = (1 - m J_{m-1}) / x for large x and from the power series
J_m = sum_j (-x)**j m! / (m + j + 1)! for small x, where the recurrence
cancels catastrophically. Both branches are finite at lam = 0, where
k_m = dt**(m + 1) / (m + 1), and every k_m vanishes as lam grows.

All functions accept a scalar or an array of decay constants (one per
precursor group) and a scalar step size.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

import numpy as np
from scipy.special import exprel

from .errors import raise_numeric_domain

if TYPE_CHECKING:
    from numpy.typing import ArrayLike, NDArray

    FloatArray = NDArray[np.float64]


_SERIES_CUTOFF: Final[float] = 1.0
_SERIES_TERMS: Final[int] = 24
_TINY: Final[float] = float(np.finfo(np.float64).tiny)


@dataclass(slots=True, frozen=True)
class KernelValues:
    """Bundle of kernel values evaluated for one step.

    Attributes:
        e: Decay factor exp(-lam * dt), never below the smallest normal
            float64.
        k0: Zeroth moment kernel.
        k1: First moment kernel.
        k2: Second moment kernel.
    """

    e: FloatArray
    k0: FloatArray
    k1: FloatArray
    k2: FloatArray


def _validate(lam: ArrayLike, dt: float) -> tuple[FloatArray, float]:
    """
    Validate kernel arguments.

    Args:
        lam: Decay constant(s).
        dt: Step size.

    Returns:
        Tuple of (lam as float64 array, dt as float).
    """
    dt_f = float(dt)
    if not np.isfinite(dt_f) or dt_f <= 0.0:
        raise_numeric_domain(name="dt", expected="a finite value > 0", got=dt)

    lam_arr = np.asarray(lam, dtype=np.float64)
    if not np.all(np.isfinite(lam_arr)) or np.any(lam_arr < 0.0):
        raise_numeric_domain(name="lam", expected="finite value(s) >= 0", got=lam)
    return lam_arr, dt_f


def _series(x: FloatArray, m: int) -> FloatArray:
    """Power series for J_m, accurate for x < _SERIES_CUTOFF."""
    term = np.full_like(x, 1.0 / (m + 1))
    total = term.copy()
    for j in range(1, _SERIES_TERMS):
        term = term * (-x) / (m + j + 1)
        total += term
    return total


def _scaled_moments(x: FloatArray) -> tuple[FloatArray, FloatArray, FloatArray]:
    """
    Return (J_0, J_1, J_2) evaluated at x = lam * dt.

    Args:
        x: Non-negative array of dimensionless decay exponents.

    Returns:
        Tuple of three arrays with the same shape as x.
    """
    j0 = np.asarray(exprel(-x), dtype=np.float64)
    j1 = np.empty_like(x)
    j2 = np.empty_like(x)

    small = x < _SERIES_CUTOFF
    if np.any(small):
        xs = x[small]
        j1[small] = _series(xs, 1)
        j2[small] = _series(xs, 2)

    large = ~small
    if np.any(large):
        xl = x[large]
        j1_large = (1.0 - j0[large]) / xl
        j1[large] = j1_large
        j2[large] = (1.0 - 2.0 * j1_large) / xl

    return j0, j1, j2


def exponential_moments(lam: ArrayLike, dt: float) -> KernelValues:
    """
    Evaluate E, k0, k1 and k2 in a single pass.

    Args:
        lam: Decay constant(s), >= 0.
        dt: Step size, > 0.

    Returns:
        KernelValues with arrays shaped like ``lam`` (0-d for scalars).
    """
    lam_arr, dt_f = _validate(lam, dt)
    x = np.atleast_1d(lam_arr * dt_f)
    j0, j1, j2 = _scaled_moments(x)
    shape = lam_arr.shape
    return KernelValues(
        e=np.maximum(np.exp(-x), _TINY).reshape(shape),
        k0=(dt_f * j0).reshape(shape),
        k1=(dt_f**2 * j1).reshape(shape),
        k2=(dt_f**3 * j2).reshape(shape),
    )


def _as_output(value: FloatArray, like: ArrayLike) -> float | FloatArray:
    """Return a Python float for scalar inputs and an array otherwise."""
    if np.ndim(like) == 0:
        return float(value)
    return value


def E(lam: ArrayLike, dt: float) -> float | FloatArray:  # noqa: N802
    """
    Return the decay factor exp(-lam * dt), which lies in (0, 1].

    Values that would underflow (lam * dt above about 708) are held at the
    smallest normal float64 instead of reaching 0.
    """
    return _as_output(exponential_moments(lam, dt).e, lam)


def k0(lam: ArrayLike, dt: float) -> float | FloatArray:
    """Return integral_0^dt exp(-lam (dt - u)) du."""
    return _as_output(exponential_moments(lam, dt).k0, lam)


def k1(lam: ArrayLike, dt: float) -> float | FloatArray:
    """Return integral_0^dt u exp(-lam (dt - u)) du."""
    return _as_output(exponential_moments(lam, dt).k1, lam)


def k2(lam: ArrayLike, dt: float) -> float | FloatArray:
    """Return integral_0^dt u**2 exp(-lam (dt - u)) du."""
    return _as_output(exponential_moments(lam, dt).k2, lam)
