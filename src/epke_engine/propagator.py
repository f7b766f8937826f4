# src/epke_engine/propagator.py
"""Analytic per-step propagation of power, reactivity and concentrations.

For a time index n the propagator integrates

    dP/dt   = (rho - beta_eff) / Lambda * P + sum_k lam_k C_k / Lambda_0
    dC_k/dt = (Lambda_0 / Lambda) beta_k P - lam_k C_k
    rho     = rho_imp + rho_f,
    drho_f/dt = gamma_d (f P - eta P(0)) - lam_h rho_f

over [t(n-1), t(n)]. Concentrations are stored scaled by the reference
generation time Lambda_0. The source terms P, beta_k P / Lambda and f P are
represented by the quadratic Lagrange interpolant through the indices
(n-2, n-1, n), whose node spacing ratio is gamma = dt(n-1) / dt(n). Exact
exponential integration of that interpolant gives closed forms in the kernels
of :mod:`epke_engine.kernels`. Concentration and feedback then become affine in
the unknown P(n):

    C_k(n)   = omega_k P(n) + zeta_hat_k
    rho(n)   = a1 P(n) + b1

The power equation is transformed by an exponential extrapolation rate alpha
and discretized with a theta-blend of implicit and explicit evaluation. The
result is a quadratic a P(n)**2 + b P(n) + c = 0, whose stable root is the new
power.

Edge policy:
    At n < 2 there is no second-previous index; gamma is 1 and the
    (n-1) values stand in for the (n-2) values. alpha is 0 for n <= 1.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import numpy as np
import numpy.typing as npt

from .acceptance import AcceptanceContext, AcceptancePolicy, accept_always
from .errors import raise_invalid_step_regime
from .kernels import KernelValues, exponential_moments

if TYPE_CHECKING:
    from .history import HistoryBuffers
    from .parameters import EPKEParameters


logger = logging.getLogger(__name__)

FloatArray = npt.NDArray[np.floating[Any]]

# Largest exponent whose exp() is still a finite float64.
_MAX_EXP_ARG: Final[float] = math.log(np.finfo(np.float64).max)


# =============================================================================
# Small data containers
# =============================================================================


@dataclass(slots=True, frozen=True)
class FeedbackCoefficients:
    """Reactivity with feedback as an affine function of P(n).

    Attributes:
        a1: Slope, rho(n) = a1 * P(n) + b1.
        b1: Intercept.
    """

    a1: float
    b1: float


@dataclass(slots=True, frozen=True)
class QuadraticCoefficients:
    """Coefficients of a * P**2 + b * P + c = 0.

    Attributes:
        a: Leading coefficient.
        b: Linear coefficient.
        c: Constant term.
    """

    a: float
    b: float
    c: float


@dataclass(slots=True, frozen=True)
class SourceSums:
    """Group-summed delayed-neutron source terms for one step.

    Attributes:
        tau: sum_k lam_k(n) * omega_k.
        s_hat_d: sum_k lam_k(n) * zeta_hat_k.
        s_d_prev: sum_k lam_k(n-1) * C_k(n-1).
    """

    tau: float
    s_hat_d: float
    s_d_prev: float


@dataclass(slots=True, frozen=True)
class StepResult:
    """Values produced for one time index.

    Attributes:
        step_index: Time index n.
        power: P(n).
        rho: Reactivity with feedback at n.
        concentrations: Scaled concentrations at n, shape (K,).
        alpha: Extrapolation rate finally used.
        gamma: Step-size ratio used.
        accepted: False if the acceptance policy forced alpha back to 0.
    """

    step_index: int
    power: float
    rho: float
    concentrations: FloatArray
    alpha: float
    gamma: float
    accepted: bool


# =============================================================================
# Helpers
# =============================================================================


def _lagrange_weights(
    kv: KernelValues,
    dt: float,
    gamma: float,
) -> tuple[FloatArray, FloatArray, FloatArray]:
    """
    Integrate the decayed quadratic Lagrange basis over one step.

    The interpolation nodes sit at u = -gamma*dt (index n-2), u = 0 (n-1) and
    u = dt (n), with u measured from t(n-1).

    Args:
        kv: Kernel values for the decay constant(s) and dt.
        dt: Step size dt(n).
        gamma: Step-size ratio dt(n-1) / dt(n).

    Returns:
        (w_n, w_prev, w_prev_prev), the weights of the values at n, n-1, n-2.
        They sum to k0.
    """
    dt2 = dt * dt
    w_n = (kv.k2 + gamma * dt * kv.k1) / ((1.0 + gamma) * dt2)
    w_prev = kv.k0 - (kv.k2 + (gamma - 1.0) * dt * kv.k1) / (gamma * dt2)
    w_prev_prev = (kv.k2 - dt * kv.k1) / ((1.0 + gamma) * gamma * dt2)
    return w_n, w_prev, w_prev_prev


def solve_step_quadratic(coeffs: QuadraticCoefficients, *, step_index: int) -> float:
    """
    Select the physical root of a * P**2 + b * P + c = 0.

    a < 0 takes (-b - sqrt(b**2 - 4ac)) / (2a), evaluated without
    cancellation. a == 0 solves the linear equation. a > 0 lies outside the
    method's valid regime.

    Args:
        coeffs: Quadratic coefficients.
        step_index: Time index, reported on failure.

    Raises:
        InvalidStepRegimeError: If a > 0, the equation is degenerate, the
            discriminant is negative, or the root is not finite.

    Returns:
        The new power P(n).
    """
    a, b, c = coeffs.a, coeffs.b, coeffs.c
    if not (math.isfinite(a) and math.isfinite(b) and math.isfinite(c)):
        raise_invalid_step_regime(
            step_index=step_index,
            detail=f"non-finite quadratic coefficients (a={a!r}, b={b!r}, c={c!r})",
        )

    if a > 0.0:
        raise_invalid_step_regime(
            step_index=step_index,
            detail=f"leading coefficient a={a!r} > 0",
        )

    if a == 0.0:
        if b == 0.0:
            raise_invalid_step_regime(
                step_index=step_index,
                detail="degenerate linear equation (a == 0 and b == 0)",
            )
        root = -c / b
    else:
        disc = b * b - 4.0 * a * c
        if disc < 0.0:
            raise_invalid_step_regime(
                step_index=step_index,
                detail=f"negative discriminant {disc!r}",
            )
        sq = math.sqrt(disc)
        root = 2.0 * c / (-b + sq) if b < 0.0 else (-b - sq) / (2.0 * a)

    if not math.isfinite(root):
        raise_invalid_step_regime(
            step_index=step_index,
            detail=f"non-finite root {root!r}",
        )
    return root


# =============================================================================
# StepPropagator
# =============================================================================


class StepPropagator:
    """Per-step analytic integrator bound to one solver's parameters and buffers."""

    def __init__(
        self,
        params: EPKEParameters,
        buffers: HistoryBuffers,
        acceptance: AcceptancePolicy = accept_always,
    ) -> None:
        """
        Initialize StepPropagator.

        Args:
            params: Parameter set of the owning solver.
            buffers: History buffers of the owning solver (read for n-1, n-2).
            acceptance: Policy deciding whether a nonzero alpha is kept.
        """
        self.params = params
        self.buffers = buffers
        self.acceptance = acceptance

        n_groups = params.num_precursors
        # Step-local scratch, fully overwritten every step.
        self._omega: FloatArray = np.zeros(n_groups, dtype=np.float64)
        self._zeta_hat: FloatArray = np.zeros(n_groups, dtype=np.float64)
        self._conc: FloatArray = np.zeros(n_groups, dtype=np.float64)

    @property
    def omega(self) -> FloatArray:
        """Coefficients omega_k of the most recent step (read-only view)."""
        view = self._omega.view()
        view.setflags(write=False)
        return view

    @property
    def zeta_hat(self) -> FloatArray:
        """Coefficients zeta_hat_k of the most recent step (read-only view)."""
        view = self._zeta_hat.view()
        view.setflags(write=False)
        return view

    # ------------------------------------------------------------------
    # Step-size ratio and extrapolation rate
    # ------------------------------------------------------------------

    def compute_gamma(self, n: int) -> float:
        """Return dt(n-1) / dt(n), or 1 for n < 2."""
        if n < 2:  # noqa: PLR2004
            return 1.0
        return self.params.dt(n - 1) / self.params.dt(n)

    def compute_alpha(self, n: int) -> float:
        """
        Return the exponential growth rate inferred from P(n-1) and P(n-2).

        Args:
            n: Time index.

        Raises:
            InvalidStepRegimeError: If either power value is not positive.

        Returns:
            ln(P(n-1) / P(n-2)) / dt(n-1) for n > 1, else 0.
        """
        if n <= 1:
            return 0.0
        p_prev = float(self.buffers.power[n - 1])
        p_prev_prev = float(self.buffers.power[n - 2])
        if not (p_prev > 0.0 and p_prev_prev > 0.0):
            raise_invalid_step_regime(
                step_index=n,
                detail=(
                    "extrapolation rate undefined for non-positive power "
                    f"(P(n-1)={p_prev!r}, P(n-2)={p_prev_prev!r})"
                ),
            )
        return math.log(p_prev / p_prev_prev) / self.params.dt(n - 1)

    # ------------------------------------------------------------------
    # Coefficients
    # ------------------------------------------------------------------

    def compute_precursor_coefficients(self, n: int, gamma: float) -> SourceSums:
        """
        Fill omega and zeta_hat for every group and return the source sums.

        Args:
            n: Time index.
            gamma: Step-size ratio.

        Returns:
            SourceSums for the step.
        """
        p = self.params
        buf = self.buffers
        dt = p.dt(n)
        pp = n - 2 if n >= 2 else n - 1  # noqa: PLR2004
        ref = p.reference_gen_time

        lam = p.decay_constants[:, n]
        kv = exponential_moments(lam, dt)
        w_n, w_prev, w_prev_prev = _lagrange_weights(kv, dt, gamma)

        np.multiply(p.delayed_fractions[:, n], w_n, out=self._omega)
        self._omega *= ref / p.gen_time[n]

        np.multiply(kv.e, buf.concentrations[:, n - 1], out=self._zeta_hat)
        self._zeta_hat += (
            ref * buf.power[n - 1] / p.gen_time[n - 1]
        ) * p.delayed_fractions[:, n - 1] * w_prev
        self._zeta_hat += (
            ref * buf.power[pp] / p.gen_time[pp]
        ) * p.delayed_fractions[:, pp] * w_prev_prev

        return SourceSums(
            tau=float(np.dot(lam, self._omega)),
            s_hat_d=float(np.dot(lam, self._zeta_hat)),
            s_d_prev=float(
                np.dot(p.decay_constants[:, n - 1], buf.concentrations[:, n - 1])
            ),
        )

    def compute_feedback_coefficients(self, n: int, gamma: float) -> FeedbackCoefficients:
        """
        Express rho(n) as a1 * P(n) + b1.

        Args:
            n: Time index.
            gamma: Step-size ratio.

        Returns:
            FeedbackCoefficients for the step.
        """
        p = self.params
        buf = self.buffers
        dt = p.dt(n)
        pp = n - 2 if n >= 2 else n - 1  # noqa: PLR2004

        kv = exponential_moments(p.lambda_h[n], dt)
        w_n, w_prev, w_prev_prev = (
            float(w) for w in _lagrange_weights(kv, dt, gamma)
        )
        e_h = float(kv.e)
        k0_h = float(kv.k0)

        h_prev = p.pow_norm[n - 1] * buf.power[n - 1]
        h_prev_prev = p.pow_norm[pp] * buf.power[pp]

        a1 = p.gamma_d * p.pow_norm[n] * w_n
        b1 = (
            p.rho_imp[n]
            + e_h * (buf.rho[n - 1] - p.rho_imp[n - 1])
            - buf.power[0] * p.gamma_d * p.eta * k0_h
            + p.gamma_d * (h_prev * w_prev + h_prev_prev * w_prev_prev)
        )
        return FeedbackCoefficients(a1=float(a1), b1=float(b1))

    def compute_quadratic(
        self,
        n: int,
        alpha: float,
        feedback: FeedbackCoefficients,
        sources: SourceSums,
    ) -> QuadraticCoefficients:
        """
        Assemble the theta-blended power equation as a quadratic in P(n).

        Args:
            n: Time index.
            alpha: Extrapolation rate.
            feedback: Feedback coefficients for the step.
            sources: Group-summed source terms for the step.

        Raises:
            InvalidStepRegimeError: If exp(alpha * dt) overflows.

        Returns:
            QuadraticCoefficients for the step.
        """
        p = self.params
        buf = self.buffers
        dt = p.dt(n)
        growth = alpha * dt
        if growth > _MAX_EXP_ARG:
            raise_invalid_step_regime(
                step_index=n,
                detail=(
                    f"extrapolation factor exp(alpha * dt) overflows "
                    f"(alpha={alpha!r}, dt={dt!r})"
                ),
            )
        theta = p.theta
        ref = p.reference_gen_time
        gen_n = float(p.gen_time[n])
        gen_prev = float(p.gen_time[n - 1])
        p_prev = float(buf.power[n - 1])

        a = theta * dt * feedback.a1 / gen_n
        b = (
            theta
            * dt
            * ((feedback.b1 - p.beta_eff[n]) / gen_n - alpha + sources.tau / ref)
            - 1.0
        )
        explicit = (1.0 - theta) * dt * (
            ((buf.rho[n - 1] - p.beta_eff[n - 1]) / gen_prev - alpha) * p_prev
            + sources.s_d_prev / ref
        )
        c = theta * dt / ref * sources.s_hat_d + math.exp(growth) * (
            explicit + p_prev
        )
        return QuadraticCoefficients(a=float(a), b=float(b), c=float(c))

    # ------------------------------------------------------------------
    # One step
    # ------------------------------------------------------------------

    def step(self, n: int) -> StepResult:
        """
        Propagate the solution to index n.

        Reads indices n-1 and n-2 from the buffers but does not write them;
        the caller stores the returned values.

        Args:
            n: Time index, with n >= 1.

        Raises:
            InvalidStepRegimeError: If the step cannot be resolved.

        Returns:
            StepResult for index n.
        """
        gamma = self.compute_gamma(n)
        alpha = self.compute_alpha(n)

        sources = self.compute_precursor_coefficients(n, gamma)
        feedback = self.compute_feedback_coefficients(n, gamma)
        coeffs = self.compute_quadratic(n, alpha, feedback, sources)
        power = solve_step_quadratic(coeffs, step_index=n)

        accepted = True
        if alpha != 0.0:
            p_prev = float(self.buffers.power[n - 1])
            ctx = AcceptanceContext(
                step_index=n,
                alpha=alpha,
                gamma=gamma,
                dt=self.params.dt(n),
                power=power,
                power_prev=p_prev,
                power_prev_prev=(
                    float(self.buffers.power[n - 2]) if n >= 2 else p_prev  # noqa: PLR2004
                ),
            )
            if not self.acceptance(ctx):
                accepted = False
                alpha = 0.0
                coeffs = self.compute_quadratic(n, alpha, feedback, sources)
                power = solve_step_quadratic(coeffs, step_index=n)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "step n=%d gamma=%.6e alpha=%.6e a=%.6e b=%.6e c=%.6e P=%.12e "
                "accepted=%s",
                n,
                gamma,
                alpha,
                coeffs.a,
                coeffs.b,
                coeffs.c,
                power,
                accepted,
            )

        np.multiply(self._omega, power, out=self._conc)
        self._conc += self._zeta_hat
        rho = feedback.a1 * power + feedback.b1

        return StepResult(
            step_index=n,
            power=power,
            rho=float(rho),
            concentrations=self._conc.copy(),
            alpha=alpha,
            gamma=gamma,
            accepted=accepted,
        )
