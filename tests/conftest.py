"""Global pytest configuration and shared fixtures for epke_engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

import numpy as np
import pytest

from epke_engine.history import EPKEOutput
from epke_engine.parameters import EPKEParameters

if TYPE_CHECKING:
    from collections.abc import Callable

    from numpy.typing import ArrayLike

TWO_GROUP_LAMBDA: Final[tuple[float, float]] = (0.08, 0.6)
TWO_GROUP_BETA: Final[tuple[float, float]] = (0.002, 0.004)
GEN_TIME: Final[float] = 2.0e-5


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used by the test suite."""
    config.addinivalue_line(
        "markers",
        "config: mark test as requiring the pydantic config extra",
    )


# -----------------------------------------------------------------------------
# Builders
# -----------------------------------------------------------------------------


def _per_index(value: float | ArrayLike, n: int) -> np.ndarray:
    arr = np.asarray(value, dtype=float)
    if arr.ndim == 0:
        return np.full(n, float(arr))
    return arr


def make_params(
    time: ArrayLike,
    *,
    lam: ArrayLike = TWO_GROUP_LAMBDA,
    beta: ArrayLike = TWO_GROUP_BETA,
    gen_time: float | ArrayLike = GEN_TIME,
    rho_imp: float | ArrayLike = 0.0,
    lambda_h: float | ArrayLike = 0.0,
    pow_norm: float | ArrayLike = 1.0,
    theta: float = 0.5,
    gamma_d: float = 0.0,
    eta: float = 1.0,
) -> EPKEParameters:
    """Build parameters with time-constant precursor data."""
    t = np.asarray(time, dtype=float)
    n = t.size
    lam_arr = np.asarray(lam, dtype=float)
    beta_arr = np.asarray(beta, dtype=float)
    return EPKEParameters(
        time=t,
        decay_constants=np.repeat(lam_arr[:, None], n, axis=1),
        delayed_fractions=np.repeat(beta_arr[:, None], n, axis=1),
        beta_eff=np.full(n, beta_arr.sum()),
        gen_time=_per_index(gen_time, n),
        lambda_h=_per_index(lambda_h, n),
        pow_norm=_per_index(pow_norm, n),
        rho_imp=_per_index(rho_imp, n),
        theta=theta,
        gamma_d=gamma_d,
        eta=eta,
    )


def equilibrium_seed(
    params: EPKEParameters,
    *,
    power: float = 1.0,
    length: int = 1,
) -> EPKEOutput:
    """Seed with constant power and precursors at equilibrium."""
    ref = params.reference_gen_time
    lam = params.decay_constants[:, :length]
    beta = params.delayed_fractions[:, :length]
    gen = params.gen_time[:length]
    conc = beta * power * ref / (gen * lam)
    return EPKEOutput(
        power=np.full(length, power),
        rho=np.zeros(length),
        concentrations=conc,
    )


@pytest.fixture
def params_factory() -> Callable[..., EPKEParameters]:
    """Factory for two-group parameter sets."""
    return make_params


@pytest.fixture
def seed_factory() -> Callable[..., EPKEOutput]:
    """Factory for equilibrium seeds."""
    return equilibrium_seed


@pytest.fixture
def uniform_params() -> EPKEParameters:
    """Two-group, critical, feedback-free parameters on 11 uniform points."""
    return make_params(np.linspace(0.0, 1.0, 11))


@pytest.fixture
def steady_seed(uniform_params: EPKEParameters) -> EPKEOutput:
    """Single-point equilibrium seed for uniform_params."""
    return equilibrium_seed(uniform_params)
