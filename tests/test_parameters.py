# tests/test_parameters.py
"""Unit tests for EPKEParameters validation, accessors and interpolation."""

from __future__ import annotations

import numpy as np
import pytest

from epke_engine.errors import MalformedInputError, NumericDomainError
from epke_engine.parameters import EPKEParameters, validate_time_grid


def test_accessors(params_factory) -> None:
    time = np.array([0.0, 0.1, 0.3, 0.6])
    params = params_factory(time, rho_imp=[0.0, 1e-4, 2e-4, 3e-4], gamma_d=-0.5)

    assert params.num_time_steps == 4
    assert params.num_precursors == 2
    assert params.get_time(2) == pytest.approx(0.3)
    assert params.dt(3) == pytest.approx(0.3)
    assert params.get_decay_constant(1, 0) == pytest.approx(0.6)
    assert params.get_delayed_fraction(0, 3) == pytest.approx(0.002)
    assert params.get_beta_eff(1) == pytest.approx(0.006)
    assert params.get_rho_imp(2) == pytest.approx(2e-4)
    assert params.get_pow_norm(0) == 1.0
    assert params.get_lambda_h(0) == 0.0
    assert params.reference_gen_time == pytest.approx(params.get_gen_time(0))
    assert params.gamma_d == -0.5


def test_dt_undefined_at_first_index(uniform_params: EPKEParameters) -> None:
    with pytest.raises(IndexError):
        uniform_params.dt(0)
    with pytest.raises(IndexError):
        uniform_params.dt(uniform_params.num_time_steps)
    with pytest.raises(IndexError):
        uniform_params.get_time(-1)


def test_arrays_are_copied_and_frozen(params_factory) -> None:
    time = np.linspace(0.0, 1.0, 5)
    params = params_factory(time)
    time[1] = 99.0

    assert params.time[1] == pytest.approx(0.25)
    with pytest.raises(ValueError, match="read-only"):
        params.gen_time[0] = 1.0


@pytest.mark.parametrize(
    "grid",
    [
        [0.0, 0.0, 1.0],
        [0.0, 2.0, 1.0],
        [],
        [[0.0, 1.0]],
        [0.0, np.nan],
    ],
)
def test_invalid_time_grid(grid) -> None:
    with pytest.raises(MalformedInputError):
        validate_time_grid(grid)


def test_shape_mismatch_is_malformed(params_factory) -> None:
    params = params_factory(np.linspace(0.0, 1.0, 4))
    with pytest.raises(MalformedInputError, match="gen_time"):
        EPKEParameters(
            time=params.time,
            decay_constants=params.decay_constants,
            delayed_fractions=params.delayed_fractions,
            beta_eff=params.beta_eff,
            gen_time=np.ones(3),
            lambda_h=params.lambda_h,
            pow_norm=params.pow_norm,
            rho_imp=params.rho_imp,
            theta=0.5,
            gamma_d=0.0,
            eta=1.0,
        )


def test_group_count_mismatch_is_malformed(params_factory) -> None:
    params = params_factory(np.linspace(0.0, 1.0, 4))
    with pytest.raises(MalformedInputError, match="delayed_fractions"):
        EPKEParameters(
            time=params.time,
            decay_constants=params.decay_constants,
            delayed_fractions=params.delayed_fractions[:1],
            beta_eff=params.beta_eff,
            gen_time=params.gen_time,
            lambda_h=params.lambda_h,
            pow_norm=params.pow_norm,
            rho_imp=params.rho_imp,
            theta=0.5,
            gamma_d=0.0,
            eta=1.0,
        )


def test_negative_decay_constant_is_numeric_domain(params_factory) -> None:
    with pytest.raises(NumericDomainError):
        params_factory(np.linspace(0.0, 1.0, 3), lam=[-0.1, 0.6])


def test_negative_feedback_decay_is_numeric_domain(params_factory) -> None:
    with pytest.raises(NumericDomainError):
        params_factory(np.linspace(0.0, 1.0, 3), lambda_h=-1.0)


@pytest.mark.parametrize("theta", [-0.1, 1.5])
def test_theta_out_of_range(params_factory, theta: float) -> None:
    with pytest.raises(MalformedInputError, match="theta"):
        params_factory(np.linspace(0.0, 1.0, 3), theta=theta)


def test_non_positive_generation_time(params_factory) -> None:
    with pytest.raises(MalformedInputError, match="generation"):
        params_factory(np.linspace(0.0, 1.0, 3), gen_time=[1e-5, 0.0, 1e-5])


def test_interpolate_onto_refined_grid(params_factory) -> None:
    time = np.array([0.0, 1.0, 2.0])
    params = params_factory(
        time,
        gen_time=[1e-5, 2e-5, 4e-5],
        rho_imp=[0.0, 1e-3, 0.0],
        gamma_d=-2.0,
        theta=0.7,
    )
    grid = np.array([0.0, 0.5, 1.0, 1.25, 2.0])
    fine = params.interpolate(grid)

    np.testing.assert_allclose(fine.time, grid)
    np.testing.assert_allclose(fine.gen_time, [1e-5, 1.5e-5, 2e-5, 2.5e-5, 4e-5])
    np.testing.assert_allclose(fine.rho_imp, [0.0, 5e-4, 1e-3, 7.5e-4, 0.0])
    assert fine.decay_constants.shape == (2, 5)
    np.testing.assert_allclose(fine.decay_constants[1], 0.6)
    assert fine.theta == 0.7
    assert fine.gamma_d == -2.0
    # Reference generation time is carried over, not re-derived.
    assert fine.reference_gen_time == params.reference_gen_time


def test_interpolate_keeps_reference_on_shifted_grid(params_factory) -> None:
    params = params_factory(np.array([0.0, 1.0]), gen_time=[1e-5, 3e-5])
    shifted = params.interpolate([0.5, 1.0])
    assert shifted.gen_time[0] == pytest.approx(2e-5)
    assert shifted.reference_gen_time == pytest.approx(1e-5)


def test_interpolate_rejects_extrapolation(uniform_params: EPKEParameters) -> None:
    with pytest.raises(MalformedInputError, match="outside"):
        uniform_params.interpolate([0.5, 1.5])


def test_interpolate_without_precursors() -> None:
    time = np.array([0.0, 1.0])
    params = EPKEParameters(
        time=time,
        decay_constants=np.zeros((0, 2)),
        delayed_fractions=np.zeros((0, 2)),
        beta_eff=np.zeros(2),
        gen_time=np.full(2, 1e-4),
        lambda_h=np.zeros(2),
        pow_norm=np.ones(2),
        rho_imp=np.zeros(2),
        theta=1.0,
        gamma_d=0.0,
        eta=1.0,
    )
    fine = params.interpolate([0.0, 0.5, 1.0])
    assert fine.num_precursors == 0
    assert fine.decay_constants.shape == (0, 3)
