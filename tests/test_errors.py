"""Unit tests for epke_engine.errors."""

from __future__ import annotations

import pytest

from epke_engine import errors


def test_invalid_step_regime_helper() -> None:
    """raise_invalid_step_regime names the index and the offending quantity."""
    with pytest.raises(errors.InvalidStepRegimeError) as excinfo:
        errors.raise_invalid_step_regime(step_index=12, detail="a=1.0 > 0")

    exc = excinfo.value
    assert exc.code is errors.ErrorCode.INVALID_STEP_REGIME
    assert exc.step_index == 12
    assert str(exc) == "Invalid step regime at time index 12: a=1.0 > 0"
    assert isinstance(exc, ArithmeticError)
    assert isinstance(exc, errors.EPKEError)


def test_malformed_input_helper_lists_missing_fields() -> None:
    """raise_malformed_input de-duplicates and sorts missing fields."""
    with pytest.raises(errors.MalformedInputError) as excinfo:
        errors.raise_malformed_input(
            missing=["rho", "power", "rho"], detail="seed incomplete"
        )

    msg = str(excinfo.value)
    assert msg.startswith("Malformed input.")
    assert "['power', 'rho']" in msg
    assert "Detail: seed incomplete" in msg
    assert excinfo.value.step_index is None
    assert isinstance(excinfo.value, ValueError)


def test_numeric_domain_helper() -> None:
    """raise_numeric_domain reports expected domain and received value."""
    with pytest.raises(errors.NumericDomainError) as excinfo:
        errors.raise_numeric_domain(name="dt", expected="a finite value > 0", got=0.0)

    msg = str(excinfo.value)
    assert "dt" in msg
    assert "a finite value > 0" in msg
    assert "0.0" in msg
    assert excinfo.value.code is errors.ErrorCode.NUMERIC_DOMAIN


def test_error_codes_are_strings() -> None:
    """Error codes compare equal to their plain string values."""
    assert errors.ErrorCode.INCOMPLETE_SOLVE == "incomplete_solve"
    assert {code.value for code in errors.ErrorCode} == {
        "invalid_step_regime",
        "malformed_input",
        "numeric_domain",
        "incomplete_solve",
    }
