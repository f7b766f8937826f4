# src/epke_engine/errors.py
"""Error types and standardized raise helpers for epke_engine.

This module centralizes:
- a machine-readable ErrorCode classification,
- explicit error classes with actionable messages, and
- small helpers that build consistent messages naming the error kind and,
  where one applies, the time index that triggered it.

Failures propagate to the caller of the Solver; nothing here attempts local
recovery.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    """Machine-readable classification for epke_engine failures."""

    INVALID_STEP_REGIME = "invalid_step_regime"
    MALFORMED_INPUT = "malformed_input"
    NUMERIC_DOMAIN = "numeric_domain"
    INCOMPLETE_SOLVE = "incomplete_solve"


class EPKEError(Exception):
    """Base exception for epke_engine failures.

    Callers can catch this to handle every solver failure uniformly, and use
    ``code`` and ``step_index`` to tell them apart.
    """

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        step_index: int | None = None,
    ) -> None:
        """
        Initialize an EPKEError.

        Args:
            message: Human-readable error message.
            code: Optional machine-readable error code classifying the error.
            step_index: Time index at which the failure occurred, if any.
        """
        super().__init__(message)
        self.code: ErrorCode | None = code
        self.step_index: int | None = step_index


class InvalidStepRegimeError(EPKEError, ArithmeticError):
    """Raised when the per-step quadratic cannot be resolved by the method."""


class MalformedInputError(EPKEError, ValueError):
    """Raised when parameter or history data is missing or inconsistent."""


class NumericDomainError(EPKEError, ValueError):
    """Raised when a kernel is evaluated outside its domain."""


class IncompleteSolveError(EPKEError, RuntimeError):
    """Raised when a result is read before its solver reached DONE."""


def raise_invalid_step_regime(*, step_index: int, detail: str) -> None:
    """
    Raise a standardized InvalidStepRegimeError.

    Args:
        step_index: Time index of the failing step.
        detail: Description of the offending quantity.

    Raises:
        InvalidStepRegimeError: Always.
    """
    msg = f"Invalid step regime at time index {step_index}: {detail}"
    raise InvalidStepRegimeError(
        msg, code=ErrorCode.INVALID_STEP_REGIME, step_index=step_index
    )


def raise_malformed_input(
    *,
    missing: list[str] | None = None,
    detail: str | None = None,
    step_index: int | None = None,
) -> None:
    """
    Raise a standardized MalformedInputError.

    Args:
        missing: Required fields that are missing.
        detail: Optional additional context.
        step_index: Time index involved, if any.

    Raises:
        MalformedInputError: Always.
    """
    parts: list[str] = ["Malformed input."]
    if missing:
        parts.append(f"Missing required field(s): {sorted(set(missing))}.")
    if detail:
        parts.append(f"Detail: {detail}")
    raise MalformedInputError(
        " ".join(parts), code=ErrorCode.MALFORMED_INPUT, step_index=step_index
    )


def raise_numeric_domain(*, name: str, expected: str, got: object) -> None:
    """
    Raise a standardized NumericDomainError.

    Args:
        name: Name of the offending argument.
        expected: Human-readable description of the valid domain.
        got: Actual value received.

    Raises:
        NumericDomainError: Always.
    """
    msg = f"{name} is outside its numeric domain. Expected {expected}. Got: {got!r}."
    raise NumericDomainError(msg, code=ErrorCode.NUMERIC_DOMAIN)
