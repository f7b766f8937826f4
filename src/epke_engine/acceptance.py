# src/epke_engine/acceptance.py
"""Step-acceptance policies for the extrapolation rate alpha.

After a step is solved with a nonzero alpha, a policy decides whether the
exponential extrapolation is kept. A rejected step is re-solved with
alpha = 0 by the propagator.

Policies:
    - "always": keep every alpha (the default).
    - "linear": keep alpha only if the exponential prediction
      exp(alpha * dt) * P(n-1) is at least as close to the computed P(n) as a
      linear-difference prediction built from P(n-1) and P(n-2).

Custom policies are any callable matching AcceptancePolicy.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Final, Literal, Protocol, TypeAlias

import numpy as np

from .errors import raise_malformed_input

_UNKNOWN_POLICY_ERROR: Final[str] = "Unknown acceptance policy: {name!r}"

AcceptanceName = Literal["always", "linear"]


@dataclass(slots=True, frozen=True)
class AcceptanceContext:
    """Values a policy may inspect for one solved step.

    Attributes:
        step_index: Index n of the step.
        alpha: Extrapolation rate used for the step.
        gamma: Step-size ratio dt(n-1) / dt(n).
        dt: Step size dt(n).
        power: Computed power P(n).
        power_prev: P(n-1).
        power_prev_prev: P(n-2), or P(n-1) where no second-previous value exists.
    """

    step_index: int
    alpha: float
    gamma: float
    dt: float
    power: float
    power_prev: float
    power_prev_prev: float


class AcceptancePolicy(Protocol):
    """Callable deciding whether a step's alpha is kept."""

    def __call__(self, ctx: AcceptanceContext) -> bool:
        """Return True to keep the step, False to redo it with alpha = 0."""
        ...


def accept_always(ctx: AcceptanceContext) -> bool:  # noqa: ARG001
    """Keep every extrapolation rate."""
    return True


def linear_difference_test(ctx: AcceptanceContext) -> bool:
    """
    Compare exponential and linear-difference predictions of P(n).

    Args:
        ctx: Step values.

    Returns:
        True if |P(n) - exp(alpha dt) P(n-1)| does not exceed
        |P(n) - P(n-1) - (P(n-1) - P(n-2)) / gamma|.
    """
    lhs = abs(ctx.power - np.exp(ctx.alpha * ctx.dt) * ctx.power_prev)
    rhs = abs(
        ctx.power
        - ctx.power_prev
        - (ctx.power_prev - ctx.power_prev_prev) / ctx.gamma
    )
    return bool(lhs <= rhs)


AcceptanceSpec: TypeAlias = AcceptanceName | Callable[[AcceptanceContext], bool]

_POLICIES: Final[dict[str, AcceptancePolicy]] = {
    "always": accept_always,
    "linear": linear_difference_test,
}


def resolve_acceptance(choice: AcceptanceSpec) -> AcceptancePolicy:
    """
    Resolve a policy name or callable into a policy.

    Args:
        choice: Policy name or callable.

    Raises:
        MalformedInputError: If the name is unknown.

    Returns:
        The acceptance policy callable.
    """
    if callable(choice):
        return choice

    name = str(choice).strip().lower()
    policy = _POLICIES.get(name)
    if policy is None:
        raise_malformed_input(detail=_UNKNOWN_POLICY_ERROR.format(name=choice))
    return policy  # type: ignore[return-value]
