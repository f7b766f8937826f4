# src/epke_engine/config.py
"""Configuration models for epke_engine.

This module defines pydantic models that validate plain mappings (for
example a YAML or JSON document already loaded by the caller) and translate
them into native epke_engine objects:

- EPKEInputModel   -> EPKEParameters
- PrecomputedModel -> EPKEOutput (seed histories)
- SolverConfigModel -> RunConfig

Notes:
    - Unknown fields are allowed and ignored (``extra="allow"``), so the
      models can sit inside larger documents.
    - Per-index quantities may be given as scalars (broadcast over the time
      grid) or as sequences of length N. Per-group quantities may be given as
      one value per group (constant in time) or as K sequences of length N.
    - Shape mismatches that cannot be broadcast raise MalformedInputError
      when the native object is built.
"""

from __future__ import annotations

from typing import Literal

import numpy as np
from pydantic import BaseModel, ConfigDict, Field

from .errors import raise_malformed_input
from .history import EPKEOutput
from .parameters import EPKEParameters, validate_time_grid
from .solver import RunConfig

PerIndex = float | list[float]
PerGroup = list[float] | list[list[float]]

_PER_INDEX_ERROR = "{name} must be a scalar or have {n} entries; got shape {shape}"
_PER_GROUP_ERROR = (
    "{name} must have one entry per group or shape (K, {n}); got shape {shape}"
)
_GROUP_COUNT_ERROR = "decay_constants has {k_lam} groups but delayed_fractions has {k_beta}"


def _per_index(name: str, value: PerIndex, n_steps: int) -> np.ndarray:
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim == 0:
        return np.full(n_steps, float(arr))
    if arr.shape != (n_steps,):
        raise_malformed_input(
            detail=_PER_INDEX_ERROR.format(name=name, n=n_steps, shape=arr.shape)
        )
    return arr


def _per_group(name: str, value: PerGroup, n_steps: int) -> np.ndarray:
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim == 1:
        return np.repeat(arr[:, None], n_steps, axis=1)
    if arr.ndim != 2 or arr.shape[1] != n_steps:  # noqa: PLR2004
        raise_malformed_input(
            detail=_PER_GROUP_ERROR.format(name=name, n=n_steps, shape=arr.shape)
        )
    return arr


class EPKEInputModel(BaseModel):
    """Schema for the physical parameters of one solve."""

    model_config = ConfigDict(extra="allow")

    time: list[float] = Field(min_length=1, description="Strictly increasing times")
    decay_constants: PerGroup = Field(description="Precursor decay constants")
    delayed_fractions: PerGroup = Field(description="Delayed neutron fractions")
    beta_eff: PerIndex | None = Field(
        default=None,
        description="Total delayed fraction; defaults to the sum over groups",
    )
    gen_time: PerIndex = Field(description="Generation time")
    lambda_h: PerIndex = Field(default=0.0, description="Feedback decay constant")
    pow_norm: PerIndex = Field(default=1.0, description="Power normalization")
    rho_imp: PerIndex = Field(default=0.0, description="Imposed reactivity")

    theta: float = Field(default=0.5, ge=0.0, le=1.0)
    gamma_d: float = Field(default=0.0, description="Feedback gain")
    eta: float = Field(default=1.0)

    def to_parameters(self) -> EPKEParameters:
        """Convert this model to a native EPKEParameters.

        Returns:
            Fully constructed EPKEParameters instance.
        """
        time = validate_time_grid(self.time)
        n_steps = int(time.size)

        decay = _per_group("decay_constants", self.decay_constants, n_steps)
        beta = _per_group("delayed_fractions", self.delayed_fractions, n_steps)
        if decay.shape[0] != beta.shape[0]:
            raise_malformed_input(
                detail=_GROUP_COUNT_ERROR.format(
                    k_lam=decay.shape[0], k_beta=beta.shape[0]
                )
            )

        beta_eff = (
            beta.sum(axis=0)
            if self.beta_eff is None
            else _per_index("beta_eff", self.beta_eff, n_steps)
        )

        return EPKEParameters(
            time=time,
            decay_constants=decay,
            delayed_fractions=beta,
            beta_eff=beta_eff,
            gen_time=_per_index("gen_time", self.gen_time, n_steps),
            lambda_h=_per_index("lambda_h", self.lambda_h, n_steps),
            pow_norm=_per_index("pow_norm", self.pow_norm, n_steps),
            rho_imp=_per_index("rho_imp", self.rho_imp, n_steps),
            theta=self.theta,
            gamma_d=self.gamma_d,
            eta=self.eta,
        )


class PrecomputedModel(BaseModel):
    """Schema for seed histories."""

    model_config = ConfigDict(extra="allow")

    power: list[float] = Field(min_length=1)
    rho: list[float] = Field(min_length=1)
    concentrations: list[list[float]] = Field(
        description="One history per precursor group"
    )

    def to_history(self) -> EPKEOutput:
        """Convert this model to a native EPKEOutput.

        Returns:
            EPKEOutput holding the seed histories.
        """
        n_steps = len(self.power)
        conc = (
            np.asarray(self.concentrations, dtype=np.float64)
            if self.concentrations
            else np.zeros((0, n_steps), dtype=np.float64)
        )
        return EPKEOutput(power=self.power, rho=self.rho, concentrations=conc)


class SolverConfigModel(BaseModel):
    """Schema for run options, mirroring RunConfig with YAML-friendly fields."""

    model_config = ConfigDict(extra="allow")

    acceptance: Literal["always", "linear"] = Field(
        default="always",
        description="Acceptance policy for the extrapolation rate",
    )
    strict: bool = Field(
        default=True,
        description="Fail fast on recoverable configuration problems",
    )
    grid_atol: float = Field(default=1e-12, ge=0.0)
    max_workers: int | None = Field(default=None, ge=1)

    def to_run_config(self) -> RunConfig:
        """Convert this config to a native RunConfig.

        Returns:
            Fully constructed RunConfig instance.
        """
        return RunConfig(
            acceptance=self.acceptance,
            strict=self.strict,
            grid_atol=self.grid_atol,
            max_workers=self.max_workers,
        )
