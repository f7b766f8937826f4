# src/epke_engine/history.py
"""Power, reactivity and precursor-concentration histories.

Two containers live here:

- EPKEOutput: an immutable bundle of histories over a prefix of a time grid.
  It serves both as the seed ("precomputed") provider a Solver starts from
  and as the result a Solver produces. ``slice`` returns a shorter,
  independent prefix for seeding fine solvers, and ``to_layout`` gives the
  per-quantity sample lists a serialization layer writes out.
- HistoryBuffers: the full-length, exclusively owned working buffers of one
  Solver. Indices below the seed length are copied by value from the seed and
  never touched again; every later index is written exactly once, in
  increasing order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import numpy as np
import numpy.typing as npt

from .errors import raise_malformed_input

if TYPE_CHECKING:
    from numpy.typing import ArrayLike


FloatArray = npt.NDArray[np.floating[Any]]

# Error / message constants -------------------------------------------------

_HISTORY_SHAPE_ERROR: Final[str] = "{name} has shape {actual}; expected {expected}"
_SEED_EMPTY_ERROR: Final[str] = "seed history must contain at least one time index"
_SEED_TOO_LONG_ERROR: Final[str] = (
    "seed history has {seed} entries but the time grid only has {grid}"
)
_SEED_GROUPS_ERROR: Final[str] = (
    "seed history has {seed} precursor groups; parameters define {params}"
)
_SLICE_OOB_ERROR: Final[str] = "cannot slice history at index {idx}; {size} available"
_INDEX_OOB_ERROR: Final[str] = "history index out of bounds: {idx}"
_WRITE_ORDER_ERROR: Final[str] = (
    "history index {idx} written out of order; next writable index is {expected}"
)
_FINAL_TIMESTEP_ERROR: Final[str] = "history buffers are already full"


def _frozen(arr: ArrayLike) -> FloatArray:
    out = np.array(arr, dtype=np.float64, copy=True)
    out.setflags(write=False)
    return out


@dataclass(slots=True, frozen=True, eq=False)
class EPKEOutput:
    """Immutable histories over indices 0..num_time_steps-1.

    Attributes:
        power: Power history, shape (M,).
        rho: Reactivity-with-feedback history, shape (M,).
        concentrations: Scaled precursor concentrations, shape (K, M).
        time: Optional matching time values, shape (M,).
    """

    power: FloatArray
    rho: FloatArray
    concentrations: FloatArray
    time: FloatArray | None = None

    def __post_init__(self) -> None:
        """Copy, freeze and validate the histories.

        Raises:
            MalformedInputError: If the arrays have inconsistent shapes.
        """
        power = _frozen(self.power)
        if power.ndim != 1:
            raise_malformed_input(
                detail=_HISTORY_SHAPE_ERROR.format(
                    name="power", actual=power.shape, expected="(M,)"
                )
            )
        n_steps = int(power.size)
        object.__setattr__(self, "power", power)

        rho = _frozen(self.rho)
        if rho.shape != (n_steps,):
            raise_malformed_input(
                detail=_HISTORY_SHAPE_ERROR.format(
                    name="rho", actual=rho.shape, expected=(n_steps,)
                )
            )
        object.__setattr__(self, "rho", rho)

        conc = _frozen(self.concentrations)
        if conc.ndim != 2 or conc.shape[1] != n_steps:  # noqa: PLR2004
            raise_malformed_input(
                detail=_HISTORY_SHAPE_ERROR.format(
                    name="concentrations",
                    actual=conc.shape,
                    expected=f"(K, {n_steps})",
                )
            )
        object.__setattr__(self, "concentrations", conc)

        if self.time is not None:
            time = _frozen(self.time)
            if time.shape != (n_steps,):
                raise_malformed_input(
                    detail=_HISTORY_SHAPE_ERROR.format(
                        name="time", actual=time.shape, expected=(n_steps,)
                    )
                )
            object.__setattr__(self, "time", time)

    @property
    def num_time_steps(self) -> int:
        """Number of time indices covered."""
        return int(self.power.size)

    @property
    def num_precursors(self) -> int:
        """Number of precursor groups."""
        return int(self.concentrations.shape[0])

    def _check_index(self, n: int) -> None:
        if not (0 <= n < self.num_time_steps):
            raise IndexError(_INDEX_OOB_ERROR.format(idx=n))

    def get_power(self, n: int) -> float:
        """Power at index n."""
        self._check_index(n)
        return float(self.power[n])

    def get_rho(self, n: int) -> float:
        """Reactivity with feedback at index n."""
        self._check_index(n)
        return float(self.rho[n])

    def get_concentration(self, k: int, n: int) -> float:
        """Scaled concentration of group k at index n."""
        self._check_index(n)
        return float(self.concentrations[k, n])

    def slice(self, index: int) -> EPKEOutput:
        """
        Return an independent prefix covering indices 0..index (inclusive).

        Args:
            index: Last index to keep.

        Raises:
            MalformedInputError: If index is outside the available history.

        Returns:
            A new EPKEOutput holding copies of the first index + 1 entries.
        """
        if not (0 <= index < self.num_time_steps):
            raise_malformed_input(
                detail=_SLICE_OOB_ERROR.format(idx=index, size=self.num_time_steps),
                step_index=index,
            )
        stop = index + 1
        return EPKEOutput(
            power=self.power[:stop],
            rho=self.rho[:stop],
            concentrations=self.concentrations[:, :stop],
            time=None if self.time is None else self.time[:stop],
        )

    def to_layout(self) -> dict[str, object]:
        """
        Return the histories as plain per-quantity sample lists.

        Concentrations are tagged by their group index. Values are Python
        floats, so no precision is lost before a serializer formats them.

        Returns:
            Mapping with "time", "power", "rho" and "concentrations" entries.
        """
        return {
            "time": None if self.time is None else self.time.tolist(),
            "power": self.power.tolist(),
            "rho": self.rho.tolist(),
            "concentrations": [
                {"k": k, "values": row.tolist()}
                for k, row in enumerate(self.concentrations)
            ],
        }


class HistoryBuffers:
    """Full-length, append-once history buffers owned by one Solver."""

    def __init__(
        self,
        n_timesteps: int,
        n_precursors: int,
        seed: EPKEOutput,
    ) -> None:
        """
        Allocate buffers and copy the seed prefix into them.

        Args:
            n_timesteps: Length of the solver's time grid.
            n_precursors: Number of precursor groups.
            seed: Precomputed histories for the leading indices.

        Raises:
            MalformedInputError: If the seed is empty, too long, or has the
                wrong number of precursor groups.
        """
        seed_len = seed.num_time_steps
        if seed_len < 1:
            raise_malformed_input(detail=_SEED_EMPTY_ERROR)
        if seed_len > n_timesteps:
            raise_malformed_input(
                detail=_SEED_TOO_LONG_ERROR.format(seed=seed_len, grid=n_timesteps)
            )
        if seed.num_precursors != n_precursors:
            raise_malformed_input(
                detail=_SEED_GROUPS_ERROR.format(
                    seed=seed.num_precursors, params=n_precursors
                )
            )

        self.n_timesteps = int(n_timesteps)
        self.n_precursors = int(n_precursors)

        self.power = np.zeros(self.n_timesteps, dtype=np.float64)
        self.rho = np.zeros(self.n_timesteps, dtype=np.float64)
        self.concentrations = np.zeros(
            (self.n_precursors, self.n_timesteps), dtype=np.float64
        )

        self.power[:seed_len] = seed.power
        self.rho[:seed_len] = seed.rho
        self.concentrations[:, :seed_len] = seed.concentrations

        self.seed_length = seed_len
        self.n_filled = seed_len

    @property
    def is_complete(self) -> bool:
        """True once every index has been written."""
        return self.n_filled == self.n_timesteps

    def write(
        self,
        n: int,
        power: float,
        rho: float,
        concentrations: FloatArray,
    ) -> None:
        """
        Write the values for index n, which must be the next unwritten index.

        Args:
            n: Time index being written.
            power: Power at n.
            rho: Reactivity with feedback at n.
            concentrations: Scaled concentrations at n, shape (K,).

        Raises:
            RuntimeError: If the buffers are full or n is out of order.
        """
        if self.is_complete:
            raise RuntimeError(_FINAL_TIMESTEP_ERROR)
        if n != self.n_filled:
            raise RuntimeError(
                _WRITE_ORDER_ERROR.format(idx=n, expected=self.n_filled)
            )

        self.power[n] = power
        self.rho[n] = rho
        self.concentrations[:, n] = concentrations
        self.n_filled += 1

    def snapshot(self, time: ArrayLike | None = None) -> EPKEOutput:
        """
        Return an immutable copy of every index written so far.

        Args:
            time: Optional time grid; it is truncated to the written prefix.

        Returns:
            EPKEOutput over indices 0..n_filled-1.
        """
        stop = self.n_filled
        return EPKEOutput(
            power=self.power[:stop],
            rho=self.rho[:stop],
            concentrations=self.concentrations[:, :stop],
            time=None if time is None else np.asarray(time)[:stop],
        )
