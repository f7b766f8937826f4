# src/epke_engine/assembly.py
"""Stitch fine-solver histories onto a coarse output.

The global output lives on the coarse grid. For every fine output, each
coarse index strictly after the fine solver's coarse starting index whose
time also appears on the fine grid (within ``atol``) takes the fine values.
Fine outputs are applied in order of their starting index, so where several
cover the same coarse point the latest-starting one wins. Every other index
keeps the coarse values.

This is only the composition step of a parallel-in-time scheme; the
predictor-corrector update between coarse and fine solutions is not part of
it.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Final

import numpy as np

from .errors import raise_malformed_input
from .history import EPKEOutput

if TYPE_CHECKING:
    from numpy.typing import NDArray

    IntArray = NDArray[np.intp]
    BoolArray = NDArray[np.bool_]
    FloatArray = NDArray[np.floating]


_MISSING_TIME_MSG: Final[str] = "{name} output carries no time grid"
_GROUPS_MISMATCH_MSG: Final[str] = (
    "fine output starting at coarse index {idx} has {fine} precursor groups; "
    "coarse output has {coarse}"
)


def match_times(
    targets: FloatArray,
    grid: FloatArray,
    *,
    atol: float,
) -> tuple[BoolArray, IntArray]:
    """
    Locate target times on a sorted grid.

    Args:
        targets: Times to look up.
        grid: Strictly increasing grid.
        atol: Absolute matching tolerance.

    Returns:
        (mask, indices): mask[i] is True where targets[i] has a grid point
        within atol; indices lists the matching grid index for each masked
        target, in order.
    """
    if grid.size == 0:
        return np.zeros(targets.shape, dtype=bool), np.zeros(0, dtype=np.intp)

    pos = np.searchsorted(grid, targets)
    lo = np.clip(pos - 1, 0, grid.size - 1)
    hi = np.clip(pos, 0, grid.size - 1)
    d_lo = np.abs(grid[lo] - targets)
    d_hi = np.abs(grid[hi] - targets)

    best = np.where(d_hi < d_lo, hi, lo)
    mask = np.minimum(d_lo, d_hi) <= atol
    return mask, best[mask]


def assemble_global_output(
    coarse: EPKEOutput,
    fine: Sequence[tuple[int, EPKEOutput]],
    *,
    atol: float = 1e-12,
) -> EPKEOutput:
    """
    Combine a coarse output with fine outputs into one coarse-grid result.

    Args:
        coarse: Completed coarse histories with times attached.
        fine: (coarse_index, output) pairs of completed fine solvers.
        atol: Time matching tolerance.

    Raises:
        MalformedInputError: If an output has no times or the group counts
            differ.

    Returns:
        A new EPKEOutput on the coarse grid.
    """
    if coarse.time is None:
        raise_malformed_input(detail=_MISSING_TIME_MSG.format(name="coarse"))

    coarse_time = np.asarray(coarse.time)
    power = coarse.power.copy()
    rho = coarse.rho.copy()
    concentrations = coarse.concentrations.copy()

    for coarse_index, out in sorted(fine, key=lambda item: item[0]):
        if out.time is None:
            raise_malformed_input(detail=_MISSING_TIME_MSG.format(name="fine"))
        if out.num_precursors != coarse.num_precursors:
            raise_malformed_input(
                detail=_GROUPS_MISMATCH_MSG.format(
                    idx=coarse_index,
                    fine=out.num_precursors,
                    coarse=coarse.num_precursors,
                )
            )

        start = coarse_index + 1
        mask, idx = match_times(
            coarse_time[start:], np.asarray(out.time), atol=atol
        )
        targets = np.flatnonzero(mask) + start
        power[targets] = out.power[idx]
        rho[targets] = out.rho[idx]
        concentrations[:, targets] = out.concentrations[:, idx]

    return EPKEOutput(
        power=power,
        rho=rho,
        concentrations=concentrations,
        time=coarse_time,
    )
