# epke_engine/examples/rod_ejection.py
"""Rod-ejection transient with temperature feedback, coarse and refined.

This example demonstrates the composition API:

- Solver / SolverTree.solve(): run the coarse grid from an equilibrium seed.
- SolverTree.create_fine_solver(...): refine the sub-interval around the
  reactivity ramp, seeded from the coarse history at its starting index.
- SolverTree.assemble_global_output(): stitch the refined values back onto
  the coarse grid.

Six precursor groups are used with a linear reactivity insertion of 0.8
dollars over 0.1 s and a negative power feedback that turns the excursion
around.

This script saves plots to disk (no interactive windows).
"""

from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

from epke_engine import EPKEOutput, EPKEParameters, RunConfig, SolverTree

_OUTPUT_DIR = Path(__file__).resolve().parent / "output" / "rod_ejection"

# Six-group U-235 thermal data.
_DECAY = np.array([0.0124, 0.0305, 0.111, 0.301, 1.14, 3.01])
_BETA = np.array([0.000215, 0.001424, 0.001274, 0.002568, 0.000748, 0.000273])
_GEN_TIME = 2.0e-5


def build_parameters(
    time: np.ndarray,
    *,
    dollars: float,
    ramp_time: float,
    gamma_d: float,
) -> EPKEParameters:
    """Build a constant-data parameter set with a ramped reactivity.

    Args:
        time: Time grid.
        dollars: Inserted reactivity in units of beta_eff.
        ramp_time: Duration of the linear insertion.
        gamma_d: Feedback gain (negative for a stabilizing feedback).

    Returns:
        EPKEParameters on the grid.
    """
    n = time.size
    beta_eff = float(_BETA.sum())
    rho_imp = dollars * beta_eff * np.clip(time / ramp_time, 0.0, 1.0)
    return EPKEParameters(
        time=time,
        decay_constants=np.repeat(_DECAY[:, None], n, axis=1),
        delayed_fractions=np.repeat(_BETA[:, None], n, axis=1),
        beta_eff=np.full(n, beta_eff),
        gen_time=np.full(n, _GEN_TIME),
        lambda_h=np.zeros(n),
        pow_norm=np.ones(n),
        rho_imp=rho_imp,
        theta=0.5,
        gamma_d=gamma_d,
        eta=1.0,
    )


def equilibrium_seed(params: EPKEParameters) -> EPKEOutput:
    """Single-point seed with unit power and precursors at equilibrium.

    Args:
        params: Parameter set the seed is built for.

    Returns:
        EPKEOutput covering index 0.
    """
    conc = params.delayed_fractions[:, :1] / params.decay_constants[:, :1]
    return EPKEOutput(power=[1.0], rho=[0.0], concentrations=conc)


def save_power_plot(
    curves: dict[str, tuple[np.ndarray, np.ndarray]],
    *,
    title: str,
    out_path: Path,
) -> None:
    """Save power traces to an image file.

    Args:
        curves: Label -> (time, power) mapping.
        title: Plot title.
        out_path: Output path for the saved figure.
    """
    plt.figure(figsize=(8, 5))
    for label, (t, p) in curves.items():
        plt.plot(t, p, marker="o" if t.size < 60 else None, label=label)  # noqa: PLR2004
    plt.grid(visible=True)
    plt.legend()
    plt.title(title)
    plt.xlabel("Time [s]")
    plt.ylabel("Relative power")
    plt.tight_layout()

    out_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(out_path, dpi=150)
    plt.close()


def main() -> None:
    """Run the coarse and refined transients and save their plots.

    Produces two saved plots:
      1) Coarse power next to the fine solver's own trace.
      2) The assembled coarse-grid output next to the coarse-only output.

    Files are written to: examples/output/rod_ejection/
    """
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    # ---------------------------------------------------------------------
    # Coarse run
    # ---------------------------------------------------------------------
    total_time = 2.0
    time_coarse = np.linspace(0.0, total_time, 41)
    params = build_parameters(time_coarse, dollars=0.8, ramp_time=0.1, gamma_d=-0.02)

    tree = SolverTree(params, equilibrium_seed(params), config=RunConfig())
    coarse = tree.solve()

    # ---------------------------------------------------------------------
    # Refined run over the first second, 20x finer
    # ---------------------------------------------------------------------
    fine_grid = np.linspace(0.0, 1.0, 401)
    handle = tree.create_fine_solver(fine_grid, coarse_index=0)
    tree.solve_children()
    fine = tree[handle].result

    save_power_plot(
        {
            "coarse (dt = 0.05 s)": (time_coarse, coarse.power),
            "fine (dt = 2.5 ms)": (np.asarray(fine.time), fine.power),
        },
        title="Rod ejection: coarse and fine solvers",
        out_path=_OUTPUT_DIR / "rod_ejection_solvers.png",
    )

    combined = tree.assemble_global_output()
    save_power_plot(
        {
            "coarse only": (time_coarse, coarse.power),
            "assembled": (time_coarse, combined.power),
        },
        title="Rod ejection: assembled output on the coarse grid",
        out_path=_OUTPUT_DIR / "rod_ejection_assembled.png",
    )

    peak = int(np.argmax(fine.power))
    logging.getLogger(__name__).info(
        "Fine peak power %.4f at t = %.4f s", fine.power[peak], fine.time[peak]
    )


if __name__ == "__main__":
    main()
