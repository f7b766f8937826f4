# tests/test_history.py
"""Unit tests for EPKEOutput and HistoryBuffers.

This module contains tests that verify:
- EPKEOutput validates shapes, copies its inputs and exposes per-index reads.
- slice() returns an independent prefix that includes the requested index.
- to_layout() exposes per-quantity sample lists with group tags.
- HistoryBuffers copies the seed and enforces append-once, in-order writes.
"""

from __future__ import annotations

import numpy as np
import pytest

from epke_engine.errors import MalformedInputError
from epke_engine.history import EPKEOutput, HistoryBuffers


def _output(n: int = 4, k: int = 2) -> EPKEOutput:
    return EPKEOutput(
        power=np.arange(1.0, n + 1.0),
        rho=np.linspace(0.0, 1e-3, n),
        concentrations=np.arange(k * n, dtype=float).reshape(k, n),
        time=np.linspace(0.0, 0.3, n),
    )


def test_output_reads() -> None:
    out = _output()
    assert out.num_time_steps == 4
    assert out.num_precursors == 2
    assert out.get_power(2) == 3.0
    assert out.get_rho(3) == pytest.approx(1e-3)
    assert out.get_concentration(1, 0) == 4.0

    with pytest.raises(IndexError):
        out.get_power(4)
    with pytest.raises(IndexError):
        out.get_rho(-1)


def test_output_copies_inputs() -> None:
    power = np.ones(3)
    out = EPKEOutput(power=power, rho=np.zeros(3), concentrations=np.zeros((1, 3)))
    power[0] = 5.0

    assert out.power[0] == 1.0
    assert not out.power.flags.writeable


@pytest.mark.parametrize(
    ("power", "rho", "conc"),
    [
        (np.ones(3), np.zeros(2), np.zeros((1, 3))),
        (np.ones(3), np.zeros(3), np.zeros((1, 2))),
        (np.ones(3), np.zeros(3), np.zeros(3)),
        (np.ones((3, 1)), np.zeros(3), np.zeros((1, 3))),
    ],
)
def test_output_rejects_bad_shapes(power, rho, conc) -> None:
    with pytest.raises(MalformedInputError):
        EPKEOutput(power=power, rho=rho, concentrations=conc)


def test_slice_includes_index() -> None:
    out = _output()
    prefix = out.slice(1)

    assert prefix.num_time_steps == 2
    np.testing.assert_array_equal(prefix.power, [1.0, 2.0])
    np.testing.assert_array_equal(prefix.concentrations, [[0.0, 1.0], [4.0, 5.0]])
    np.testing.assert_allclose(prefix.time, [0.0, 0.1])
    assert not np.shares_memory(prefix.power, out.power)


def test_slice_out_of_range() -> None:
    out = _output()
    with pytest.raises(MalformedInputError) as excinfo:
        out.slice(4)
    assert excinfo.value.step_index == 4


def test_to_layout() -> None:
    layout = _output(n=2, k=2).to_layout()

    assert layout["power"] == [1.0, 2.0]
    assert layout["time"] == pytest.approx([0.0, 0.3])
    assert layout["concentrations"] == [
        {"k": 0, "values": [0.0, 1.0]},
        {"k": 1, "values": [2.0, 3.0]},
    ]
    assert all(isinstance(v, float) for v in layout["rho"])


def test_to_layout_without_time() -> None:
    out = EPKEOutput(power=[1.0], rho=[0.0], concentrations=np.zeros((0, 1)))
    layout = out.to_layout()
    assert layout["time"] is None
    assert layout["concentrations"] == []


# -------------------------------------------------------------------
# HistoryBuffers
# -------------------------------------------------------------------


def test_buffers_copy_seed() -> None:
    seed = _output(n=2)
    buffers = HistoryBuffers(5, 2, seed)

    assert buffers.seed_length == 2
    assert buffers.n_filled == 2
    assert not buffers.is_complete
    np.testing.assert_array_equal(buffers.power[:2], seed.power)
    np.testing.assert_array_equal(buffers.power[2:], 0.0)
    np.testing.assert_array_equal(buffers.concentrations[:, :2], seed.concentrations)


def test_buffers_write_in_order() -> None:
    buffers = HistoryBuffers(3, 2, _output(n=1))
    buffers.write(1, 2.0, 1e-4, np.array([0.1, 0.2]))
    buffers.write(2, 3.0, 2e-4, np.array([0.3, 0.4]))

    assert buffers.is_complete
    snap = buffers.snapshot(np.array([0.0, 1.0, 2.0]))
    np.testing.assert_array_equal(snap.power, [1.0, 2.0, 3.0])
    np.testing.assert_array_equal(snap.concentrations[:, 2], [0.3, 0.4])
    np.testing.assert_array_equal(snap.time, [0.0, 1.0, 2.0])

    with pytest.raises(RuntimeError, match="full"):
        buffers.write(3, 4.0, 0.0, np.zeros(2))


def test_buffers_reject_out_of_order_writes() -> None:
    buffers = HistoryBuffers(4, 2, _output(n=1))
    with pytest.raises(RuntimeError, match="out of order"):
        buffers.write(2, 1.0, 0.0, np.zeros(2))
    with pytest.raises(RuntimeError, match="out of order"):
        buffers.write(0, 1.0, 0.0, np.zeros(2))


def test_snapshot_covers_written_prefix() -> None:
    buffers = HistoryBuffers(4, 2, _output(n=1))
    buffers.write(1, 2.0, 0.0, np.zeros(2))
    snap = buffers.snapshot(np.linspace(0.0, 3.0, 4))

    assert snap.num_time_steps == 2
    np.testing.assert_array_equal(snap.time, [0.0, 1.0])
    snap_power = snap.power
    buffers.power[0] = 9.0
    assert snap_power[0] == 1.0


@pytest.mark.parametrize(
    ("n_timesteps", "n_precursors", "seed_len"),
    [(2, 2, 3), (4, 3, 2)],
)
def test_buffers_reject_inconsistent_seed(
    n_timesteps: int, n_precursors: int, seed_len: int
) -> None:
    with pytest.raises(MalformedInputError):
        HistoryBuffers(n_timesteps, n_precursors, _output(n=seed_len))


def test_buffers_reject_empty_seed() -> None:
    empty = EPKEOutput(power=[], rho=[], concentrations=np.zeros((2, 0)))
    with pytest.raises(MalformedInputError, match="at least one"):
        HistoryBuffers(3, 2, empty)
