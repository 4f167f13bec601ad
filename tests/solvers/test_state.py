"""
Tests for the flow state: arithmetic, force query and snapshot round trip.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose, assert_array_equal

from ibpm.grid import Grid
from ibpm.solvers import State

from conftest import random_state


class TestStateArithmetic:

    def test_zero_initialized(self, rect_grid):
        x = State(rect_grid, 4)
        assert x.gamma.shape == rect_grid.gamma_shape
        assert x.q.shape == (rect_grid.n_flux,)
        assert x.f.shape == (8,)
        assert x.time == 0.0 and x.timestep == 0
        assert not x.gamma.any() and not x.q.any() and not x.f.any()

    def test_linear_combination(self, rect_grid):
        a = random_state(rect_grid, 3, seed=1)
        b = random_state(rect_grid, 3, seed=2)
        c = 2.0 * a - b
        assert_allclose(c.gamma, 2.0 * a.gamma - b.gamma)
        assert_allclose(c.q, 2.0 * a.q - b.q)
        assert_allclose(c.f, 2.0 * a.f - b.f)
        # Clock follows the left operand
        assert c.timestep == a.timestep

    def test_in_place_operations(self, rect_grid):
        a = random_state(rect_grid, 3, seed=1)
        b = random_state(rect_grid, 3, seed=2)
        gamma = a.gamma
        a += b
        a *= 0.5
        a -= b
        assert a.gamma is gamma
        assert_allclose(a.gamma, 0.5 * (random_state(rect_grid, 3, seed=1).gamma + b.gamma) - b.gamma)

    def test_incompatible_operands(self, rect_grid, small_grid):
        with pytest.raises(ValueError):
            State(rect_grid, 3) + State(rect_grid, 4)
        with pytest.raises(ValueError):
            State(rect_grid, 3) - State(small_grid, 3)
        x = State(rect_grid, 3)
        with pytest.raises(ValueError):
            x += State(small_grid, 3)

    def test_copy_is_deep(self, rect_grid):
        a = random_state(rect_grid, 2)
        b = a.copy()
        b.gamma[0, 0] += 1.0
        b.f[0] += 1.0
        assert a.gamma[0, 0] != b.gamma[0, 0]
        assert a.f[0] != b.f[0]
        assert (b.time, b.timestep) == (a.time, a.timestep)

    def test_net_force(self, rect_grid):
        x = State(rect_grid, 3)
        x.f[...] = [1.0, 2.0, 3.0, -1.0, 0.5, 0.25]
        fx, fy = x.compute_net_force()
        assert fx == pytest.approx(6.0)
        assert fy == pytest.approx(-0.25)
        assert_array_equal(x.f, [1.0, 2.0, 3.0, -1.0, 0.5, 0.25])


class TestStateSnapshot:

    def test_round_trip_is_bit_identical(self, rect_grid, tmp_path):
        x = random_state(rect_grid, 5, seed=3)
        path = x.save(tmp_path / "flow00010.bin")
        y = State(rect_grid, 5)
        assert y.load(path)
        assert_array_equal(y.gamma, x.gamma)
        assert_array_equal(y.q, x.q)
        assert_array_equal(y.f, x.f)
        assert y.time == x.time
        assert y.timestep == x.timestep

    def test_missing_file(self, rect_grid, tmp_path):
        x = random_state(rect_grid, 2)
        before = x.copy()
        assert not x.load(tmp_path / "missing.bin")
        assert_array_equal(x.gamma, before.gamma)

    @pytest.mark.parametrize("grid_args,num_points", [
        ((12, 8, 1.5, -0.75, -0.5), 4),      # different number of points
        ((12, 10, 1.5, -0.75, -0.5), 5),     # different ny
        ((12, 8, 3.0, -0.75, -0.5), 5),      # different extent
        ((12, 8, 1.5, 0.0, -0.5), 5),        # different offset
    ])
    def test_mismatch_leaves_target_unchanged(self, rect_grid, tmp_path, grid_args, num_points):
        path = random_state(rect_grid, 5, seed=4).save(tmp_path / "flow.bin")
        target = random_state(Grid(*grid_args), num_points, seed=5)
        before = target.copy()
        assert not target.load(path)
        assert_array_equal(target.gamma, before.gamma)
        assert_array_equal(target.q, before.q)
        assert_array_equal(target.f, before.f)
        assert (target.time, target.timestep) == (before.time, before.timestep)

    def test_malformed_files(self, rect_grid, tmp_path):
        good = random_state(rect_grid, 2).save(tmp_path / "good.bin")
        raw = good.read_bytes()
        truncated = tmp_path / "truncated.bin"
        truncated.write_bytes(raw[:-8])
        garbage = tmp_path / "garbage.bin"
        garbage.write_bytes(b"not a snapshot at all" * 10)
        short = tmp_path / "short.bin"
        short.write_bytes(raw[:20])

        x = State(rect_grid, 2)
        for path in (truncated, garbage, short):
            assert not x.load(path)
        assert not x.gamma.any()
