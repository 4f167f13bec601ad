"""
Tests for the regularized delta function (Roma kernel) and its sparse assembly.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from ibpm.grid import Geometry, RigidBody, Regularizer, TranslatingMotion


def _points_geometry(points):
    geom = Geometry([RigidBody(points=np.asarray(points, dtype=float))])
    geom.move_bodies(0.0)
    return geom


class TestRegularizer:

    def test_matrix_shape(self, small_grid, plate_geometry):
        reg = Regularizer(small_grid, plate_geometry)
        assert reg.matrix.shape == (2 * plate_geometry.num_points, small_grid.n_flux)

    @pytest.mark.parametrize("point", [(0.0, 0.0), (0.013, -0.071), (0.2, 0.31)])
    def test_weights_sum_to_one(self, small_grid, point):
        # Roma kernel is a partition of unity in each direction
        reg = Regularizer(small_grid, _points_geometry([point]))
        row_sums = np.asarray(reg.matrix.sum(axis=1)).ravel()
        assert_allclose(row_sums, [1.0, 1.0], rtol=1e-12)

    def test_uniform_flow_is_interpolated_exactly(self, small_grid, plate_geometry):
        reg = Regularizer(small_grid, plate_geometry)
        u = reg.to_boundary(small_grid.uniform_flux(1.5, 30.0))
        n = plate_geometry.num_points
        assert_allclose(u[:n], 1.5 * np.cos(np.pi / 6))
        assert_allclose(u[n:], 1.5 * np.sin(np.pi / 6))

    def test_spreading_is_transpose_of_interpolation(self, small_grid, plate_geometry):
        rng = np.random.default_rng(1)
        reg = Regularizer(small_grid, plate_geometry)
        q = rng.standard_normal(small_grid.n_flux)
        f = rng.standard_normal(2 * plate_geometry.num_points)
        assert_allclose(reg.to_boundary(q) @ f, q @ reg.to_flux(f), rtol=1e-12)

    def test_reassembles_after_motion(self, small_grid):
        body = RigidBody(points=np.array([[0.0, 0.0]]), motion=TranslatingMotion(1.0, 0.0))
        geom = Geometry([body])
        geom.move_bodies(0.0)
        reg = Regularizer(small_grid, geom)
        before = reg.matrix.copy()
        assert reg.matrix is reg.matrix
        geom.move_bodies(0.1)
        after = reg.matrix
        assert abs(before - after).max() > 0.1

    def test_rejects_points_near_domain_edge(self, small_grid):
        reg = Regularizer(small_grid, _points_geometry([(0.45, 0.0)]))
        with pytest.raises(ValueError, match="inside the domain"):
            reg.matrix

    def test_empty_geometry(self, small_grid, empty_geometry):
        reg = Regularizer(small_grid, empty_geometry)
        assert reg.matrix.shape == (0, small_grid.n_flux)
        assert reg.to_boundary(np.ones(small_grid.n_flux)).shape == (0,)
