"""
Tests for the projection solvers.

Tests cover:
1. Solution satisfies both the momentum equation and the constraint
2. Cholesky and CG agree
3. Degenerate geometries (no points, coincident points)
4. Fatal solver failures raise SolverError
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from ibpm.grid import Geometry, RigidBody, TranslatingMotion
from ibpm.physics import NonlinearNavierStokes
from ibpm.solvers import (
    SolverError, CholeskySolver, ConjugateGradientSolver, create_projection_solver,
)

from conftest import gaussian_vortex


H = 0.01


@pytest.fixture
def model(small_grid, plate_geometry):
    return NonlinearNavierStokes(small_grid, plate_geometry, 100.0)


@pytest.fixture
def rhs(small_grid):
    return gaussian_vortex(small_grid, 0.05, 0.1, omega0=3.0)


def _momentum_residual(model, solver, gamma, f, a):
    lhs = model.Sinv(model.S(gamma) * (1.0 - solver.alpha * model.eigenvalues)) + solver.beta * model.B(f)
    return np.max(np.abs(lhs - a)) / np.max(np.abs(a))


class TestCholeskySolver:

    def test_solution_satisfies_system(self, model, rhs):
        solver = CholeskySolver(model, 0.5 * H, H)
        solver.init()
        b = model.constraints()
        gamma, f = solver.solve(rhs, b)
        assert f.shape == (2 * model.num_points,)
        assert_allclose(model.C(gamma), b, atol=1e-9)
        assert _momentum_residual(model, solver, gamma, f, rhs) < 1e-10

    def test_schur_complement_is_symmetric_positive(self, model):
        solver = CholeskySolver(model, 0.5 * H, H)
        rng = np.random.default_rng(0)
        u, v = rng.standard_normal((2, 2 * model.num_points))
        assert_allclose(solver.schur_matvec(u) @ v, u @ solver.schur_matvec(v), rtol=1e-9)
        assert solver.schur_matvec(u) @ u > 0

    def test_solve_before_init(self, model, rhs):
        solver = CholeskySolver(model, 0.5 * H, H)
        with pytest.raises(RuntimeError):
            solver.solve(rhs, model.constraints())

    def test_coincident_points_are_singular(self, small_grid):
        body = RigidBody(points=np.array([[0.0, 0.0], [0.1, 0.0], [0.0, 0.0]]))
        geom = Geometry([body])
        geom.move_bodies(0.0)
        model = NonlinearNavierStokes(small_grid, geom, 100.0)
        solver = CholeskySolver(model, 0.5 * H, H)
        with pytest.raises(SolverError):
            solver.init()

    def test_requires_stationary_bodies(self, small_grid):
        body = RigidBody(points=np.array([[0.0, 0.0]]), motion=TranslatingMotion(1.0, 0.0))
        geom = Geometry([body])
        geom.move_bodies(0.0)
        model = NonlinearNavierStokes(small_grid, geom, 100.0)
        with pytest.raises(SolverError, match="stationary"):
            CholeskySolver(model, 0.5 * H, H).init()

    def test_factor_restore(self, model, rhs):
        solver = CholeskySolver(model, 0.5 * H, H)
        solver.init()
        arrays = solver.state_arrays()
        restored = CholeskySolver(model, 0.5 * H, H)
        assert restored.restore_arrays(arrays)
        assert restored.is_initialized
        b = model.constraints()
        assert_allclose(restored.solve(rhs, b)[1], solver.solve(rhs, b)[1], rtol=1e-14)

    def test_restore_rejects_wrong_size(self, model):
        solver = CholeskySolver(model, 0.5 * H, H)
        assert not solver.restore_arrays({"cholesky_factor": np.eye(3)})
        assert not solver.restore_arrays({})
        assert not solver.is_initialized


class TestConjugateGradientSolver:

    def test_agrees_with_cholesky(self, model, rhs):
        chol = CholeskySolver(model, 0.5 * H, H)
        chol.init()
        cg = ConjugateGradientSolver(model, 0.5 * H, H, tol=1e-12, maxiter=500)
        cg.init()
        b = model.constraints()
        g1, f1 = chol.solve(rhs, b)
        g2, f2 = cg.solve(rhs, b)
        assert_allclose(f2, f1, rtol=1e-6, atol=1e-8 * np.max(np.abs(f1)))
        assert_allclose(g2, g1, atol=1e-8 * np.max(np.abs(g1)))
        assert cg.last_iterations > 0

    def test_warm_start(self, model, rhs):
        cg = ConjugateGradientSolver(model, 0.5 * H, H, tol=1e-10, maxiter=500)
        cg.init()
        b = model.constraints()
        _, f = cg.solve(rhs, b)
        cold = cg.last_iterations
        cg.solve(rhs, b, f0=f)
        assert cg.last_iterations < cold

    def test_non_convergence_is_fatal(self, model, rhs):
        cg = ConjugateGradientSolver(model, 0.5 * H, H, tol=1e-12, maxiter=1)
        cg.init()
        with pytest.raises(SolverError, match="did not converge"):
            cg.solve(rhs, model.constraints())

    def test_invalid_settings(self, model):
        with pytest.raises(ValueError):
            ConjugateGradientSolver(model, 0.5 * H, H, tol=0.0)
        with pytest.raises(ValueError):
            ConjugateGradientSolver(model, 0.5 * H, H, maxiter=0)


class TestSolverSelection:

    def test_auto_picks_cholesky_for_stationary_bodies(self, model):
        assert isinstance(create_projection_solver(model, H, H, "auto"), CholeskySolver)
        assert isinstance(create_projection_solver(model, H, H, "CG"), ConjugateGradientSolver)

    def test_auto_picks_cg_for_moving_bodies(self, small_grid):
        body = RigidBody(points=np.array([[0.0, 0.0]]), motion=TranslatingMotion(0.0, 1.0))
        model = NonlinearNavierStokes(small_grid, Geometry([body]), 100.0)
        assert isinstance(create_projection_solver(model, H, H, "auto"), ConjugateGradientSolver)

    def test_unknown_kind(self, model):
        with pytest.raises(ValueError):
            create_projection_solver(model, H, H, "lu")

    def test_no_points_reduces_to_diffusion_solve(self, small_grid, empty_geometry, rhs):
        model = NonlinearNavierStokes(small_grid, empty_geometry, 100.0)
        for kind in ("cholesky", "cg"):
            solver = create_projection_solver(model, 0.5 * H, H, kind)
            solver.init()
            gamma, f = solver.solve(rhs, np.zeros(0))
            assert f.shape == (0,)
            assert_allclose(gamma, solver.apply_inverse_diffusion(rhs))
            assert _momentum_residual(model, solver, gamma, f, rhs) < 1e-12
