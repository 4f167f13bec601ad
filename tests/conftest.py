"""
Shared pytest fixtures for the test suite.

Small grids keep the spectral solves and JAX compilation cheap; the
cylinder fixtures reproduce a coarse version of the sample case.
"""

import pytest
import numpy as np
from pathlib import Path

from ibpm.grid import Grid, Geometry, RigidBody
from ibpm.solvers import State


PROJECT_ROOT = Path(__file__).parent.parent
CASES_DIR = PROJECT_ROOT / "cases"


CYLINDER_GEOM = """# Unit-diameter cylinder, point spacing close to dx = 0.1
body Cylinder
    circle 0 0 0.5 32
end
"""


# =============================================================================
# Helpers
# =============================================================================

def gaussian_vortex(grid: Grid, x0: float = 0.0, y0: float = 0.0,
                    sigma: float = 0.15, omega0: float = 1.0) -> np.ndarray:
    """Circulation (omega * dx^2) of a Gaussian vortex on the interior nodes."""
    X, Y = grid.interior_nodes()
    r2 = (X - x0)**2 + (Y - y0)**2
    return omega0 * np.exp(-r2 / (2.0 * sigma**2)) * grid.dx**2


def random_state(grid: Grid, num_points: int, seed: int = 0) -> State:
    rng = np.random.default_rng(seed)
    x = State(grid, num_points)
    x.gamma[...] = rng.standard_normal(grid.gamma_shape)
    x.q[...] = rng.standard_normal(grid.n_flux)
    x.f[...] = rng.standard_normal(2 * num_points)
    x.time = float(rng.uniform(0.0, 10.0))
    x.timestep = int(rng.integers(0, 1000))
    return x


# =============================================================================
# Grid and geometry fixtures
# =============================================================================

@pytest.fixture
def small_grid():
    """16 x 16 unit square centered at the origin (dx = 1/16)."""
    return Grid(16, 16, 1.0, -0.5, -0.5)


@pytest.fixture
def rect_grid():
    """Non-square grid to catch nx/ny mix-ups."""
    return Grid(12, 8, 1.5, -0.75, -0.5)


@pytest.fixture
def empty_geometry():
    return Geometry()


@pytest.fixture
def cylinder_grid():
    """40 x 40 on [-2, 2]^2 (dx = 0.1)."""
    return Grid(40, 40, 4.0, -2.0, -2.0)


@pytest.fixture
def cylinder_geometry():
    return Geometry.from_text(CYLINDER_GEOM, source="cylinder.geom")


@pytest.fixture
def plate_geometry():
    """Short plate in the middle of the small grid."""
    body = RigidBody("Plate")
    body.add_line(-0.15, 0.0, 0.15, 0.0, 6)
    geom = Geometry([body])
    geom.move_bodies(0.0)
    return geom


@pytest.fixture
def cylinder_geom_file(tmp_path):
    path = tmp_path / "cylinder.geom"
    path.write_text(CYLINDER_GEOM)
    return path
