"""
Regularized delta function coupling boundary points to grid edges.

Uses the 3-point kernel of Roma, Peskin & Berger (1999), J. Comput. Phys. 153.
The sparse weight matrix Phi (2 * num_points x n_flux) is assembled with a
numba kernel and refreshed whenever the geometry moves.
"""

import numpy as np
import numpy.typing as npt
from numba import njit
from scipy import sparse

from .grid import Grid
from .geometry import Geometry

NDArrayFloat = npt.NDArray[np.floating]


@njit(cache=True)
def _roma_kernel(r: float) -> float:
    r = abs(r)
    if r <= 0.5:
        return (1.0 + np.sqrt(1.0 - 3.0 * r * r)) / 3.0
    elif r <= 1.5:
        s = 1.0 - r
        return (5.0 - 3.0 * r - np.sqrt(max(0.0, 1.0 - 3.0 * s * s))) / 6.0
    return 0.0


@njit(cache=True)
def _delta_weights_kernel(
    px: np.ndarray,
    py: np.ndarray,
    x0: float,
    y0: float,
    dx: float,
    ni: int,
    nj: int,
) -> tuple:
    """
    Weights phi((x_e - X)/dx) phi((y_e - Y)/dx) of one edge lattice.

    Parameters
    ----------
    px, py : ndarray
        Point coordinates.
    x0, y0 : float
        Coordinates of lattice entry (0, 0).
    dx : float
        Lattice spacing.
    ni, nj : int
        Lattice shape; column index is i * nj + j.

    Returns
    -------
    rows, cols, vals : ndarray
        COO triplets (row = point index), trimmed to the nonzeros.
    """
    n = px.shape[0]
    rows = np.empty(16 * n, dtype=np.int64)
    cols = np.empty(16 * n, dtype=np.int64)
    vals = np.empty(16 * n, dtype=np.float64)
    k = 0
    for p in range(n):
        fi = (px[p] - x0) / dx
        fj = (py[p] - y0) / dx
        i0 = int(np.floor(fi - 1.5))
        j0 = int(np.floor(fj - 1.5))
        for i in range(i0, i0 + 4):
            if i < 0 or i >= ni:
                continue
            wx = _roma_kernel(i - fi)
            if wx == 0.0:
                continue
            for j in range(j0, j0 + 4):
                if j < 0 or j >= nj:
                    continue
                wy = _roma_kernel(j - fj)
                if wy == 0.0:
                    continue
                rows[k] = p
                cols[k] = i * nj + j
                vals[k] = wx * wy
                k += 1
    return rows[:k], cols[:k], vals[:k]


class Regularizer:
    """
    Interpolation E (flux -> boundary velocity) and its transpose (force -> flux).

        E q  = Phi q / dx          (velocity at the points)
        E* f = Phi^T f / dx        (flux-rate field of the point forces)
    """

    def __init__(self, grid: Grid, geometry: Geometry):
        self.grid = grid
        self.geometry = geometry
        self._revision = None
        self._matrix = None

    @property
    def matrix(self) -> sparse.csr_matrix:
        if self._revision != self.geometry.revision:
            self._matrix = self._assemble()
            self._revision = self.geometry.revision
        return self._matrix

    def _assemble(self) -> sparse.csr_matrix:
        grid = self.grid
        px, py = self.geometry.points()
        n = px.size
        # Each point needs its full 3 x 3 stencil inside the domain
        if not grid.contains(px, py, margin=2.0 * grid.dx):
            raise ValueError(
                "Boundary points must lie at least 2 cells inside the domain "
                f"[{grid.xoffset}, {grid.xoffset + grid.length}] x "
                f"[{grid.yoffset}, {grid.yoffset + grid.height}]"
            )

        dx = grid.dx
        rx, cx, vx = _delta_weights_kernel(
            px, py, grid.xoffset, grid.yoffset + 0.5 * dx, dx, grid.nx + 1, grid.ny)
        ry, cy, vy = _delta_weights_kernel(
            px, py, grid.xoffset + 0.5 * dx, grid.yoffset, dx, grid.nx, grid.ny + 1)

        rows = np.concatenate([rx, ry + n])
        cols = np.concatenate([cx, cy + grid.n_qx])
        vals = np.concatenate([vx, vy])
        return sparse.coo_matrix((vals, (rows, cols)), shape=(2 * n, grid.n_flux)).tocsr()

    def to_boundary(self, q: NDArrayFloat) -> NDArrayFloat:
        """Velocity at the boundary points from a flux field."""
        return (self.matrix @ q) / self.grid.dx

    def to_flux(self, f: NDArrayFloat) -> NDArrayFloat:
        """Flux-shaped field of the regularized point forces."""
        return (self.matrix.T @ f) / self.grid.dx
