"""
Discrete operators on the staggered grid.

    curl_flux     flux -> circulation     (Stokes' theorem around the dual cell)
    curl_scalar   streamfunction -> flux  (transpose of curl_flux)
    laplacian     5-point Laplacian of a circulation-shaped field (no dx^2)
    sine_transform  orthonormal DST-I, its own inverse

With zero Dirichlet values on the domain boundary, curl_flux(curl_scalar(psi))
equals -laplacian(psi), and the sine transform diagonalizes both.
"""

import numpy as np
import numpy.typing as npt
from scipy import fft

from ..grid.grid import Grid

NDArrayFloat = npt.NDArray[np.floating]


def sine_transform(a: NDArrayFloat) -> NDArrayFloat:
    """Orthonormal 2D type-I sine transform (involution)."""
    return fft.dstn(a, type=1, norm='ortho')


def curl_flux(grid: Grid, q: NDArrayFloat) -> NDArrayFloat:
    """
    Circulation around each interior node.

        gamma[i, j] = qx[i, j-1] - qx[i, j] + qy[i, j] - qy[i-1, j]

    Parameters
    ----------
    q : ndarray, shape (n_flux,)

    Returns
    -------
    ndarray, shape (nx-1, ny-1)
    """
    qx, qy = grid.split_flux(q)
    return qx[1:-1, :-1] - qx[1:-1, 1:] + qy[1:, 1:-1] - qy[:-1, 1:-1]


def curl_scalar(grid: Grid, psi: NDArrayFloat) -> NDArrayFloat:
    """
    Flux of a streamfunction given on interior nodes (zero on the boundary).

        qx[i, j] = psi[i, j+1] - psi[i, j]
        qy[i, j] = psi[i, j] - psi[i+1, j]
    """
    p = np.pad(psi, 1)
    qx = p[:, 1:] - p[:, :-1]
    qy = p[:-1, :] - p[1:, :]
    return grid.join_flux(qx, qy)


def laplacian(a: NDArrayFloat) -> NDArrayFloat:
    """5-point Laplacian stencil with zero boundary values, without the 1/dx^2 factor."""
    p = np.pad(a, 1)
    return p[2:, 1:-1] + p[:-2, 1:-1] + p[1:-1, 2:] + p[1:-1, :-2] - 4.0 * a


def divergence(grid: Grid, q: NDArrayFloat) -> NDArrayFloat:
    """Net outflow of each cell, shape (nx, ny)."""
    qx, qy = grid.split_flux(q)
    return qx[1:, :] - qx[:-1, :] + qy[:, 1:] - qy[:, :-1]


class PoissonSolver:
    """
    Streamfunction from circulation: psi = (-Lap_h)^{-1} gamma, where Lap_h is
    the 5-point stencil without metric factors (gamma = omega dx^2).
    """

    def __init__(self, grid: Grid):
        self.grid = grid
        self._inv_eigs = -1.0 / (grid.laplacian_eigenvalues() * grid.dx**2)

    def solve(self, gamma: NDArrayFloat) -> NDArrayFloat:
        return sine_transform(sine_transform(gamma) * self._inv_eigs)

    def flux(self, gamma: NDArrayFloat) -> NDArrayFloat:
        """Divergence-free flux induced by `gamma` (no normal flow through the domain boundary)."""
        return curl_scalar(self.grid, self.solve(gamma))

    def flux_transpose(self, p: NDArrayFloat) -> NDArrayFloat:
        """Transpose of `flux`: (-Lap_h)^{-1} curl_flux(p)."""
        return self.solve(curl_flux(self.grid, p))
