"""
Uniform staggered Cartesian grid.

Layout (cell size dx, nodes i = 0..nx, j = 0..ny):

    circulation  gamma[i-1, j-1]   at nodes (i, j), i = 1..nx-1, j = 1..ny-1
    x-flux       qx[i, j]          at vertical edges   (x_i,      y_{j+1/2})
    y-flux       qy[i, j]          at horizontal edges (x_{i+1/2}, y_j)

Circulation is omega * dx^2 and flux is velocity * dx, so discrete curl and
divergence need no metric factors. Flux fields are stored flat: all of qx
(row-major) followed by all of qy.
"""

from typing import Tuple

import numpy as np
import numpy.typing as npt

NDArrayFloat = npt.NDArray[np.floating]


class Grid:
    """Single-domain uniform grid with square cells."""

    nx: int
    ny: int
    length: float
    xoffset: float
    yoffset: float
    dx: float

    def __init__(self, nx: int, ny: int, length: float,
                 xoffset: float = 0.0, yoffset: float = 0.0) -> None:
        if nx < 2 or ny < 2:
            raise ValueError(f"Grid needs at least 2 cells per direction, got {nx} x {ny}")
        if length <= 0:
            raise ValueError(f"Grid length must be positive, got {length}")
        self.nx = int(nx)
        self.ny = int(ny)
        self.length = float(length)
        self.xoffset = float(xoffset)
        self.yoffset = float(yoffset)
        self.dx = self.length / self.nx

    def __repr__(self) -> str:
        return (f"Grid(nx={self.nx}, ny={self.ny}, length={self.length}, "
                f"xoffset={self.xoffset}, yoffset={self.yoffset})")

    def __eq__(self, other) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return (self.nx == other.nx and self.ny == other.ny
                and self.length == other.length
                and self.xoffset == other.xoffset
                and self.yoffset == other.yoffset)

    @property
    def height(self) -> float:
        return self.ny * self.dx

    @property
    def gamma_shape(self) -> Tuple[int, int]:
        return (self.nx - 1, self.ny - 1)

    @property
    def qx_shape(self) -> Tuple[int, int]:
        return (self.nx + 1, self.ny)

    @property
    def qy_shape(self) -> Tuple[int, int]:
        return (self.nx, self.ny + 1)

    @property
    def n_qx(self) -> int:
        return (self.nx + 1) * self.ny

    @property
    def n_flux(self) -> int:
        return self.n_qx + self.nx * (self.ny + 1)

    # ------------------------------------------------------------------
    # Coordinates
    # ------------------------------------------------------------------

    def node_x(self) -> NDArrayFloat:
        """x-coordinates of node columns i = 0..nx."""
        return self.xoffset + self.dx * np.arange(self.nx + 1)

    def node_y(self) -> NDArrayFloat:
        """y-coordinates of node rows j = 0..ny."""
        return self.yoffset + self.dx * np.arange(self.ny + 1)

    def interior_nodes(self) -> Tuple[NDArrayFloat, NDArrayFloat]:
        """Meshgrid (ij) of the nodes carrying circulation."""
        return np.meshgrid(self.node_x()[1:-1], self.node_y()[1:-1], indexing='ij')

    def qx_points(self) -> Tuple[NDArrayFloat, NDArrayFloat]:
        """Meshgrid (ij) of vertical edge midpoints."""
        y = self.yoffset + self.dx * (np.arange(self.ny) + 0.5)
        return np.meshgrid(self.node_x(), y, indexing='ij')

    def qy_points(self) -> Tuple[NDArrayFloat, NDArrayFloat]:
        """Meshgrid (ij) of horizontal edge midpoints."""
        x = self.xoffset + self.dx * (np.arange(self.nx) + 0.5)
        return np.meshgrid(x, self.node_y(), indexing='ij')

    def contains(self, x: NDArrayFloat, y: NDArrayFloat, margin: float = 0.0) -> bool:
        """True if all points lie at least `margin` inside the domain."""
        x = np.asarray(x)
        y = np.asarray(y)
        if x.size == 0:
            return True
        return bool(
            np.all(x >= self.xoffset + margin)
            and np.all(x <= self.xoffset + self.length - margin)
            and np.all(y >= self.yoffset + margin)
            and np.all(y <= self.yoffset + self.height - margin)
        )

    # ------------------------------------------------------------------
    # Flux layout
    # ------------------------------------------------------------------

    def split_flux(self, q: NDArrayFloat) -> Tuple[NDArrayFloat, NDArrayFloat]:
        """Views (qx, qy) into a flat flux vector."""
        if q.shape != (self.n_flux,):
            raise ValueError(f"Flux has shape {q.shape}, expected ({self.n_flux},)")
        return q[:self.n_qx].reshape(self.qx_shape), q[self.n_qx:].reshape(self.qy_shape)

    def join_flux(self, qx: NDArrayFloat, qy: NDArrayFloat) -> NDArrayFloat:
        return np.concatenate([np.ravel(qx), np.ravel(qy)])

    def uniform_flux(self, magnitude: float, alpha_deg: float = 0.0) -> NDArrayFloat:
        """Flux of a uniform stream of speed `magnitude` at angle `alpha_deg`."""
        alpha = np.deg2rad(alpha_deg)
        qx = np.full(self.qx_shape, magnitude * np.cos(alpha) * self.dx)
        qy = np.full(self.qy_shape, magnitude * np.sin(alpha) * self.dx)
        return self.join_flux(qx, qy)

    # ------------------------------------------------------------------
    # Spectrum of the 5-point Laplacian (homogeneous Dirichlet)
    # ------------------------------------------------------------------

    def laplacian_eigenvalues(self) -> NDArrayFloat:
        """
        Eigenvalues of the 5-point Laplacian on interior nodes.

        The eigenvectors are sin(pi k i / nx) sin(pi l j / ny), so the type-I
        sine transform diagonalizes the operator.

        Returns
        -------
        ndarray, shape (nx-1, ny-1)
            (2 cos(pi k / nx) + 2 cos(pi l / ny) - 4) / dx^2, all negative.
        """
        k = np.arange(1, self.nx)
        l = np.arange(1, self.ny)
        lam_x = 2.0 * np.cos(np.pi * k / self.nx) - 2.0
        lam_y = 2.0 * np.cos(np.pi * l / self.ny) - 2.0
        return (lam_x[:, None] + lam_y[None, :]) / self.dx**2
