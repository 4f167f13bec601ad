"""
Advective term of the vorticity equation, d(omega)/dt = curl(u x omega).

In grid units (q = u dx, gamma = omega dx^2) the rotational term u x omega is
formed on the edges from averaged neighbours,

    Nx = <gamma> <qy> / dx^2   on interior vertical edges
    Ny = -<gamma> <qx> / dx^2  on interior horizontal edges

and its discrete curl gives the circulation tendency. The bracket is bilinear
in (q, gamma); the linearized and adjoint models reuse it through JAX
(jax.vjp supplies exact transposes).
"""

from typing import Callable

from ..grid.grid import Grid
from .jax_config import jax, jnp


def make_advection_bracket(grid: Grid) -> Callable:
    """
    Build the jitted bracket N(q, gamma) for `grid`.

    Returns
    -------
    callable
        bracket(q, gamma) with q of shape (n_flux,) and gamma of shape
        (nx-1, ny-1); returns a JAX array shaped like gamma.
    """
    nx, ny = grid.nx, grid.ny
    n_qx = grid.n_qx
    inv_dx2 = 1.0 / grid.dx**2

    @jax.jit
    def bracket(q, gamma):
        qx = q[:n_qx].reshape(nx + 1, ny)
        qy = q[n_qx:].reshape(nx, ny + 1)
        g = jnp.pad(gamma, 1)

        # Interior vertical edges (i = 1..nx-1, j = 0..ny-1)
        g_x = 0.5 * (g[1:-1, :-1] + g[1:-1, 1:])
        v_x = 0.25 * (qy[:-1, :-1] + qy[1:, :-1] + qy[:-1, 1:] + qy[1:, 1:])
        n_x = g_x * v_x * inv_dx2

        # Interior horizontal edges (i = 0..nx-1, j = 1..ny-1)
        g_y = 0.5 * (g[:-1, 1:-1] + g[1:, 1:-1])
        u_y = 0.25 * (qx[:-1, :-1] + qx[1:, :-1] + qx[:-1, 1:] + qx[1:, 1:])
        n_y = -g_y * u_y * inv_dx2

        return n_x[:, :-1] - n_x[:, 1:] + n_y[1:, :] - n_y[:-1, :]

    return bracket
