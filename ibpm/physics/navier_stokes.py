"""
Navier-Stokes flow models in vorticity/streamfunction form.

The timesteppers solve

    d(gamma)/dt = L gamma + N(q, gamma) - B f,      C gamma = b

where L = Lap / Re is diagonal in the sine basis, N is the explicit term
supplied by the model and (B, C) couple the boundary force to the flow.

    NonlinearNavierStokes            N = curl(u x omega), uniform free stream
    LinearizedNavierStokes           N linearized about a steady base flow
    AdjointNavierStokes              transpose of the linearized term
    LinearizedPeriodicNavierStokes   base flow cycles through a periodic orbit
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import numpy as np
import numpy.typing as npt

from ..grid.grid import Grid
from ..grid.geometry import Geometry
from ..grid.regularizer import Regularizer
from ..numerics.operators import PoissonSolver, curl_flux, sine_transform
from .advection import make_advection_bracket
from .jax_config import jax, jnp

NDArrayFloat = npt.NDArray[np.floating]


class NavierStokesModel(ABC):
    """
    Operators shared by all flow models.

    Parameters
    ----------
    grid : Grid
    geometry : Geometry
        Immersed bodies; the model reads their points and velocities.
    reynolds : float
    """

    def __init__(self, grid: Grid, geometry: Geometry, reynolds: float):
        if reynolds <= 0:
            raise ValueError(f"Reynolds number must be positive, got {reynolds}")
        self.grid = grid
        self.geometry = geometry
        self.reynolds = float(reynolds)
        self.regularizer = Regularizer(grid, geometry)
        self.poisson = PoissonSolver(grid)
        self._bracket = make_advection_bracket(grid)

        eigenvalues = grid.laplacian_eigenvalues() / self.reynolds
        eigenvalues.flags.writeable = False
        self._eigenvalues = eigenvalues

    def __repr__(self) -> str:
        return f"{type(self).__name__}(grid={self.grid!r}, Re={self.reynolds:g}, points={self.num_points})"

    @property
    def eigenvalues(self) -> NDArrayFloat:
        """Eigenvalues of L = Lap / Re in the sine basis (read-only)."""
        return self._eigenvalues

    @property
    def num_points(self) -> int:
        return self.geometry.num_points

    # ------------------------------------------------------------------
    # Linear operators
    # ------------------------------------------------------------------

    def S(self, a: NDArrayFloat) -> NDArrayFloat:
        """Transform to the basis that diagonalizes L."""
        return sine_transform(a)

    def Sinv(self, a: NDArrayFloat) -> NDArrayFloat:
        return sine_transform(a)

    def B(self, f: NDArrayFloat) -> NDArrayFloat:
        """Circulation induced by boundary forces: curl(E^T f)."""
        return curl_flux(self.grid, self.regularizer.to_flux(f))

    def C(self, gamma: NDArrayFloat) -> NDArrayFloat:
        """Boundary velocity of the flux induced by `gamma` (offset excluded)."""
        return self.regularizer.to_boundary(self.poisson.flux(gamma))

    def flux_offset(self) -> NDArrayFloat:
        """Flux added to the curl of the streamfunction (zero unless overridden)."""
        return np.zeros(self.grid.n_flux)

    def compute_flux(self, gamma: NDArrayFloat) -> NDArrayFloat:
        return self.poisson.flux(gamma) + self.flux_offset()

    def refresh_flux(self, state) -> None:
        """Make state.q consistent with state.gamma."""
        state.q[...] = self.compute_flux(state.gamma)

    def constraints(self) -> NDArrayFloat:
        """Right-hand side b of C gamma = b at the geometry's current position."""
        b = self.geometry.velocities()
        if b.size == 0:
            return b
        return b - self.regularizer.to_boundary(self.flux_offset())

    @abstractmethod
    def nonlinear(self, state) -> NDArrayFloat:
        """Explicit term evaluated at `state` (gamma-shaped, no side effects)."""


class NonlinearNavierStokes(NavierStokesModel):
    """Full Navier-Stokes equations with a uniform free stream."""

    def __init__(self, grid: Grid, geometry: Geometry, reynolds: float,
                 magnitude: float = 1.0, alpha: float = 0.0):
        super().__init__(grid, geometry, reynolds)
        self.magnitude = float(magnitude)
        self.alpha = float(alpha)
        offset = grid.uniform_flux(self.magnitude, self.alpha)
        offset.flags.writeable = False
        self._offset = offset

    def flux_offset(self) -> NDArrayFloat:
        return self._offset

    def nonlinear(self, state) -> NDArrayFloat:
        return np.array(self._bracket(jnp.asarray(state.q), jnp.asarray(state.gamma)))


def _check_base_flow(grid: Grid, base_flow) -> None:
    if base_flow.grid != grid:
        raise ValueError(f"Base flow grid {base_flow.grid!r} does not match {grid!r}")


class LinearizedNavierStokes(NavierStokesModel):
    """
    Navier-Stokes equations linearized about a base flow (q0, gamma0).

        N'(q', gamma') = N(q0, gamma') + N(q', gamma0)

    The perturbation flux carries no free stream.
    """

    def __init__(self, grid: Grid, geometry: Geometry, reynolds: float, base_flow):
        super().__init__(grid, geometry, reynolds)
        _check_base_flow(grid, base_flow)
        self.base_flow = base_flow
        self._q0 = jnp.asarray(base_flow.q)
        self._g0 = jnp.asarray(base_flow.gamma)
        bracket = self._bracket
        self._linear_term = jax.jit(lambda q0, g0, q, g: bracket(q0, g) + bracket(q, g0))

    def base_flow_arrays(self, timestep: int) -> Tuple:
        """Base flow (q0, gamma0) in effect at step `timestep`."""
        return self._q0, self._g0

    def nonlinear(self, state) -> NDArrayFloat:
        q0, g0 = self.base_flow_arrays(state.timestep)
        return np.array(self._linear_term(q0, g0, jnp.asarray(state.q), jnp.asarray(state.gamma)))


class AdjointNavierStokes(NavierStokesModel):
    """
    Adjoint of the linearized equations about a base flow.

    The linearized term as a map of gamma alone is
    gamma' -> N(q0, gamma') + N(K gamma', gamma0) with K the streamfunction
    curl; its transpose is assembled from the JAX pullback of the bracket
    and the transpose of K.
    """

    def __init__(self, grid: Grid, geometry: Geometry, reynolds: float, base_flow):
        super().__init__(grid, geometry, reynolds)
        _check_base_flow(grid, base_flow)
        self.base_flow = base_flow
        q0 = jnp.asarray(base_flow.q)
        g0 = jnp.asarray(base_flow.gamma)
        bracket = self._bracket

        def linear_term(q, g):
            return bracket(q0, g) + bracket(q, g0)

        q_zero = jnp.zeros(grid.n_flux)
        g_zero = jnp.zeros(grid.gamma_shape)

        @jax.jit
        def pullback(w):
            _, vjp_fun = jax.vjp(linear_term, q_zero, g_zero)
            return vjp_fun(w)

        self._pullback = pullback

    def nonlinear(self, state) -> NDArrayFloat:
        w_q, w_gamma = self._pullback(jnp.asarray(state.gamma))
        return np.array(w_gamma) + self.poisson.flux_transpose(np.asarray(w_q))


class LinearizedPeriodicNavierStokes(LinearizedNavierStokes):
    """
    Linearized equations about a time-periodic base flow.

    Parameters
    ----------
    base_flows : list of State
        One base flow per step of the orbit; the period is their count.
    period_start : int
        Phase of the orbit at step 0.

    The base flow at step n is base_flows[(period_start + n) % period], so a
    restarted run picks up the correct phase from the state's step counter.
    """

    def __init__(self, grid: Grid, geometry: Geometry, reynolds: float,
                 base_flows: List, period_start: int = 0):
        if not base_flows:
            raise ValueError("A periodic base flow needs at least one snapshot")
        for base in base_flows:
            _check_base_flow(grid, base)
        super().__init__(grid, geometry, reynolds, base_flows[0])
        self.base_flows = list(base_flows)
        self.period = len(self.base_flows)
        self.period_start = int(period_start)
        self._q0s = [jnp.asarray(b.q) for b in self.base_flows]
        self._g0s = [jnp.asarray(b.gamma) for b in self.base_flows]

    def base_flow_index(self, timestep: int) -> int:
        return (self.period_start + int(timestep)) % self.period

    def base_flow_arrays(self, timestep: int) -> Tuple:
        k = self.base_flow_index(timestep)
        return self._q0s[k], self._g0s[k]

    def active_base_flow(self, timestep: Optional[int] = None):
        """Base flow State in effect at `timestep` (default: step 0)."""
        return self.base_flows[self.base_flow_index(timestep or 0)]
