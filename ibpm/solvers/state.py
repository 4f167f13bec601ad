"""
Flow state: circulation, flux and boundary force at one instant.

Arithmetic is defined on (gamma, q, f) so multistage schemes can combine
states directly; time and step counter are carried by the left operand.
"""

from pathlib import Path
from typing import Tuple, Union

import numpy as np
import numpy.typing as npt
from loguru import logger

from ..grid.grid import Grid
from ..io.snapshot import (
    SnapshotError, SnapshotHeader, read_state_snapshot, write_state_snapshot,
)

NDArrayFloat = npt.NDArray[np.floating]


class State:
    """
    Flow state on a single grid.

    Attributes
    ----------
    gamma : ndarray, shape (nx-1, ny-1)
        Circulation at interior nodes.
    q : ndarray, shape (n_flux,)
        Edge flux.
    f : ndarray, shape (2 * num_points,)
        Boundary force (x block then y block).
    time : float
    timestep : int
        Number of completed steps.
    """

    def __init__(self, grid: Grid, num_points: int):
        self.grid = grid
        self.num_points = int(num_points)
        self.gamma = np.zeros(grid.gamma_shape)
        self.q = np.zeros(grid.n_flux)
        self.f = np.zeros(2 * self.num_points)
        self.time = 0.0
        self.timestep = 0

    def __repr__(self) -> str:
        return (f"State(nx={self.grid.nx}, ny={self.grid.ny}, num_points={self.num_points}, "
                f"timestep={self.timestep}, time={self.time:g})")

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def is_compatible(self, other: "State") -> bool:
        return (isinstance(other, State)
                and self.grid == other.grid
                and self.num_points == other.num_points)

    def _check(self, other: "State") -> None:
        if not self.is_compatible(other):
            raise ValueError(f"Incompatible states: {self!r} and {other!r}")

    def copy(self) -> "State":
        new = State(self.grid, self.num_points)
        new.gamma[...] = self.gamma
        new.q[...] = self.q
        new.f[...] = self.f
        new.time = self.time
        new.timestep = self.timestep
        return new

    def __iadd__(self, other: "State") -> "State":
        self._check(other)
        self.gamma += other.gamma
        self.q += other.q
        self.f += other.f
        return self

    def __isub__(self, other: "State") -> "State":
        self._check(other)
        self.gamma -= other.gamma
        self.q -= other.q
        self.f -= other.f
        return self

    def __imul__(self, a: float) -> "State":
        self.gamma *= a
        self.q *= a
        self.f *= a
        return self

    def __add__(self, other: "State") -> "State":
        result = self.copy()
        result += other
        return result

    def __sub__(self, other: "State") -> "State":
        result = self.copy()
        result -= other
        return result

    def __mul__(self, a: float) -> "State":
        result = self.copy()
        result *= a
        return result

    __rmul__ = __mul__

    def __neg__(self) -> "State":
        return self * -1.0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def compute_net_force(self) -> Tuple[float, float]:
        """Net force on all bodies, (sum fx, sum fy)."""
        n = self.num_points
        return float(np.sum(self.f[:n])), float(np.sum(self.f[n:]))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def header(self) -> SnapshotHeader:
        g = self.grid
        return SnapshotHeader(
            nx=g.nx, ny=g.ny, ngrid=1, num_points=self.num_points,
            length=g.length, xoffset=g.xoffset, yoffset=g.yoffset,
            timestep=int(self.timestep), time=float(self.time),
        )

    def save(self, path: Union[str, Path]) -> Path:
        """Write the state to a binary snapshot."""
        path = write_state_snapshot(path, self.header(), self.gamma, self.q, self.f)
        logger.debug(f"Saved state (step {self.timestep}, t={self.time:g}) to {path}")
        return path

    def load(self, path: Union[str, Path]) -> bool:
        """
        Populate the state from a snapshot.

        Returns
        -------
        bool
            False (state unchanged) if the file is missing, malformed, or was
            written for a different grid or number of boundary points.
        """
        try:
            header, gamma, q, f = read_state_snapshot(path)
        except FileNotFoundError:
            logger.warning(f"Snapshot not found: {path}")
            return False
        except (OSError, SnapshotError) as exc:
            logger.warning(f"Could not read snapshot: {exc}")
            return False

        if not header.same_layout(self.header()):
            logger.warning(
                f"Snapshot {path} does not match the current setup: "
                f"nx={header.nx}, ny={header.ny}, ngrid={header.ngrid}, "
                f"num_points={header.num_points}, length={header.length}, "
                f"offset=({header.xoffset}, {header.yoffset})"
            )
            return False

        self.gamma[...] = gamma
        self.q[...] = q
        self.f[...] = f
        self.time = header.time
        self.timestep = header.timestep
        logger.info(f"Loaded state from {path} (step {self.timestep}, t={self.time:g})")
        return True
