"""
Time integration of the immersed-boundary equations.

Every scheme treats the viscous term implicitly and the nonlinear (or
linearized) term explicitly, and enforces the no-slip constraint at each
projected sub-step through a ProjectionSolver:

    euler   Crank-Nicolson + explicit Euler                       1st order
    ab2     Crank-Nicolson + Adams-Bashforth 2                    2nd order
    rk2     Crank-Nicolson + Heun (Peyret, alpha = 1, beta = 1/2) 2nd order
    rk3     ARS(4,4,3) IMEX Runge-Kutta                           3rd order

Reference: Ascher, Ruuth & Spiteri (1997), Appl. Numer. Math. 25, 151-167.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import numpy as np
import numpy.typing as npt
from loguru import logger

from ..io.snapshot import read_stepper_snapshot, write_stepper_snapshot
from .projection import ProjectionSolver, create_projection_solver, resolve_projection_kind
from .state import State

NDArrayFloat = npt.NDArray[np.floating]

STEPPER_SUFFIX = ".stepper.npz"


class TimeStepper(ABC):
    """
    Base class for timesteppers.

    A timestepper is created uninitialized; `init()` (or a successful
    `load()`) builds and precomputes its projection solvers. The timestep is
    fixed at construction.

    Parameters
    ----------
    model : NavierStokesModel
    timestep : float
    solver_kind : str
        'auto', 'cholesky' or 'cg'.
    cg_tol, cg_maxiter
        Conjugate-gradient settings (ignored by Cholesky).
    """

    name: str = ""

    def __init__(self, model, timestep: float, solver_kind: str = "auto",
                 cg_tol: float = 1e-7, cg_maxiter: int = 1000):
        if timestep <= 0:
            raise ValueError(f"Timestep must be positive, got {timestep}")
        self.model = model
        self.timestep = float(timestep)
        self.solver_kind = resolve_projection_kind(solver_kind, model.geometry)
        self.cg_tol = float(cg_tol)
        self.cg_maxiter = int(cg_maxiter)
        self._solvers: Dict[str, ProjectionSolver] = {}
        self._stage: Optional[State] = None
        self._initialized = False

    def __repr__(self) -> str:
        return f"{type(self).__name__}(h={self.timestep:g}, solver={self.solver_kind})"

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @abstractmethod
    def solver_coefficients(self) -> Dict[str, Tuple[float, float]]:
        """(alpha, beta) of each projection solver the scheme uses, by key."""

    def _build_solvers(self) -> None:
        self._solvers = {
            key: create_projection_solver(self.model, alpha, beta, self.solver_kind,
                                          self.cg_tol, self.cg_maxiter)
            for key, (alpha, beta) in self.solver_coefficients().items()
        }

    def init(self) -> None:
        """Build the projection solvers and run their precomputation."""
        logger.info(f"Initializing {self.name} timestepper (h={self.timestep:g}, {self.solver_kind})")
        self._build_solvers()
        for solver in self._solvers.values():
            solver.init()
        self._allocate_stage()
        self.reset_history()
        self._initialized = True

    def _allocate_stage(self) -> None:
        """Intermediate state reused by multi-stage schemes."""
        self._stage = State(self.model.grid, self.model.num_points)

    def reset_history(self) -> None:
        """Forget multistep history (no-op for single-step schemes)."""

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def compatibility_tag(self) -> Dict:
        """Everything the saved solver data depends on."""
        model = self.model
        grid = model.grid
        return {
            "scheme": self.name,
            "nx": grid.nx,
            "ny": grid.ny,
            "length": grid.length,
            "xoffset": grid.xoffset,
            "yoffset": grid.yoffset,
            "reynolds": model.reynolds,
            "num_points": model.num_points,
            "geometry": model.geometry.digest(),
            "timestep": self.timestep,
            "solver": self.solver_kind,
        }

    def history_arrays(self) -> Dict[str, NDArrayFloat]:
        return {}

    def restore_history(self, arrays: Dict[str, NDArrayFloat]) -> None:
        pass

    @staticmethod
    def snapshot_path(basename: Union[str, Path]) -> Path:
        return Path(f"{basename}{STEPPER_SUFFIX}")

    def save(self, basename: Union[str, Path]) -> Path:
        """Write precomputed solver data and history to `<basename>.stepper.npz`."""
        if not self._initialized:
            raise RuntimeError(f"{type(self).__name__}.save() called before init()")
        arrays: Dict[str, NDArrayFloat] = {}
        for key, solver in self._solvers.items():
            for name, arr in solver.state_arrays().items():
                arrays[f"solver.{key}.{name}"] = arr
        for name, arr in self.history_arrays().items():
            arrays[f"history.{name}"] = arr
        path = write_stepper_snapshot(self.snapshot_path(basename), self.compatibility_tag(), arrays)
        logger.debug(f"Saved timestepper data to {path}")
        return path

    def load(self, basename: Union[str, Path]) -> bool:
        """
        Restore solver data and history saved by `save`.

        Returns False (and leaves the timestepper untouched) if the file is
        missing or was written for a different scheme, grid, body, Reynolds
        number, timestep or solver. A corrupt file raises SnapshotError.
        """
        path = self.snapshot_path(basename)
        try:
            tag, arrays = read_stepper_snapshot(path)
        except FileNotFoundError:
            logger.info(f"No timestepper data at {path}")
            return False

        expected = self.compatibility_tag()
        if tag != expected:
            mismatched = sorted(k for k in set(tag) | set(expected) if tag.get(k) != expected.get(k))
            logger.warning(f"Timestepper data {path} is incompatible ({', '.join(mismatched)}); ignoring it")
            return False

        self._build_solvers()
        for key, solver in self._solvers.items():
            prefix = f"solver.{key}."
            saved = {k[len(prefix):]: v for k, v in arrays.items() if k.startswith(prefix)}
            if not solver.restore_arrays(saved):
                logger.warning(f"Solver data '{key}' missing from {path}; recomputing")
                solver.init()
        self._allocate_stage()
        self.reset_history()
        self.restore_history({k[len("history."):]: v for k, v in arrays.items() if k.startswith("history.")})
        self._initialized = True
        logger.info(f"Loaded {self.name} timestepper data from {path}")
        return True

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def advance(self, x: State) -> None:
        """Advance `x` by one timestep in place."""
        if not self._initialized:
            raise RuntimeError(f"{type(self).__name__}.advance() called before init() or load()")
        self._advance(x)

    @abstractmethod
    def _advance(self, x: State) -> None: ...

    def _move_geometry(self, time: float) -> None:
        geometry = self.model.geometry
        if not geometry.is_stationary:
            geometry.move_bodies(time)

    def _project(self, key: str, a: NDArrayFloat, time: float,
                 f0: Optional[NDArrayFloat]) -> Tuple[NDArrayFloat, NDArrayFloat]:
        """Solve the saddle-point system with the constraint imposed at `time`."""
        self._move_geometry(time)
        b = self.model.constraints()
        return self._solvers[key].solve(a, b, f0)

    def _explicit_diffusion(self, gamma: NDArrayFloat, coeff: float) -> NDArrayFloat:
        """(I + coeff L) gamma."""
        model = self.model
        return model.Sinv(model.S(gamma) * (1.0 + coeff * model.eigenvalues))

    def _finish(self, x: State, gamma: NDArrayFloat, f: NDArrayFloat) -> None:
        x.gamma[...] = gamma
        x.f[...] = f
        self.model.refresh_flux(x)
        x.time += self.timestep
        x.timestep += 1


class Euler(TimeStepper):
    """
    Crank-Nicolson for the viscous term, explicit Euler for the nonlinear term.

        (1 - h/2 L) gamma^{n+1} + h B f = (1 + h/2 L) gamma^n + h N(gamma^n)
        C gamma^{n+1} = b(t + h)
    """

    name = "euler"

    def solver_coefficients(self) -> Dict[str, Tuple[float, float]]:
        h = self.timestep
        return {"cn": (0.5 * h, h)}

    def _advance(self, x: State) -> None:
        h = self.timestep
        nonlinear = self.model.nonlinear(x)
        a = self._explicit_diffusion(x.gamma, 0.5 * h) + h * nonlinear
        gamma, f = self._project("cn", a, x.time + h, x.f)
        self._finish(x, gamma, f)


class AdamsBashforth(TimeStepper):
    """
    Crank-Nicolson for the viscous term, second-order Adams-Bashforth for
    the nonlinear term.

        (1 - h/2 L) gamma^{n+1} + h B f = (1 + h/2 L) gamma^n
                                          + h (3/2 N^n - 1/2 N^{n-1})

    The previous nonlinear term is kept together with the step it was
    evaluated at. When there is no history for step n-1 (first step, or a
    restart without matching history) the step is an explicit Euler step.
    """

    name = "ab2"

    def __init__(self, model, timestep: float, solver_kind: str = "auto",
                 cg_tol: float = 1e-7, cg_maxiter: int = 1000):
        super().__init__(model, timestep, solver_kind, cg_tol, cg_maxiter)
        self._previous: Optional[NDArrayFloat] = None
        self._previous_step: Optional[int] = None

    def solver_coefficients(self) -> Dict[str, Tuple[float, float]]:
        h = self.timestep
        return {"cn": (0.5 * h, h)}

    def reset_history(self) -> None:
        self._previous = None
        self._previous_step = None

    @property
    def has_history(self) -> bool:
        return self._previous is not None

    def record_history(self, x: State) -> None:
        """Store N(x) as the nonlinear term of step x.timestep."""
        self._previous = self.model.nonlinear(x)
        self._previous_step = int(x.timestep)

    def history_arrays(self) -> Dict[str, NDArrayFloat]:
        if self._previous is None:
            return {}
        return {"nonlinear": self._previous, "step": np.array(self._previous_step, dtype=np.int64)}

    def restore_history(self, arrays: Dict[str, NDArrayFloat]) -> None:
        nonlinear = arrays.get("nonlinear")
        step = arrays.get("step")
        if nonlinear is None or step is None:
            return
        if nonlinear.shape != self.model.grid.gamma_shape:
            logger.warning(f"Ignoring AB2 history of shape {nonlinear.shape}")
            return
        self._previous = np.array(nonlinear, dtype=float)
        self._previous_step = int(step)

    def _advance(self, x: State) -> None:
        h = self.timestep
        current = self.model.nonlinear(x)
        if self._previous is not None and self._previous_step == x.timestep - 1:
            explicit = 1.5 * current - 0.5 * self._previous
        else:
            logger.debug(f"AB2: no history for step {x.timestep - 1}, taking an Euler step")
            explicit = current

        a = self._explicit_diffusion(x.gamma, 0.5 * h) + h * explicit
        gamma, f = self._project("cn", a, x.time + h, x.f)
        self._previous = current
        self._previous_step = int(x.timestep)
        self._finish(x, gamma, f)


class RungeKutta2(TimeStepper):
    """
    Crank-Nicolson for the viscous term, Heun's method for the nonlinear term.

        (1 - h/2 L) gamma_1 + h B f_1 = (1 + h/2 L) gamma^n + h N(gamma^n)
        (1 - h/2 L) gamma^{n+1} + h B f = (1 + h/2 L) gamma^n + h/2 (N(gamma^n) + N(gamma_1))

    Both stages impose the constraint at t + h.
    """

    name = "rk2"

    def solver_coefficients(self) -> Dict[str, Tuple[float, float]]:
        h = self.timestep
        return {"cn": (0.5 * h, h)}

    def _advance(self, x: State) -> None:
        h = self.timestep
        t1 = x.time + h
        n0 = self.model.nonlinear(x)
        a0 = self._explicit_diffusion(x.gamma, 0.5 * h)

        gamma1, f1 = self._project("cn", a0 + h * n0, t1, x.f)
        x1 = self._stage
        x1.gamma[...] = gamma1
        x1.f[...] = f1
        x1.time = t1
        x1.timestep = x.timestep
        self.model.refresh_flux(x1)
        n1 = self.model.nonlinear(x1)

        gamma, f = self._project("cn", a0 + 0.5 * h * (n0 + n1), t1, f1)
        self._finish(x, gamma, f)


class RungeKutta3(TimeStepper):
    """
    Third-order implicit-explicit Runge-Kutta scheme ARS(4,4,3).

    Stage i solves

        (1 - h/2 L) U_i + h/2 B f_i = gamma^n + h sum_{j<i} (A_ij K_j + Ahat_ij N_j)
        C U_i = b(t + c_i h)

    where K_j = L U_j - B f_j is recovered from the stage solve and N_j is
    the explicit term at U_j. Both tableaux are stiffly accurate, so the last
    stage is the new state and already satisfies the constraint at t + h.
    """

    name = "rk3"

    DIAGONAL = 0.5
    C = (0.0, 1.0 / 2.0, 2.0 / 3.0, 1.0 / 2.0, 1.0)
    # Implicit tableau below the diagonal (the first column is zero)
    A = (
        (),
        (0.0,),
        (0.0, 1.0 / 6.0),
        (0.0, -1.0 / 2.0, 1.0 / 2.0),
        (0.0, 3.0 / 2.0, -3.0 / 2.0, 1.0 / 2.0),
    )
    AHAT = (
        (),
        (1.0 / 2.0,),
        (11.0 / 18.0, 1.0 / 18.0),
        (5.0 / 6.0, -5.0 / 6.0, 1.0 / 2.0),
        (1.0 / 4.0, 7.0 / 4.0, 3.0 / 4.0, -7.0 / 4.0),
    )

    def solver_coefficients(self) -> Dict[str, Tuple[float, float]]:
        gh = self.DIAGONAL * self.timestep
        return {"stage": (gh, gh)}

    def _advance(self, x: State) -> None:
        h = self.timestep
        gh = self.DIAGONAL * h
        t0 = x.time

        stage = self._stage
        stage.timestep = x.timestep
        implicit = [None]
        explicit = [self.model.nonlinear(x)]
        gamma, f = x.gamma, x.f

        for i in range(1, len(self.C)):
            rhs = x.gamma.copy()
            for j, (a_ij, ahat_ij) in enumerate(zip(self.A[i], self.AHAT[i])):
                if a_ij != 0.0:
                    rhs += h * a_ij * implicit[j]
                rhs += h * ahat_ij * explicit[j]

            gamma, f = self._project("stage", rhs, t0 + self.C[i] * h, f)
            if i == len(self.C) - 1:
                break

            implicit.append((gamma - rhs) / gh)
            stage.gamma[...] = gamma
            stage.f[...] = f
            stage.time = t0 + self.C[i] * h
            self.model.refresh_flux(stage)
            explicit.append(self.model.nonlinear(stage))

        self._finish(x, gamma, f)
