"""
Solver Factory Module.

Maps model and scheme names to their implementations and builds models,
projection solvers and timesteppers from a run configuration.
"""

from enum import Enum
from typing import List, Optional

from loguru import logger

from ..config.schema import ConfigurationError, FlowConfig, SolverSettings
from ..grid.grid import Grid
from ..grid.geometry import Geometry
from ..physics.navier_stokes import (
    NavierStokesModel,
    NonlinearNavierStokes,
    LinearizedNavierStokes,
    AdjointNavierStokes,
    LinearizedPeriodicNavierStokes,
)
from .projection import PROJECTION_KINDS, ProjectionSolver, create_projection_solver
from .state import State
from .time_stepping import TimeStepper, Euler, AdamsBashforth, RungeKutta2, RungeKutta3


def _normalize(name: str) -> str:
    return name.strip().lower().replace("-", "").replace("_", "")


class ModelType(Enum):
    NONLINEAR = "nonlinear"
    LINEAR = "linear"
    ADJOINT = "adjoint"
    LINEAR_PERIODIC = "linearperiodic"

    @classmethod
    def from_name(cls, name: str) -> Optional["ModelType"]:
        """Model type for `name`, or None if unrecognized."""
        key = _normalize(name)
        for member in cls:
            if member.value == key:
                return member
        return None


class SchemeType(Enum):
    EULER = "euler"
    AB2 = "ab2"
    RK2 = "rk2"
    RK3 = "rk3"

    @classmethod
    def from_name(cls, name: str) -> Optional["SchemeType"]:
        """Scheme type for `name` (or one of its aliases), or None if unrecognized."""
        return _SCHEME_ALIASES.get(_normalize(name))


_SCHEME_ALIASES = {
    "euler": SchemeType.EULER,
    "singlestep": SchemeType.EULER,
    "ab2": SchemeType.AB2,
    "multistep": SchemeType.AB2,
    "rk2": SchemeType.RK2,
    "twostage": SchemeType.RK2,
    "rk3": SchemeType.RK3,
    "threestage": SchemeType.RK3,
}

_SCHEMES = {
    SchemeType.EULER: Euler,
    SchemeType.AB2: AdamsBashforth,
    SchemeType.RK2: RungeKutta2,
    SchemeType.RK3: RungeKutta3,
}


def load_base_flow(path: str, grid: Grid, num_points: int) -> State:
    """Read a base flow snapshot; an unreadable file is a configuration error."""
    base = State(grid, num_points)
    if not base.load(path):
        raise ConfigurationError(f"Unable to load base flow: {path}")
    return base


def create_model(flow: FlowConfig, grid: Grid, geometry: Geometry) -> NavierStokesModel:
    """Build the flow model named in `flow`, loading any base flows it needs."""
    model_type = ModelType.from_name(flow.model)
    if model_type is None:
        raise ConfigurationError(f"Unrecognized model: {flow.model}")

    if model_type is ModelType.NONLINEAR:
        return NonlinearNavierStokes(grid, geometry, flow.reynolds, flow.magnitude, flow.alpha)

    if model_type is ModelType.LINEAR_PERIODIC:
        paths = [flow.periodic_baseflow % k for k in range(flow.period)]
        logger.info(f"Loading {len(paths)} periodic base flows ({paths[0]} ... {paths[-1]})")
        base_flows: List[State] = [load_base_flow(p, grid, geometry.num_points) for p in paths]
        return LinearizedPeriodicNavierStokes(grid, geometry, flow.reynolds, base_flows,
                                              period_start=flow.period_start)

    base = load_base_flow(flow.baseflow, grid, geometry.num_points)
    if model_type is ModelType.LINEAR:
        return LinearizedNavierStokes(grid, geometry, flow.reynolds, base)
    return AdjointNavierStokes(grid, geometry, flow.reynolds, base)


def create_timestepper(scheme: str, model: NavierStokesModel, timestep: float,
                       projection: str = "auto", cg_tol: float = 1e-7,
                       cg_maxiter: int = 1000) -> TimeStepper:
    """Build an (uninitialized) timestepper by scheme name."""
    scheme_type = SchemeType.from_name(scheme)
    if scheme_type is None:
        raise ConfigurationError(f"Unrecognized scheme: {scheme}")
    if projection.lower() not in PROJECTION_KINDS:
        raise ConfigurationError(f"Unrecognized projection solver: {projection}")
    return _SCHEMES[scheme_type](model, timestep, projection, cg_tol, cg_maxiter)


def create_timestepper_from_settings(settings: SolverSettings, model: NavierStokesModel) -> TimeStepper:
    return create_timestepper(settings.scheme, model, settings.dt, settings.projection,
                              settings.cg_tol, settings.cg_maxiter)


__all__ = [
    'ModelType',
    'SchemeType',
    'PROJECTION_KINDS',
    'ProjectionSolver',
    'create_model',
    'create_projection_solver',
    'create_timestepper',
    'create_timestepper_from_settings',
    'load_base_flow',
]
