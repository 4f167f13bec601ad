"""
Solver components for the immersed boundary projection method.

This package provides:
    - Flow state container with binary snapshots
    - Projection solvers for the force/constraint system (Cholesky, CG)
    - Timestepping schemes (Euler, AB2, RK2, RK3)
    - Name-based construction of models and timesteppers
"""

from .state import State

from .projection import (
    PROJECTION_KINDS,
    SolverError,
    ProjectionSolver,
    CholeskySolver,
    ConjugateGradientSolver,
    create_projection_solver,
)

from .time_stepping import (
    TimeStepper,
    Euler,
    AdamsBashforth,
    RungeKutta2,
    RungeKutta3,
)

from .factory import (
    ModelType,
    SchemeType,
    create_model,
    create_timestepper,
    create_timestepper_from_settings,
    load_base_flow,
)

__all__ = [
    # State
    'State',
    # Projection
    'PROJECTION_KINDS',
    'SolverError',
    'ProjectionSolver',
    'CholeskySolver',
    'ConjugateGradientSolver',
    'create_projection_solver',
    # Time stepping
    'TimeStepper',
    'Euler',
    'AdamsBashforth',
    'RungeKutta2',
    'RungeKutta3',
    # Factory
    'ModelType',
    'SchemeType',
    'create_model',
    'create_timestepper',
    'create_timestepper_from_settings',
    'load_base_flow',
]
