"""
Flow models for the immersed boundary projection method.

Each model supplies the operators a timestepper needs: eigenvalues of the
viscous term, the sine transform pair that diagonalizes it, the explicit
(nonlinear or linearized) term and flux reconstruction.
"""

from .advection import make_advection_bracket

from .navier_stokes import (
    NavierStokesModel,
    NonlinearNavierStokes,
    LinearizedNavierStokes,
    AdjointNavierStokes,
    LinearizedPeriodicNavierStokes,
)

__all__ = [
    'make_advection_bracket',
    'NavierStokesModel',
    'NonlinearNavierStokes',
    'LinearizedNavierStokes',
    'AdjointNavierStokes',
    'LinearizedPeriodicNavierStokes',
]
