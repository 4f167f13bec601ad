"""
Discrete operators for the vorticity/streamfunction formulation.

This package provides:
    - Curl, Laplacian and divergence on the staggered grid
    - Sine-transform Poisson solver (streamfunction from circulation)
"""

from .operators import (
    sine_transform,
    curl_flux,
    curl_scalar,
    laplacian,
    divergence,
    PoissonSolver,
)

__all__ = [
    'sine_transform',
    'curl_flux',
    'curl_scalar',
    'laplacian',
    'divergence',
    'PoissonSolver',
]
