"""
Grid and immersed-boundary geometry.

This module provides:
- The uniform staggered grid and the spectrum of its Laplacian
- Rigid bodies, their motions and the geometry file reader
- The regularized delta function coupling boundary points to the grid
"""

from .grid import Grid

from .geometry import (
    Geometry,
    GeometryError,
    RigidBody,
    Motion,
    FixedPosition,
    TranslatingMotion,
    PitchPlunge,
)

from .regularizer import Regularizer

__all__ = [
    'Grid',
    'Geometry',
    'GeometryError',
    'RigidBody',
    'Motion',
    'FixedPosition',
    'TranslatingMotion',
    'PitchPlunge',
    'Regularizer',
]
