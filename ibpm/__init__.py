"""
Immersed Boundary Projection Method (IBPM) for 2D incompressible flow.

Vorticity/streamfunction formulation on a uniform staggered grid. The no-slip
condition on immersed bodies is enforced by a boundary force acting as a
Lagrange multiplier, solved together with the implicit viscous term at every
sub-step of the time integration.
"""

__version__ = "0.1.0"
