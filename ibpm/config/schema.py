"""
Configuration schema for IBPM runs.

Dataclass-based configuration that can be loaded from YAML or constructed programmatically.
"""

from dataclasses import dataclass, field, asdict
from typing import List


class ConfigurationError(ValueError):
    """Raised when a run configuration is invalid (detected before any timestepper exists)."""


@dataclass
class GridConfig:
    """Grid configuration."""

    nx: int = 200              # Cells in x
    ny: int = 200              # Cells in y
    ngrid: int = 1             # Grid levels (only a single domain is supported)
    length: float = 4.0        # Length of the domain in x
    xoffset: float = -2.0      # x-coordinate of left edge
    yoffset: float = -2.0      # y-coordinate of bottom edge


@dataclass
class GeometryConfig:
    """Immersed boundary geometry."""

    file: str = ""             # Geometry file; empty means "<output.name>.geom"


@dataclass
class FlowConfig:
    """Flow model configuration."""

    reynolds: float = 100.0
    magnitude: float = 1.0     # Free-stream speed (nonlinear model)
    alpha: float = 0.0         # Free-stream angle in degrees (nonlinear model)

    # Model: nonlinear, linear, adjoint, linearperiodic
    model: str = "nonlinear"

    # Base flow snapshot for linear/adjoint models
    baseflow: str = ""

    # Periodic base flow for the linear periodic model, e.g. "flow/base%05d.bin";
    # phase k of the orbit is read from periodic_baseflow % k
    periodic_baseflow: str = ""
    period: int = 1
    period_start: int = 0

    # Subtract the base flow from the initial condition (linear models only)
    subtract_baseflow: bool = False


@dataclass
class SolverSettings:
    """Time integration settings."""

    # Scheme: euler, ab2, rk2, rk3
    scheme: str = "rk2"
    dt: float = 0.01
    nsteps: int = 250

    # Constraint solver: "auto" (Cholesky if the bodies are stationary, else CG),
    #                    "cholesky", "cg"
    projection: str = "auto"
    cg_tol: float = 1e-7        # Relative tolerance for CG
    cg_maxiter: int = 1000      # Maximum CG iterations per solve


@dataclass
class OutputConfig:
    """Output configuration."""

    directory: str = "."
    name: str = "ibpm"
    initial_condition: str = ""   # Restart file to start from (zero flow if empty)
    restart_freq: int = 100       # Write a restart file every n steps (0 = never)
    force_freq: int = 1           # Write forces every n steps (0 = never)
    digits: int = 5               # Digits of the step number in restart file names


@dataclass
class SimulationConfig:
    """Complete simulation configuration."""

    grid: GridConfig = field(default_factory=GridConfig)
    geometry: GeometryConfig = field(default_factory=GeometryConfig)
    flow: FlowConfig = field(default_factory=FlowConfig)
    solver: SolverSettings = field(default_factory=SolverSettings)
    output: OutputConfig = field(default_factory=OutputConfig)

    @property
    def geometry_file(self) -> str:
        return self.geometry.file or f"{self.output.name}.geom"

    def validate(self) -> None:
        """
        Check the configuration before any model or timestepper is built.

        Raises
        ------
        ConfigurationError
            On the first group of problems found (all messages are joined).
        """
        from ..solvers.factory import ModelType, SchemeType, PROJECTION_KINDS

        errors: List[str] = []

        model_type = ModelType.from_name(self.flow.model)
        if model_type is None:
            errors.append(f"Unrecognized model: {self.flow.model}")
        if SchemeType.from_name(self.solver.scheme) is None:
            errors.append(f"Unrecognized scheme: {self.solver.scheme}")
        if self.solver.projection.lower() not in PROJECTION_KINDS:
            errors.append(f"Unrecognized projection solver: {self.solver.projection}")

        if self.grid.ngrid != 1:
            errors.append(f"Only a single grid level is supported, got ngrid={self.grid.ngrid}")
        if self.grid.nx < 2 or self.grid.ny < 2:
            errors.append(f"Grid must have at least 2 cells per direction, got {self.grid.nx} x {self.grid.ny}")
        if self.grid.length <= 0:
            errors.append(f"Domain length must be positive, got {self.grid.length}")
        if self.solver.dt <= 0:
            errors.append(f"Timestep must be positive, got {self.solver.dt}")
        if self.solver.nsteps < 0:
            errors.append(f"Number of steps must be non-negative, got {self.solver.nsteps}")
        if self.flow.reynolds <= 0:
            errors.append(f"Reynolds number must be positive, got {self.flow.reynolds}")

        if model_type is not None and model_type is not ModelType.NONLINEAR:
            if model_type is ModelType.LINEAR_PERIODIC:
                if not self.flow.periodic_baseflow:
                    errors.append("For the linear periodic model, a periodic base flow must be specified")
                if self.flow.baseflow:
                    errors.append("For the linear periodic model, a single base flow is not needed")
                if self.flow.period < 1:
                    errors.append(f"Period must be at least 1, got {self.flow.period}")
            else:
                if not self.flow.baseflow:
                    errors.append("For linear or adjoint models, a base flow must be specified")
                if self.flow.periodic_baseflow:
                    errors.append("For linear or adjoint models, a periodic base flow is not needed")
        elif model_type is ModelType.NONLINEAR and self.flow.subtract_baseflow:
            errors.append("subtract_baseflow applies only to linear models")

        if errors:
            raise ConfigurationError("; ".join(errors))

    def to_dict(self) -> dict:
        """Convert to nested dictionary."""
        return asdict(self)


# Preset configurations
def cylinder_preset() -> GridConfig:
    """Grid used by the sample cylinder case (dx = 0.02)."""
    return GridConfig(
        nx=200,
        ny=200,
        length=4.0,
        xoffset=-2.0,
        yoffset=-2.0,
    )


def coarse_preset() -> GridConfig:
    """Coarse grid for quick checks (dx = 0.05)."""
    return GridConfig(
        nx=80,
        ny=80,
        length=4.0,
        xoffset=-2.0,
        yoffset=-2.0,
    )
