"""
Configuration module for IBPM runs.

Provides YAML-based configuration with dataclass schema.
"""

from .schema import (
    SimulationConfig,
    GridConfig,
    GeometryConfig,
    FlowConfig,
    SolverSettings,
    OutputConfig,
    ConfigurationError,
    cylinder_preset,
    coarse_preset,
)

from .loader import (
    load_yaml,
    from_dict,
    apply_cli_overrides,
    save_yaml,
)

__all__ = [
    # Schema classes
    'SimulationConfig',
    'GridConfig',
    'GeometryConfig',
    'FlowConfig',
    'SolverSettings',
    'OutputConfig',
    'ConfigurationError',
    # Presets
    'cylinder_preset',
    'coarse_preset',
    # Loader functions
    'load_yaml',
    'from_dict',
    'apply_cli_overrides',
    'save_yaml',
]
