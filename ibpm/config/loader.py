"""
YAML configuration loader with validation.
"""

import yaml
from pathlib import Path
from typing import Dict, Any, Union
from dataclasses import fields, is_dataclass

from .schema import (
    SimulationConfig, GridConfig, GeometryConfig, FlowConfig, SolverSettings,
    OutputConfig, ConfigurationError, cylinder_preset, coarse_preset,
)


_SECTIONS = {
    'grid': GridConfig,
    'geometry': GeometryConfig,
    'flow': FlowConfig,
    'solver': SolverSettings,
    'output': OutputConfig,
}


def _merge_dict(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def _coerce_type(value, field_type):
    """Coerce value to the expected field type."""
    # YAML reads "1e-7" as a string
    if field_type in (float, 'float') and isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return value
    if field_type in (float, 'float') and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if field_type in (int, 'int') and isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return value
    return value


def _dict_to_dataclass(cls, data: dict):
    """Convert a flat dictionary to a dataclass instance."""
    if not is_dataclass(cls):
        return data
    if not isinstance(data, dict):
        raise ConfigurationError(f"Section for {cls.__name__} must be a mapping, got {type(data).__name__}")

    field_types = {f.name: f.type for f in fields(cls)}
    kwargs = {}

    for key, value in data.items():
        if key not in field_types:
            continue  # Skip unknown fields
        kwargs[key] = _coerce_type(value, field_types[key])

    return cls(**kwargs)


def load_yaml(path: Union[str, Path]) -> SimulationConfig:
    """
    Read a run configuration.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ConfigurationError
        If the file is not valid YAML or its top level is not a mapping.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{path}: invalid YAML ({exc})") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping of sections")
    return from_dict(data)


def from_dict(data: Dict[str, Any]) -> SimulationConfig:
    """
    Build a configuration from a mapping of sections.

    Missing sections and fields take their defaults; unknown fields are
    ignored. A top-level `preset` names a grid that the `grid` section
    then overrides field by field.
    """
    data = dict(data)

    # Check for preset
    preset = data.pop('preset', None)
    if preset:
        grid_preset = {
            'cylinder': cylinder_preset(),
            'coarse': coarse_preset(),
        }.get(preset)
        if grid_preset is None:
            raise ConfigurationError(f"Unknown grid preset: {preset}")
        grid_data = data.get('grid', {})
        preset_dict = {f.name: getattr(grid_preset, f.name) for f in fields(GridConfig)}
        data['grid'] = _merge_dict(preset_dict, grid_data)

    config_dict = {}
    for section, cls in _SECTIONS.items():
        if section in data:
            config_dict[section] = _dict_to_dataclass(cls, data[section])

    return SimulationConfig(**config_dict)


# Command-line option -> (section, field)
_CLI_FIELDS = {
    'model': ('flow', 'model'),
    'scheme': ('solver', 'scheme'),
    'nsteps': ('solver', 'nsteps'),
    'name': ('output', 'name'),
    'outdir': ('output', 'directory'),
}


def apply_cli_overrides(config: SimulationConfig, args) -> SimulationConfig:
    """Return a copy of `config` with the options given on the command line (not None) applied."""
    config_dict = config.to_dict()
    for option, (section, name) in _CLI_FIELDS.items():
        value = getattr(args, option, None)
        if value is not None:
            config_dict[section][name] = value
    return from_dict(config_dict)


def save_yaml(config: SimulationConfig, path: Union[str, Path]) -> None:
    """Save configuration to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w') as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)
