"""
Run driver: builds the flow model and timestepper from a configuration,
sets up the initial condition and outputs, and integrates.

Usage:
    ibpm-run cases/cylinder.yaml
    ibpm-run cases/cylinder.yaml --scheme rk3 --nsteps 500 --outdir out/
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from ..config.schema import ConfigurationError, SimulationConfig
from ..config.loader import load_yaml, save_yaml, apply_cli_overrides
from ..grid.grid import Grid
from ..grid.geometry import Geometry, GeometryError
from ..io.output import OutputManager, ForceHistoryWriter, RestartWriter
from ..physics.navier_stokes import (
    NavierStokesModel,
    LinearizedNavierStokes,
    AdjointNavierStokes,
    LinearizedPeriodicNavierStokes,
)
from ..physics.jax_config import get_device_info
from ..utils.logging import setup_logging, add_log_file
from .factory import create_model, create_timestepper_from_settings
from .state import State


def build_grid(config: SimulationConfig) -> Grid:
    g = config.grid
    return Grid(g.nx, g.ny, g.length, g.xoffset, g.yoffset)


def build_geometry(config: SimulationConfig) -> Geometry:
    path = config.geometry_file
    logger.info(f"Reading geometry from file {path}")
    try:
        geometry = Geometry.load(path)
    except (FileNotFoundError, GeometryError) as exc:
        raise ConfigurationError(f"Unable to load geometry: {exc}") from exc
    logger.info(f"  {geometry.num_points} points on the boundary")
    return geometry


def _base_flow_for(model: NavierStokesModel, timestep: int) -> Optional[State]:
    if isinstance(model, LinearizedPeriodicNavierStokes):
        return model.active_base_flow(timestep)
    if isinstance(model, (LinearizedNavierStokes, AdjointNavierStokes)):
        return model.base_flow
    return None


def initial_condition(config: SimulationConfig, model: NavierStokesModel) -> State:
    """Zero flow, or the configured restart file (zero if it cannot be read)."""
    state = State(model.grid, model.num_points)
    ic = config.output.initial_condition
    if ic:
        logger.info(f"Loading initial condition from file: {ic}")
        if not state.load(ic):
            logger.warning("  Failed to load initial condition; using zero initial condition")
        if config.flow.subtract_baseflow:
            base = _base_flow_for(model, state.timestep)
            if base is None:
                raise ConfigurationError("subtract_baseflow applies only to linear models")
            logger.info("  Subtracting the base flow to form a linear perturbation")
            state.gamma -= base.gamma
            state.q -= base.q
            state.f[...] = 0.0
    else:
        logger.info("Using zero initial condition")

    model.refresh_flux(state)
    return state


def run_simulation(config: SimulationConfig) -> State:
    """
    Run a simulation described by `config`.

    Returns
    -------
    State
        Final state.

    Raises
    ------
    ConfigurationError
        For invalid settings, missing geometry or unreadable base flows.
    SolverError
        If a projection solve fails.
    """
    config.validate()

    outdir = Path(config.output.directory)
    outdir.mkdir(parents=True, exist_ok=True)
    name = config.output.name
    save_yaml(config, outdir / f"{name}.yaml")

    grid = build_grid(config)
    logger.info(f"Grid: {grid.nx} x {grid.ny}, dx = {grid.dx:g}")
    geometry = build_geometry(config)
    model = create_model(config.flow, grid, geometry)
    logger.info(f"Model: {model!r}")
    logger.debug(get_device_info())

    stepper = create_timestepper_from_settings(config.solver, model)
    basename = outdir / name
    if not stepper.load(basename):
        stepper.init()
        stepper.save(basename)

    state = initial_condition(config, model)
    logger.info(f"Initial step = {state.timestep}, time = {state.time:g}")

    outputs = OutputManager()
    out_cfg = config.output
    if out_cfg.restart_freq > 0:
        logger.info(f"Writing restart file every {out_cfg.restart_freq} steps")
        outputs.add_output(RestartWriter(basename, out_cfg.restart_freq, out_cfg.digits,
                                         on_write=lambda: stepper.save(basename)))
    if out_cfg.force_freq > 0:
        logger.info(f"Writing forces every {out_cfg.force_freq} steps")
        outputs.add_output(ForceHistoryWriter(outdir / f"{name}.force", out_cfg.force_freq))

    nsteps = config.solver.nsteps
    outputs.init(state)
    try:
        outputs.do_output(state)
        logger.info(f"Integrating for {nsteps} steps with {stepper!r}")
        for _ in range(nsteps):
            stepper.advance(state)
            fx, fy = state.compute_net_force()
            logger.info(f"step {state.timestep:6d}  t = {state.time:.5f}  "
                        f"x force: {2 * fx:14.6e}  y force: {2 * fy:14.6e}")
            outputs.do_output(state)
    finally:
        outputs.cleanup()

    return state


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Immersed boundary projection method solver for 2D incompressible flow"
    )
    parser.add_argument("config", help="Path to YAML configuration file")
    parser.add_argument("--model", type=str, default=None,
                        help="Flow model: nonlinear, linear, adjoint, linearperiodic")
    parser.add_argument("--scheme", type=str, default=None,
                        help="Timestepping scheme: euler, ab2, rk2, rk3")
    parser.add_argument("--nsteps", "-n", type=int, default=None,
                        help="Number of timesteps to compute")
    parser.add_argument("--name", type=str, default=None,
                        help="Run name (prefix of output files)")
    parser.add_argument("--outdir", "-o", type=str, default=None,
                        help="Directory for output files")
    parser.add_argument("--log-level", type=str, default="INFO",
                        help="Console log level (default: INFO)")
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    log_file = None
    try:
        config = apply_cli_overrides(load_yaml(args.config), args)
        log_file = add_log_file(Path(config.output.directory) / f"{config.output.name}.log")
        state = run_simulation(config)
        logger.success(f"Finished at step {state.timestep}, t = {state.time:g}")
    except FileNotFoundError as exc:
        logger.error(str(exc))
        return 1
    except ConfigurationError as exc:
        logger.error(f"Configuration error: {exc}")
        return 1
    finally:
        if log_file is not None:
            logger.remove(log_file)

    return 0


if __name__ == "__main__":
    sys.exit(main())
