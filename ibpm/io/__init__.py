"""
I/O module for IBPM.

Binary state and timestepper snapshots, force history and restart output.
"""

from .snapshot import (
    SnapshotError,
    SnapshotHeader,
    read_snapshot_header,
    read_state_snapshot,
    write_state_snapshot,
    read_stepper_snapshot,
    write_stepper_snapshot,
)
from .output import Output, OutputManager, ForceHistoryWriter, RestartWriter

__all__ = [
    'SnapshotError',
    'SnapshotHeader',
    'read_snapshot_header',
    'read_state_snapshot',
    'write_state_snapshot',
    'read_stepper_snapshot',
    'write_stepper_snapshot',
    'Output',
    'OutputManager',
    'ForceHistoryWriter',
    'RestartWriter',
]
