"""
Binary snapshots of the flow state and of timestepper auxiliary data.

State snapshot (little-endian):

    8s  magic "IBPMSNAP"
    I   format version
    4i  nx, ny, ngrid, num_points
    3d  length, xoffset, yoffset
    q   timestep (step counter)
    d   time
    then float64 gamma (nx-1, ny-1) row-major, q (n_flux), f (2 * num_points)

Timestepper snapshots are numpy archives holding a JSON compatibility tag
next to the named arrays.
"""

import json
import os
import struct
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Tuple, Union

import numpy as np
import numpy.typing as npt

NDArrayFloat = npt.NDArray[np.floating]

SNAPSHOT_MAGIC = b"IBPMSNAP"
SNAPSHOT_VERSION = 1
_HEADER = struct.Struct("<8sI4i3dqd")
_TAG_KEY = "__tag__"


class SnapshotError(Exception):
    """Raised when a snapshot file exists but cannot be decoded."""


@dataclass(frozen=True)
class SnapshotHeader:
    """Grid sizing and clock stored with a state snapshot."""
    nx: int
    ny: int
    ngrid: int
    num_points: int
    length: float
    xoffset: float
    yoffset: float
    timestep: int
    time: float

    @property
    def n_gamma(self) -> int:
        return (self.nx - 1) * (self.ny - 1)

    @property
    def n_flux(self) -> int:
        return (self.nx + 1) * self.ny + self.nx * (self.ny + 1)

    @property
    def n_force(self) -> int:
        return 2 * self.num_points

    def same_layout(self, other: "SnapshotHeader") -> bool:
        """True if both headers describe the same grid and boundary (clock ignored)."""
        return (self.nx, self.ny, self.ngrid, self.num_points,
                self.length, self.xoffset, self.yoffset) == \
               (other.nx, other.ny, other.ngrid, other.num_points,
                other.length, other.xoffset, other.yoffset)


def _atomic_write(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_bytes(payload)
    os.replace(tmp, path)


def write_state_snapshot(path: Union[str, Path], header: SnapshotHeader,
                         gamma: NDArrayFloat, q: NDArrayFloat, f: NDArrayFloat) -> Path:
    """Write a state snapshot; returns the path written."""
    path = Path(path)
    arrays = [np.ascontiguousarray(a, dtype='<f8').ravel() for a in (gamma, q, f)]
    expected = (header.n_gamma, header.n_flux, header.n_force)
    for name, arr, n in zip(("gamma", "q", "f"), arrays, expected):
        if arr.size != n:
            raise ValueError(f"{name} has {arr.size} values, header expects {n}")

    head = _HEADER.pack(
        SNAPSHOT_MAGIC, SNAPSHOT_VERSION,
        header.nx, header.ny, header.ngrid, header.num_points,
        header.length, header.xoffset, header.yoffset,
        header.timestep, header.time,
    )
    _atomic_write(path, head + b"".join(a.tobytes() for a in arrays))
    return path


def read_snapshot_header(path: Union[str, Path]) -> SnapshotHeader:
    """Read only the header of a state snapshot."""
    path = Path(path)
    with open(path, 'rb') as fh:
        raw = fh.read(_HEADER.size)
    return _unpack_header(raw, path)


def _unpack_header(raw: bytes, path: Path) -> SnapshotHeader:
    if len(raw) < _HEADER.size:
        raise SnapshotError(f"{path}: truncated header ({len(raw)} bytes)")
    magic, version, nx, ny, ngrid, npts, length, xoff, yoff, step, time = _HEADER.unpack(raw[:_HEADER.size])
    if magic != SNAPSHOT_MAGIC:
        raise SnapshotError(f"{path}: not an IBPM snapshot (magic {magic!r})")
    if version != SNAPSHOT_VERSION:
        raise SnapshotError(f"{path}: unsupported snapshot version {version}")
    if nx < 2 or ny < 2 or npts < 0:
        raise SnapshotError(f"{path}: invalid sizes nx={nx}, ny={ny}, num_points={npts}")
    return SnapshotHeader(nx, ny, ngrid, npts, length, xoff, yoff, step, time)


def read_state_snapshot(path: Union[str, Path]) -> Tuple[SnapshotHeader, NDArrayFloat, NDArrayFloat, NDArrayFloat]:
    """
    Read a state snapshot.

    Returns
    -------
    header, gamma, q, f
        gamma has shape (nx-1, ny-1); q and f are flat.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    SnapshotError
        If the file is not a well-formed snapshot.
    """
    path = Path(path)
    raw = path.read_bytes()
    header = _unpack_header(raw, path)

    body = raw[_HEADER.size:]
    n_values = header.n_gamma + header.n_flux + header.n_force
    if len(body) != 8 * n_values:
        raise SnapshotError(
            f"{path}: expected {8 * n_values} bytes of field data, found {len(body)}")

    data = np.frombuffer(body, dtype='<f8').astype(np.float64)
    gamma = data[:header.n_gamma].reshape(header.nx - 1, header.ny - 1)
    q = data[header.n_gamma:header.n_gamma + header.n_flux]
    f = data[header.n_gamma + header.n_flux:]
    return header, gamma, q, f


# =============================================================================
# Timestepper snapshots
# =============================================================================

def write_stepper_snapshot(path: Union[str, Path], tag: Dict, arrays: Dict[str, NDArrayFloat]) -> Path:
    """Write a compatibility tag and named arrays to a numpy archive."""
    path = Path(path)
    if _TAG_KEY in arrays:
        raise ValueError(f"Array name {_TAG_KEY!r} is reserved")
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    with open(tmp, 'wb') as fh:
        np.savez(fh, **{_TAG_KEY: np.array(json.dumps(tag, sort_keys=True))},
                 **{k: np.asarray(v) for k, v in arrays.items()})
    os.replace(tmp, path)
    return path


def read_stepper_snapshot(path: Union[str, Path]) -> Tuple[Dict, Dict[str, NDArrayFloat]]:
    """
    Read a timestepper snapshot.

    Raises
    ------
    FileNotFoundError
        If the file does not exist (normal on a first run).
    SnapshotError
        If the file exists but is corrupt.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Timestepper snapshot not found: {path}")
    try:
        with np.load(path, allow_pickle=False) as data:
            tag = json.loads(str(data[_TAG_KEY]))
            arrays = {k: np.array(data[k]) for k in data.files if k != _TAG_KEY}
    except (OSError, ValueError, KeyError, EOFError, zipfile.BadZipFile) as exc:
        raise SnapshotError(f"{path}: corrupt timestepper snapshot ({exc})") from exc
    if not isinstance(tag, dict):
        raise SnapshotError(f"{path}: compatibility tag is not a mapping")
    return tag, arrays
